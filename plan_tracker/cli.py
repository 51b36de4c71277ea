"""Command line entry point: evaluate, log, sample, run, validate-config."""

import argparse
import json
import sys
import threading
from pathlib import Path
from typing import Any, Optional

from .config.loader import ConfigLoader
from .config.validation import ConfigValidator
from .engine import PlanStatusEngine
from .errors import DecisionDocumentError, PersistenceError
from .exchange import ExchangeClient
from .logging import configure_logging, get_logger
from .scheduler import DerivativesSampler, SamplingScheduler, VolatilitySampler, sample_once

logger = get_logger(__name__)


def _print_json(payload: Any) -> None:
    print(json.dumps(payload, indent=2, ensure_ascii=False, default=str))


def _engine(args: argparse.Namespace) -> PlanStatusEngine:
    loader = ConfigLoader.create(args.config_dir)
    config = loader.load()
    return PlanStatusEngine(
        data_dir=args.data_dir,
        config_dir=args.config_dir,
        client=ExchangeClient(config.exchange),
    )


def _samplers(engine: PlanStatusEngine, symbols: tuple[str, ...]) -> list:
    return [
        DerivativesSampler(engine.derivatives, symbols),
        VolatilitySampler(engine.volatility, symbols),
    ]


def cmd_evaluate(args: argparse.Namespace) -> int:
    engine = _engine(args)
    symbol = args.symbol or engine.config.symbols[0]
    try:
        _print_json(engine.evaluate_symbol(symbol))
    except (DecisionDocumentError, PersistenceError) as e:
        logger.error("Evaluation failed", symbol=symbol, error=str(e), error_type=type(e).__name__)
        _print_json({"ok": False, "symbol": symbol, "error": str(e)})
        return 1
    return 0


def cmd_log(args: argparse.Namespace) -> int:
    engine = _engine(args)
    events = engine.read_log(args.limit, symbol=args.symbol)
    _print_json({"ok": True, "count": len(events), "events": events})
    return 0


def cmd_sample(args: argparse.Namespace) -> int:
    engine = _engine(args)
    symbols = tuple(args.symbol) if args.symbol else engine.config.symbols
    result = sample_once(_samplers(engine, symbols), engine.config.scheduler.pipeline_timeout_seconds)
    _print_json(result)
    return 0 if result.get("ok", True) else 1


def cmd_run(args: argparse.Namespace) -> int:
    engine = _engine(args)
    params = engine.config.scheduler
    symbols = engine.config.symbols
    derivatives, volatility = _samplers(engine, symbols)

    schedulers = [
        SamplingScheduler(derivatives.job, derivatives, params.derivatives_interval_seconds,
                          jitter_seconds=params.jitter_seconds,
                          backoff_seconds=params.backoff_seconds,
                          startup_delay_seconds=params.startup_delay_seconds,
                          enabled=params.enabled),
        SamplingScheduler(volatility.job, volatility, params.volatility_interval_seconds,
                          jitter_seconds=params.jitter_seconds,
                          backoff_seconds=params.backoff_seconds,
                          startup_delay_seconds=params.startup_delay_seconds,
                          enabled=params.enabled),
    ]
    started = [s for s in schedulers if s.start()]
    if not started:
        logger.warning("No scheduler started", enabled=params.enabled)
        return 1

    logger.info("Sampling running", symbols=list(symbols), jobs=[s.name for s in started])
    idle = threading.Event()
    try:
        while all(s.is_running for s in started):
            idle.wait(1.0)
    except KeyboardInterrupt:
        logger.info("Interrupted, stopping schedulers")
    finally:
        for s in started:
            s.stop()
        _print_json({"ok": True, "schedulers": [s.stats() for s in schedulers]})
    return 0


def cmd_validate_config(args: argparse.Namespace) -> int:
    loader = ConfigLoader.create(args.config_dir)
    base = loader.merge_config()
    targets = list(args.symbol) if args.symbol else list(base.get("symbols") or [])

    report = {"default": ConfigValidator.validate_config(base)}
    for symbol in targets:
        report[symbol] = ConfigValidator.validate_config(loader.merge_config(symbol))

    all_valid = not any(report.values())
    _print_json({
        "ok": all_valid,
        "results": {
            name: [{"field": e.field, "message": e.message, "value": e.value} for e in errors]
            for name, errors in report.items()
        },
    })
    return 0 if all_valid else 1


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="plan-tracker",
                                     description="Trading plan status tracker")
    parser.add_argument("--data-dir", type=Path, default=None,
                        help="Data directory (default: config paths.data_dir)")
    parser.add_argument("--config-dir", type=Path, default=None,
                        help="Directory with settings.yaml and symbols.yaml")
    parser.add_argument("--log-level", default="INFO")
    parser.add_argument("--json-logs", action="store_true", help="Emit JSON log lines")

    sub = parser.add_subparsers(dest="command", required=True)

    p = sub.add_parser("evaluate", help="Evaluate the plan and print the status document")
    p.add_argument("--symbol", default=None)
    p.set_defaults(func=cmd_evaluate)

    p = sub.add_parser("log", help="Print the most recent journal events")
    p.add_argument("--limit", type=int, default=50)
    p.add_argument("--symbol", default=None, help="Only events for this symbol")
    p.set_defaults(func=cmd_log)

    p = sub.add_parser("sample", help="Run one sampling pass for the history caches")
    p.add_argument("--symbol", action="append", default=None)
    p.set_defaults(func=cmd_sample)

    p = sub.add_parser("run", help="Run both samplers until interrupted")
    p.set_defaults(func=cmd_run)

    p = sub.add_parser("validate-config", help="Validate merged configuration")
    p.add_argument("--symbol", action="append", default=None)
    p.set_defaults(func=cmd_validate_config)

    return parser


def main(argv: Optional[list[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    configure_logging(level=args.log_level, format_json=args.json_logs)
    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
