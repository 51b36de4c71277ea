"""
Plan status evaluation coordinator.

Gathers every input for one symbol (decision document, previous snapshot,
cached candles and derivative series, news overlay), runs the pure state
machine, persists the next snapshot, journals transitions and assembles
the output document consumers read.

Pipeline:
    read inputs -> evaluate (pure) -> persist + journal -> output document
"""

import threading
from pathlib import Path
from typing import Any, Callable, Optional

import structlog

from .config.defaults import DefaultConfig
from .config.loader import ConfigLoader
from .context.execution import build_execution_tuning
from .context.news import read_news_overlay
from .context.session import derive_session_context
from .data.decision import load_decision
from .data.models import DerivativesBundle
from .history.derivatives import DerivativesHistory
from .history.volatility import VolatilityHistory, VolatilitySnapshot
from .logging.config import get_state_logger, log_step_decision
from .metrics.derivatives import (
    SweepContext,
    build_signals,
    freshness,
    infer_crowd_and_trap,
    nearest_value_at,
    series_meta,
)
from .persistence.event_log import EventLog, derivative_context
from .persistence.state_store import PlanStateStore
from .state.machine import evaluate, next_persisted_state
from .state.models import EvaluationInputs, PlanEvaluation
from .utils.time import iso_from_ms, now_ms

logger = structlog.get_logger(__name__)
state_logger = get_state_logger(__name__)


def _meta_section(meta: dict[str, Any]) -> dict[str, Any]:
    return {
        "status": meta["status"],
        "has_data": meta["has_data"],
        "reason": meta["reason"],
        "source": meta["source"],
        "integrity": meta["integrity"],
        "now": meta["now"],
        "trend_5m": {"dir": meta["trend_5m"]["dir"], "pct": meta["trend_5m"]["pct"]},
        "trend_15m": {"dir": meta["trend_15m"]["dir"], "pct": meta["trend_15m"]["pct"]},
    }


def build_derivatives_section(bundle: DerivativesBundle, evaluation: PlanEvaluation,
                              close_5m: Optional[float], now: int,
                              config: DefaultConfig) -> dict[str, Any]:
    """Series health, signals and the crowd/trapped read for one evaluation."""
    params = config.signals
    fresh = freshness(bundle.updated_at, now, params)
    sources = bundle.sources

    funding_meta = series_meta(
        bundle.funding5, bundle.funding15, fresh,
        {"5m": sources.get("funding5"), "15m": sources.get("funding15"),
         "last_sample_time": bundle.funding_last_sample_time},
        params,
    )
    oi_meta = series_meta(
        bundle.oi5, bundle.oi15, fresh,
        {"5m": sources.get("oi5"), "15m": sources.get("oi15"),
         "last_sample_time": bundle.oi_last_sample_time},
        params,
    )
    if oi_meta["reason"] is None and bundle.oi_fallback.get("used"):
        oi_meta["reason"] = "from_oi_fallback"

    grid = evaluation.grid
    sweep_t = grid.sweep.event["t"] if grid is not None and grid.sweep.event else None
    sweep = SweepContext(
        sweep_seen=grid.sweep.seen if grid is not None else False,
        rejection_confirmed=grid.rejection.confirmed if grid is not None else False,
        close_5m=close_5m,
        zone_high=grid.zone_high if grid is not None else None,
        sweep_t=sweep_t,
    )

    oi_at_sweep = None
    if sweep_t is not None:
        oi_at_sweep = nearest_value_at(bundle.oi5, sweep_t, params.sweep_match_tolerance_ms)
        if oi_at_sweep is None:
            oi_at_sweep = nearest_value_at(bundle.oi15, sweep_t, params.sweep_match_tolerance_ms)

    crowd = infer_crowd_and_trap(sweep, oi_meta, funding_meta, oi_at_sweep)
    oi_section = _meta_section(oi_meta)
    oi_section["at_sweep"] = oi_at_sweep

    return {
        "updated_at": bundle.updated_at,
        "freshness": fresh,
        "oi": oi_section,
        "funding": _meta_section(funding_meta),
        "signals": build_signals(bundle, params),
        "crowd": {
            "side": crowd["crowd"],
            "trapped": crowd["trapped"],
            "oi_vs_sweep_pct": crowd["oi_vs_sweep_pct"],
            "explain": crowd["explain"],
            "note": crowd["note"],
        },
        "_event_context": derivative_context(oi_meta, funding_meta, crowd),
    }


class PlanStatusEngine:
    """
    Evaluates and records plan status for symbols sharing one data directory.

    Args:
        config: Fixed configuration; when None each symbol's configuration is
            loaded through ``ConfigLoader`` so per-symbol overrides apply
        data_dir: Overrides ``config.paths.data_dir``
        config_dir: Directory holding settings.yaml / symbols.yaml
        client: Exchange client used by the samplers
        clock: Epoch-ms clock
    """

    def __init__(self, config: Optional[DefaultConfig] = None,
                 data_dir: Optional[Path] = None,
                 config_dir: Optional[Path] = None,
                 client: Any = None,
                 clock: Callable[[], int] = now_ms):
        self.config_loader = None if config is not None else ConfigLoader.create(config_dir)
        self.config = config if config is not None else self.config_loader.load()
        self.data_dir = Path(data_dir if data_dir is not None else self.config.paths.data_dir)
        self._clock = clock

        paths = self.config.paths
        self.decision_path = self.data_dir / paths.decision_file
        self.news_path = self.data_dir / paths.news_file
        self.state_path = self.data_dir / paths.state_file
        self.event_log = EventLog(self.data_dir / paths.log_file)
        self.derivatives = DerivativesHistory(
            self.data_dir / paths.derivatives_cache_file,
            client=client,
            params=self.config.cache,
            oi_fallback_path=self.data_dir / paths.oi_fallback_file,
            clock=clock,
        )
        self.volatility = VolatilityHistory(
            self.data_dir / paths.volatility_cache_file,
            client=client,
            cache_params=self.config.cache,
            vol_params=self.config.volatility,
            kline_limit=self.config.exchange.kline_limit,
            clock=clock,
        )

        self._locks: dict[str, threading.Lock] = {}
        self._locks_guard = threading.Lock()

        logger.info("Plan status engine initialized", data_dir=str(self.data_dir))

    def _symbol_lock(self, symbol: str) -> threading.Lock:
        with self._locks_guard:
            return self._locks.setdefault(symbol, threading.Lock())

    def state_store(self, symbol: str) -> PlanStateStore:
        return PlanStateStore.for_symbol(self.state_path, symbol)

    def config_for(self, symbol: str) -> DefaultConfig:
        if self.config_loader is None:
            return self.config
        return self.config_loader.load(symbol)

    def gather_inputs(self, symbol: str, now: int) -> tuple[EvaluationInputs, dict[str, Any]]:
        """
        Read everything one evaluation needs.

        Raises:
            DecisionDocumentError: If the decision document is absent or unparsable
        """
        config = self.config_for(symbol)
        decision = load_decision(self.decision_path, config.grid.sweep_band_pct)
        previous = self.state_store(symbol).read()
        vol: VolatilitySnapshot = self.volatility.snapshot(symbol, now)
        bundle, deriv_debug = self.derivatives.bundle(symbol)

        inputs = EvaluationInputs(
            symbol=symbol,
            decision=decision,
            candles_5m=vol.candles_5m,
            candles_1h=vol.candles_1h,
            bundle=bundle,
            previous=previous,
            now_ms=now,
            config=config,
        )
        return inputs, {"volatility": vol, "deriv_debug": deriv_debug}

    def evaluate_symbol(self, symbol: str) -> dict[str, Any]:
        """
        Evaluate, persist and journal one symbol; returns the output document.

        Raises:
            DecisionDocumentError: Missing/unparsable decision or GRID without a zone
            PersistenceError: If the snapshot or journal cannot be written
        """
        with self._symbol_lock(symbol):
            now = self._clock()
            inputs, side = self.gather_inputs(symbol, now)
            evaluation = evaluate(inputs)
            vol: VolatilitySnapshot = side["volatility"]

            close_5m = inputs.candles_5m[-1].close if inputs.candles_5m else None
            close_1h = inputs.candles_1h[-1].close if inputs.candles_1h else None
            derivatives = build_derivatives_section(inputs.bundle, evaluation, close_5m, now,
                                                    inputs.config)
            event_context = derivatives.pop("_event_context")

            for step in evaluation.plan.steps:
                log_step_decision(state_logger, step.id, step.status.value, symbol, step.detail)

            self.state_store(symbol).write(next_persisted_state(evaluation, inputs.previous, now))
            events = self.event_log.record(evaluation, now, close_5m, event_context)

            state_logger.info(
                "Plan evaluated",
                symbol=symbol,
                mode_lock=evaluation.mode_lock.value,
                plan_state=evaluation.plan_state,
                mode_changed=evaluation.mode_changed,
                events=[e["type"] for e in events],
            )

            return self._output(evaluation, inputs, vol, derivatives, side["deriv_debug"],
                                close_5m, close_1h, now)

    def _output(self, evaluation: PlanEvaluation, inputs: EvaluationInputs,
                vol: VolatilitySnapshot, derivatives: dict[str, Any],
                deriv_debug: dict[str, Any], close_5m: Optional[float],
                close_1h: Optional[float], now: int) -> dict[str, Any]:
        decision = inputs.decision
        session = derive_session_context(now)
        relative = vol.summary.get("relative") or {}
        tuning = build_execution_tuning(relative.get("vol_state"), relative.get("atr_ratio"),
                                        relative.get("bbw_ratio"), session)
        grid = evaluation.grid
        params = decision.raw.get("parameters_for_grid_or_trend") or {}

        return {
            "ok": True,
            "data_dir": str(self.data_dir),
            "symbol": evaluation.symbol,
            "updated_at": now,
            "updated_at_iso": iso_from_ms(now),
            "mode_lock": {"value": evaluation.mode_lock.value, "changed": evaluation.mode_changed},
            "price": {"close_5m": close_5m, "close_1h": close_1h},
            "plan": {
                "market_regime": decision.market_regime,
                "market_mode": decision.market_mode,
                "grid": {
                    "upper": decision.grid_upper,
                    "lower": decision.grid_lower,
                    "count": params.get("grid_count") if isinstance(params, dict) else None,
                },
                "sweep_target": {"side": "UP", "zone": list(evaluation.zone) if grid else None},
                "trend": evaluation.trend_levels or None,
                "risk_warning": list(decision.risk_warning),
                "confidence": decision.confidence,
            },
            "derivatives": derivatives,
            "volatility": vol.to_dict(),
            "execution_tuning": tuning,
            "session": session.to_dict(),
            "risk_overlay": {
                "session": dict(session.risk_overlay),
                "news": read_news_overlay(self.news_path),
            },
            "states": {
                "sweep_5m": grid.sweep.state if grid else None,
                "rejection_15m": grid.rejection.state if grid else None,
                "confirm_1h": grid.confirm.state if grid else None,
                "plan_state": evaluation.plan_state,
            },
            "plan_status_state": evaluation.plan_status_state,
            "debug": {
                "sweep_event": grid.sweep.event if grid else None,
                "rejection_score": grid.rejection.score if grid else None,
                "rejection_detail": grid.rejection.detail if grid else None,
                "confirm_detail": grid.confirm.detail if grid else None,
                "sweep_zone_source": decision.sweep_zone_source,
                "derivative_sources": dict(inputs.bundle.sources),
                "volatility_status": {"status": vol.status, "reason": vol.reason},
                **deriv_debug,
            },
            "explanation": evaluation.explanation,
        }

    def read_log(self, limit: int = 50, symbol: Optional[str] = None) -> list[dict[str, Any]]:
        """Most recent journal events, oldest first; ``limit`` is clamped to 1..200."""
        return self.event_log.tail(limit, symbol=symbol)
