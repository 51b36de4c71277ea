"""
Append-only plan event journal (``plan_status_log.jsonl``).

One JSON object per line. Two event types are written: ``MODE_SWITCH`` when
the decision's mode lock differs from the persisted one (including the very
first evaluation) and ``STATE_CHANGE`` when the plan code differs. Both can
be written by the same evaluation, mode switch first.
"""

import json
import threading
from collections import deque
from enum import Enum
from pathlib import Path
from typing import Any, Optional

import structlog

from ..errors import PersistenceError
from ..logging.config import get_state_logger, log_state_transition
from ..state.models import PlanEvaluation

logger = structlog.get_logger(__name__)
state_logger = get_state_logger(__name__)

MAX_TAIL = 200


class EventType(str, Enum):
    STATE_CHANGE = "STATE_CHANGE"
    MODE_SWITCH = "MODE_SWITCH"


def _round(value: Optional[float], digits: int = 3) -> Optional[float]:
    return round(value, digits) if value is not None else None


def derivative_context(oi_meta: dict[str, Any], funding_meta: dict[str, Any],
                       crowd: dict[str, Any]) -> dict[str, Any]:
    """Compact derivative snapshot attached to every event."""
    return {
        "oi5_dir": oi_meta["trend_5m"]["dir"],
        "oi5_pct": _round(oi_meta["trend_5m"]["pct"]),
        "fund5_dir": funding_meta["trend_5m"]["dir"],
        "fund5_pct": _round(funding_meta["trend_5m"]["pct"]),
        "crowd": crowd.get("crowd"),
        "trapped": crowd.get("trapped"),
    }


def build_events(evaluation: PlanEvaluation, t: int, price: Optional[float],
                 deriv: dict[str, Any]) -> list[dict[str, Any]]:
    """Events implied by one evaluation, in write order."""
    events = []
    prev_mode = evaluation.previous_mode_lock.value if evaluation.previous_mode_lock else None

    if evaluation.mode_switched:
        events.append({
            "t": t,
            "symbol": evaluation.symbol,
            "type": EventType.MODE_SWITCH.value,
            "from": evaluation.previous_plan_state,
            "to": evaluation.plan_state,
            "from_mode": prev_mode,
            "to_mode": evaluation.mode_lock.value,
            "price": {"close_5m": price},
            "deriv": deriv,
            "explanation": f"Mode {prev_mode or '-'} -> {evaluation.mode_lock.value}",
        })

    if evaluation.state_changed:
        sweep_event = evaluation.grid.sweep.event if evaluation.grid is not None else None
        events.append({
            "t": t,
            "symbol": evaluation.symbol,
            "type": EventType.STATE_CHANGE.value,
            "from": evaluation.previous_plan_state,
            "to": evaluation.plan_state,
            "mode_lock": evaluation.mode_lock.value,
            "price": {"close_5m": price},
            "sweep": sweep_event,
            "deriv": deriv,
            "explanation": evaluation.explanation,
        })

    return events


class EventLog:
    """JSONL journal with a bounded tail reader."""

    def __init__(self, path: Path):
        self.path = Path(path)
        self._lock = threading.Lock()

    def append(self, event: dict[str, Any]) -> None:
        """
        Append one event line.

        Raises:
            PersistenceError: If the journal cannot be written
        """
        line = json.dumps(event, ensure_ascii=False)
        with self._lock:
            try:
                self.path.parent.mkdir(parents=True, exist_ok=True)
                with self.path.open("a", encoding="utf-8") as handle:
                    handle.write(line + "\n")
            except OSError as e:
                raise PersistenceError(f"Failed to append to {self.path.name}: {e}",
                                       operation="append", target=str(self.path)) from e

        log_state_transition(
            state_logger,
            symbol=event.get("symbol"),
            from_state=event.get("from_mode") if event["type"] == EventType.MODE_SWITCH.value
            else event.get("from"),
            to_state=event.get("to_mode") if event["type"] == EventType.MODE_SWITCH.value
            else event.get("to"),
            trigger=event["type"],
            context={"price": event.get("price"), "deriv": event.get("deriv")},
        )

    def record(self, evaluation: PlanEvaluation, t: int, price: Optional[float],
               deriv: dict[str, Any]) -> list[dict[str, Any]]:
        """Append every event the evaluation implies; returns them."""
        events = build_events(evaluation, t, price, deriv)
        for event in events:
            self.append(event)
        return events

    def tail(self, limit: int = 50, symbol: Optional[str] = None) -> list[dict[str, Any]]:
        """
        Last ``limit`` parseable events, oldest first.

        ``limit`` is clamped to 1..200 and applies after the optional
        ``symbol`` filter. Unparseable lines are skipped; a missing journal
        reads as empty.
        """
        limit = max(1, min(MAX_TAIL, int(limit)))
        if not self.path.exists():
            return []

        events: deque = deque(maxlen=limit)
        skipped = 0
        with self.path.open(encoding="utf-8", errors="replace") as handle:
            for line in handle:
                if not line.strip():
                    continue
                try:
                    item = json.loads(line)
                except json.JSONDecodeError:
                    skipped += 1
                    continue
                if not isinstance(item, dict):
                    skipped += 1
                    continue
                if symbol is None or item.get("symbol") == symbol:
                    events.append(item)

        if skipped:
            logger.warning("Skipped unparseable journal lines", path=str(self.path), skipped=skipped)
        return list(events)
