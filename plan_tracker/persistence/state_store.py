"""Persisted per-symbol plan snapshot."""

import re
from pathlib import Path
from typing import Optional

import structlog

from ..errors import DataQualityError
from ..state.models import PersistedState
from .atomic import read_json_object, write_json_atomic

logger = structlog.get_logger(__name__)

_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9_.-]")


def symbol_state_path(base: Path, symbol: str) -> Path:
    """``plan_status_state.json`` -> ``plan_status_state.BTC-USDT.json``"""
    base = Path(base)
    safe = _UNSAFE_CHARS.sub("_", symbol.strip()) or "_"
    return base.with_name(f"{base.stem}.{safe}{base.suffix}")


class PlanStateStore:
    """
    Reads and rewrites one symbol's plan snapshot file.

    A missing or unreadable snapshot reads as no previous state; write
    failures propagate as ``PersistenceError``.
    """

    def __init__(self, path: Path):
        self.path = Path(path)

    @classmethod
    def for_symbol(cls, base: Path, symbol: str) -> "PlanStateStore":
        return cls(symbol_state_path(base, symbol))

    def read(self) -> Optional[PersistedState]:
        try:
            doc = read_json_object(self.path)
        except DataQualityError as e:
            logger.info("No previous plan state", path=str(self.path), reason=str(e))
            return None
        return PersistedState.from_dict(doc)

    def write(self, state: PersistedState) -> None:
        write_json_atomic(self.path, state.to_dict())
        logger.debug("Plan state written", path=str(self.path), plan_state=state.plan_state)
