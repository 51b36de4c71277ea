"""Read-only news/macro risk overlay produced by an external collector."""

from pathlib import Path
from typing import Any

import structlog

from ..errors import DataQualityError
from ..persistence.atomic import read_json_object
from ..utils.time import to_ms

logger = structlog.get_logger(__name__)

RISK_LEVELS = ("LOW", "MED", "HIGH")


def _level(value: Any) -> Any:
    text = str(value).upper() if value is not None else None
    return text if text in RISK_LEVELS else None


def summarize_news(doc: dict[str, Any]) -> dict[str, Any]:
    macro = doc.get("macro") if isinstance(doc.get("macro"), dict) else {}
    risk_level = _level(doc.get("risk_level"))
    return {
        "status": "OK" if risk_level else "INCOMPLETE",
        "reason": None if risk_level else "risk_level_missing",
        "risk_level": risk_level,
        "has_hot_news": bool(doc.get("has_hot_news")),
        "macro_risk": _level(macro.get("overall_risk_level")),
        "updated_at": to_ms(doc.get("updated_at") or doc.get("generated_at")),
    }


def read_news_overlay(path: Path) -> dict[str, Any]:
    """Overlay summary; an absent or unreadable file is NO_DATA, never an error."""
    try:
        doc = read_json_object(path)
    except DataQualityError as e:
        logger.debug("News overlay unavailable", path=str(path), reason=str(e))
        return {
            "status": "NO_DATA",
            "reason": str(e),
            "risk_level": None,
            "has_hot_news": False,
            "macro_risk": None,
            "updated_at": None,
        }
    return summarize_news(doc)
