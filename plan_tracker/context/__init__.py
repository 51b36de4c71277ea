"""
Market context: trading session by UTC hour, grid execution tuning and the
optional news risk overlay.
"""

from .execution import build_execution_tuning
from .news import read_news_overlay, summarize_news
from .session import SessionContext, derive_session_context

__all__ = [
    "SessionContext",
    "build_execution_tuning",
    "derive_session_context",
    "read_news_overlay",
    "summarize_news",
]
