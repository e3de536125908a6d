"""
Console notifier adapter - Implements Notifier protocol.

Logs visitor-facing notices and keeps them until the API layer drains
them into the next response, where the client renders them as banners.
"""

import logging
from dataclasses import dataclass

from src.domain.ports import NoticeLevel

logger = logging.getLogger(__name__)

_LOG_LEVELS = {
    NoticeLevel.SUCCESS: logging.INFO,
    NoticeLevel.INFO: logging.INFO,
    NoticeLevel.WARNING: logging.WARNING,
    NoticeLevel.ERROR: logging.WARNING,
}


@dataclass(frozen=True)
class Notice:
    level: NoticeLevel
    title: str
    message: str


class ConsoleNotifier:
    """
    Implements Notifier protocol via console logging.

    Uses structural subtyping - no explicit inheritance from Protocol.
    """

    def __init__(self) -> None:
        self._pending: list[Notice] = []

    def notify(self, level: NoticeLevel, title: str, message: str) -> None:
        """
        Log the notice and queue it for the visitor.

        Args:
            level: Banner severity
            title: Short heading
            message: Body text
        """
        logger.log(_LOG_LEVELS[level], "[NOTICE] %s %s: %s", level.value, title, message)
        self._pending.append(Notice(level, title, message))

    def drain(self) -> list[Notice]:
        """Return queued notices, oldest first, and forget them."""
        notices, self._pending = self._pending, []
        return notices
