"""
Control announcements (speech/audio are external; these are the
contract and the default log-only implementation).
"""

import logging
from typing import Protocol

logger = logging.getLogger(__name__)


class AnnouncementHook(Protocol):
    def announce(self, device_name: str, action_label: str) -> None: ...


class LoggingAnnouncer:
    """Records announcements in the log and keeps the last few."""

    def __init__(self, history: int = 20):
        self._history = history
        self.recent: list = []

    def announce(self, device_name: str, action_label: str) -> None:
        message = f"Device {device_name} {action_label}"
        logger.info("Announcement: %s", message)
        self.recent.append(message)
        del self.recent[:-self._history]
