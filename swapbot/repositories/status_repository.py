"""
Current human-readable bot status plus the listeners that display it.
"""

from __future__ import annotations

import threading
from typing import Callable, List

from swapbot.enums import SwapDirection

STATUS_STOPPED = "Stopped"
STATUS_RUNNING = "Running"
STATUS_SESSION_LOST = "SessionLost"

StatusListener = Callable[[str], None]


def confirmed_status(direction: SwapDirection, block: int) -> str:
    return f"{direction.value} confirmed in block {block}"


def error_status(message: str) -> str:
    return f"Error - {message}"


class StatusRepository:
    """Holds the latest status string and fans it out to listeners."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._current = STATUS_STOPPED
        self._log: List[str] = []
        self._listeners: List[StatusListener] = []

    @property
    def current(self) -> str:
        with self._lock:
            return self._current

    def updates(self) -> List[str]:
        with self._lock:
            return list(self._log)

    def subscribe(self, listener: StatusListener) -> None:
        self._listeners.append(listener)

    def publish(self, status: str) -> None:
        with self._lock:
            self._current = status
            self._log.append(status)
        for listener in list(self._listeners):
            listener(status)
