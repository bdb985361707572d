"""
Represents one live run of the scheduler, from ``start`` to ``stop``.

Timer handles are runtime objects, so the model allows arbitrary types and
keeps them out of its repr.
"""

from __future__ import annotations

import threading
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field


class BotRun(BaseModel):
    model_config = ConfigDict(arbitrary_types_allowed=True)

    interval_ms: int
    duration_ms: int
    started_at: float
    stop_event: threading.Event = Field(default_factory=threading.Event, repr=False)
    timer_handle: Optional[Any] = Field(default=None, repr=False)
    timeout_handle: Optional[Any] = Field(default=None, repr=False)
    running: bool = True
    ticks: int = 0
    skipped_ticks: int = 0

    @property
    def interval_secs(self) -> float:
        return self.interval_ms / 1000

    @property
    def expires_at(self) -> float:
        return self.started_at + self.duration_ms / 1000
