"""
Enumerations shared by the swap bot.

The bot alternates between buying and selling a single token, so the only
trading state it carries is the direction of the last cycle.
"""

from __future__ import annotations

from enum import Enum


class SwapDirection(str, Enum):
    """Direction of one swap cycle relative to the configured token."""

    BUY = "Buy"
    SELL = "Sell"

    def __str__(self) -> str:
        return self.value


class BotState(str, Enum):
    """Scheduler phases."""

    IDLE = "idle"
    RUNNING = "running"


class DirectionCommit(str, Enum):
    """When the executor remembers the direction of a cycle.

    ``optimistic`` records it before the transaction is sent and keeps it even
    if the cycle fails. ``confirmed`` records it only once the chain confirms
    the swap, so a failed buy is retried as a buy.
    """

    OPTIMISTIC = "optimistic"
    CONFIRMED = "confirmed"
