"""
Models for one swap cycle: the request sent to the router, the history row
written right after submission and the final outcome.

All of them are immutable once created.
"""

from __future__ import annotations

import time
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, NonNegativeInt

from swapbot.enums import SwapDirection


class SwapRequest(BaseModel):
    model_config = ConfigDict(frozen=True)

    direction: SwapDirection
    amount_in: NonNegativeInt
    path: List[str] = Field(min_length=2, max_length=2)
    recipient: str
    deadline: int
    min_output: NonNegativeInt = 0
    # user-facing amount (decimal text for buys, base units for sells)
    amount_label: str = ""

    @classmethod
    def build(cls, direction: SwapDirection, amount_in: int, native: str, token: str,
              recipient: str, deadline_secs: int = 20 * 60, min_output: int = 0,
              amount_label: str = "", now: Optional[float] = None) -> "SwapRequest":
        issued = int(now if now is not None else time.time())
        path = [native, token] if direction is SwapDirection.BUY else [token, native]
        return cls(
            direction=direction,
            amount_in=amount_in,
            path=path,
            recipient=recipient,
            deadline=issued + deadline_secs,
            min_output=min_output,
            amount_label=amount_label or str(amount_in),
        )


class HistoryEntry(BaseModel):
    model_config = ConfigDict(frozen=True)

    asset_label: str
    direction: SwapDirection
    amount: str
    tx_hash: str
    explorer_url: str = ""
    timestamp: int = Field(default_factory=lambda: int(time.time()))

    @property
    def short_hash(self) -> str:
        if len(self.tx_hash) <= 18:
            return self.tx_hash
        return f"{self.tx_hash[:10]}...{self.tx_hash[-8:]}"

    @property
    def tx_url(self) -> str:
        if not self.explorer_url:
            return ""
        return f"{self.explorer_url.rstrip('/')}/tx/{self.tx_hash}"


class SwapResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    direction: Optional[SwapDirection] = None
    amount_requested: int = 0
    tx_hash: Optional[str] = None
    confirmed_block: Optional[int] = None
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None and self.confirmed_block is not None
