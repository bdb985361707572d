"""
Decides the direction of the next swap cycle.

The strategy is plain alternation: buy after a sell, sell after a buy. A
wallet holding none of the token always buys, since there is nothing to sell.
"""

from __future__ import annotations

from swapbot.enums import SwapDirection


def decide(last_direction: SwapDirection, token_balance: int) -> SwapDirection:
    if last_direction is SwapDirection.SELL or token_balance == 0:
        return SwapDirection.BUY
    return SwapDirection.SELL
