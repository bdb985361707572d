from swapbot.models.session import Session
from swapbot.models.swap import SwapRequest, SwapResult, HistoryEntry
from swapbot.models.bot_run import BotRun

__all__ = ["Session", "SwapRequest", "SwapResult", "HistoryEntry", "BotRun"]
