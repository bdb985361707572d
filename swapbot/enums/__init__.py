from swapbot.enums.swap_direction import SwapDirection, BotState, DirectionCommit

__all__ = ["SwapDirection", "BotState", "DirectionCommit"]
