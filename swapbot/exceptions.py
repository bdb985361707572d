"""
Error types raised by the swap bot.

Everything derives from :class:`SwapBotError`. On-chain failures are reported
as :class:`SwapFailed`; its subclasses only narrow down where a cycle stopped.
"""

from __future__ import annotations


class SwapBotError(Exception):
    """Base class for swap bot errors."""


class NotConnected(SwapBotError):
    """An action that needs a session was invoked without one."""

    def __init__(self, message: str = "Wallet not connected") -> None:
        super().__init__(message)


class AlreadyRunning(SwapBotError):
    """``start`` was called while a run is live."""

    def __init__(self, message: str = "Bot is already running") -> None:
        super().__init__(message)


class SessionLost(SwapBotError):
    """The session went inactive during a run."""

    def __init__(self, message: str = "Wallet connection lost. Bot stopped.") -> None:
        super().__init__(message)


class SessionError(SwapBotError):
    """The session provider could not open a session."""


class UserRejected(SessionError):
    """No usable signing identity was supplied."""


class ProviderUnavailable(SessionError):
    """No RPC endpoint answered, or it serves the wrong chain."""


class SwapFailed(SwapBotError):
    """An on-chain call failed: revert, rejection, network error or timeout."""

    def __init__(self, reason: str) -> None:
        super().__init__(reason)
        self.reason = reason


class ApprovalFailed(SwapFailed):
    """The approval preceding a sell failed; no swap was sent."""

    def __init__(self, reason: str) -> None:
        super().__init__(f"Approval failed: {reason}")


class SwapTimeout(SwapFailed):
    """A transaction was not confirmed within the confirmation timeout."""

    def __init__(self, tx_hash: str, timeout: float) -> None:
        super().__init__(f"Timeout waiting {timeout:g}s for confirmation of {tx_hash}")
        self.tx_hash = tx_hash
        self.timeout = timeout
