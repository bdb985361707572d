"""
Controller that runs one buy-or-sell swap cycle.

A cycle reads the token balance, picks a direction, sends the router calls,
writes a history row as soon as a transaction hash exists and then waits for
the receipt. Every failure is converted into a ``SwapResult`` and an
``Error - ...`` status; nothing escapes ``run_cycle``.
"""

from __future__ import annotations

import threading
from decimal import Decimal, InvalidOperation
from typing import Optional, Protocol

from web3 import Web3

from swapbot.enums import DirectionCommit, SwapDirection
from swapbot.exceptions import NotConnected, SwapBotError, SwapFailed
from swapbot.models import HistoryEntry, SwapRequest, SwapResult
from swapbot.repositories.history_repository import HistoryRepository
from swapbot.repositories.status_repository import StatusRepository, confirmed_status, error_status
from swapbot.services.decision_service import decide
from swapbot.utils.config import BotConfig
from swapbot.utils.log_config import logger_manager, log_function

logger = logger_manager.setup_logger(__name__)


class SessionProvider(Protocol):
    def is_session_active(self) -> bool: ...
    def current_address(self) -> str: ...


class ExchangeClient(Protocol):
    @property
    def native_address(self) -> str: ...
    @property
    def token_address(self) -> str: ...
    def token_balance(self, address: str) -> int: ...
    def quote_buy(self, amount_in_wei: int) -> int: ...
    def execute_buy(self, request: SwapRequest) -> str: ...
    def execute_sell(self, request: SwapRequest) -> str: ...
    def wait_for_confirmation(self, tx_hash: str, timeout: Optional[float] = None) -> int: ...


def parse_swap_amount(amount: str) -> int:
    """Convert a decimal native amount to wei (18 decimals)."""
    try:
        value = Decimal(str(amount).strip())
    except (InvalidOperation, ValueError) as e:
        raise SwapFailed(f"Invalid swap amount {amount!r}") from e
    if not value.is_finite() or value <= 0:
        raise SwapFailed(f"Invalid swap amount {amount!r}")
    try:
        wei = int(Web3.to_wei(value, "ether"))
    except ValueError as e:
        raise SwapFailed(f"Invalid swap amount {amount!r}: {e}") from e
    if wei <= 0:
        raise SwapFailed(f"Swap amount {amount!r} is below 1 wei")
    return wei


class SwapController:
    def __init__(self, session: SessionProvider, exchange: ExchangeClient, config: BotConfig,
                 history: HistoryRepository, status: StatusRepository,
                 last_direction: SwapDirection = SwapDirection.SELL) -> None:
        self.session = session
        self.exchange = exchange
        self.config = config
        self.history = history
        self.status = status
        self._direction_lock = threading.Lock()
        # SELL so that the first cycle buys
        self._last_direction = last_direction

    @property
    def last_direction(self) -> SwapDirection:
        with self._direction_lock:
            return self._last_direction

    def _commit(self, direction: SwapDirection) -> None:
        with self._direction_lock:
            self._last_direction = direction

    def _build_request(self, direction: SwapDirection, balance: int, address: str) -> SwapRequest:
        if direction is SwapDirection.BUY:
            amount_in = parse_swap_amount(self.config.swap_amount)
            label = self.config.swap_amount
        else:
            amount_in = balance
            label = str(balance)
        return SwapRequest.build(
            direction=direction,
            amount_in=amount_in,
            native=self.exchange.native_address,
            token=self.exchange.token_address,
            recipient=address,
            deadline_secs=self.config.deadline_secs,
            min_output=self.config.min_output,
            amount_label=label,
        )

    def _log_quote(self, amount_in: int) -> None:
        try:
            expected = self.exchange.quote_buy(amount_in)
        except SwapFailed as e:
            logger.debug(f"Quote unavailable: {e}")
            return
        logger.info(f"💱 Buying with {amount_in} wei, router quotes {expected} token units")

    @log_function
    def run_cycle(self) -> SwapResult:
        previous = self.last_direction
        direction: Optional[SwapDirection] = None
        amount = 0
        tx_hash: Optional[str] = None
        try:
            if not self.session.is_session_active():
                raise NotConnected()
            address = self.session.current_address()

            balance = self.exchange.token_balance(address)
            direction = decide(previous, balance)
            request = self._build_request(direction, balance, address)
            amount = request.amount_in

            if self.config.direction_commit is DirectionCommit.OPTIMISTIC:
                self._commit(direction)

            if direction is SwapDirection.BUY:
                self._log_quote(request.amount_in)
                tx_hash = self.exchange.execute_buy(request)
            else:
                tx_hash = self.exchange.execute_sell(request)
            logger.info(f"{direction.value} transaction sent: {tx_hash}")

            self.history.append(HistoryEntry(
                asset_label=self.config.asset_label,
                direction=direction,
                amount=request.amount_label,
                tx_hash=tx_hash,
                explorer_url=self.config.explorer_url,
            ))

            block = self.exchange.wait_for_confirmation(tx_hash, self.config.confirmation_timeout_secs)
            logger.info(f"✅ {direction.value} transaction confirmed in block: {block}")

            if self.config.direction_commit is DirectionCommit.CONFIRMED:
                self._commit(direction)
            result = SwapResult(direction=direction, amount_requested=amount,
                                tx_hash=tx_hash, confirmed_block=block)
            self.status.publish(confirmed_status(direction, block))
        except SwapBotError as e:
            result = self._fail(direction, amount, tx_hash, str(e))
        except Exception as e:
            logger.exception(f"Unexpected error performing swap: {e}")
            result = self._fail(direction, amount, tx_hash, str(e) or type(e).__name__)

        if tx_hash:
            self.history.settle(result)
        return result

    def _fail(self, direction: Optional[SwapDirection], amount: int, tx_hash: Optional[str],
              message: str) -> SwapResult:
        label = direction.value if direction else "Swap"
        logger.error(f"❌ Error performing {label.lower()}: {message}")
        self.status.publish(error_status(message))
        return SwapResult(direction=direction, amount_requested=amount, tx_hash=tx_hash, error=message)
