# orchestrators/bot_orchestrator.py
from __future__ import annotations

import threading
import time
from typing import Any, Callable, List, Optional

from swapbot.controllers.swap_controller import ExchangeClient, SessionProvider, SwapController
from swapbot.enums import BotState
from swapbot.exceptions import AlreadyRunning, NotConnected
from swapbot.models import BotRun, SwapResult
from swapbot.repositories.history_repository import HistoryRepository
from swapbot.repositories.status_repository import (
    STATUS_RUNNING, STATUS_SESSION_LOST, STATUS_STOPPED, StatusRepository,
)
from swapbot.utils.config import BotConfig
from swapbot.utils.log_config import logger_manager, log_function

logger = logger_manager.setup_logger(__name__)


class BotRuntime:
    """
    Everything one connected bot needs: session, exchange client, executor
    and the history/status sinks. A runtime is thrown away after a chain
    change; a new one must be built from a fresh session.
    """

    def __init__(self, session: SessionProvider, exchange: ExchangeClient, config: BotConfig,
                 history: Optional[HistoryRepository] = None,
                 status: Optional[StatusRepository] = None) -> None:
        self.session = session
        self.exchange = exchange
        self.config = config
        self.history = history if history is not None else HistoryRepository()
        self.status = status if status is not None else StatusRepository()
        self.executor = SwapController(session, exchange, config, self.history, self.status)
        self._valid = True

    @classmethod
    def connect(cls, config: BotConfig) -> "BotRuntime":
        """Open a session and bind fresh contract handles to it."""
        from swapbot.services.session_service import Web3SessionService
        from swapbot.services.telegram_service import TelegramService
        from swapbot.services.web3_service import Web3Service

        session = Web3SessionService(config)
        session.request_session()
        exchange = Web3Service(session.web3, session.account, config)
        runtime = cls(session, exchange, config)

        telegram = TelegramService(config.telegram_token, config.telegram_chat_id)
        if config.log_telegram_status and telegram.enabled:
            runtime.status.subscribe(telegram.notify_status)
            runtime.history.subscribe(telegram.notify_swap)
        return runtime

    @property
    def is_valid(self) -> bool:
        return self._valid

    def invalidate(self) -> None:
        self._valid = False


class BotOrchestrator:
    """
    Repeating swap scheduler.

    ``start`` arms a ticker thread firing every ``interval`` seconds on a
    fixed grid, plus a one-shot timer that stops the run after ``duration``
    minutes. Each tick checks the session and then runs one cycle inline.
    A tick that comes due while a cycle is still in flight is skipped, not
    queued. ``stop`` never interrupts a cycle already running.
    """

    def __init__(self, runtime: BotRuntime,
                 clock: Callable[[], float] = time.monotonic,
                 timer_factory: Callable[..., Any] = threading.Timer) -> None:
        self.runtime = runtime
        self._clock = clock
        self._timer_factory = timer_factory
        self._lock = threading.RLock()
        self._cycle_lock = threading.Lock()
        self._run: Optional[BotRun] = None
        self._idle = threading.Event()
        self._idle.set()
        self.notices: List[str] = []

        session = runtime.session
        if hasattr(session, "on_chain_changed"):
            session.on_chain_changed(self._on_chain_changed)
        if hasattr(session, "on_account_changed"):
            session.on_account_changed(self._on_account_changed)

    # ---------- state ----------
    @property
    def state(self) -> BotState:
        with self._lock:
            return BotState.RUNNING if self._run is not None else BotState.IDLE

    @property
    def is_running(self) -> bool:
        return self.state is BotState.RUNNING

    @property
    def current_run(self) -> Optional[BotRun]:
        with self._lock:
            return self._run

    @property
    def cycle_in_flight(self) -> bool:
        return self._cycle_lock.locked()

    def wait_until_idle(self, timeout: Optional[float] = None) -> bool:
        """Block until the bot is stopped and no cycle is in flight."""
        deadline = None if timeout is None else time.monotonic() + timeout
        if not self._idle.wait(timeout):
            return False
        # a cycle started before stop() still owns the cycle lock
        remaining = -1 if deadline is None else max(0.0, deadline - time.monotonic())
        if not self._cycle_lock.acquire(timeout=remaining):
            return False
        self._cycle_lock.release()
        return True

    # ---------- lifecycle ----------
    @log_function
    def start(self, interval_secs: float, duration_minutes: float) -> BotRun:
        if interval_secs <= 0 or duration_minutes <= 0:
            raise ValueError("interval and duration must be positive")
        with self._lock:
            if self._run is not None:
                raise AlreadyRunning()
            if not self.runtime.is_valid or not self.runtime.session.is_session_active():
                raise NotConnected()

            run = BotRun(
                interval_ms=int(interval_secs * 1000),
                duration_ms=int(duration_minutes * 60 * 1000),
                started_at=self._clock(),
            )
            timeout = self._timer_factory(duration_minutes * 60, self._on_expiry, args=(run,))
            timeout.daemon = True
            ticker = threading.Thread(target=self._loop, args=(run,), name="SwapBotTicker", daemon=True)
            run.timeout_handle = timeout
            run.timer_handle = ticker
            self._run = run
            self._idle.clear()

            timeout.start()
            ticker.start()

        logger.info(f"🚀 Bot started: every {interval_secs}s for {duration_minutes} min")
        self.runtime.status.publish(STATUS_RUNNING)
        return run

    def stop(self) -> None:
        """Cancel both timers and go idle. Safe to call at any time."""
        with self._lock:
            run = self._run
            self._run = None
            if run is None:
                return
            run.running = False
            run.stop_event.set()
            if run.timeout_handle is not None:
                run.timeout_handle.cancel()
            self._idle.set()
        logger.info(f"🛑 Bot stopped after {run.ticks} cycles ({run.skipped_ticks} ticks skipped)")
        self.runtime.status.publish(STATUS_STOPPED)

    # ---------- ticking ----------
    def _loop(self, run: BotRun) -> None:
        interval = run.interval_secs
        next_fire = run.started_at + interval
        while True:
            delay = max(0.0, next_fire - self._clock())
            if run.stop_event.wait(delay):
                break
            try:
                self._tick(run)
            except Exception as e:
                logger.exception(f"Tick failed: {e}")
            now = self._clock()
            next_fire += interval
            missed = 0
            while next_fire <= now:
                next_fire += interval
                missed += 1
            if missed:
                run.skipped_ticks += missed
                logger.warning(f"⏭ Skipped {missed} tick(s): previous cycle outlasted the interval")

    def tick(self) -> bool:
        """Run the tick logic for the live run now. Returns True if a cycle ran."""
        run = self.current_run
        if run is None:
            return False
        return self._tick(run)

    def _tick(self, run: BotRun) -> bool:
        if run.stop_event.is_set():
            return False
        if self._clock() >= run.expires_at:
            self._on_expiry(run)
            return False
        if not self.runtime.session.is_session_active():
            logger.error("Connection lost during bot operation")
            self._session_lost(run)
            return False

        with self._lock:
            if self._run is not run or run.stop_event.is_set():
                return False
            if not self._cycle_lock.acquire(blocking=False):
                run.skipped_ticks += 1
                logger.warning("⏭ Tick skipped: a swap cycle is still in flight")
                return False
            run.ticks += 1
        try:
            self.runtime.executor.run_cycle()
        finally:
            self._cycle_lock.release()
        return True

    @log_function
    def swap_once(self) -> Optional[SwapResult]:
        """Run one cycle outside the schedule. Returns None if a cycle is in flight."""
        if not self.runtime.is_valid or not self.runtime.session.is_session_active():
            raise NotConnected()
        if not self._cycle_lock.acquire(blocking=False):
            logger.warning("Manual swap ignored: a swap cycle is still in flight")
            return None
        try:
            return self.runtime.executor.run_cycle()
        finally:
            self._cycle_lock.release()

    # ---------- events ----------
    def _on_expiry(self, run: BotRun) -> None:
        with self._lock:
            if self._run is not run:
                return
        logger.info("⏱ Run duration elapsed")
        self.stop()

    def _session_lost(self, run: Optional[BotRun] = None) -> None:
        with self._lock:
            live = self._run
            if live is None or (run is not None and live is not run):
                return
        self.stop()
        self.notices.append(STATUS_SESSION_LOST)
        logger.warning("Wallet connection lost. Bot stopped.")
        self.runtime.status.publish(STATUS_SESSION_LOST)

    def _on_chain_changed(self, chain_id: int) -> None:
        # contracts and session are bound to the old chain; the runtime is done
        logger.warning(f"Chain changed to {chain_id}; runtime reset required")
        self.runtime.invalidate()
        self._session_lost()

    def _on_account_changed(self, accounts: List[str]) -> None:
        if not accounts:
            self._session_lost()
