import threading
import time

import pytest

from swapbot.enums import BotState, SwapDirection
from swapbot.exceptions import AlreadyRunning, NotConnected
from swapbot.orchestrators.bot_orchestrator import BotOrchestrator, BotRuntime


class ListenerSession:
    """FakeSession with the event hooks of the web3 session service."""

    def __init__(self, inner):
        self.inner = inner
        self.chain_listeners = []
        self.account_listeners = []

    def is_session_active(self):
        return self.inner.is_session_active()

    def current_address(self):
        return self.inner.current_address()

    def on_chain_changed(self, cb):
        self.chain_listeners.append(cb)

    def on_account_changed(self, cb):
        self.account_listeners.append(cb)


@pytest.fixture
def runtime(session, exchange, config, history, status):
    return BotRuntime(session, exchange, config, history=history, status=status)


@pytest.fixture
def bot(runtime, clock, fake_timer):
    b = BotOrchestrator(runtime, clock=clock, timer_factory=fake_timer)
    yield b
    b.stop()


def test_start_arms_both_timers(bot, fake_timer, status):
    run = bot.start(60, 5)

    assert bot.state is BotState.RUNNING
    [timeout] = fake_timer.instances
    assert timeout.started and timeout.interval == 300
    assert run.timer_handle.is_alive()
    assert status.current == "Running"


def test_start_while_running_is_rejected(bot, fake_timer):
    first = bot.start(60, 5)
    with pytest.raises(AlreadyRunning):
        bot.start(60, 5)
    assert len(fake_timer.instances) == 1
    assert bot.current_run is first


def test_start_without_session_is_rejected(bot, session, fake_timer):
    session.active = False
    with pytest.raises(NotConnected):
        bot.start(60, 5)
    assert bot.state is BotState.IDLE
    assert fake_timer.instances == []


def test_stop_when_idle_is_a_noop(bot, status):
    bot.stop()
    bot.stop()
    assert bot.state is BotState.IDLE
    assert status.updates() == []


def test_stop_cancels_both_timers(bot, fake_timer, status):
    run = bot.start(60, 5)
    bot.stop()

    assert fake_timer.instances[0].cancelled
    assert run.stop_event.is_set()
    run.timer_handle.join(2)
    assert not run.timer_handle.is_alive()
    assert bot.tick() is False
    assert status.current == "Stopped"


def test_tick_runs_one_cycle(bot, exchange, history):
    bot.start(60, 5)
    assert bot.tick() is True
    assert exchange.names().count("buy") == 1
    assert len(history) == 1
    assert bot.current_run.ticks == 1


def test_session_loss_stops_without_swapping(bot, session, exchange, status):
    bot.start(60, 5)
    session.active = False

    assert bot.tick() is False

    assert bot.state is BotState.IDLE
    assert exchange.calls == []
    assert status.updates()[-2:] == ["Stopped", "SessionLost"]
    assert "SessionLost" in bot.notices


def test_failed_swap_keeps_running(bot, exchange, status):
    exchange.fail_buy = "user rejected transaction"
    bot.start(60, 5)

    bot.tick()
    assert status.current == "Error - user rejected transaction"
    assert bot.state is BotState.RUNNING

    exchange.fail_buy = None
    assert bot.tick() is True
    assert status.current == "Buy confirmed in block 100"


def test_no_tick_after_duration(bot, clock, exchange, status):
    bot.start(60, 1)
    clock.advance(59)
    assert bot.tick() is True
    clock.advance(1)

    assert bot.tick() is False
    assert bot.state is BotState.IDLE
    assert exchange.names().count("buy") == 1
    assert status.current == "Stopped"


def test_expiry_timer_stops_run(bot, fake_timer):
    bot.start(60, 1)
    fake_timer.instances[0].fire()
    assert bot.state is BotState.IDLE


def test_stale_expiry_does_not_stop_new_run(bot, fake_timer):
    bot.start(60, 1)
    bot.stop()
    bot.start(60, 1)
    fake_timer.instances[0].fire()
    assert bot.state is BotState.RUNNING


def test_tick_is_skipped_while_cycle_in_flight(bot, exchange, gate):
    bot.start(60, 5)
    exchange.wait_gate = gate
    worker = threading.Thread(target=bot.tick)
    worker.start()
    for _ in range(200):
        if bot.cycle_in_flight:
            break
        time.sleep(0.01)

    assert bot.tick() is False
    assert bot.current_run.skipped_ticks == 1

    gate.set()
    worker.join(5)
    assert exchange.names().count("buy") == 1


def test_stop_lets_in_flight_cycle_finish(bot, exchange, history, gate):
    bot.start(60, 5)
    exchange.wait_gate = gate
    worker = threading.Thread(target=bot.tick)
    worker.start()
    for _ in range(200):
        if bot.cycle_in_flight:
            break
        time.sleep(0.01)

    bot.stop()
    gate.set()
    worker.join(5)

    [entry] = history.list_all()
    assert history.result_for(entry.tx_hash).ok


def test_manual_swap_outside_schedule(bot, exchange, session):
    result = bot.swap_once()
    assert result.ok and result.direction is SwapDirection.BUY
    session.active = False
    with pytest.raises(NotConnected):
        bot.swap_once()


def test_chain_change_invalidates_runtime(session, exchange, config, history, status, fake_timer):
    events = ListenerSession(session)
    runtime = BotRuntime(events, exchange, config, history=history, status=status)
    bot = BotOrchestrator(runtime, timer_factory=fake_timer)
    bot.start(60, 5)

    for cb in events.chain_listeners:
        cb(1)

    assert not runtime.is_valid
    assert bot.state is BotState.IDLE
    assert status.current == "SessionLost"
    with pytest.raises(NotConnected):
        bot.start(60, 5)


def test_account_disconnect_stops_bot(session, exchange, config, history, status, fake_timer):
    events = ListenerSession(session)
    runtime = BotRuntime(events, exchange, config, history=history, status=status)
    bot = BotOrchestrator(runtime, timer_factory=fake_timer)
    bot.start(60, 5)

    for cb in events.account_listeners:
        cb([])

    assert bot.state is BotState.IDLE
    assert runtime.is_valid


def test_real_timers_alternate_and_expire(session, exchange, config, history, status):
    exchange.balance = 1000
    runtime = BotRuntime(session, exchange, config, history=history, status=status)
    bot = BotOrchestrator(runtime)

    bot.start(0.05, 0.4 / 60)
    assert bot.wait_until_idle(5)

    directions = [e.direction for e in history.list_all()]
    assert len(directions) >= 2
    assert directions[:2] == [SwapDirection.BUY, SwapDirection.SELL]
    assert "Stopped" in status.updates()


def test_runtime_keeps_caller_sinks_even_when_empty(session, exchange, config, history, status):
    assert len(history) == 0
    runtime = BotRuntime(session, exchange, config, history=history, status=status)

    assert runtime.history is history
    assert runtime.status is status
    assert runtime.executor.history is history


def test_wait_until_idle_covers_in_flight_cycle(bot, exchange, history, status, gate):
    bot.start(60, 5)
    exchange.wait_gate = gate
    worker = threading.Thread(target=bot.tick)
    worker.start()
    for _ in range(200):
        if "wait" in exchange.names():
            break
        time.sleep(0.01)

    bot.stop()
    assert bot.state is BotState.IDLE
    assert bot.wait_until_idle(0.1) is False
    assert history.result_for(history.list_all()[0].tx_hash) is None

    gate.set()
    assert bot.wait_until_idle(5) is True
    worker.join(5)
    [entry] = history.list_all()
    assert history.result_for(entry.tx_hash).ok
    assert status.current == "Buy confirmed in block 100"
