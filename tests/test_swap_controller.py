import pytest

from swapbot.controllers.swap_controller import SwapController, parse_swap_amount
from swapbot.enums import DirectionCommit, SwapDirection
from swapbot.exceptions import SwapFailed, SwapTimeout
from tests.conftest import NATIVE, TOKEN, WALLET


def make(session, exchange, config, history, status, last=SwapDirection.SELL):
    return SwapController(session, exchange, config, history, status, last_direction=last)


def test_zero_balance_buys_configured_amount(session, exchange, config, history, status):
    exchange.balance = 0
    ctl = make(session, exchange, config, history, status)

    result = ctl.run_cycle()

    assert result.ok
    assert result.direction is SwapDirection.BUY
    assert exchange.names() == ["balanceOf", "quote", "buy", "wait"]
    req = exchange.requests[0]
    assert req.amount_in == 500_000_000_000_000_000
    assert req.path == [NATIVE, TOKEN]
    assert req.recipient == WALLET
    assert req.min_output == 0
    [entry] = history.list_all()
    assert entry.direction is SwapDirection.BUY
    assert entry.amount == "0.5"
    assert ctl.last_direction is SwapDirection.BUY
    assert status.current == "Buy confirmed in block 100"


def test_nonzero_balance_after_buy_approves_then_sells_all(session, exchange, config, history, status):
    exchange.balance = 1000
    ctl = make(session, exchange, config, history, status, last=SwapDirection.BUY)

    result = ctl.run_cycle()

    assert result.ok and result.direction is SwapDirection.SELL
    assert exchange.calls[1:] == [("approve", 1000), ("sell", 1000), ("wait", result.tx_hash)]
    assert exchange.requests[0].path == [TOKEN, NATIVE]
    [entry] = history.list_all()
    assert entry.direction is SwapDirection.SELL
    assert entry.amount == "1000"
    assert ctl.last_direction is SwapDirection.SELL


def test_approval_failure_sends_no_swap(session, exchange, config, history, status):
    exchange.balance = 1000
    exchange.fail_approve = "execution reverted"
    ctl = make(session, exchange, config, history, status, last=SwapDirection.BUY)

    result = ctl.run_cycle()

    assert not result.ok
    assert "sell" not in exchange.names()
    assert len(history) == 0
    assert status.current.startswith("Error - Approval failed")


def test_rejected_swap_reports_error(session, exchange, config, history, status):
    exchange.fail_buy = "user rejected transaction"
    ctl = make(session, exchange, config, history, status)

    result = ctl.run_cycle()

    assert result.error == "user rejected transaction"
    assert result.tx_hash is None
    assert status.current == "Error - user rejected transaction"
    assert len(history) == 0


def test_deadline_is_twenty_minutes_ahead(session, exchange, config, history, status, monkeypatch):
    monkeypatch.setattr("swapbot.models.swap.time.time", lambda: 1_700_000_000.4)
    make(session, exchange, config, history, status).run_cycle()
    assert exchange.requests[0].deadline == 1_700_000_000 + 1200


def test_confirmation_timeout_keeps_history_and_settles_failure(session, exchange, config, history, status):
    exchange.fail_wait = SwapTimeout("0xabc", 120)
    ctl = make(session, exchange, config, history, status)

    result = ctl.run_cycle()

    assert result.tx_hash is not None and result.confirmed_block is None
    assert "Timeout" in result.error
    [entry] = history.list_all()
    assert entry.tx_hash == result.tx_hash
    assert history.result_for(result.tx_hash) == result
    assert status.current.startswith("Error - Timeout")


def test_confirmed_policy_keeps_direction_on_failure(session, exchange, config, history, status):
    exchange.fail_wait = SwapFailed("dropped")
    ctl = make(session, exchange, config, history, status)

    ctl.run_cycle()

    assert ctl.last_direction is SwapDirection.SELL


def test_optimistic_policy_advances_direction_on_failure(session, exchange, config, history, status):
    config = config.model_copy(update={"direction_commit": DirectionCommit.OPTIMISTIC})
    exchange.fail_wait = SwapFailed("dropped")
    ctl = make(session, exchange, config, history, status)

    ctl.run_cycle()

    assert ctl.last_direction is SwapDirection.BUY


def test_invalid_amount_fails_at_cycle_start(session, exchange, config, history, status):
    config = config.model_copy(update={"swap_amount": "abc"})
    ctl = make(session, exchange, config, history, status)

    result = ctl.run_cycle()

    assert "Invalid swap amount" in result.error
    assert exchange.requests == []
    assert ctl.last_direction is SwapDirection.SELL


def test_inactive_session_is_not_connected(session, exchange, config, history, status):
    session.active = False
    result = make(session, exchange, config, history, status).run_cycle()
    assert status.current == "Error - Wallet not connected"
    assert result.direction is None
    assert exchange.calls == []


def test_unexpected_exception_is_contained(session, exchange, config, history, status):
    def boom(address):
        raise RuntimeError("socket closed")
    exchange.token_balance = boom

    result = make(session, exchange, config, history, status).run_cycle()

    assert result.error == "socket closed"
    assert status.current == "Error - socket closed"


@pytest.mark.parametrize("text, wei", [("1", 10**18), ("0.01", 10**16), (" 2.5 ", 25 * 10**17)])
def test_parse_swap_amount(text, wei):
    assert parse_swap_amount(text) == wei


@pytest.mark.parametrize("text", ["", "0", "-1", "nan", "1e-30"])
def test_parse_swap_amount_rejects(text):
    with pytest.raises(SwapFailed):
        parse_swap_amount(text)
