import os
import tempfile
import threading

os.environ.setdefault("LOG_DIR", tempfile.mkdtemp(prefix="swapbot-logs-"))
os.environ["LOG_TELEGRAM_STATUS"] = "False"

import pytest

from swapbot.exceptions import ApprovalFailed, SwapFailed
from swapbot.repositories.history_repository import HistoryRepository
from swapbot.repositories.status_repository import StatusRepository
from swapbot.utils.config import BotConfig

WALLET = "0x1111111111111111111111111111111111111111"
TOKEN = "0x2222222222222222222222222222222222222222"
ROUTER = "0x3333333333333333333333333333333333333333"
NATIVE = "0x0000000000000000000000000000000000000000"


class FakeSession:
    def __init__(self, active=True, address=WALLET):
        self.active = active
        self.address = address
        self.checks = 0

    def is_session_active(self):
        self.checks += 1
        return self.active

    def current_address(self):
        return self.address


class FakeExchange:
    """Records router/token calls in order. Failures are injected per step."""

    def __init__(self, balance=0, block=100):
        self.balance = balance
        self.block = block
        self.calls = []
        self.requests = []
        self.fail_buy = None
        self.fail_approve = None
        self.fail_wait = None
        self.wait_gate = None
        self._n = 0

    native_address = NATIVE
    token_address = TOKEN

    def _hash(self):
        self._n += 1
        return "0x" + f"{self._n:064x}"

    def token_balance(self, address):
        self.calls.append(("balanceOf", address))
        return self.balance

    def quote_buy(self, amount_in_wei):
        self.calls.append(("quote", amount_in_wei))
        return amount_in_wei * 2

    def approve(self, spender, amount):
        self.calls.append(("approve", amount))
        if self.fail_approve:
            raise ApprovalFailed(self.fail_approve)
        return self._hash()

    def execute_buy(self, request):
        self.requests.append(request)
        if self.fail_buy:
            raise SwapFailed(self.fail_buy)
        self.calls.append(("buy", request.amount_in))
        return self._hash()

    def execute_sell(self, request):
        self.requests.append(request)
        self.approve(ROUTER, request.amount_in)
        self.calls.append(("sell", request.amount_in))
        return self._hash()

    def wait_for_confirmation(self, tx_hash, timeout=None):
        self.calls.append(("wait", tx_hash))
        if self.wait_gate is not None:
            self.wait_gate.wait(5)
        if self.fail_wait:
            raise self.fail_wait
        return self.block

    def names(self):
        return [c[0] for c in self.calls]


class FakeTimer:
    instances = []

    def __init__(self, interval, function, args=None, kwargs=None):
        self.interval = interval
        self.function = function
        self.args = args or ()
        self.daemon = False
        self.started = False
        self.cancelled = False
        FakeTimer.instances.append(self)

    def start(self):
        self.started = True

    def cancel(self):
        self.cancelled = True

    def fire(self):
        self.function(*self.args)


class FakeClock:
    def __init__(self, now=1000.0):
        self.now = now

    def __call__(self):
        return self.now

    def advance(self, secs):
        self.now += secs


@pytest.fixture
def config():
    return BotConfig(
        router_address=ROUTER,
        token_address=TOKEN,
        swap_amount="0.5",
        interval_secs=10,
        duration_minutes=1,
    )


@pytest.fixture
def session():
    return FakeSession()


@pytest.fixture
def exchange():
    return FakeExchange()


@pytest.fixture
def history():
    return HistoryRepository()


@pytest.fixture
def status():
    return StatusRepository()


@pytest.fixture
def fake_timer():
    FakeTimer.instances = []
    return FakeTimer


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def gate():
    return threading.Event()
