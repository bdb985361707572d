"""
Session provider backed by a local signing key and a JSON-RPC endpoint.

It stands in for a browser wallet: ``request_session`` connects to the first
RPC URL that answers on the expected chain, and ``is_session_active`` keeps
checking that the endpoint still answers on that same chain. A chain switch
is fatal to the session; listeners are told so the owner can rebuild its
runtime from scratch.
"""

from __future__ import annotations

import threading
from typing import Callable, List, Optional

from eth_account import Account
from eth_account.signers.local import LocalAccount
from web3 import Web3
from web3.middleware import ExtraDataToPOAMiddleware

from swapbot.exceptions import NotConnected, ProviderUnavailable, UserRejected
from swapbot.models import Session
from swapbot.utils.config import BotConfig
from swapbot.utils.log_config import logger_manager

logger = logger_manager.setup_logger(__name__)

AccountListener = Callable[[List[str]], None]
ChainListener = Callable[[int], None]


class Web3SessionService:
    def __init__(self, config: BotConfig,
                 web3_factory: Optional[Callable[[str], Web3]] = None) -> None:
        self._config = config
        self._web3_factory = web3_factory or self._connect
        self._lock = threading.RLock()
        self._w3: Optional[Web3] = None
        self._account: Optional[LocalAccount] = None
        self._session: Optional[Session] = None
        self._account_listeners: List[AccountListener] = []
        self._chain_listeners: List[ChainListener] = []

    # ---------- connection ----------
    def _connect(self, url: str) -> Web3:
        w3 = Web3(Web3.HTTPProvider(url, request_kwargs={"timeout": self._config.rpc_timeout_secs}))
        # PoA-style extraData on some testnets; harmless elsewhere
        w3.middleware_onion.inject(ExtraDataToPOAMiddleware, layer=0)
        if not w3.is_connected():
            raise ConnectionError(f"Node not reachable: {url}")
        return w3

    def _connect_first_ok(self) -> tuple[Web3, str]:
        last_err: Optional[Exception] = None
        for url in self._config.rpc_urls:
            try:
                w3 = self._web3_factory(url)
                chain_id = int(w3.eth.chain_id)
            except Exception as e:
                last_err = e
                logger.warning(f"RPC failed {url}: {e}")
                continue
            if chain_id != self._config.chain_id:
                last_err = ProviderUnavailable(
                    f"{url} serves chain {chain_id}, expected {self._config.chain_id}")
                logger.warning(str(last_err))
                continue
            return w3, url
        if isinstance(last_err, ProviderUnavailable):
            raise last_err
        raise ProviderUnavailable(f"No RPC endpoint available: {last_err}")

    def _load_account(self) -> LocalAccount:
        key = (self._config.private_key or "").strip()
        if not key:
            raise UserRejected("No PRIVATE_KEY configured for signing.")
        try:
            return Account.from_key(key)
        except Exception as e:  # eth_keys raises its own ValidationError
            raise UserRejected(f"Invalid PRIVATE_KEY: {e}") from e

    # ---------- session API ----------
    def request_session(self) -> Session:
        account = self._load_account()
        w3, url = self._connect_first_ok()
        with self._lock:
            self._w3 = w3
            self._account = account
            self._session = Session(address=account.address, chain_id=self._config.chain_id, rpc_url=url)
        logger.info(f"🔌 Connected {account.address[:6]}...{account.address[-4:]} via {url} "
                    f"(chain {self._config.chain_id})")
        return self._session

    def current_session(self) -> Optional[Session]:
        with self._lock:
            return self._session

    def current_address(self) -> str:
        session = self.current_session()
        if session is None:
            raise NotConnected()
        return session.address

    @property
    def web3(self) -> Web3:
        if self._w3 is None:
            raise NotConnected()
        return self._w3

    @property
    def account(self) -> LocalAccount:
        if self._account is None:
            raise NotConnected()
        return self._account

    def is_session_active(self) -> bool:
        with self._lock:
            session, w3 = self._session, self._w3
        if session is None or w3 is None:
            return False
        try:
            if not w3.is_connected():
                return False
            chain_id = int(w3.eth.chain_id)
        except Exception as e:
            logger.error(f"Error checking connection: {e}")
            return False
        if chain_id != session.chain_id:
            self._chain_changed(chain_id)
            return False
        return True

    def disconnect(self) -> None:
        with self._lock:
            had_session = self._session is not None
            self._session = None
            self._w3 = None
            self._account = None
        if had_session:
            logger.info("Wallet disconnected")
            for listener in list(self._account_listeners):
                listener([])

    def _chain_changed(self, chain_id: int) -> None:
        logger.warning(f"Network changed to: {chain_id}")
        with self._lock:
            self._session = None
            self._w3 = None
            self._account = None
        for listener in list(self._chain_listeners):
            listener(chain_id)

    # ---------- events ----------
    def on_account_changed(self, listener: AccountListener) -> None:
        self._account_listeners.append(listener)

    def on_chain_changed(self, listener: ChainListener) -> None:
        self._chain_listeners.append(listener)
