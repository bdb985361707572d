from __future__ import annotations
from typing import Any, Callable, Optional, Tuple
from time import sleep

from web3 import Web3
from web3.contract import Contract
from web3.exceptions import ContractLogicError, TimeExhausted
from eth_account.signers.local import LocalAccount

from swapbot.enums import SwapDirection
from swapbot.exceptions import ApprovalFailed, SwapFailed, SwapTimeout
from swapbot.models import SwapRequest
from swapbot.utils.config import BotConfig
from swapbot.utils.load_abi import load_erc20_abi, load_router_abi
from swapbot.utils.log_config import logger_manager, log_function

logger = logger_manager.setup_logger(__name__)


class Web3Service:
    """
    Exchange client for one router and one ERC-20 token.

    Every failure of an on-chain or RPC call reaches the caller as
    ``SwapFailed``. Contract handles are created on first use, so bad
    addresses surface when a cycle starts rather than at construction.
    """

    def __init__(self, w3: Web3, account: LocalAccount, config: BotConfig) -> None:
        self._w3 = w3
        self._account = account
        self._config = config
        self._router_abi = load_router_abi()
        self._erc20_abi = load_erc20_abi()
        self._router: Optional[Contract] = None
        self._token: Optional[Contract] = None
        self._gas_mode: Optional[str] = None

    # ---------- util ----------
    def checksum(self, address: str) -> str:
        return Web3.to_checksum_address(address)

    @property
    def router_address(self) -> str:
        return self.load_router().address

    @property
    def token_address(self) -> str:
        return self.load_token().address

    @property
    def native_address(self) -> str:
        try:
            return self.checksum(self._config.native_address)
        except ValueError as e:
            raise SwapFailed(f"Invalid native address {self._config.native_address!r}: {e}") from e

    def _contract(self, address: str, abi: list, label: str) -> Contract:
        if not address or not Web3.is_address(address):
            raise SwapFailed(f"Invalid {label} address {address!r}")
        return self._w3.eth.contract(address=self.checksum(address), abi=abi)

    def load_router(self) -> Contract:
        if self._router is None:
            self._router = self._contract(self._config.router_address, self._router_abi, "router")
        return self._router

    def load_token(self) -> Contract:
        if self._token is None:
            self._token = self._contract(self._config.token_address, self._erc20_abi, "token")
        return self._token

    def init_contracts(self) -> Tuple[Contract, Contract]:
        return self.load_router(), self.load_token()

    def _rpc_call(self, label: str, fn: Callable[[], Any], retries: Optional[int] = None) -> Any:
        """
        Run a read-only RPC call with retries and linear backoff.
        """
        retries = retries or self._config.rpc_retries
        last_exc: Optional[Exception] = None
        for attempt in range(1, retries + 1):
            try:
                return fn()
            except ContractLogicError:
                raise
            except Exception as e:
                last_exc = e
                logger.warning(f"[RPC:{label}] attempt {attempt}/{retries} failed: {e}")
                if attempt < retries:
                    sleep(self._config.rpc_retry_backoff_secs * attempt)
        raise last_exc if last_exc else RuntimeError(f"RPC '{label}' failed without an exception.")

    # ---------- gas ----------
    def _detect_gas_mode(self) -> str:
        if self._config.gas_mode in ("legacy", "1559"):
            return self._config.gas_mode
        try:
            latest = self._rpc_call("get_block_latest", lambda: self._w3.eth.get_block("latest"))
            if latest.get("baseFeePerGas", None) is not None:
                return "1559"
        except Exception as e:
            logger.debug(f"Gas mode detection failed, using legacy: {e}")
        return "legacy"

    def _apply_gas_fields(self, tx: dict) -> dict:
        """
        Apply only the fields of the active gas mode, dropping the others so
        gasPrice and maxFeePerGas never travel together.
        """
        if self._gas_mode is None:
            self._gas_mode = self._detect_gas_mode()

        tx.pop("gasPrice", None)
        tx.pop("maxFeePerGas", None)
        tx.pop("maxPriorityFeePerGas", None)

        if self._gas_mode == "1559":
            tx["type"] = 2
            latest = self._rpc_call("get_block_latest", lambda: self._w3.eth.get_block("latest"))
            base_fee = latest.get("baseFeePerGas")
            if base_fee is None:
                base_fee = self._rpc_call("gas_price", lambda: self._w3.eth.gas_price)
            try:
                priority = int(self._rpc_call("max_priority_fee", lambda: self._w3.eth.max_priority_fee))
            except Exception:
                priority = int(Web3.to_wei(self._config.priority_fee_gwei, "gwei"))
            tx["maxPriorityFeePerGas"] = priority
            tx["maxFeePerGas"] = int(int(base_fee) * self._config.max_fee_multiplier + priority)
        else:
            tx["type"] = 0
            tx["gasPrice"] = int(self._rpc_call("gas_price", lambda: self._w3.eth.gas_price))
        return tx

    def _estimate_gas(self, label: str, tx: dict) -> int:
        try:
            estimated = int(self._w3.eth.estimate_gas(tx))
        except ContractLogicError:
            raise
        except Exception as e:
            logger.warning(f"[{label}] gas estimation failed, using default limit: {e}")
            return int(self._config.default_gas_limit)
        return int(estimated * self._config.gas_limit_multiplier)

    # ---------- send ----------
    def _transact(self, label: str, func: Any, value: int = 0) -> str:
        """Build, sign and send one contract call. Returns the 0x tx hash."""
        sender = self._account.address
        try:
            tx = func.build_transaction({
                "from": sender,
                "value": int(value),
                "nonce": self._rpc_call("get_transaction_count",
                                        lambda: self._w3.eth.get_transaction_count(sender, "pending")),
                "chainId": self._rpc_call("chain_id", lambda: self._w3.eth.chain_id),
            })
            tx = self._apply_gas_fields(tx)
            tx["gas"] = self._estimate_gas(label, tx)
            signed = self._account.sign_transaction(tx)
            tx_hash = self._w3.eth.send_raw_transaction(signed.raw_transaction)
        except ContractLogicError as e:
            raise SwapFailed(f"{label} reverted: {e}") from e
        except SwapFailed:
            raise
        except Exception as e:
            raise SwapFailed(f"{label} failed: {e}") from e
        hex_hash = Web3.to_hex(tx_hash)
        logger.info(f"📤 {label} sent: {hex_hash}")
        return hex_hash

    @log_function
    def wait_for_confirmation(self, tx_hash: str, timeout: Optional[float] = None) -> int:
        """Block until ``tx_hash`` is mined. Returns the block number."""
        timeout = self._config.confirmation_timeout_secs if timeout is None else timeout
        try:
            receipt = self._w3.eth.wait_for_transaction_receipt(tx_hash, timeout=timeout)
        except TimeExhausted as e:
            raise SwapTimeout(tx_hash, timeout) from e
        except Exception as e:
            raise SwapFailed(f"Waiting for {tx_hash} failed: {e}") from e
        block = int(receipt["blockNumber"])
        if int(receipt.get("status", 1)) != 1:
            raise SwapFailed(f"Transaction {tx_hash} reverted in block {block}")
        return block

    # ---------- reads ----------
    @log_function
    def token_balance(self, address: str) -> int:
        token = self.load_token()
        wallet = self.checksum(address)
        try:
            return int(self._rpc_call("balanceOf", lambda: token.functions.balanceOf(wallet).call()))
        except Exception as e:
            raise SwapFailed(f"balanceOf failed: {e}") from e

    def native_balance(self, address: str) -> int:
        wallet = self.checksum(address)
        try:
            return int(self._rpc_call("get_balance", lambda: self._w3.eth.get_balance(wallet)))
        except Exception as e:
            raise SwapFailed(f"get_balance failed: {e}") from e

    @log_function
    def quote_buy(self, amount_in_wei: int) -> int:
        """Expected token output for ``amount_in_wei`` of native currency."""
        router = self.load_router()
        path = [self.native_address, self.token_address]
        if int(amount_in_wei) <= 0:
            return 0
        try:
            amounts = self._rpc_call(
                "router.getAmountsOut",
                lambda: router.functions.getAmountsOut(int(amount_in_wei), path).call()
            )
        except Exception as e:
            raise SwapFailed(f"getAmountsOut failed: {e}") from e
        return int(amounts[-1])

    # ---------- swaps ----------
    @log_function
    def approve(self, spender: str, amount: int) -> str:
        """Approve ``spender`` for ``amount`` and wait until it is mined."""
        token = self.load_token()
        try:
            tx_hash = self._transact("approve", token.functions.approve(self.checksum(spender), int(amount)))
            block = self.wait_for_confirmation(tx_hash)
        except ApprovalFailed:
            raise
        except SwapFailed as e:
            raise ApprovalFailed(e.reason) from e
        logger.info(f"✅ Approval of {amount} confirmed in block {block}")
        return tx_hash

    @log_function
    def execute_buy(self, request: SwapRequest) -> str:
        if request.direction is not SwapDirection.BUY:
            raise SwapFailed(f"execute_buy got a {request.direction} request")
        router = self.load_router()
        path = [self.checksum(p) for p in request.path]
        func = router.functions.swapExactETHForTokens(
            int(request.min_output), path, self.checksum(request.recipient), int(request.deadline)
        )
        return self._transact("swapExactETHForTokens", func, value=request.amount_in)

    @log_function
    def execute_sell(self, request: SwapRequest) -> str:
        """Approve the router for the whole amount, then swap it for native currency."""
        if request.direction is not SwapDirection.SELL:
            raise SwapFailed(f"execute_sell got a {request.direction} request")
        router = self.load_router()
        self.approve(router.address, request.amount_in)
        path = [self.checksum(p) for p in request.path]
        func = router.functions.swapExactTokensForETH(
            int(request.amount_in), int(request.min_output), path,
            self.checksum(request.recipient), int(request.deadline)
        )
        return self._transact("swapExactTokensForETH", func)

    def execute(self, request: SwapRequest) -> str:
        if request.direction is SwapDirection.BUY:
            return self.execute_buy(request)
        return self.execute_sell(request)

    def wei_to_native(self, wei: int | float) -> float:
        return float(wei) / 1e18
