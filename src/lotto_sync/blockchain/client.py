"""Web3-backed contract collaborator for the lottery client."""

from __future__ import annotations

import asyncio
import json
from pathlib import Path
from typing import Any, Dict, List, Optional

from eth_account.signers.local import LocalAccount
from eth_utils import event_abi_to_log_topic
from web3 import Web3
from web3.contract import Contract
from web3.exceptions import ContractLogicError, TimeExhausted

from lotto_sync.blockchain.interfaces import (
    ENTRY_EVENT,
    WINNER_PICKED_EVENT,
    ContractHandle,
    EventCallback,
    PendingTransaction,
)
from lotto_sync.lottery.errors import (
    LotteryClientError,
    TxNetworkError,
    TxRevertedError,
    UserRejectedError,
)
from lotto_sync.utils.logger import get_logger

logger = get_logger(__name__)

PACKAGED_ABI = Path(__file__).parent.parent / "abi" / "Lotto.abi"

# EIP-1193 "user rejected request"
USER_REJECTED_CODE = 4001


def _hex(value: Any) -> str:
    """Normalise bytes / HexBytes / str topics to bare lowercase hex."""
    text = value.hex() if isinstance(value, (bytes, bytearray)) else str(value)
    text = text.lower()
    return text[2:] if text.startswith("0x") else text


def rpc_error_code(exc: BaseException) -> Optional[int]:
    """Extract a JSON-RPC error code from a web3 / provider exception, if any."""
    response = getattr(exc, "rpc_response", None)
    if isinstance(response, dict):
        error = response.get("error")
        if isinstance(error, dict) and "code" in error:
            return error["code"]
    for arg in getattr(exc, "args", ()):
        if isinstance(arg, dict) and "code" in arg:
            return arg["code"]
    return None


def translate_tx_error(exc: BaseException) -> LotteryClientError:
    """Map a collaborator exception onto the client error taxonomy."""
    if isinstance(exc, LotteryClientError):
        return exc
    if isinstance(exc, ContractLogicError):
        return TxRevertedError(str(exc))
    if rpc_error_code(exc) == USER_REJECTED_CODE:
        return UserRejectedError("User rejected the transaction")
    return TxNetworkError(str(exc) or exc.__class__.__name__)


class BlockchainClient:
    """Owns the RPC connection and contract ABI; hands out bound contract handles."""

    def __init__(self, config: Dict[str, Any]):
        self._config = config

        blockchain_cfg = config.get("blockchain", {})
        self.rpc_url: str = blockchain_cfg.get("rpc_url") or "http://127.0.0.1:8545"
        # per-RPC timeout (seconds) passed to HTTPProvider so requests never hang
        try:
            self.rpc_timeout: float = float(blockchain_cfg.get("rpc_timeout", 10.0))
        except (TypeError, ValueError):
            self.rpc_timeout = 10.0
        self.chain_id: int = int(blockchain_cfg.get("chain_id", 11155111))
        self.tx_timeout: int = int(blockchain_cfg.get("tx_timeout", 180))
        self.poll_interval: float = float(blockchain_cfg.get("poll_interval", 2.0))
        self._gas_multiplier = float(blockchain_cfg.get("gas_multiplier", 1.15))

        address = blockchain_cfg.get("contract_address")
        self.contract_address: Optional[str] = Web3.to_checksum_address(address) if address else None
        self._abi_path_setting: Optional[str] = blockchain_cfg.get("abi_path")

        # logical event name -> ABI event name
        self.event_names: Dict[str, str] = {
            ENTRY_EVENT: blockchain_cfg.get("entry_event") or "PlayerEntered",
            WINNER_PICKED_EVENT: blockchain_cfg.get("winner_event") or "WinnerPicked",
        }

        self._w3: Optional[Web3] = None
        self._contract: Optional[Contract] = None
        self.contract_abi: Optional[List[Dict[str, Any]]] = None
        self._event_abi_by_topic: Dict[str, Dict[str, Any]] = {}

    async def initialize(self) -> None:
        """Establish the RPC connection and load the contract."""
        if self._contract is not None:
            return
        if not self.contract_address:
            raise ValueError("blockchain.contract_address is not configured")

        self._w3 = Web3(Web3.HTTPProvider(self.rpc_url, request_kwargs={"timeout": self.rpc_timeout}))
        connected = await asyncio.to_thread(self._w3.is_connected)
        if not connected:
            raise ConnectionError(f"Failed to connect to RPC at {self.rpc_url}")
        logger.info("Connected to RPC %s", self.rpc_url)

        try:
            actual_chain_id = await asyncio.to_thread(lambda: self._w3.eth.chain_id)
            if actual_chain_id != self.chain_id:
                logger.warning("Chain ID mismatch: expected %s, got %s", self.chain_id, actual_chain_id)
        except Exception as exc:
            logger.warning("Could not verify chain ID: %s", exc)

        abi_path = self._resolve_abi_path()
        logger.info("Loading lottery ABI from %s", abi_path)
        with abi_path.open("r", encoding="utf-8") as handle:
            data = json.load(handle)
        self.contract_abi = data.get("abi", data) if isinstance(data, dict) else data

        self._contract = self._w3.eth.contract(address=self.contract_address, abi=self.contract_abi)
        logger.info("Contract bound at %s", self.contract_address)
        self.index_events(self.contract_abi or [])

    def index_events(self, abi: List[Dict[str, Any]]) -> None:
        """Build the event topic -> ABI map used to decode polled logs."""
        for item in abi:
            if item.get("type") == "event":
                self._event_abi_by_topic[_hex(event_abi_to_log_topic(item))] = item
        logger.info("Prepared %d event ABI topics", len(self._event_abi_by_topic))

    async def close(self) -> None:
        """Drop references; the HTTP provider closes on its own."""
        self._contract = None
        self._w3 = None

    def _resolve_abi_path(self) -> Path:
        candidate = Path(self._abi_path_setting) if self._abi_path_setting else PACKAGED_ABI
        if not candidate.is_file():
            raise FileNotFoundError(f"Lottery ABI file not found: {candidate}")
        return candidate

    @property
    def w3(self) -> Web3:
        if not self._w3:
            raise RuntimeError("Web3 provider not initialised")
        return self._w3

    @property
    def contract(self) -> Contract:
        if not self._contract:
            raise RuntimeError("Contract not initialised")
        return self._contract

    def event_abi_for_topic(self, topic: Any) -> Optional[Dict[str, Any]]:
        return self._event_abi_by_topic.get(_hex(topic))

    def bind(self, account: str, signer: Optional[LocalAccount] = None) -> "Web3ContractHandle":
        """Return a handle acting as `account`; `signer` signs locally when given."""
        return Web3ContractHandle(self, Web3.to_checksum_address(account), signer)

    def get_client_status(self) -> Dict[str, Any]:
        return {
            "rpcUrl": self.rpc_url,
            "chainId": self.chain_id,
            "contract": self.contract_address,
            "connected": self._contract is not None,
        }


class Web3PendingTransaction(PendingTransaction):
    """Transaction hash plus the means to wait for its receipt."""

    def __init__(self, w3: Web3, tx_hash: str, timeout: int) -> None:
        self._w3 = w3
        self.tx_hash = tx_hash
        self._timeout = timeout

    async def await_confirmation(self) -> Dict[str, Any]:
        def _wait():
            return self._w3.eth.wait_for_transaction_receipt(self.tx_hash, timeout=self._timeout)

        try:
            receipt = await asyncio.to_thread(_wait)
        except TimeExhausted as exc:
            raise TxNetworkError(f"Transaction {self.tx_hash} not confirmed within {self._timeout}s") from exc
        except Exception as exc:
            raise translate_tx_error(exc) from exc

        result = {
            "status": int(receipt["status"]),
            "blockNumber": int(receipt["blockNumber"]),
            "transactionHash": self.tx_hash,
            "gasUsed": int(receipt["gasUsed"]),
        }
        if result["status"] == 0:
            raise TxRevertedError(f"Transaction {self.tx_hash} reverted in block {result['blockNumber']}")
        logger.info("Transaction %s confirmed in block %s", self.tx_hash, result["blockNumber"])
        return result


class Web3ContractHandle(ContractHandle):
    """ContractHandle over web3.py with a log-polling event feed."""

    def __init__(self, client: BlockchainClient, account: str, signer: Optional[LocalAccount] = None) -> None:
        self._client = client
        self.account = account
        self.address = client.contract_address or ""
        self._signer = signer
        self._listeners: Dict[str, List[EventCallback]] = {}
        self._poll_task: Optional[asyncio.Task] = None

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------
    async def _call_view(self, function_name: str, *args) -> Any:
        contract = self._client.contract

        def _call():
            return getattr(contract.functions, function_name)(*args).call({"from": self.account})

        return await asyncio.to_thread(_call)

    async def owner(self) -> str:
        return await self._call_view("owner")

    async def get_balance(self) -> int:
        return int(await self._call_view("getBalance"))

    async def lottery_id(self) -> int:
        return int(await self._call_view("lotteryId"))

    async def get_players(self) -> List[str]:
        return list(await self._call_view("getPlayers"))

    async def get_winner_by_lottery(self, lottery_id: int) -> str:
        return await self._call_view("getWinnerByLottery", lottery_id)

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------
    async def enter(self, value: int) -> PendingTransaction:
        return await self._send_transaction("enter", value=value)

    async def pick_winner(self) -> PendingTransaction:
        return await self._send_transaction("pickWinner")

    async def _send_transaction(self, function_name: str, *args, value: int = 0) -> PendingTransaction:
        contract = self._client.contract
        w3 = self._client.w3

        def _send() -> str:
            tx_function = getattr(contract.functions, function_name)(*args)
            params = {"from": self.account, "value": value}
            if self._signer is None:
                # node-managed account: the node signs
                return _hex(tx_function.transact(params))

            gas_estimate = tx_function.estimate_gas(params)
            txn = tx_function.build_transaction(
                {
                    **params,
                    "gas": int(gas_estimate * self._client._gas_multiplier),
                    "gasPrice": w3.eth.gas_price,
                    "nonce": w3.eth.get_transaction_count(self.account),
                    "chainId": self._client.chain_id,
                }
            )
            signed = self._signer.sign_transaction(txn)
            raw = getattr(signed, "raw_transaction", None) or getattr(signed, "rawTransaction")
            return _hex(w3.eth.send_raw_transaction(raw))

        try:
            tx_hash = "0x" + await asyncio.to_thread(_send)
        except Exception as exc:
            raise translate_tx_error(exc) from exc

        logger.info("Sent transaction %s for %s", tx_hash, function_name)
        return Web3PendingTransaction(w3, tx_hash, self._client.tx_timeout)

    # ------------------------------------------------------------------
    # Events
    # ------------------------------------------------------------------
    def on(self, event_name: str, callback: EventCallback) -> None:
        self._listeners.setdefault(event_name, []).append(callback)
        logger.debug("Listener added for %s (%d total)", event_name, len(self._listeners[event_name]))
        if self._poll_task is None or self._poll_task.done():
            self._poll_task = asyncio.get_running_loop().create_task(self._poll_loop())

    def off(self, event_name: str, callback: EventCallback) -> None:
        callbacks = self._listeners.get(event_name, [])
        if callback in callbacks:
            callbacks.remove(callback)
            logger.debug("Listener removed for %s", event_name)
        if not callbacks:
            self._listeners.pop(event_name, None)
        if not self._listeners and self._poll_task is not None:
            self._poll_task.cancel()
            self._poll_task = None

    async def close(self) -> None:
        self._listeners.clear()
        if self._poll_task is not None:
            self._poll_task.cancel()
            try:
                await self._poll_task
            except asyncio.CancelledError:
                pass
            self._poll_task = None

    async def _poll_loop(self) -> None:
        """Poll eth_getLogs for the contract and dispatch decoded events in order."""
        from_block: Optional[int] = None
        while True:
            try:
                w3 = self._client.w3
                latest = int(await asyncio.to_thread(lambda: w3.eth.block_number))
                if from_block is None:
                    # feed starts at subscription time; history comes from the bulk load
                    from_block = latest + 1
                elif latest >= from_block:
                    logs = await asyncio.to_thread(
                        w3.eth.get_logs,
                        {"fromBlock": from_block, "toBlock": latest, "address": self.address},
                    )
                    for raw in logs:
                        self._dispatch_log(raw)
                    from_block = latest + 1
            except asyncio.CancelledError:
                raise
            except Exception as exc:
                # dropped connection: retry on the next tick, events in the gap are fetched then
                logger.error("Event poll failed: %s", exc)
            await asyncio.sleep(self._client.poll_interval)

    def _dispatch_log(self, raw: Any) -> None:
        from web3._utils.events import get_event_data  # type: ignore

        topics = raw.get("topics") or []
        if not topics:
            return
        abi = self._client.event_abi_for_topic(topics[0])
        if not abi:
            logger.debug("Unknown event topic %s", _hex(topics[0]))
            return
        try:
            decoded = get_event_data(self._client.w3.codec, abi, raw)
        except Exception as exc:
            logger.warning("Failed to decode log %s: %s", raw, exc)
            return
        args = [decoded["args"][item["name"]] for item in abi.get("inputs", [])]
        self.dispatch(abi["name"], *args)

    def dispatch(self, abi_event_name: str, *args: Any) -> None:
        """Deliver one event to the listeners registered under its logical name."""
        logical = next(
            (name for name, abi_name in self._client.event_names.items() if abi_name == abi_event_name),
            abi_event_name,
        )
        for callback in list(self._listeners.get(logical, [])):
            try:
                callback(*args)
            except Exception as exc:
                logger.error("Listener for %s failed: %s", logical, exc)
