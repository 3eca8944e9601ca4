"""Wallet session: connect a signing identity and start synchronizing."""

from __future__ import annotations

from typing import Any, Callable, Dict, Optional

from lotto_sync.blockchain.interfaces import ContractHandle, WalletProvider
from lotto_sync.lottery.errors import (
    DataLoadError,
    NoWalletError,
    UserRejectedError,
)
from lotto_sync.lottery.models import SessionInfo, TxPhase
from lotto_sync.lottery.state_store import LotteryStateStore
from lotto_sync.lottery.status import StatusBoard
from lotto_sync.lottery.subscriptions import EventSubscriptionManager
from lotto_sync.utils.common import same_account
from lotto_sync.utils.logger import get_logger

logger = get_logger(__name__)

# (account, local signer or None) -> handle bound to that identity
HandleFactory = Callable[[str, Any], ContractHandle]


class WalletSession:
    """Owns the connection to a signing identity and the handle bound to it.

    A successful connect binds a ContractHandle to the first authorized
    account, reads the contract owner once, bulk-loads the store and
    subscribes to live events. Owner status is not re-verified for the rest
    of the session.
    """

    def __init__(
        self,
        wallet: Optional[WalletProvider],
        handle_factory: HandleFactory,
        store: LotteryStateStore,
        subscriptions: EventSubscriptionManager,
        status: StatusBoard,
        config: Optional[Dict[str, Any]] = None,
    ) -> None:
        self._wallet = wallet
        self._handle_factory = handle_factory
        self.store = store
        self.subscriptions = subscriptions
        self.status = status
        self._info = SessionInfo()
        self._handle: Optional[ContractHandle] = None

        status_cfg = (config or {}).get("status", {})
        self._connected_clear_sec = float(status_cfg.get("entry_clear_sec", 3.0))

    @property
    def account(self) -> Optional[str]:
        return self._info.account

    @property
    def connected(self) -> bool:
        return self._info.connected

    @property
    def is_owner(self) -> bool:
        return self._info.is_owner

    @property
    def handle(self) -> Optional[ContractHandle]:
        return self._handle

    @property
    def info(self) -> SessionInfo:
        return SessionInfo(**vars(self._info))

    async def connect(self) -> Optional[str]:
        """Connect and start synchronizing; returns the account or None on failure."""
        try:
            if self._wallet is None:
                raise NoWalletError("Please install a wallet!")
            self.status.set(TxPhase.PENDING, "Connecting wallet...")
            accounts = await self._wallet.request_accounts()
            if not accounts:
                raise UserRejectedError("No account was authorized")
        except (NoWalletError, UserRejectedError) as exc:
            logger.warning("Connection error: %s", exc)
            self.status.set(TxPhase.ERROR, f"Error: {exc}")
            return None
        except Exception as exc:
            logger.exception("Unexpected wallet failure")
            self.status.set(TxPhase.ERROR, f"Error: {exc}")
            return None

        account = accounts[0]
        try:
            handle = self._handle_factory(account, self._wallet.signer_for(account))
        except Exception as exc:
            logger.error("Could not bind contract handle for %s: %s", account, exc)
            self.status.set(TxPhase.ERROR, f"Error: {exc}")
            return None

        # the old session's listeners go before the new handle is adopted
        await self._teardown()
        self._handle = handle
        self._info = SessionInfo(account=account, connected=False, is_owner=await self._check_owner(handle, account))

        loaded = await self._load(handle)
        self.subscriptions.subscribe(handle)
        self._info.connected = True
        logger.info("Wallet connected: %s (owner=%s)", account, self._info.is_owner)

        if loaded:
            self.status.set(TxPhase.SUCCESS, "Wallet connected!", clear_after=self._connected_clear_sec)
        return account

    async def refresh(self) -> bool:
        """Re-run the bulk load on the current handle."""
        if not self.connected or self._handle is None:
            self.status.set(TxPhase.ERROR, "Error: Connect a wallet first")
            return False
        return await self._load(self._handle)

    async def disconnect(self) -> None:
        """Tear down the session; safe to call when not connected."""
        account = self._info.account
        await self._teardown()
        if account:
            logger.info("Wallet disconnected: %s", account)

    async def _check_owner(self, handle: ContractHandle, account: str) -> bool:
        try:
            owner = await handle.owner()
        except Exception as exc:
            logger.warning("Owner lookup failed, treating %s as non-owner: %s", account, exc)
            return False
        return same_account(account, owner)

    async def _load(self, handle: ContractHandle) -> bool:
        self.status.set(TxPhase.PENDING, "Loading contract data...")
        try:
            await self.store.load_all(handle)
        except DataLoadError as exc:
            self.status.set(TxPhase.ERROR, str(exc))
            return False
        self.status.reset()
        return True

    async def _teardown(self) -> None:
        handle = self._handle
        self.subscriptions.unsubscribe(handle)
        self._handle = None
        self._info = SessionInfo()
        if handle is not None:
            try:
                await handle.close()
            except Exception as exc:
                logger.warning("Error closing contract handle: %s", exc)
