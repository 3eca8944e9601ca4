"""
Transaction Executor - submits enter / pick-winner and reports their status
"""

from __future__ import annotations

from decimal import Decimal, InvalidOperation
from typing import TYPE_CHECKING, Any, Dict, Optional, Union

from web3 import Web3

from lotto_sync.blockchain.interfaces import ContractHandle, PendingTransaction
from lotto_sync.lottery.errors import LotteryClientError, NotConnectedError
from lotto_sync.lottery.models import TxAction, TxPhase, TxStatus
from lotto_sync.lottery.state_store import LotteryStateStore
from lotto_sync.lottery.status import StatusBoard
from lotto_sync.utils.logger import get_logger

if TYPE_CHECKING:
    from lotto_sync.wallet.session import WalletSession

logger = get_logger(__name__)

PENDING_MESSAGES = {
    TxAction.ENTER: "Processing entry...",
    TxAction.PICK_WINNER: "Selecting winner...",
}

SUCCESS_MESSAGES = {
    TxAction.ENTER: "Successfully entered lottery!",
    TxAction.PICK_WINNER: "Winner selected successfully!",
}


class TransactionExecutor:
    """Submits one state-changing call and drives the status line through it.

    The store, when given, is only read (to refuse a draw on an empty round);
    a confirmed entry or draw shows up in the local view only when the
    contract's event arrives.
    """

    def __init__(
        self,
        session: "WalletSession",
        status: StatusBoard,
        config: Optional[Dict[str, Any]] = None,
        store: Optional[LotteryStateStore] = None,
    ):
        self.session = session
        self.status = status
        self.store = store

        cfg = config or {}
        lottery_cfg = cfg.get("lottery", {})
        status_cfg = cfg.get("status", {})
        self.entry_value = Decimal(str(lottery_cfg.get("entry_value_eth", "0.0011")))
        self.min_entry_fee = Decimal(str(lottery_cfg.get("min_entry_fee_eth", "0.001")))
        if self.entry_value <= self.min_entry_fee:
            raise ValueError(
                f"lottery.entry_value_eth ({self.entry_value}) must be above "
                f"lottery.min_entry_fee_eth ({self.min_entry_fee})"
            )
        self._clear_after = {
            TxAction.ENTER: float(status_cfg.get("entry_clear_sec", 3.0)),
            TxAction.PICK_WINNER: float(status_cfg.get("winner_clear_sec", 5.0)),
        }

    async def submit(
        self,
        handle: Optional[ContractHandle],
        action: TxAction,
        value: Optional[Union[Decimal, str, float]] = None,
    ) -> Optional[TxStatus]:
        """Run `action` to confirmation.

        Returns the final status, or None when a pick-winner request is
        refused (no owner session, or no players in the current round);
        nothing is sent and the status line is left as it was.
        """
        if action is TxAction.PICK_WINNER and not self._may_pick_winner(handle):
            logger.info("Pick winner refused: connected=%s owner=%s", self.session.connected, self.session.is_owner)
            return None

        try:
            if handle is None or not self.session.connected:
                raise NotConnectedError("Connect a wallet first")
            wei = self._entry_wei(value) if action is TxAction.ENTER else None

            self.status.set(TxPhase.PENDING, PENDING_MESSAGES[action])
            pending = await self._send(handle, action, wei)
            receipt = await pending.await_confirmation()
        except LotteryClientError as exc:
            logger.error("%s failed: %s", action.value, exc)
            return self.status.set(TxPhase.ERROR, f"Error: {exc}")
        except Exception as exc:
            logger.exception("%s failed unexpectedly", action.value)
            return self.status.set(TxPhase.ERROR, f"Error: {exc}")

        logger.info("%s confirmed: %s", action.value, receipt.get("transactionHash", pending.tx_hash))
        return self.status.set(TxPhase.SUCCESS, SUCCESS_MESSAGES[action], clear_after=self._clear_after[action])

    def _may_pick_winner(self, handle: Optional[ContractHandle]) -> bool:
        if handle is None or not self.session.connected or not self.session.is_owner:
            return False
        # the contract reverts a draw with no players
        return self.store is None or self.store.snapshot().player_count > 0

    def _entry_wei(self, value: Optional[Union[Decimal, str, float]]) -> int:
        amount = self.entry_value if value is None else value
        try:
            amount = Decimal(str(amount))
        except InvalidOperation as exc:
            raise ValueError(f"Invalid entry value: {value!r}") from exc
        if amount <= 0:
            raise ValueError("Entry value must be positive")
        return int(Web3.to_wei(amount, "ether"))

    @staticmethod
    async def _send(handle: ContractHandle, action: TxAction, wei: Optional[int]) -> PendingTransaction:
        if action is TxAction.ENTER:
            return await handle.enter(wei)
        return await handle.pick_winner()
