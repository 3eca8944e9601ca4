"""Live event subscription: contract events in, store mutations out."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Optional

from lotto_sync.blockchain.interfaces import (
    ENTRY_EVENT,
    WINNER_PICKED_EVENT,
    ContractHandle,
    EventCallback,
)
from lotto_sync.lottery.models import TxPhase
from lotto_sync.lottery.state_store import LotteryStateStore
from lotto_sync.lottery.status import StatusBoard
from lotto_sync.utils.common import shorten_eth_address
from lotto_sync.utils.logger import get_logger

logger = get_logger(__name__)


@dataclass
class Subscription:
    """Listeners registered on one handle; cancel() removes them exactly once."""

    handle: ContractHandle
    listeners: Dict[str, EventCallback] = field(default_factory=dict)
    active: bool = True

    def cancel(self) -> None:
        if not self.active:
            return
        for event_name, callback in self.listeners.items():
            self.handle.off(event_name, callback)
        self.active = False
        logger.info("Unsubscribed from %s", ", ".join(self.listeners))


class EventSubscriptionManager:
    """Registers the entry / winner-picked listeners and forwards events.

    Only one subscription is live at a time: subscribing again (for
    instance after a reconnect) first tears the previous one down so
    listeners never accumulate. Events delivered while unsubscribed are
    simply lost; the next bulk load is what catches the view up.
    """

    def __init__(
        self,
        store: LotteryStateStore,
        status: StatusBoard,
        config: Optional[Dict[str, Any]] = None,
    ) -> None:
        self.store = store
        self.status = status

        status_cfg = (config or {}).get("status", {})
        self._entry_clear_sec = float(status_cfg.get("entry_clear_sec", 3.0))
        self._winner_clear_sec = float(status_cfg.get("winner_clear_sec", 5.0))

        self._subscription: Optional[Subscription] = None

    @property
    def subscription(self) -> Optional[Subscription]:
        return self._subscription

    def subscribe(self, handle: ContractHandle) -> Subscription:
        if self._subscription is not None:
            self.unsubscribe()

        subscription = Subscription(
            handle=handle,
            listeners={
                ENTRY_EVENT: self._on_entry,
                WINNER_PICKED_EVENT: self._on_winner_picked,
            },
        )
        for event_name, callback in subscription.listeners.items():
            handle.on(event_name, callback)
        self._subscription = subscription
        logger.info("Subscribed to %s on %s", ", ".join(subscription.listeners), getattr(handle, "address", handle))
        return subscription

    def unsubscribe(self, handle: Optional[ContractHandle] = None) -> None:
        """Remove both listeners; safe to repeat and safe with a None handle."""
        subscription = self._subscription
        if subscription is None:
            return
        if handle is not None and subscription.handle is not handle:
            logger.debug("unsubscribe called for a handle that holds no active subscription")
            return
        subscription.cancel()
        self._subscription = None

    # ------------------------------------------------------------------
    # Listener callbacks
    # ------------------------------------------------------------------
    def _on_entry(self, player: str, *_: Any) -> None:
        self.store.apply_entry_event(player)
        self.status.set(
            TxPhase.SUCCESS,
            f"New player entered: {shorten_eth_address(player)}",
            clear_after=self._entry_clear_sec,
        )

    def _on_winner_picked(self, winner: str, lottery_id: int, *_: Any) -> None:
        self.store.apply_winner_event(winner, int(lottery_id))
        self.status.set(
            TxPhase.SUCCESS,
            f"Winner picked: {shorten_eth_address(winner)}",
            clear_after=self._winner_clear_sec,
        )
