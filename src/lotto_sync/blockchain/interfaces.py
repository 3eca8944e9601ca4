"""Capability interfaces the synchronization core depends on.

The core only talks to a wallet and to a contract through these; the web3
implementations live in `blockchain.client` and `wallet.providers`, and the
tests substitute in-memory fakes.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, Callable, Dict, List

# Logical event names used by the core.
ENTRY_EVENT = "entry"
WINNER_PICKED_EVENT = "winnerPicked"

EventCallback = Callable[..., None]


class WalletProvider(ABC):
    """Supplies signing identities."""

    @abstractmethod
    async def request_accounts(self) -> List[str]:
        """Return authorized accounts; raise UserRejectedError on denial."""

    def signer_for(self, account: str) -> Any:
        """Return a local signer for `account`, or None if the node signs."""
        return None


class PendingTransaction(ABC):
    """A submitted transaction awaiting inclusion."""

    tx_hash: str = ""

    @abstractmethod
    async def await_confirmation(self) -> Dict[str, Any]:
        """Wait for inclusion; raise TxRevertedError / TxNetworkError."""


class ContractHandle(ABC):
    """Capability bound to one contract address and one signing identity."""

    address: str = ""
    account: str = ""

    @abstractmethod
    async def owner(self) -> str: ...

    @abstractmethod
    async def get_balance(self) -> int:
        """Contract balance in wei."""

    @abstractmethod
    async def lottery_id(self) -> int: ...

    @abstractmethod
    async def get_players(self) -> List[str]: ...

    @abstractmethod
    async def get_winner_by_lottery(self, lottery_id: int) -> str: ...

    @abstractmethod
    async def enter(self, value: int) -> PendingTransaction:
        """Submit an entry paying `value` wei."""

    @abstractmethod
    async def pick_winner(self) -> PendingTransaction: ...

    @abstractmethod
    def on(self, event_name: str, callback: EventCallback) -> None: ...

    @abstractmethod
    def off(self, event_name: str, callback: EventCallback) -> None:
        """Remove a listener; removing an unknown listener is a no-op."""

    async def close(self) -> None:
        """Release feed resources held by the handle."""
