"""Shared fixtures and in-memory collaborators for the lottery client tests."""

from collections import defaultdict
from typing import Any, Dict, List, Optional

import pytest

from lotto_sync.blockchain.interfaces import ContractHandle, PendingTransaction, WalletProvider
from lotto_sync.lottery.state_store import LotteryStateStore
from lotto_sync.lottery.status import StatusBoard
from lotto_sync.lottery.subscriptions import EventSubscriptionManager

CONTRACT = "0x23C592A24FcEd38b9B18b0169772b36e3EE373d1"
OWNER = "0x00000000000000000000000000000000000000aA"
PLAYER_A = "0x1111111111111111111111111111111111111111"
PLAYER_B = "0x2222222222222222222222222222222222222222"
PLAYER_C = "0x3333333333333333333333333333333333333333"
WINNER_1 = "0x4444444444444444444444444444444444444444"
WINNER_2 = "0x5555555555555555555555555555555555555555"
WINNER_3 = "0x6666666666666666666666666666666666666666"

TEST_CONFIG: Dict[str, Any] = {
    "lottery": {"entry_value_eth": "0.0011", "min_entry_fee_eth": "0.001"},
    "status": {"entry_clear_sec": 3, "winner_clear_sec": 5},
}


class FakePendingTransaction(PendingTransaction):
    def __init__(self, tx_hash: str = "0xabc123", error: Optional[Exception] = None):
        self.tx_hash = tx_hash
        self.error = error
        self.confirmed = False

    async def await_confirmation(self) -> Dict[str, Any]:
        if self.error is not None:
            raise self.error
        self.confirmed = True
        return {"status": 1, "blockNumber": 7, "transactionHash": self.tx_hash, "gasUsed": 21000}


class FakeContractHandle(ContractHandle):
    """Contract stand-in: canned reads, recorded writes, manual event emission."""

    def __init__(
        self,
        *,
        account: str = PLAYER_A,
        owner: str = OWNER,
        balance_wei: int = 0,
        lottery_id: int = 1,
        players: Optional[List[str]] = None,
        winners: Optional[Dict[int, str]] = None,
    ):
        self.account = account
        self.address = CONTRACT
        self._owner = owner
        self.balance_wei = balance_wei
        self.current_id = lottery_id
        self.players = list(players or [])
        self.winners = dict(winners or {})
        self.failures: Dict[Any, Exception] = {}
        self.listeners: Dict[str, list] = defaultdict(list)
        self.calls: List[tuple] = []
        self.pending = FakePendingTransaction()
        self.send_error: Optional[Exception] = None
        self.closed = False

    def _maybe_fail(self, key: Any) -> None:
        if key in self.failures:
            raise self.failures[key]

    async def owner(self) -> str:
        self._maybe_fail("owner")
        return self._owner

    async def get_balance(self) -> int:
        self._maybe_fail("get_balance")
        return self.balance_wei

    async def lottery_id(self) -> int:
        self._maybe_fail("lottery_id")
        return self.current_id

    async def get_players(self) -> List[str]:
        self._maybe_fail("get_players")
        return list(self.players)

    async def get_winner_by_lottery(self, lottery_id: int) -> str:
        self._maybe_fail(("get_winner_by_lottery", lottery_id))
        self.calls.append(("get_winner_by_lottery", lottery_id))
        return self.winners[lottery_id]

    async def enter(self, value: int) -> PendingTransaction:
        self.calls.append(("enter", value))
        if self.send_error is not None:
            raise self.send_error
        return self.pending

    async def pick_winner(self) -> PendingTransaction:
        self.calls.append(("pick_winner",))
        if self.send_error is not None:
            raise self.send_error
        return self.pending

    def on(self, event_name, callback) -> None:
        self.listeners[event_name].append(callback)

    def off(self, event_name, callback) -> None:
        if callback in self.listeners.get(event_name, []):
            self.listeners[event_name].remove(callback)

    async def close(self) -> None:
        self.closed = True

    def emit(self, event_name: str, *args: Any) -> None:
        for callback in list(self.listeners.get(event_name, [])):
            callback(*args)

    def listener_count(self) -> int:
        return sum(len(callbacks) for callbacks in self.listeners.values())

    def write_calls(self) -> List[tuple]:
        return [call for call in self.calls if call[0] in ("enter", "pick_winner")]


class FakeWallet(WalletProvider):
    def __init__(self, accounts: Optional[List[str]] = None, error: Optional[Exception] = None):
        self.accounts = accounts if accounts is not None else [PLAYER_A]
        self.error = error
        self.requests = 0

    async def request_accounts(self) -> List[str]:
        self.requests += 1
        if self.error is not None:
            raise self.error
        return list(self.accounts)


def make_handle(**kwargs) -> FakeContractHandle:
    """Handle for a contract in round 3 with two players and two past winners."""
    defaults = dict(
        balance_wei=2 * 10**15,
        lottery_id=3,
        players=[PLAYER_A, PLAYER_B],
        winners={1: WINNER_1, 2: WINNER_2},
    )
    defaults.update(kwargs)
    return FakeContractHandle(**defaults)


@pytest.fixture
def store() -> LotteryStateStore:
    return LotteryStateStore()


@pytest.fixture
def status() -> StatusBoard:
    return StatusBoard()


@pytest.fixture
def subscriptions(store, status) -> EventSubscriptionManager:
    return EventSubscriptionManager(store, status, TEST_CONFIG)


@pytest.fixture
def handle() -> FakeContractHandle:
    return make_handle()
