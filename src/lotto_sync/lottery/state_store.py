"""Locally reconciled lottery state."""

from __future__ import annotations

import asyncio
from dataclasses import replace
from decimal import Decimal
from threading import Lock
from typing import Any, List

from web3 import Web3

from lotto_sync.blockchain.interfaces import ContractHandle
from lotto_sync.lottery.errors import DataLoadError
from lotto_sync.lottery.listeners import ListenerRegistry
from lotto_sync.lottery.models import LotteryState
from lotto_sync.utils.logger import get_logger

logger = get_logger(__name__)

DEFAULT_WINNER_HISTORY = 5


class LotteryStateStore(ListenerRegistry):
    """Owns the LotteryState and every mutation of it.

    Mutations are a bulk load that replaces the whole state and two event
    merges (entry, winner picked). Each one builds a new immutable
    LotteryState and swaps it in under the lock, then emits
    `state_update` with the serialized result.

    Events are applied in arrival order without reordering, deduplication or
    any check of their lottery id against the current one. A bulk load that
    completes after live events arrived replaces those events' effects; the
    store only logs that it happened.
    """

    def __init__(self, *, winner_history: int = DEFAULT_WINNER_HISTORY) -> None:
        super().__init__()
        self._lock = Lock()
        self._state = LotteryState()
        self._winner_history = winner_history
        self._loads_in_flight = 0
        self._event_seq = 0

    # ------------------------------------------------------------------
    # Accessors
    # ------------------------------------------------------------------
    def snapshot(self) -> LotteryState:
        with self._lock:
            return self._state

    @property
    def loading(self) -> bool:
        return self._loads_in_flight > 0

    # ------------------------------------------------------------------
    # Bulk load
    # ------------------------------------------------------------------
    async def load_all(self, handle: ContractHandle) -> LotteryState:
        """Read the full contract view and replace the state in one step.

        Raises DataLoadError if any read fails; the previous state is kept.
        """
        self._loads_in_flight += 1
        events_before = self._event_seq
        try:
            balance_wei, current_id, players = await self._gather(
                handle.get_balance(), handle.lottery_id(), handle.get_players()
            )
            current_id = int(current_id)
            winner_ids = list(range(max(1, current_id - self._winner_history), current_id))
            winners = await self._gather(*(handle.get_winner_by_lottery(i) for i in winner_ids))
        except Exception as exc:
            logger.error("Data load error: %s", exc)
            raise DataLoadError(f"Error loading data: {exc}") from exc
        finally:
            self._loads_in_flight -= 1

        state = LotteryState(
            lottery_id=current_id,
            balance=Decimal(Web3.from_wei(int(balance_wei), "ether")),
            players=tuple(players),
            winners=dict(zip(winner_ids, winners)),
        )
        with self._lock:
            self._state = state

        superseded = self._event_seq - events_before
        if superseded:
            logger.warning("%d live event(s) received during the bulk load were superseded by it", superseded)
        logger.info(
            "Loaded lottery #%s: %d player(s), %d recent winner(s), balance %s",
            state.lottery_id, state.player_count, len(state.winners), state.balance,
        )
        self._emit("state_update", state.to_dict())
        return state

    @staticmethod
    async def _gather(*reads: Any) -> List[Any]:
        # let every read settle before failing so no task is left unobserved
        results = await asyncio.gather(*reads, return_exceptions=True)
        for result in results:
            if isinstance(result, BaseException):
                raise result
        return list(results)

    # ------------------------------------------------------------------
    # Event merges
    # ------------------------------------------------------------------
    def apply_entry_event(self, player: str) -> LotteryState:
        with self._lock:
            self._state = replace(self._state, players=self._state.players + (player,))
            state = self._state
            self._event_seq += 1
        logger.info("Player entered lottery #%s: %s (%d players)", state.lottery_id, player, state.player_count)
        self._emit("state_update", state.to_dict())
        return state

    def apply_winner_event(self, winner: str, lottery_id: int) -> LotteryState:
        lottery_id = int(lottery_id)
        with self._lock:
            winners = dict(self._state.winners)
            winners[lottery_id] = winner
            self._state = replace(self._state, winners=winners, players=(), lottery_id=lottery_id + 1)
            state = self._state
            self._event_seq += 1
        logger.info("Winner of lottery #%s: %s; round #%s started", lottery_id, winner, state.lottery_id)
        self._emit("state_update", state.to_dict())
        return state

    def clear(self) -> None:
        with self._lock:
            self._state = LotteryState()
        self._emit("state_update", self.snapshot().to_dict())
        logger.debug("Lottery state cleared")
