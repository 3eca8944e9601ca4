"""Core data models for the lottery client."""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum
from types import MappingProxyType
from typing import Any, Dict, Mapping, Optional, Tuple


class TxPhase(Enum):
    """Phases of the single user-facing status line."""

    IDLE = "idle"
    PENDING = "pending"
    SUCCESS = "success"
    ERROR = "error"


class TxAction(Enum):
    """State-changing calls a user can submit."""

    ENTER = "enter"
    PICK_WINNER = "pick_winner"


@dataclass(frozen=True)
class TxStatus:
    """Ephemeral status shown to the user."""

    phase: TxPhase = TxPhase.IDLE
    message: str = ""

    @property
    def active(self) -> bool:
        return self.phase is TxPhase.PENDING

    def to_dict(self) -> Dict[str, Any]:
        return {"phase": self.phase.value, "message": self.message, "active": self.active}


@dataclass(frozen=True)
class LotteryState:
    """Locally reconciled view of the lottery contract.

    Instances are never mutated; the store swaps in a new value for every
    load or applied event so readers never see a half-applied update.
    """

    lottery_id: int = 1
    balance: Decimal = Decimal(0)
    players: Tuple[str, ...] = ()
    winners: Mapping[int, str] = field(default_factory=dict)

    def __post_init__(self) -> None:
        # read-only view over a private copy; snapshots cannot reach back into the store
        object.__setattr__(self, "winners", MappingProxyType(dict(self.winners)))

    @property
    def player_count(self) -> int:
        return len(self.players)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "lotteryId": self.lottery_id,
            "balance": str(self.balance),
            "players": list(self.players),
            "playerCount": self.player_count,
            "winners": {str(k): v for k, v in sorted(self.winners.items())},
        }


@dataclass
class SessionInfo:
    """Connection facts for the active wallet session."""

    account: Optional[str] = None
    connected: bool = False
    is_owner: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {"account": self.account, "connected": self.connected, "isOwner": self.is_owner}
