"""The single user-facing status line and its auto-clear timer."""

from __future__ import annotations

import asyncio
from typing import Optional

from lotto_sync.lottery.listeners import ListenerRegistry
from lotto_sync.lottery.models import TxPhase, TxStatus
from lotto_sync.utils.logger import get_logger

logger = get_logger(__name__)


class StatusBoard(ListenerRegistry):
    """Holds the current TxStatus; emits `status_update` on every change."""

    def __init__(self) -> None:
        super().__init__()
        self._status = TxStatus()
        self._clear_handle: Optional[asyncio.TimerHandle] = None

    @property
    def current(self) -> TxStatus:
        return self._status

    def set(self, phase: TxPhase, message: str, clear_after: Optional[float] = None) -> TxStatus:
        """Replace the status; a newer status always cancels an older pending clear."""
        self._cancel_clear()
        status = TxStatus(phase=phase, message=message)
        self._status = status
        logger.info("Status %s: %s", phase.value, message)

        if clear_after is not None:
            try:
                loop = asyncio.get_running_loop()
                self._clear_handle = loop.call_later(clear_after, self._auto_clear, status)
            except RuntimeError:
                logger.debug("No running loop; status '%s' will not auto-clear", message)

        self._emit("status_update", status.to_dict())
        return status

    def reset(self) -> None:
        self.set(TxPhase.IDLE, "")

    def _auto_clear(self, expected: TxStatus) -> None:
        self._clear_handle = None
        if self._status is expected:
            self.reset()

    def _cancel_clear(self) -> None:
        if self._clear_handle is not None:
            self._clear_handle.cancel()
            self._clear_handle = None
