"""Minimal observer registry shared by the store and the status board."""

from __future__ import annotations

from collections import defaultdict
from typing import Callable, Dict, List, Optional

from lotto_sync.utils.logger import get_logger

logger = get_logger(__name__)

Listener = Callable[[Optional[dict]], None]


class ListenerRegistry:
    """Named listeners notified with a serialized payload."""

    def __init__(self) -> None:
        self._listeners: Dict[str, List[Listener]] = defaultdict(list)

    def add_listener(self, event_type: str, callback: Listener) -> None:
        self._listeners[event_type].append(callback)
        logger.debug("Adding listener for event_type=%s", event_type)

    def remove_listener(self, event_type: str, callback: Listener) -> None:
        if callback in self._listeners.get(event_type, []):
            self._listeners[event_type].remove(callback)

    def _emit(self, event_type: str, payload: Optional[dict]) -> None:
        for callback in list(self._listeners.get(event_type, [])):
            try:
                callback(payload)
            except Exception as exc:
                logger.error("Listener for %s failed: %s", event_type, exc)
