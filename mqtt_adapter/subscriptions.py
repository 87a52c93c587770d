from __future__ import annotations

import threading
from types import MappingProxyType
from typing import Callable, Dict, Mapping, Optional

MessageCallback = Callable[[str, str], None]


class SubscriptionTable:
    """Topic -> callback mapping shared between caller threads and the engine loop."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._handlers: Dict[str, Optional[MessageCallback]] = {}

    def set(self, topic: str, callback: Optional[MessageCallback]) -> None:
        # Last writer wins
        with self._lock:
            self._handlers[topic] = callback

    def get(self, topic: str) -> Optional[MessageCallback]:
        with self._lock:
            return self._handlers.get(topic)

    def snapshot(self) -> Mapping[str, Optional[MessageCallback]]:
        with self._lock:
            return MappingProxyType(dict(self._handlers))

    def __contains__(self, topic: object) -> bool:
        with self._lock:
            return topic in self._handlers

    def __len__(self) -> int:
        with self._lock:
            return len(self._handlers)


__all__ = ["MessageCallback", "SubscriptionTable"]
