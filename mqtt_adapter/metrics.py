from __future__ import annotations

import threading
from dataclasses import dataclass, field


@dataclass
class CommunicationStats:
    published_bytes: int = 0
    received_bytes: int = 0
    dropped_messages: int = 0
    _lock: threading.Lock = field(
        default_factory=threading.Lock, repr=False, compare=False
    )

    def add_published_bytes(self, size_bytes: int) -> None:
        with self._lock:
            self.published_bytes += int(size_bytes)

    def add_received_bytes(self, size_bytes: int) -> None:
        with self._lock:
            self.received_bytes += int(size_bytes)

    def add_dropped(self) -> None:
        with self._lock:
            self.dropped_messages += 1

    def reset(self) -> None:
        """Reset all counters to zero."""
        with self._lock:
            self.published_bytes = 0
            self.received_bytes = 0
            self.dropped_messages = 0

    def snapshot(self) -> dict:
        with self._lock:
            return {
                "published_bytes": self.published_bytes,
                "received_bytes": self.received_bytes,
                "dropped_messages": self.dropped_messages,
            }


__all__ = ["CommunicationStats"]
