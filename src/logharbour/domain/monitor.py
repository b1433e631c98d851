"""Thread-safe delivery counters for the fire-and-forget producer path.

Failures on the producer side are never surfaced to callers; these counters
are where they become visible (degraded-state accounting).
"""

from __future__ import annotations

from collections import Counter
from threading import Lock
from typing import Iterable

DROP_REASONS: tuple[str, ...] = (
    "queue_full",
    "writer_closed",
    "writer_error",
    "serialization_error",
    "delivery_failed",
    "shutdown_timeout",
    "invalid_record",
)
"""Stable drop-reason labels reported by writers and loggers."""


class DeliveryStats:
    """Aggregate accepted, delivered, retried and dropped record counts.

    Examples
    --------
    >>> stats = DeliveryStats()
    >>> stats.record_accepted()
    >>> stats.record_drop("queue_full", 2)
    >>> stats.snapshot()["dropped"]["queue_full"]
    2
    """

    def __init__(self, *, drop_reasons: Iterable[str] = DROP_REASONS) -> None:
        self._lock = Lock()
        self._accepted = 0
        self._delivered = 0
        self._retried = 0
        self._drops: Counter[str] = Counter({reason: 0 for reason in drop_reasons})

    def record_accepted(self, count: int = 1) -> None:
        with self._lock:
            self._accepted += count

    def record_delivered(self, count: int = 1) -> None:
        with self._lock:
            self._delivered += count

    def record_retry(self, count: int = 1) -> None:
        with self._lock:
            self._retried += count

    def record_drop(self, reason: str, count: int = 1) -> None:
        with self._lock:
            self._drops[reason] += count

    @property
    def accepted(self) -> int:
        return self._accepted

    @property
    def delivered(self) -> int:
        return self._delivered

    @property
    def retried(self) -> int:
        return self._retried

    def dropped(self, reason: str | None = None) -> int:
        """Return drops for ``reason`` or the total across all reasons."""

        with self._lock:
            if reason is None:
                return sum(self._drops.values())
            return self._drops.get(reason, 0)

    def snapshot(self) -> dict[str, object]:
        """Return a copy of every counter."""

        with self._lock:
            return {
                "accepted": self._accepted,
                "delivered": self._delivered,
                "retried": self._retried,
                "dropped": dict(self._drops),
            }


__all__ = ["DROP_REASONS", "DeliveryStats"]
