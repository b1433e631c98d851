"""Shared logger context holding the process-wide priority threshold.

Purpose
-------
Let every logger created from the same context observe threshold changes on
its next emission, without snapshotting the value at logger creation.

Contents
--------
* :class:`LoggerContext` – thread-safe holder of the current threshold.
* :func:`new_context` – convenience constructor mirroring the public API.

System Role
-----------
Read on every emission by :class:`logharbour.logger.LogBuilder`; mutated by
:meth:`logharbour.logger.Logger.with_priority` or host configuration.
"""

from __future__ import annotations

from threading import Lock

from .priority import DEFAULT_PRIORITY, Priority


class LoggerContext:
    """Hold the minimum priority a record needs to be emitted.

    Reads are a single attribute load; writers serialise through a lock so
    concurrent updates never interleave.

    Examples
    --------
    >>> ctx = LoggerContext(Priority.INFO)
    >>> ctx.is_enabled(Priority.DEBUG2)
    False
    >>> ctx.set_priority(Priority.DEBUG2)
    >>> ctx.is_enabled(Priority.DEBUG2)
    True
    """

    __slots__ = ("_priority", "_lock")

    def __init__(self, default_priority: Priority | str = DEFAULT_PRIORITY) -> None:
        self._priority = _coerce(default_priority)
        self._lock = Lock()

    @property
    def priority(self) -> Priority:
        """Return the current threshold."""

        return self._priority

    def set_priority(self, priority: Priority | str) -> None:
        """Replace the threshold; visible to all loggers on their next call."""

        resolved = _coerce(priority)
        with self._lock:
            self._priority = resolved

    def is_enabled(self, priority: Priority) -> bool:
        """Return ``True`` unless ``priority`` is strictly below the threshold."""

        return priority.value >= self._priority.value

    def __repr__(self) -> str:
        return f"LoggerContext(priority={self._priority.severity!r})"


def _coerce(priority: Priority | str) -> Priority:
    if isinstance(priority, Priority):
        return priority
    return Priority.from_name(priority)


def new_context(default_priority: Priority | str = DEFAULT_PRIORITY) -> LoggerContext:
    """Create a shared :class:`LoggerContext`."""

    return LoggerContext(default_priority)


__all__ = ["LoggerContext", "new_context"]
