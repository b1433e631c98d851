"""Priority abstraction providing the total order used for threshold filtering.

Purpose
-------
Offer a domain-specific representation of record priorities with the wire
names carried in the ``pri`` field and helper conversions to the stdlib
:mod:`logging` levels.

Contents
--------
* :class:`Priority` enum with conversion helpers and presentation metadata.
* ``_ICON_TABLE`` constant mapping priorities to console glyphs.

System Role
-----------
Used by the logger context to filter emissions, by the record model to encode
``pri`` and by the console writer to pick icons and styles.
"""

from __future__ import annotations

import logging
from enum import Enum


class Priority(Enum):
    """Totally ordered record priorities, lowest first.

    Examples
    --------
    >>> Priority.DEBUG2 < Priority.INFO
    True
    >>> Priority.from_name("WARN").severity
    'warn'
    """

    DEBUG2 = 1
    DEBUG1 = 2
    DEBUG = 3
    INFO = 4
    WARN = 5
    ERROR = 6
    CRIT = 7

    def __lt__(self, other: object) -> bool:
        if not isinstance(other, Priority):
            return NotImplemented
        return self.value < other.value

    def __le__(self, other: object) -> bool:
        if not isinstance(other, Priority):
            return NotImplemented
        return self.value <= other.value

    def __gt__(self, other: object) -> bool:
        if not isinstance(other, Priority):
            return NotImplemented
        return self.value > other.value

    def __ge__(self, other: object) -> bool:
        if not isinstance(other, Priority):
            return NotImplemented
        return self.value >= other.value

    @property
    def severity(self) -> str:
        """Return the lowercase wire name used in the ``pri`` field."""

        return self.name.lower()

    @property
    def icon(self) -> str:
        """Return the unicode icon visualizing the priority on colored consoles."""

        return _ICON_TABLE[self]

    def to_python_level(self) -> int:
        """Return the closest :mod:`logging` constant for this priority."""

        return _PYTHON_LEVELS[self]

    @classmethod
    def from_name(cls, name: str) -> "Priority":
        normalized = name.strip().upper()
        try:
            return cls[normalized]
        except KeyError as exc:
            raise ValueError(f"Unknown priority: {name!r}") from exc

    @classmethod
    def from_numeric(cls, value: int) -> "Priority":
        """Return the :class:`Priority` whose ordinal is ``value``."""
        try:
            return cls(value)
        except ValueError as exc:
            raise ValueError(f"Unsupported priority numeric: {value}") from exc


_ICON_TABLE = {
    Priority.DEBUG2: "·",
    Priority.DEBUG1: "•",
    Priority.DEBUG: "🐞",
    Priority.INFO: "ℹ",
    Priority.WARN: "⚠",
    Priority.ERROR: "✖",
    Priority.CRIT: "☠",
}
# Console glyphs displayed by the Rich writer per priority.

_PYTHON_LEVELS = {
    Priority.DEBUG2: 5,
    Priority.DEBUG1: 7,
    Priority.DEBUG: logging.DEBUG,
    Priority.INFO: logging.INFO,
    Priority.WARN: logging.WARNING,
    Priority.ERROR: logging.ERROR,
    Priority.CRIT: logging.CRITICAL,
}


DEFAULT_PRIORITY = Priority.INFO


__all__ = ["DEFAULT_PRIORITY", "Priority"]
