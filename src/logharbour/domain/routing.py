"""Index naming for the time-partitioned search indices."""

from __future__ import annotations

from datetime import date

from .record import LogType

INDEX_PREFIX = "logharbour"
INDEX_PATTERN = f"{INDEX_PREFIX}-*"
UNKNOWN_TYPE = "unknown"


def index_name_for(log_type: str, day: date) -> str:
    """Return ``logharbour-<type>-<YYYY.MM.DD>`` for ``log_type`` on ``day``.

    Types outside :class:`LogType` route to the ``unknown`` family.

    Examples
    --------
    >>> from datetime import date
    >>> index_name_for("Activity", date(2025, 1, 2))
    'logharbour-activity-2025.01.02'
    >>> index_name_for("audit", date(2025, 1, 2))
    'logharbour-unknown-2025.01.02'
    """
    known = LogType.from_wire(log_type)
    family = known.value if known is not None else UNKNOWN_TYPE
    return f"{INDEX_PREFIX}-{family}-{day.strftime('%Y.%m.%d')}"


__all__ = ["INDEX_PATTERN", "INDEX_PREFIX", "UNKNOWN_TYPE", "index_name_for"]
