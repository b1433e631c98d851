"""System-backed implementations of the clock and identifier ports."""

from __future__ import annotations

import socket
from datetime import datetime, timezone
from uuid import uuid4

from logharbour.application.ports import ClockPort, IdProvider


class SystemClock(ClockPort):
    """Concrete clock port returning timezone-aware UTC timestamps."""

    def now(self) -> datetime:
        """Return the current UTC timestamp with timezone info."""
        return datetime.now(timezone.utc)


class LocalClock(ClockPort):
    """Clock returning the host's local time; used for index date selection."""

    def now(self) -> datetime:
        return datetime.now().astimezone()


class UuidProvider(IdProvider):
    """Generate unique hexadecimal identifiers for log records."""

    def __call__(self) -> str:
        """Return a random UUID4 value encoded as a lowercase hex string."""
        return uuid4().hex


def short_hostname() -> str:
    """Return the host name without its domain part (empty when unknown)."""
    hostname_value = socket.gethostname() or ""
    return hostname_value.split(".", 1)[0] if hostname_value else ""


__all__ = ["LocalClock", "SystemClock", "UuidProvider", "short_hostname"]
