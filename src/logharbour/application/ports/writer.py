"""Port describing byte sinks that accept serialized records."""

from __future__ import annotations

from typing import Protocol, runtime_checkable


@runtime_checkable
class WriterPort(Protocol):
    """Take ownership of one serialized record per call.

    ``write`` raises a :class:`logharbour.errors.WriterError` (or ``OSError``
    for stream sinks) when the payload was not accepted.
    """

    def write(self, payload: bytes) -> None:
        """Accept ``payload`` or raise."""

    def close(self) -> None:
        """Release resources owned by the writer."""


__all__ = ["WriterPort"]
