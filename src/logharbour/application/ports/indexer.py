"""Port describing the search-index sink used by the consumer."""

from __future__ import annotations

from typing import Protocol, runtime_checkable

from logharbour.domain.record import LogRecord


@runtime_checkable
class IndexerPort(Protocol):
    """Write a record to its destination index keyed by ``record.id``."""

    async def index(self, record: LogRecord) -> str:
        """Index ``record`` and return the destination index name.

        Raises :class:`logharbour.errors.IndexFailedError` on failure.
        """


__all__ = ["IndexerPort"]
