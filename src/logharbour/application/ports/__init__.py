"""Protocols separating the application layer from concrete adapters."""

from __future__ import annotations

from .indexer import IndexerPort
from .time import ClockPort, IdProvider
from .writer import WriterPort

__all__ = ["ClockPort", "IdProvider", "IndexerPort", "WriterPort"]
