"""Concrete adapters implementing the application ports.

Kafka and Elasticsearch adapters are imported from their own modules; only the
writers without network dependencies are re-exported here.
"""

from __future__ import annotations

from .console import RichConsoleWriter
from .fallback import FallbackWriter, MultiWriter, StreamWriter
from .system import LocalClock, SystemClock, UuidProvider, short_hostname

__all__ = [
    "FallbackWriter",
    "LocalClock",
    "MultiWriter",
    "RichConsoleWriter",
    "StreamWriter",
    "SystemClock",
    "UuidProvider",
    "short_hostname",
]
