"""Domain entities and value objects used by the log pipeline."""

from __future__ import annotations

from .change import ChangeDetail, ChangeInfo
from .context import LoggerContext, new_context
from .monitor import DeliveryStats
from .priority import DEFAULT_PRIORITY, Priority
from .record import LogRecord, LogType, parse, serialize
from .routing import index_name_for

__all__ = [
    "ChangeDetail",
    "ChangeInfo",
    "DEFAULT_PRIORITY",
    "DeliveryStats",
    "LogRecord",
    "LogType",
    "LoggerContext",
    "Priority",
    "index_name_for",
    "new_context",
    "parse",
    "serialize",
]
