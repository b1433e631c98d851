"""Structured log transport: fluent producer API, Kafka writer and indexing consumer.

Host applications typically need only this surface::

    from logharbour import new_context, new_logger, Priority
    from logharbour.runtime import open_writer

    writer = open_writer()
    log = new_logger(new_context(Priority.INFO), "UserService", writer)
    log.with_module("users").info().log_activity("Starting User Service")
"""

from __future__ import annotations

from .adapters.console import RichConsoleWriter
from .adapters.fallback import FallbackWriter, MultiWriter, StreamWriter
from .domain.change import ChangeDetail, ChangeInfo
from .domain.context import LoggerContext, new_context
from .domain.monitor import DeliveryStats
from .domain.priority import DEFAULT_PRIORITY, Priority
from .domain.record import LogRecord, LogType, parse, serialize
from .errors import (
    BothWritersFailedError,
    BusUnreachableError,
    IndexFailedError,
    LogHarbourError,
    MalformedRecordError,
    QueueFullError,
    SerializationError,
    TemplateInstallError,
    WriterClosedError,
    WriterError,
)
from .logger import LogBuilder, Logger, new_logger

__all__ = [
    "BothWritersFailedError",
    "BusUnreachableError",
    "ChangeDetail",
    "ChangeInfo",
    "DEFAULT_PRIORITY",
    "DeliveryStats",
    "FallbackWriter",
    "IndexFailedError",
    "LogBuilder",
    "LogHarbourError",
    "LogRecord",
    "LogType",
    "Logger",
    "LoggerContext",
    "MalformedRecordError",
    "MultiWriter",
    "Priority",
    "QueueFullError",
    "RichConsoleWriter",
    "SerializationError",
    "StreamWriter",
    "TemplateInstallError",
    "WriterClosedError",
    "WriterError",
    "new_context",
    "new_logger",
    "parse",
    "serialize",
]
