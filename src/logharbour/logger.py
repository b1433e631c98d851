"""Logger façade and fluent record builder.

Purpose
-------
Expose the producer-facing API host applications call to emit activity,
data-change and debug records. A :class:`Logger` carries the identity fields
inherited by every record; level helpers return a :class:`LogBuilder` that
terminates in one of the ``log_*`` calls.

Contents
--------
* :class:`Logger` – immutable view over identity fields, a shared
  :class:`~logharbour.domain.context.LoggerContext` and a writer.
* :class:`LogBuilder` – per-call builder carrying the chosen priority.
* :func:`new_logger` – convenience constructor.

System Role
-----------
Sits between host code and the writer stack. Threshold filtering happens here
so filtered calls never allocate a record or serialized bytes, and every
writer failure is absorbed into :class:`~logharbour.domain.monitor.DeliveryStats`
so logging never raises into the caller.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from typing import Any, Mapping

from logharbour.adapters.system import SystemClock, UuidProvider, short_hostname
from logharbour.application.ports import ClockPort, IdProvider, WriterPort
from logharbour.domain.change import ChangeInfo
from logharbour.domain.context import LoggerContext
from logharbour.domain.monitor import DeliveryStats
from logharbour.domain.priority import Priority
from logharbour.domain.record import LogRecord, LogType, serialize
from logharbour.errors import SerializationError

LOGGER = logging.getLogger(__name__)

EmitResult = dict[str, Any]


@dataclass(slots=True, frozen=True)
class _Identity:
    app: str
    system: str
    module: str | None = None
    instance_id: str | None = None
    who: str | None = None
    remote_ip: str | None = None
    trace_id: str | None = None


class Logger:
    """Producer-facing logger bound to a context and a writer.

    ``with_*`` methods return new views sharing the context, writer and
    counters; the receiver is left untouched.

    Examples
    --------
    >>> from logharbour.domain.context import LoggerContext
    >>> class ListWriter:
    ...     def __init__(self):
    ...         self.payloads = []
    ...     def write(self, payload):
    ...         self.payloads.append(payload)
    ...     def close(self):
    ...         pass
    >>> writer = ListWriter()
    >>> log = Logger(LoggerContext("info"), "svc", writer, system="host")
    >>> log.with_module("users").info().log_activity("ready")["ok"]
    True
    >>> log.debug2().log_activity("noise")["reason"]
    'below_threshold'
    >>> len(writer.payloads)
    1
    """

    __slots__ = ("_context", "_writer", "_identity", "_clock", "_id_provider", "_stats")

    def __init__(
        self,
        context: LoggerContext,
        app_name: str,
        writer: WriterPort,
        *,
        system: str | None = None,
        clock: ClockPort | None = None,
        id_provider: IdProvider | None = None,
        stats: DeliveryStats | None = None,
    ) -> None:
        if not app_name.strip():
            raise ValueError("app_name must not be empty")
        self._context = context
        self._writer = writer
        self._identity = _Identity(app=app_name, system=system if system is not None else short_hostname())
        self._clock: ClockPort = clock or SystemClock()
        self._id_provider: IdProvider = id_provider or UuidProvider()
        self._stats = stats or DeliveryStats()

    # -- views ---------------------------------------------------------------

    def _derive(self, **changes: Any) -> "Logger":
        clone = object.__new__(Logger)
        clone._context = self._context
        clone._writer = self._writer
        clone._identity = replace(self._identity, **changes)
        clone._clock = self._clock
        clone._id_provider = self._id_provider
        clone._stats = self._stats
        return clone

    def with_module(self, name: str) -> "Logger":
        return self._derive(module=name)

    def with_instance_id(self, instance_id: str) -> "Logger":
        return self._derive(instance_id=instance_id)

    def with_who(self, who: str) -> "Logger":
        return self._derive(who=who)

    def with_remote_ip(self, remote_ip: str) -> "Logger":
        return self._derive(remote_ip=remote_ip)

    def with_trace_id(self, trace_id: str) -> "Logger":
        return self._derive(trace_id=trace_id)

    def with_priority(self, priority: Priority | str) -> "Logger":
        """Change the shared threshold for every logger on this context."""

        self._context.set_priority(priority)
        return self

    # -- accessors -----------------------------------------------------------

    @property
    def context(self) -> LoggerContext:
        return self._context

    @property
    def stats(self) -> DeliveryStats:
        return self._stats

    @property
    def app(self) -> str:
        return self._identity.app

    @property
    def system(self) -> str:
        return self._identity.system

    @property
    def module(self) -> str | None:
        return self._identity.module

    @property
    def instance_id(self) -> str | None:
        return self._identity.instance_id

    # -- builders ------------------------------------------------------------

    def debug2(self) -> "LogBuilder":
        return LogBuilder(self, Priority.DEBUG2)

    def debug1(self) -> "LogBuilder":
        return LogBuilder(self, Priority.DEBUG1)

    def debug(self) -> "LogBuilder":
        return LogBuilder(self, Priority.DEBUG)

    def info(self) -> "LogBuilder":
        return LogBuilder(self, Priority.INFO)

    def warn(self) -> "LogBuilder":
        return LogBuilder(self, Priority.WARN)

    def error(self, err: BaseException | str | None = None) -> "LogBuilder":
        """Return an ``error`` builder; ``err`` lands in ``data["error"]``."""

        return LogBuilder(self, Priority.ERROR, err)

    def crit(self) -> "LogBuilder":
        return LogBuilder(self, Priority.CRIT)

    # -- shortcuts -----------------------------------------------------------

    def log_activity(self, msg: str, data: Mapping[str, Any] | None = None) -> EmitResult:
        return self.info().log_activity(msg, data)

    def log_data_change(self, msg: str, change: ChangeInfo) -> EmitResult:
        return self.info().log_data_change(msg, change)

    def log_debug(self, msg: str, data: Mapping[str, Any] | None = None) -> EmitResult:
        return self.debug().log_debug(msg, data)

    # -- emission ------------------------------------------------------------

    def _emit(self, priority: Priority, log_type: LogType, msg: str, data: dict[str, Any] | None) -> EmitResult:
        identity = self._identity
        try:
            record = LogRecord(
                id=self._id_provider(),
                app=identity.app,
                log_type=log_type.value,
                priority=priority,
                msg=msg,
                system=identity.system,
                module=identity.module,
                instance_id=identity.instance_id,
                when=self._clock.now(),
                who=identity.who,
                remote_ip=identity.remote_ip,
                trace_id=identity.trace_id,
                data=data,
            )
        except (TypeError, ValueError) as exc:
            LOGGER.error("Dropping invalid %s record: %s", log_type.value, exc)
            self._stats.record_drop("invalid_record")
            return {"ok": False, "reason": "invalid_record", "error": str(exc)}
        try:
            payload = serialize(record)
        except SerializationError:
            LOGGER.error("Dropping record %s that cannot be serialised", record.id, exc_info=True)
            self._stats.record_drop("serialization_error")
            return {"ok": False, "reason": "serialization_error", "record_id": record.id}
        try:
            self._writer.write(payload)
        except Exception as exc:  # noqa: BLE001 - emission never raises into host code
            LOGGER.debug("Writer rejected record %s: %r", record.id, exc)
            self._stats.record_drop("writer_error")
            return {"ok": False, "reason": "writer_error", "record_id": record.id}
        self._stats.record_accepted()
        return {"ok": True, "record_id": record.id}

    def __repr__(self) -> str:
        return f"Logger(app={self.app!r}, module={self.module!r}, context={self._context!r})"


class LogBuilder:
    """Per-call builder; terminal methods assemble and hand off the record."""

    __slots__ = ("_logger", "_priority", "_error")

    def __init__(self, logger: Logger, priority: Priority, error: BaseException | str | None = None) -> None:
        self._logger = logger
        self._priority = priority
        self._error = error

    @property
    def priority(self) -> Priority:
        return self._priority

    def _enabled(self) -> bool:
        return self._logger.context.is_enabled(self._priority)

    def _with_error(self, data: Mapping[str, Any] | None) -> dict[str, Any] | None:
        if self._error is None:
            return dict(data) if data else None
        merged = dict(data) if data else {}
        merged["error"] = str(self._error)
        return merged

    def log_activity(self, msg: str, data: Mapping[str, Any] | None = None) -> EmitResult:
        if not self._enabled():
            return {"ok": False, "reason": "below_threshold"}
        return self._logger._emit(self._priority, LogType.ACTIVITY, msg, self._with_error(data))

    def log_data_change(self, msg: str, change: ChangeInfo) -> EmitResult:
        if not self._enabled():
            return {"ok": False, "reason": "below_threshold"}
        if not change.changes:
            return {"ok": False, "reason": "no_changes"}
        return self._logger._emit(self._priority, LogType.CHANGE, msg, self._with_error(change.to_dict()))

    def log_debug(self, msg: str, data: Mapping[str, Any] | None = None) -> EmitResult:
        if not self._enabled():
            return {"ok": False, "reason": "below_threshold"}
        return self._logger._emit(self._priority, LogType.DEBUG, msg, self._with_error(data))


def new_logger(
    context: LoggerContext,
    app_name: str,
    writer: WriterPort,
    *,
    system: str | None = None,
    clock: ClockPort | None = None,
    id_provider: IdProvider | None = None,
) -> Logger:
    """Bind ``context`` and ``writer`` to a new :class:`Logger` for ``app_name``."""

    return Logger(context, app_name, writer, system=system, clock=clock, id_provider=id_provider)


__all__ = ["EmitResult", "LogBuilder", "Logger", "new_logger"]
