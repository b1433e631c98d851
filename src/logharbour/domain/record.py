"""Domain record describing a structured log event on the wire.

Purpose
-------
Provide an immutable representation of the records travelling from producers
through Kafka into the search index, and keep the wire encoding centralised.

Contents
--------
* :class:`LogType` enum routing records to their index family.
* :class:`LogRecord` dataclass with :meth:`LogRecord.to_dict`.
* :func:`serialize` / :func:`parse` – the wire codec.

System Role
-----------
Sits in the domain layer: the logger builds records, writers only see the
serialized bytes, and the consumer parses them back before indexing.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, replace
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Mapping

from logharbour.errors import MalformedRecordError, SerializationError

from .priority import Priority

WHEN_FORMAT = "%Y-%m-%dT%H:%M:%SZ"

# Wire order of the top-level fields.
WIRE_FIELDS = (
    "id",
    "app",
    "system",
    "module",
    "instance_id",
    "type",
    "pri",
    "when",
    "who",
    "remote_ip",
    "trace_id",
    "msg",
    "data",
)

_REQUIRED_STRINGS = ("id", "app", "type", "pri", "msg")
_OPTIONAL_STRINGS = ("system", "module", "instance_id", "who", "remote_ip", "trace_id")


class LogType(Enum):
    """Closed set of record types; the value is the wire form."""

    ACTIVITY = "activity"
    CHANGE = "change"
    DEBUG = "debug"

    @classmethod
    def from_wire(cls, value: str) -> "LogType | None":
        """Return the matching member or ``None`` for unknown values."""
        try:
            return cls(value.strip().lower())
        except ValueError:
            return None


def normalize_when(ts: datetime) -> datetime:
    """Validate that ``ts`` is timezone-aware, convert to UTC and drop sub-seconds."""
    if ts.tzinfo is None or ts.tzinfo.utcoffset(ts) is None:
        raise ValueError("when must be timezone-aware")
    return ts.astimezone(timezone.utc).replace(microsecond=0)


def format_when(ts: datetime) -> str:
    return normalize_when(ts).strftime(WHEN_FORMAT)


def parse_when(text: str) -> datetime:
    """Parse the ISO-8601 wire timestamp (``Z`` suffix accepted)."""
    value = text.strip()
    if value.endswith(("Z", "z")):
        value = value[:-1] + "+00:00"
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return normalize_when(parsed)


@dataclass(slots=True, frozen=True)
class LogRecord:
    """Immutable log record.

    Attributes
    ----------
    id:
        Identifier assigned once by the builder; doubles as the document id.
    app, system:
        Producer identity inherited from the logger.
    log_type:
        Wire value of the record type (``activity``, ``change``, ``debug``).
        Parsed records may carry values outside :class:`LogType`.
    priority:
        :class:`Priority` of the record.
    msg:
        Human-readable summary.
    module, instance_id, who, remote_ip, trace_id:
        Optional context fields.
    when:
        Emission time in UTC with second precision; ``None`` only for parsed
        records whose producer omitted it.
    data:
        Optional JSON object; empty mappings are stored as ``None``.
    """

    id: str
    app: str
    log_type: str
    priority: Priority
    msg: str
    system: str = ""
    module: str | None = None
    instance_id: str | None = None
    when: datetime | None = None
    who: str | None = None
    remote_ip: str | None = None
    trace_id: str | None = None
    data: dict[str, Any] | None = None

    def __post_init__(self) -> None:
        if not self.id:
            raise ValueError("id must not be empty")
        if not self.app:
            raise ValueError("app must not be empty")
        if not self.msg:
            raise ValueError("msg must not be empty")
        if not self.log_type:
            raise ValueError("log_type must not be empty")
        if self.when is not None:
            object.__setattr__(self, "when", normalize_when(self.when))
        object.__setattr__(self, "data", dict(self.data) if self.data else None)

    @property
    def known_type(self) -> LogType | None:
        """Return the :class:`LogType` for ``log_type`` or ``None`` when unknown."""

        return LogType.from_wire(self.log_type)

    def to_dict(self) -> dict[str, Any]:
        """Return the wire mapping, omitting absent optional fields."""

        values: dict[str, Any] = {
            "id": self.id,
            "app": self.app,
            "system": self.system or None,
            "module": self.module,
            "instance_id": self.instance_id,
            "type": self.log_type,
            "pri": self.priority.severity,
            "when": format_when(self.when) if self.when is not None else None,
            "who": self.who,
            "remote_ip": self.remote_ip,
            "trace_id": self.trace_id,
            "msg": self.msg,
            "data": dict(self.data) if self.data else None,
        }
        return {key: values[key] for key in WIRE_FIELDS if values[key] is not None}

    def replace(self, **changes: Any) -> "LogRecord":
        """Return a copied record with ``changes`` applied."""

        return replace(self, **changes)


def serialize(record: LogRecord) -> bytes:
    """Encode ``record`` as UTF-8 JSON.

    Examples
    --------
    >>> rec = LogRecord(id="r1", app="svc", log_type="activity", priority=Priority.INFO, msg="ok")
    >>> serialize(rec)
    b'{"id": "r1", "app": "svc", "type": "activity", "pri": "info", "msg": "ok"}'
    """
    try:
        text = json.dumps(record.to_dict(), ensure_ascii=False, allow_nan=False)
    except (TypeError, ValueError) as exc:
        raise SerializationError(f"record {record.id} is not JSON serialisable: {exc}") from exc
    return text.encode("utf-8")


def parse(payload: bytes | str) -> LogRecord:
    """Decode a wire payload into a :class:`LogRecord`.

    Unknown top-level fields are moved into ``data``; unknown ``type`` values
    are kept as-is.
    """
    try:
        text = payload.decode("utf-8") if isinstance(payload, (bytes, bytearray)) else payload
        decoded = json.loads(text)
    except (UnicodeDecodeError, ValueError) as exc:
        raise MalformedRecordError(f"payload is not valid JSON: {exc}") from exc
    if not isinstance(decoded, dict):
        raise MalformedRecordError("payload must be a JSON object")
    return _record_from_mapping(decoded)


def _record_from_mapping(values: Mapping[str, Any]) -> LogRecord:
    for name in _REQUIRED_STRINGS:
        value = values.get(name)
        if not isinstance(value, str) or not value:
            raise MalformedRecordError(f"field {name!r} must be a non-empty string")
    for name in _OPTIONAL_STRINGS:
        value = values.get(name)
        if value is not None and not isinstance(value, str):
            raise MalformedRecordError(f"field {name!r} must be a string")

    try:
        priority = Priority.from_name(values["pri"])
    except ValueError as exc:
        raise MalformedRecordError(str(exc)) from exc

    when: datetime | None = None
    raw_when = values.get("when")
    if raw_when is not None:
        if not isinstance(raw_when, str):
            raise MalformedRecordError("field 'when' must be a string")
        try:
            when = parse_when(raw_when)
        except ValueError as exc:
            raise MalformedRecordError(f"field 'when' is not ISO-8601: {raw_when!r}") from exc

    raw_data = values.get("data")
    if raw_data is not None and not isinstance(raw_data, dict):
        raise MalformedRecordError("field 'data' must be an object")
    data = dict(raw_data or {})
    for key, value in values.items():
        if key not in WIRE_FIELDS:
            data[key] = value

    return LogRecord(
        id=values["id"],
        app=values["app"],
        log_type=values["type"],
        priority=priority,
        msg=values["msg"],
        system=values.get("system") or "",
        module=values.get("module"),
        instance_id=values.get("instance_id"),
        when=when,
        who=values.get("who"),
        remote_ip=values.get("remote_ip"),
        trace_id=values.get("trace_id"),
        data=data,
    )


__all__ = [
    "LogRecord",
    "LogType",
    "WHEN_FORMAT",
    "WIRE_FIELDS",
    "format_when",
    "normalize_when",
    "parse",
    "parse_when",
    "serialize",
]
