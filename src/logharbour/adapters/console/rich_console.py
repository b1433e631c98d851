"""Rich-powered console writer for human-readable mirrors of the record stream.

Purpose
-------
Render serialized records as single coloured lines so developers can follow
the stream locally while the same bytes travel to Kafka.

Contents
--------
* :data:`_STYLE_MAP` - default priority-to-style mapping.
* :class:`RichConsoleWriter` - :class:`~logharbour.application.ports.writer.WriterPort`
  backed by :class:`rich.console.Console`.

System Role
-----------
Optional mirror or backup sink inside a
:class:`~logharbour.adapters.fallback.MultiWriter` /
:class:`~logharbour.adapters.fallback.FallbackWriter`; the ``emit`` CLI
command uses it when ``--pretty`` is requested.
"""

from __future__ import annotations

from typing import Mapping, MutableMapping

from rich.console import Console
from rich.markup import escape

from logharbour.application.ports import WriterPort
from logharbour.domain.priority import Priority
from logharbour.domain.record import LogRecord, format_when, parse
from logharbour.errors import MalformedRecordError

_STYLE_MAP: Mapping[Priority, str] = {
    Priority.DEBUG2: "dim",
    Priority.DEBUG1: "dim",
    Priority.DEBUG: "dim",
    Priority.INFO: "cyan",
    Priority.WARN: "yellow",
    Priority.ERROR: "red",
    Priority.CRIT: "bold red",
}

#: Default Rich styles keyed by :class:`Priority`.


class RichConsoleWriter(WriterPort):
    """Decode each payload and print one styled line per record."""

    def __init__(
        self,
        *,
        console: Console | None = None,
        force_color: bool = False,
        no_color: bool = False,
        styles: MutableMapping[Priority | str, str] | None = None,
    ) -> None:
        self._console = console if console is not None else Console(force_terminal=force_color, no_color=no_color)
        self._no_color = no_color
        merged = dict(_STYLE_MAP)
        for key, value in (styles or {}).items():
            priority = Priority.from_name(key) if isinstance(key, str) else key
            merged[priority] = value
        self._style_map = merged

    @property
    def console(self) -> Console:
        return self._console

    def write(self, payload: bytes) -> None:
        """Print the record in ``payload``; unparsable payloads are printed verbatim.

        Examples
        --------
        >>> from io import StringIO
        >>> console = Console(file=StringIO(), record=True)
        >>> writer = RichConsoleWriter(console=console)
        >>> writer.write(b'{"id": "r1", "app": "svc", "type": "activity", "pri": "info", "msg": "ready"}')
        >>> 'ready' in console.export_text()
        True
        """
        try:
            record = parse(payload)
        except MalformedRecordError:
            self._console.print(payload.decode("utf-8", errors="replace"), markup=False, highlight=False)
            return
        style = "" if self._no_color else self._style_map.get(record.priority, "")
        self._console.print(escape(self._format_line(record)), style=style, highlight=False)

    def close(self) -> None:
        return None

    @staticmethod
    def _format_line(record: LogRecord) -> str:
        """Return the console line for ``record``.

        Examples
        --------
        >>> rec = LogRecord(id="r1", app="svc", log_type="change", priority=Priority.WARN, msg="moved", module="users")
        >>> RichConsoleWriter._format_line(rec)
        '- ⚠     WARN svc/users [change] moved'
        """
        when = format_when(record.when) if record.when is not None else "-"
        origin = record.app if not record.module else f"{record.app}/{record.module}"
        context = {
            "who": record.who,
            "trace_id": record.trace_id,
            "remote_ip": record.remote_ip,
            "instance_id": record.instance_id,
        }
        extra = " ".join(f"{key}={value}" for key, value in context.items() if value)
        if record.data:
            extra = " ".join(filter(None, [extra, " ".join(f"{k}={v}" for k, v in sorted(record.data.items()))]))
        suffix = f" {extra}" if extra else ""
        return f"{when} {record.priority.icon} {record.priority.severity.upper():>8} {origin} [{record.log_type}] {record.msg}{suffix}"


__all__ = ["RichConsoleWriter"]
