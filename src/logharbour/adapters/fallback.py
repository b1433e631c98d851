"""Synchronous writer combinators and the plain stream sink.

Purpose
-------
Pair a primary transport with a local backup, mirror payloads to several
sinks, and provide the stdout writer used as the last line of defence.

Contents
--------
* :class:`FallbackWriter` - primary first, backup on any primary failure.
* :class:`MultiWriter` - same bytes to every writer in order.
* :class:`StreamWriter` - one payload per line on a text or binary stream.

System Role
-----------
Glue between the logger and the Kafka writer. The logger only ever sees one
:class:`~logharbour.application.ports.writer.WriterPort`; these classes decide
which sinks actually receive the bytes.
"""

from __future__ import annotations

import io
import logging
import sys
from typing import IO, Any

from logharbour.application.ports import WriterPort
from logharbour.errors import BothWritersFailedError

LOGGER = logging.getLogger(__name__)


class FallbackWriter(WriterPort):
    """Write to ``primary``; on any exception write to ``backup`` instead.

    There is no sticky state: every call tries the primary first.

    Examples
    --------
    >>> class Broken:
    ...     def write(self, payload):
    ...         raise OSError("down")
    ...     def close(self):
    ...         pass
    >>> buffer = io.BytesIO()
    >>> writer = FallbackWriter(Broken(), StreamWriter(buffer))
    >>> writer.write(b'{"msg": "hi"}')
    >>> buffer.getvalue()
    b'{"msg": "hi"}\\n'
    """

    def __init__(self, primary: WriterPort, backup: WriterPort) -> None:
        self._primary = primary
        self._backup = backup

    @property
    def primary(self) -> WriterPort:
        return self._primary

    @property
    def backup(self) -> WriterPort:
        return self._backup

    def write(self, payload: bytes) -> None:
        try:
            self._primary.write(payload)
            return
        except Exception as primary_exc:  # noqa: BLE001 - any primary failure triggers the backup
            LOGGER.debug("Primary writer failed (%r); using backup", primary_exc)
        try:
            self._backup.write(payload)
        except Exception as backup_exc:
            raise BothWritersFailedError("primary and backup writers both failed") from backup_exc

    def close(self) -> None:
        """Close the primary; the backup is owned by the caller."""

        self._primary.close()


class MultiWriter(WriterPort):
    """Fan the same payload out to every writer, stopping at the first failure."""

    def __init__(self, *writers: WriterPort) -> None:
        if not writers:
            raise ValueError("MultiWriter requires at least one writer")
        self._writers: tuple[WriterPort, ...] = writers

    @property
    def writers(self) -> tuple[WriterPort, ...]:
        return self._writers

    def write(self, payload: bytes) -> None:
        for writer in self._writers:
            writer.write(payload)

    def close(self) -> None:
        for writer in self._writers:
            close = getattr(writer, "close", None)
            if callable(close):
                close()


class StreamWriter(WriterPort):
    """Write each payload followed by a newline, then flush.

    Text streams receive the payload decoded as UTF-8; binary streams receive
    the raw bytes. The stream belongs to the caller, so :meth:`close` does
    nothing.
    """

    def __init__(self, stream: IO[Any] | None = None) -> None:
        self._stream = stream

    @property
    def stream(self) -> IO[Any]:
        # Resolved per write; sys.stdout may be swapped after construction.
        return self._stream if self._stream is not None else sys.stdout

    def write(self, payload: bytes) -> None:
        stream = self.stream
        if _is_binary(stream):
            stream.write(payload + b"\n")
        else:
            stream.write(payload.decode("utf-8", errors="replace") + "\n")
        stream.flush()

    def close(self) -> None:
        return None


def _is_binary(stream: IO[Any]) -> bool:
    if isinstance(stream, (io.RawIOBase, io.BufferedIOBase)):
        return True
    mode = getattr(stream, "mode", "")
    return isinstance(mode, str) and "b" in mode


__all__ = ["FallbackWriter", "MultiWriter", "StreamWriter"]
