"""Exception taxonomy shared by the producer and consumer halves.

Producer side
-------------
* :class:`BusUnreachableError` – raised while constructing the Kafka writer.
* :class:`QueueFullError` / :class:`WriterClosedError` – raised by ``write``
  when the writer cannot take ownership of a payload.
* :class:`BothWritersFailedError` – raised by the fallback writer.
* :class:`SerializationError` – a record could not be encoded (producer bug).

Consumer side
-------------
* :class:`MalformedRecordError` – a bus payload is not a valid record.
* :class:`IndexFailedError` – the search engine rejected or timed out a write.
* :class:`TemplateInstallError` – the index template could not be installed.
"""

from __future__ import annotations


class LogHarbourError(Exception):
    """Base class for every error raised by :mod:`logharbour`."""


class BusUnreachableError(LogHarbourError):
    """No producer connection could be established within the timeout."""


class WriterError(LogHarbourError):
    """A writer refused to take ownership of a payload."""


class QueueFullError(WriterError):
    """The writer's bounded queue holds ``queue_maxsize`` pending records."""


class WriterClosedError(WriterError):
    """The writer was closed and accepts no further payloads."""


class BothWritersFailedError(WriterError):
    """Primary and backup sinks of a fallback writer both failed."""


class SerializationError(LogHarbourError):
    """A record could not be encoded to its wire form."""


class MalformedRecordError(LogHarbourError):
    """A payload could not be parsed into a record."""


class IndexFailedError(LogHarbourError):
    """Writing a record to the search index failed."""


class TemplateInstallError(LogHarbourError):
    """Installing the index template failed."""


__all__ = [
    "BothWritersFailedError",
    "BusUnreachableError",
    "IndexFailedError",
    "LogHarbourError",
    "MalformedRecordError",
    "QueueFullError",
    "SerializationError",
    "TemplateInstallError",
    "WriterClosedError",
    "WriterError",
]
