"""Use case turning one bus message into an indexed document.

Purpose
-------
Parse the payload, hand the record to the indexer and report the outcome
without raising, so the consumer can mark the offset whatever happened.

Contents
--------
* :func:`create_process_message` factory returning the per-message callable.

System Role
-----------
Application-layer orchestrator invoked by
:class:`~logharbour.adapters.kafka_consumer.LogConsumer` for every message.
Malformed payloads are poison pills: they are logged and skipped. Indexing
failures are logged and, unless the operator enables inline retries, skipped
as well; delivery is at-least-once only up to the point of indexing.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any

from logharbour.application.ports import IndexerPort
from logharbour.domain.record import parse
from logharbour.errors import IndexFailedError, MalformedRecordError

from ._types import DiagnosticHook, ProcessCallable, ProcessResult

logger = logging.getLogger(__name__)


def create_process_message(
    indexer: IndexerPort,
    retry_attempts: int = 0,
    retry_backoff: float = 0.5,
    *,
    diagnostic: DiagnosticHook | None = None,
) -> ProcessCallable:
    """Build the per-message handler bound to ``indexer``.

    Parameters
    ----------
    indexer:
        Destination implementing :class:`IndexerPort`.
    retry_attempts:
        Extra indexing attempts after an :class:`IndexFailedError`. ``0`` keeps
        the skip-on-failure behaviour.
    retry_backoff:
        Base delay in seconds, doubled after every retry.
    diagnostic:
        Optional callback receiving ``message_malformed`` and
        ``message_index_failed`` milestones.

    Returns
    -------
    Callable[[bytes], Awaitable[dict[str, Any]]]
        Coroutine function returning ``{"ok": True, "reason": "indexed",
        "index": ..., "record_id": ...}`` or ``{"ok": False, "reason":
        "malformed" | "index_failed", ...}``.

    Examples
    --------
    >>> class MemoryIndexer:
    ...     def __init__(self):
    ...         self.ids = []
    ...     async def index(self, record):
    ...         self.ids.append(record.id)
    ...         return "logharbour-activity-2025.01.02"
    >>> process = create_process_message(MemoryIndexer())
    >>> payload = b'{"id": "r1", "app": "svc", "type": "activity", "pri": "info", "msg": "ok"}'
    >>> asyncio.run(process(payload))["reason"]
    'indexed'
    >>> asyncio.run(process(b"not json"))["reason"]
    'malformed'
    """

    if retry_attempts < 0:
        raise ValueError("retry_attempts must not be negative")
    if retry_backoff < 0:
        raise ValueError("retry_backoff must not be negative")

    def emit(name: str, payload: dict[str, Any]) -> None:
        if diagnostic is None:
            return
        try:
            diagnostic(name, payload)
        except Exception as exc:  # noqa: BLE001
            logger.error("Diagnostic hook raised while reporting %s", name, exc_info=exc)

    async def process(payload: bytes) -> ProcessResult:
        try:
            record = parse(payload)
        except MalformedRecordError as exc:
            logger.error("Skipping malformed message: %s", exc)
            emit("message_malformed", {"error": str(exc), "size": len(payload or b"")})
            return {"ok": False, "reason": "malformed", "error": str(exc)}

        attempt = 0
        while True:
            try:
                index = await indexer.index(record)
            except IndexFailedError as exc:
                if attempt < retry_attempts:
                    attempt += 1
                    delay = retry_backoff * (2 ** (attempt - 1))
                    logger.warning("Indexing %s failed (%s); retry %d in %.2fs", record.id, exc, attempt, delay)
                    await asyncio.sleep(delay)
                    continue
                logger.error("Failed to index record %s: %s", record.id, exc)
                emit("message_index_failed", {"record_id": record.id, "error": str(exc), "attempts": attempt + 1})
                return {"ok": False, "reason": "index_failed", "record_id": record.id, "error": str(exc)}
            logger.debug("Indexed record %s into %s", record.id, index)
            return {"ok": True, "reason": "indexed", "record_id": record.id, "index": index}

    return process


__all__ = ["create_process_message"]
