"""Composition helpers wiring settings, adapters and use cases.

Purpose
-------
Turn :class:`~logharbour.config.ProducerSettings` and
:class:`~logharbour.config.ConsumerSettings` into live pipeline objects while
keeping every external dependency injectable for tests.

Contents
--------
* :func:`open_writer` - Kafka writer wrapped in the stdout fallback stack.
* :func:`build_logger` - context plus logger bound to a writer.
* :func:`run_consumer` - template install followed by the consume loop.
* :func:`install_signal_handlers` - SIGINT/SIGTERM to ``stop_event``.

System Role
-----------
Composition root behind :mod:`logharbour.runtime`; the CLI and host
applications call these instead of assembling adapters by hand.
"""

from __future__ import annotations

import asyncio
import logging
import signal
from typing import Any

import httpx

from logharbour.adapters.elasticsearch import ElasticsearchIndexer, IndexTemplateInstaller
from logharbour.adapters.fallback import FallbackWriter, MultiWriter, StreamWriter
from logharbour.adapters.kafka_consumer import ConsumerFactory, LogConsumer
from logharbour.adapters.kafka_writer import KafkaWriter, ProducerFactory
from logharbour.application.ports import WriterPort
from logharbour.application.use_cases import DiagnosticHook, create_process_message
from logharbour.config import ConsumerSettings, ProducerSettings
from logharbour.domain.context import new_context
from logharbour.errors import BusUnreachableError
from logharbour.logger import Logger, new_logger

LOGGER = logging.getLogger(__name__)


def open_writer(
    settings: ProducerSettings | None = None,
    *,
    backup: WriterPort | None = None,
    mirror: bool = True,
    producer_factory: ProducerFactory | None = None,
    diagnostic: DiagnosticHook | None = None,
) -> FallbackWriter:
    """Build the producer writer stack.

    With Kafka reachable the result is ``FallbackWriter(MultiWriter(kafka,
    sink), sink)`` (or ``FallbackWriter(kafka, sink)`` without ``mirror``),
    where ``sink`` is ``backup`` or stdout. When no Kafka connection starts the
    result degrades to ``FallbackWriter(sink, sink)`` and a warning is logged.
    """

    settings = settings or ProducerSettings()
    sink = backup if backup is not None else StreamWriter()
    try:
        kafka = KafkaWriter(settings.writer_config(), producer_factory=producer_factory, diagnostic=diagnostic)
    except BusUnreachableError as exc:
        LOGGER.warning("Kafka is unavailable (%s); records go to the local sink only", exc)
        return FallbackWriter(sink, sink)
    primary: WriterPort = MultiWriter(kafka, sink) if mirror else kafka
    return FallbackWriter(primary, sink)


def build_logger(settings: ProducerSettings | None, writer: WriterPort, **options: Any) -> Logger:
    """Return a logger for ``settings.app`` on a fresh context at ``settings.priority``."""

    settings = settings or ProducerSettings()
    return new_logger(new_context(settings.threshold), settings.app, writer, **options)


async def run_consumer(
    settings: ConsumerSettings | None = None,
    stop_event: asyncio.Event | None = None,
    *,
    client: httpx.AsyncClient | None = None,
    consumer_factory: ConsumerFactory | None = None,
    diagnostic: DiagnosticHook | None = None,
) -> LogConsumer:
    """Probe the cluster, install the template, then consume until stopped.

    ``client`` is closed on exit only when this function created it.
    """

    settings = settings or ConsumerSettings()
    stop_event = stop_event or asyncio.Event()
    owns_client = client is None
    if client is None:
        client = httpx.AsyncClient(base_url=settings.elasticsearch_url, timeout=settings.index_timeout)
    try:
        indexer = ElasticsearchIndexer(client, timeout=settings.index_timeout)
        await indexer.ping()
        installer = IndexTemplateInstaller(
            client,
            shards=settings.template_shards,
            replicas=settings.template_replicas,
        )
        await installer.install()
        process = create_process_message(
            indexer,
            settings.index_retry_attempts,
            settings.index_retry_backoff,
            diagnostic=diagnostic,
        )
        consumer = LogConsumer(
            brokers=settings.brokers,
            topic=settings.topic,
            group_id=settings.group_id,
            process=process,
            consumer_factory=consumer_factory,
            session_timeout_ms=settings.session_timeout_ms,
            poll_timeout_ms=settings.poll_timeout_ms,
            max_poll_records=settings.max_poll_records,
            error_backoff=settings.consume_error_backoff,
            diagnostic=diagnostic,
        )
        await consumer.run(stop_event)
        return consumer
    finally:
        if owns_client:
            await client.aclose()


def install_signal_handlers(stop_event: asyncio.Event, loop: asyncio.AbstractEventLoop | None = None) -> list[signal.Signals]:
    """Set ``stop_event`` on SIGINT/SIGTERM; return the signals that were wired.

    Platforms without ``add_signal_handler`` support (Windows) get an empty list
    and rely on ``KeyboardInterrupt`` instead.
    """

    loop = loop or asyncio.get_running_loop()
    installed: list[signal.Signals] = []
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, stop_event.set)
        except (NotImplementedError, RuntimeError):
            LOGGER.debug("Signal %s cannot be handled on this platform", sig.name)
            continue
        installed.append(sig)
    return installed


def consume_until_signalled(
    settings: ConsumerSettings | None = None,
    *,
    client: httpx.AsyncClient | None = None,
    consumer_factory: ConsumerFactory | None = None,
) -> LogConsumer:
    """Blocking entry point used by ``logharbour consume``."""

    async def _main() -> LogConsumer:
        stop_event = asyncio.Event()
        install_signal_handlers(stop_event)
        return await run_consumer(settings, stop_event, client=client, consumer_factory=consumer_factory)

    return asyncio.run(_main())


__all__ = ["build_logger", "consume_until_signalled", "install_signal_handlers", "open_writer", "run_consumer"]
