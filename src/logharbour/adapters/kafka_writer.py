"""Batched, pooled Kafka writer running on a private event loop.

Purpose
-------
Take ownership of serialized records without blocking the caller and deliver
them to Kafka in batches through a pool of :class:`aiokafka.AIOKafkaProducer`
connections.

Contents
--------
* :class:`KafkaWriterConfig` - validated tuning knobs.
* :class:`KafkaWriter` - :class:`~logharbour.application.ports.writer.WriterPort`
  implementation with bounded shutdown.

System Role
-----------
Primary transport of the producer side. ``write`` only bumps a pending
counter and schedules the enqueue on the writer loop with
``call_soon_threadsafe``; the loop is FIFO, so emission order survives into
the queue. Each worker task owns one producer, seals a batch on size or age
and, on a failed send, retries the unacknowledged tail of the batch in
order. Nothing that happens after
``write`` returns can raise into the caller; outcomes land in
:class:`~logharbour.domain.monitor.DeliveryStats` and the optional diagnostic
hook.
"""

from __future__ import annotations

import asyncio
import logging
import threading
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any, Awaitable, Protocol, Sequence

from aiokafka import AIOKafkaProducer

from logharbour.application.ports import WriterPort
from logharbour.domain.monitor import DeliveryStats
from logharbour.errors import BusUnreachableError, QueueFullError, WriterClosedError

LOGGER = logging.getLogger(__name__)

DEFAULT_TOPIC = "logharbour-logs"

_STOP = object()
_AGED = object()


class ProducerLike(Protocol):
    """Subset of :class:`aiokafka.AIOKafkaProducer` the writer relies on."""

    async def start(self) -> None: ...

    async def stop(self) -> None: ...

    async def send(self, topic: str, value: bytes | None = None, key: bytes | None = None) -> Awaitable[Any]: ...


@dataclass(slots=True, frozen=True)
class KafkaWriterConfig:
    """Connection and batching parameters for :class:`KafkaWriter`.

    ``brokers`` accepts a sequence or a comma separated string.

    Examples
    --------
    >>> KafkaWriterConfig(brokers="k1:9092, k2:9092").bootstrap_servers
    'k1:9092,k2:9092'
    >>> KafkaWriterConfig(brokers=["k1:9092"], pool_size=0)
    Traceback (most recent call last):
    ...
    ValueError: pool_size must be positive
    """

    brokers: Sequence[str] | str
    topic: str = DEFAULT_TOPIC
    pool_size: int = 1
    batch_max_records: int = 100
    batch_max_age: float = 0.5
    queue_maxsize: int = 10_000
    connect_timeout: float = 5.0
    send_retries: int = 3
    retry_backoff: float = 0.1
    retry_backoff_max: float = 2.0
    close_timeout: float = 5.0
    client_id: str = "logharbour-writer"
    producer_options: dict[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        raw = self.brokers.split(",") if isinstance(self.brokers, str) else list(self.brokers)
        brokers = tuple(item.strip() for item in raw if item and item.strip())
        if not brokers:
            raise ValueError("brokers must not be empty")
        object.__setattr__(self, "brokers", brokers)
        if not self.topic.strip():
            raise ValueError("topic must not be empty")
        for name in (
            "pool_size",
            "batch_max_records",
            "batch_max_age",
            "queue_maxsize",
            "connect_timeout",
            "retry_backoff",
            "retry_backoff_max",
            "close_timeout",
        ):
            if getattr(self, name) <= 0:
                raise ValueError(f"{name} must be positive")
        if self.send_retries < 0:
            raise ValueError("send_retries must be zero or positive")

    @property
    def bootstrap_servers(self) -> str:
        return ",".join(self.brokers)

    def backoff_for(self, attempt: int) -> float:
        """Return the delay before retry ``attempt`` (1-based), capped."""

        return min(self.retry_backoff * (2 ** (attempt - 1)), self.retry_backoff_max)


ProducerFactory = Callable[[KafkaWriterConfig], ProducerLike]


def _default_producer_factory(config: KafkaWriterConfig) -> ProducerLike:
    # AIOKafkaProducer binds to the running loop, so this must run on the writer loop.
    options: dict[str, Any] = {
        "bootstrap_servers": config.bootstrap_servers,
        "client_id": config.client_id,
        "request_timeout_ms": int(config.connect_timeout * 1000),
        "acks": 1,
    }
    options.update(config.producer_options)
    return AIOKafkaProducer(**options)


class KafkaWriter(WriterPort):
    """Non-blocking writer delivering payloads to Kafka from background tasks.

    Parameters
    ----------
    config:
        Connection and batching parameters.
    producer_factory:
        Callable returning an unstarted producer for ``config``. Invoked on the
        writer loop once per pool slot; tests inject in-memory fakes here.
    diagnostic:
        Optional ``(name, payload)`` hook receiving delivery milestones.
    stats:
        Counters to update; a private :class:`DeliveryStats` by default.

    Raises
    ------
    BusUnreachableError
        When no producer connection starts within ``connect_timeout``.
    """

    def __init__(
        self,
        config: KafkaWriterConfig,
        *,
        producer_factory: ProducerFactory | None = None,
        diagnostic: Callable[[str, dict[str, Any]], None] | None = None,
        stats: DeliveryStats | None = None,
    ) -> None:
        self._config = config
        self._producer_factory = producer_factory or _default_producer_factory
        self._diagnostic = diagnostic
        self._stats = stats or DeliveryStats()
        self._lock = threading.Lock()
        self._closed = False
        self._pending = 0
        self._unresolved = 0
        self._producers: list[ProducerLike] = []
        self._tasks: list[asyncio.Task[None]] = []
        self._queue: asyncio.Queue[Any] | None = None
        self._loop = asyncio.new_event_loop()
        self._thread = threading.Thread(target=self._run_loop, name="logharbour-kafka-writer", daemon=True)
        self._thread.start()

        try:
            started = asyncio.run_coroutine_threadsafe(self._start_pool(), self._loop).result()
        except BaseException:
            self._stop_loop()
            raise
        if not started:
            self._stop_loop()
            raise BusUnreachableError(
                f"no Kafka connection to {config.bootstrap_servers} within {config.connect_timeout}s"
            )
        self._emit_diagnostic("kafka_writer_started", {"connections": started, "topic": config.topic})

    # -- public API ----------------------------------------------------------

    @property
    def config(self) -> KafkaWriterConfig:
        return self._config

    @property
    def stats(self) -> DeliveryStats:
        return self._stats

    @property
    def connections(self) -> int:
        """Number of producer connections that started."""

        return len(self._producers)

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def pending(self) -> int:
        """Records accepted but not yet picked up by a worker."""

        return self._pending

    def write(self, payload: bytes) -> None:
        """Hand ``payload`` to the writer loop without waiting for delivery.

        Raises
        ------
        WriterClosedError
            After :meth:`close` was called.
        QueueFullError
            When ``queue_maxsize`` records are already pending.
        """

        with self._lock:
            if self._closed:
                self._stats.record_drop("writer_closed")
                raise WriterClosedError("Kafka writer is closed")
            if self._pending >= self._config.queue_maxsize:
                self._stats.record_drop("queue_full")
                raise QueueFullError(f"Kafka writer queue holds {self._pending} pending records")
            self._pending += 1
            self._unresolved += 1
            # Scheduled under the lock so no payload can land behind the stop markers.
            self._loop.call_soon_threadsafe(self._enqueue, payload)
        self._stats.record_accepted()

    def close(self, timeout: float | None = None) -> None:
        """Refuse new writes, drain for at most ``timeout`` seconds, then stop.

        Records still queued or in flight when the deadline passes are counted
        as ``shutdown_timeout`` drops. Calling ``close`` again is a no-op.
        """

        with self._lock:
            if self._closed:
                return
            self._closed = True
            for _ in self._tasks:
                self._loop.call_soon_threadsafe(self._enqueue, _STOP)
        effective = self._config.close_timeout if timeout is None else timeout
        try:
            asyncio.run_coroutine_threadsafe(self._drain(effective), self._loop).result()
        finally:
            self._stop_loop()

    def __enter__(self) -> "KafkaWriter":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    # -- loop thread ---------------------------------------------------------

    def _run_loop(self) -> None:
        asyncio.set_event_loop(self._loop)
        try:
            self._loop.run_forever()
        finally:
            self._loop.close()

    def _stop_loop(self) -> None:
        if not self._loop.is_closed():
            self._loop.call_soon_threadsafe(self._loop.stop)
        self._thread.join()

    def _enqueue(self, item: Any) -> None:
        assert self._queue is not None
        self._queue.put_nowait(item)

    async def _start_pool(self) -> int:
        self._queue = asyncio.Queue()
        size = self._config.pool_size
        results = await asyncio.gather(*(self._start_producer(slot) for slot in range(size)))
        self._producers = [producer for producer in results if producer is not None]
        if self._producers and len(self._producers) < size:
            LOGGER.warning("Kafka writer running with %d of %d connections", len(self._producers), size)
        self._tasks = [
            asyncio.create_task(self._worker(slot, producer), name=f"logharbour-kafka-worker-{slot}")
            for slot, producer in enumerate(self._producers)
        ]
        return len(self._producers)

    async def _start_producer(self, slot: int) -> ProducerLike | None:
        producer = self._producer_factory(self._config)
        try:
            await asyncio.wait_for(producer.start(), timeout=self._config.connect_timeout)
        except Exception as exc:  # noqa: BLE001 - a failed slot shrinks the pool
            LOGGER.warning("Kafka connection %d failed to start: %r", slot, exc)
            await self._stop_producer(producer)
            return None
        return producer

    async def _stop_producer(self, producer: ProducerLike) -> None:
        try:
            await asyncio.wait_for(producer.stop(), timeout=self._config.connect_timeout)
        except Exception as exc:  # noqa: BLE001 - shutdown continues with the remaining producers
            LOGGER.debug("Kafka producer stop raised %r", exc)

    # -- workers -------------------------------------------------------------

    async def _worker(self, slot: int, producer: ProducerLike) -> None:
        loop = asyncio.get_running_loop()
        batch: list[bytes] = []
        deadline: float | None = None
        while True:
            item = await self._next_item(deadline)
            if item is _STOP:
                if batch:
                    await self._send_batch(slot, producer, batch)
                return
            if item is not _AGED:
                with self._lock:
                    self._pending -= 1
                if not batch:
                    deadline = loop.time() + self._config.batch_max_age
                batch.append(item)
                if len(batch) < self._config.batch_max_records:
                    continue
            await self._send_batch(slot, producer, batch)
            batch = []
            deadline = None

    async def _next_item(self, deadline: float | None) -> Any:
        assert self._queue is not None
        if deadline is None:
            return await self._queue.get()
        remaining = deadline - asyncio.get_running_loop().time()
        if remaining <= 0:
            return _AGED
        try:
            return await asyncio.wait_for(self._queue.get(), timeout=remaining)
        except asyncio.TimeoutError:
            return _AGED

    async def _send_batch(self, slot: int, producer: ProducerLike, batch: list[bytes]) -> None:
        outstanding = batch
        attempt = 0
        while True:
            acked, last_error = await self._send_once(producer, outstanding)
            self._resolve_delivered(acked)
            outstanding = outstanding[acked:]
            if not outstanding:
                return
            if attempt >= self._config.send_retries:
                self._resolve_dropped("delivery_failed", len(outstanding))
                LOGGER.warning(
                    "Dropping %d records after %d attempts on connection %d: %r",
                    len(outstanding),
                    attempt + 1,
                    slot,
                    last_error,
                )
                self._emit_diagnostic(
                    "kafka_delivery_failed",
                    {"connection": slot, "records": len(outstanding), "attempts": attempt + 1, "error": repr(last_error)},
                )
                return
            attempt += 1
            self._stats.record_retry(len(outstanding))
            await asyncio.sleep(self._config.backoff_for(attempt))

    async def _send_once(self, producer: ProducerLike, payloads: list[bytes]) -> tuple[int, BaseException | None]:
        """Send ``payloads`` in order and stop at the first failure.

        Returns the number of acknowledged leading records and the error that
        stopped the run. Nothing after a failed record is submitted, so a retry
        of the remainder cannot overtake or duplicate earlier records.
        """

        topic = self._config.topic
        for acked, payload in enumerate(payloads):
            try:
                delivery = await producer.send(topic, value=payload, key=None)
                await delivery
            except Exception as exc:  # noqa: BLE001 - the remainder is retried or dropped
                return acked, exc
        return len(payloads), None

    def _resolve_delivered(self, count: int) -> None:
        if count <= 0:
            return
        with self._lock:
            self._unresolved -= count
        self._stats.record_delivered(count)

    def _resolve_dropped(self, reason: str, count: int) -> None:
        with self._lock:
            self._unresolved -= count
        self._stats.record_drop(reason, count)

    # -- shutdown ------------------------------------------------------------

    async def _drain(self, timeout: float) -> None:
        tasks = list(self._tasks)
        if tasks:
            done, stragglers = await asyncio.wait(tasks, timeout=timeout)
            for task in done:
                if not task.cancelled() and task.exception() is not None:
                    LOGGER.error("Kafka worker crashed", exc_info=task.exception())
            for task in stragglers:
                task.cancel()
            if stragglers:
                await asyncio.gather(*stragglers, return_exceptions=True)
        with self._lock:
            leftover = self._unresolved
        if leftover > 0:
            self._resolve_dropped("shutdown_timeout", leftover)
            LOGGER.warning("Kafka writer closed with %d undelivered records", leftover)
            self._emit_diagnostic("kafka_shutdown_timeout", {"records": leftover, "timeout": timeout})
        for producer in self._producers:
            await self._stop_producer(producer)
        self._emit_diagnostic("kafka_writer_closed", self._stats.snapshot())

    def _emit_diagnostic(self, name: str, payload: dict[str, Any]) -> None:
        if self._diagnostic is None:
            return
        try:
            self._diagnostic(name, payload)
        except Exception as exc:  # noqa: BLE001
            LOGGER.error("Kafka writer diagnostic hook raised while reporting %s", name, exc_info=exc)


__all__ = ["DEFAULT_TOPIC", "KafkaWriter", "KafkaWriterConfig", "ProducerFactory", "ProducerLike"]
