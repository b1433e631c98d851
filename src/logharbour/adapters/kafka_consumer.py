"""Consumer-group worker pulling records from Kafka.

Purpose
-------
Join the ``logharbour-consumer`` group, feed every message to the processing
use case and commit offsets once messages are handled.

Contents
--------
* :class:`LogConsumer` - poll loop with per-partition serial processing.
* :class:`OffsetCommitListener` - rebalance listener committing revoked
  partitions.

System Role
-----------
Outer adapter of the consumer half. Offsets are marked whatever the outcome
(poison pills and index failures included) and committed after every poll
round, so a restart resumes behind the last handled message. Redelivery after
a crash between indexing and commit is absorbed by id-keyed indexing. Bus
errors during a poll round are logged and polling resumes after a pause until
the stop event is set.
"""

from __future__ import annotations

import asyncio
import logging
from collections import Counter
from collections.abc import Callable, Iterable, Mapping
from typing import Any

from aiokafka import AIOKafkaConsumer
from aiokafka.abc import ConsumerRebalanceListener
from aiokafka.coordinator.assignors.roundrobin import RoundRobinPartitionAssignor
from aiokafka.errors import KafkaError

from logharbour.application.use_cases import DiagnosticHook, ProcessCallable, ProcessResult

LOGGER = logging.getLogger(__name__)

DEFAULT_GROUP_ID = "logharbour-consumer"

ConsumerFactory = Callable[..., Any]


class OffsetCommitListener(ConsumerRebalanceListener):
    """Commit marked offsets of partitions that are being revoked."""

    def __init__(self, owner: "LogConsumer") -> None:
        self._owner = owner

    async def on_partitions_revoked(self, revoked: Iterable[Any]) -> None:
        await self._owner.commit_revoked(revoked)

    async def on_partitions_assigned(self, assigned: Iterable[Any]) -> None:
        LOGGER.info("Assigned partitions: %s", sorted(str(tp) for tp in assigned))


class LogConsumer:
    """Poll Kafka and hand each message to ``process``.

    Parameters
    ----------
    brokers:
        Bootstrap servers.
    topic:
        Topic carrying serialized records.
    group_id:
        Consumer group; partitions are spread round-robin across members.
    process:
        Coroutine function returning a result dictionary; it should not raise.
    consumer_factory:
        Callable accepting the :class:`aiokafka.AIOKafkaConsumer` keyword
        arguments; tests inject in-memory fakes here.
    session_timeout_ms, poll_timeout_ms, max_poll_records:
        Group session timeout and ``getmany`` tuning.
    error_backoff:
        Pause in seconds after a failed poll round before polling again.
    diagnostic:
        Optional ``(name, payload)`` hook for lifecycle milestones.
    """

    def __init__(
        self,
        *,
        brokers: Iterable[str],
        topic: str,
        group_id: str = DEFAULT_GROUP_ID,
        process: ProcessCallable,
        consumer_factory: ConsumerFactory | None = None,
        session_timeout_ms: int = 10_000,
        poll_timeout_ms: int = 1_000,
        max_poll_records: int = 500,
        error_backoff: float = 1.0,
        diagnostic: DiagnosticHook | None = None,
    ) -> None:
        self._brokers = tuple(brokers)
        if not self._brokers:
            raise ValueError("brokers must not be empty")
        self._topic = topic
        self._group_id = group_id
        self._process = process
        self._consumer_factory: ConsumerFactory = consumer_factory or AIOKafkaConsumer
        self._session_timeout_ms = session_timeout_ms
        self._poll_timeout_ms = poll_timeout_ms
        self._max_poll_records = max_poll_records
        if error_backoff < 0:
            raise ValueError("error_backoff must not be negative")
        self._error_backoff = error_backoff
        self._diagnostic = diagnostic
        self._consumer: Any = None
        self._marked: dict[Any, int] = {}
        self._outcomes: Counter[str] = Counter()
        self._listener = OffsetCommitListener(self)

    @property
    def outcomes(self) -> Mapping[str, int]:
        """Handled-message counts keyed by result reason."""

        return dict(self._outcomes)

    @property
    def marked_offsets(self) -> Mapping[Any, int]:
        """Offsets marked but not yet committed, keyed by partition."""

        return dict(self._marked)

    def consumer_options(self) -> dict[str, Any]:
        return {
            "bootstrap_servers": ",".join(self._brokers),
            "group_id": self._group_id,
            "auto_offset_reset": "latest",
            "enable_auto_commit": False,
            "partition_assignment_strategy": (RoundRobinPartitionAssignor,),
            "session_timeout_ms": self._session_timeout_ms,
            "max_poll_records": self._max_poll_records,
        }

    async def run(self, stop_event: asyncio.Event) -> None:
        """Consume until ``stop_event`` is set, then commit and leave the group."""

        consumer = self._consumer_factory(**self.consumer_options())
        await consumer.start()
        self._consumer = consumer
        try:
            consumer.subscribe([self._topic], listener=self._listener)
            LOGGER.info("Consuming %s as group %s", self._topic, self._group_id)
            self._emit_diagnostic("consumer_started", {"topic": self._topic, "group_id": self._group_id})
            while not stop_event.is_set():
                try:
                    await self.poll_once(consumer)
                except KafkaError as exc:
                    LOGGER.error("Consume round failed; retrying in %.2fs: %r", self._error_backoff, exc)
                    self._emit_diagnostic("consume_error", {"error": repr(exc), "backoff": self._error_backoff})
                    await _sleep_unless_stopped(stop_event, self._error_backoff)
        finally:
            await self._commit(consumer)
            await consumer.stop()
            self._consumer = None
            LOGGER.info("Consumer stopped; outcomes=%s", dict(self._outcomes))
            self._emit_diagnostic("consumer_stopped", dict(self._outcomes))

    async def poll_once(self, consumer: Any) -> int:
        """Run one poll round and return the number of handled messages."""

        batches = await consumer.getmany(timeout_ms=self._poll_timeout_ms)
        if not batches:
            return 0
        handled = await asyncio.gather(*(self._handle_partition(tp, messages) for tp, messages in batches.items()))
        await self._commit(consumer)
        return sum(handled)

    async def _handle_partition(self, tp: Any, messages: Iterable[Any]) -> int:
        count = 0
        for message in messages:
            try:
                result: ProcessResult = await self._process(message.value or b"")
            except Exception as exc:  # noqa: BLE001 - one bad handler call must not stall the partition
                LOGGER.error("Message handler raised at %s@%s", tp, message.offset, exc_info=exc)
                result = {"ok": False, "reason": "handler_error"}
            self._marked[tp] = message.offset + 1
            self._outcomes[str(result.get("reason", "unknown"))] += 1
            count += 1
        return count

    async def commit_revoked(self, revoked: Iterable[Any]) -> None:
        """Commit and forget marked offsets for ``revoked`` partitions."""

        partitions = set(revoked)
        consumer = self._consumer
        if consumer is not None:
            await self._commit(consumer, partitions)
        for tp in partitions:
            self._marked.pop(tp, None)

    async def _commit(self, consumer: Any, partitions: set[Any] | None = None) -> None:
        offsets = {tp: offset for tp, offset in self._marked.items() if partitions is None or tp in partitions}
        if not offsets:
            return
        try:
            await consumer.commit(offsets)
        except KafkaError as exc:
            LOGGER.warning("Offset commit failed for %d partitions: %r", len(offsets), exc)
            self._emit_diagnostic("offset_commit_failed", {"partitions": len(offsets), "error": repr(exc)})
            return
        for tp, offset in offsets.items():
            if self._marked.get(tp) == offset:
                del self._marked[tp]

    def _emit_diagnostic(self, name: str, payload: dict[str, Any]) -> None:
        if self._diagnostic is None:
            return
        try:
            self._diagnostic(name, payload)
        except Exception as exc:  # noqa: BLE001
            LOGGER.error("Consumer diagnostic hook raised while reporting %s", name, exc_info=exc)


async def _sleep_unless_stopped(stop_event: asyncio.Event, delay: float) -> None:
    try:
        await asyncio.wait_for(stop_event.wait(), timeout=delay)
    except asyncio.TimeoutError:
        pass


__all__ = ["ConsumerFactory", "DEFAULT_GROUP_ID", "LogConsumer", "OffsetCommitListener"]
