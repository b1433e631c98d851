from __future__ import annotations

import asyncio
import json
import logging
from typing import Any

import pytest
from aiokafka.errors import KafkaConnectionError, KafkaError
from aiokafka.structs import TopicPartition
from conftest import FakeConsumer, FakeMessage, FixedClock, MemoryElasticsearch, make_messages

from logharbour.adapters.elasticsearch import ElasticsearchIndexer
from logharbour.adapters.kafka_consumer import DEFAULT_GROUP_ID, LogConsumer
from logharbour.application.use_cases import create_process_message

TOPIC = "logharbour-logs"
TP0 = TopicPartition(TOPIC, 0)
TP1 = TopicPartition(TOPIC, 1)


def _payload(record_id: str, msg: str = "m") -> bytes:
    return json.dumps({"id": record_id, "app": "svc", "type": "activity", "pri": "info", "msg": msg}).encode()


class Recorder:
    """Process callable remembering the payload order."""

    def __init__(self) -> None:
        self.seen: list[bytes] = []

    async def __call__(self, payload: bytes) -> dict[str, Any]:
        self.seen.append(payload)
        await asyncio.sleep(0)
        return {"ok": True, "reason": "indexed"}


def _run(consumer: LogConsumer, fake_box: list[FakeConsumer], rounds: list[dict[TopicPartition, list[FakeMessage]]]) -> FakeConsumer:
    async def main() -> FakeConsumer:
        stop = asyncio.Event()

        def factory(**options: Any) -> FakeConsumer:
            fake = FakeConsumer(rounds, stop, **options)
            fake_box.append(fake)
            return fake

        consumer._consumer_factory = factory
        await consumer.run(stop)
        return fake_box[-1]

    return asyncio.run(main())


def _consumer(process: Any, **options: Any) -> LogConsumer:
    return LogConsumer(brokers=["kafka-1:9092"], topic=TOPIC, process=process, **options)


def test_consumer_options_follow_group_semantics() -> None:
    options = _consumer(Recorder()).consumer_options()

    assert options["group_id"] == DEFAULT_GROUP_ID
    assert options["auto_offset_reset"] == "latest"
    assert options["enable_auto_commit"] is False
    assert options["bootstrap_servers"] == "kafka-1:9092"


def test_empty_broker_list_is_rejected() -> None:
    with pytest.raises(ValueError, match="brokers"):
        LogConsumer(brokers=[], topic=TOPIC, process=Recorder())


def test_messages_of_one_partition_are_processed_in_order() -> None:
    recorder = Recorder()
    first = [_payload(f"a{index}") for index in range(5)]
    second = [_payload(f"b{index}") for index in range(5)]
    rounds = [
        {TP0: make_messages(TOPIC, 0, first[:3]), TP1: make_messages(TOPIC, 1, second)},
        {TP0: make_messages(TOPIC, 0, first[3:], start=3)},
    ]
    fakes: list[FakeConsumer] = []

    fake = _run(_consumer(recorder), fakes, rounds)

    assert [payload for payload in recorder.seen if payload in first] == first
    assert [payload for payload in recorder.seen if payload in second] == second
    assert fake.subscribed == [TOPIC]
    assert fake.committed == {TP0: 5, TP1: 5}
    assert fake.started and fake.stopped


def test_poison_pills_and_failures_still_advance_offsets(es: MemoryElasticsearch, fixed_clock: FixedClock) -> None:
    async def main() -> tuple[LogConsumer, FakeConsumer]:
        stop = asyncio.Event()
        rounds = [{TP0: make_messages(TOPIC, 0, [_payload("ok-1"), b"garbage", None, _payload("ok-2")])}]
        fakes: list[FakeConsumer] = []

        def factory(**options: Any) -> FakeConsumer:
            fakes.append(FakeConsumer(rounds, stop, **options))
            return fakes[-1]

        async with es.client() as client:
            process = create_process_message(ElasticsearchIndexer(client, clock=fixed_clock))
            consumer = LogConsumer(brokers=["kafka-1:9092"], topic=TOPIC, process=process, consumer_factory=factory)
            await consumer.run(stop)
        return consumer, fakes[0]

    consumer, fake = asyncio.run(main())

    assert fake.committed == {TP0: 4}
    assert consumer.outcomes == {"indexed": 2, "malformed": 2}
    assert len(es.find("ok-1")) == 1
    assert len(es.find("ok-2")) == 1


def test_redelivered_messages_produce_a_single_document(es: MemoryElasticsearch, fixed_clock: FixedClock) -> None:
    payload = _payload("once", "first delivery")

    async def main() -> FakeConsumer:
        stop = asyncio.Event()
        rounds = [
            {TP0: make_messages(TOPIC, 0, [payload])},
            {TP0: make_messages(TOPIC, 0, [payload])},
        ]
        fake = FakeConsumer(rounds, stop)
        async with es.client() as client:
            process = create_process_message(ElasticsearchIndexer(client, clock=fixed_clock))
            await LogConsumer(brokers=["k"], topic=TOPIC, process=process, consumer_factory=lambda **_: fake).run(stop)
        return fake

    asyncio.run(main())

    assert len(es.find("once")) == 1


def test_handler_exceptions_are_contained(caplog: pytest.LogCaptureFixture) -> None:
    async def explode(payload: bytes) -> dict[str, Any]:
        raise RuntimeError("handler bug")

    fakes: list[FakeConsumer] = []
    consumer = _consumer(explode)

    with caplog.at_level(logging.ERROR, logger="logharbour.adapters.kafka_consumer"):
        fake = _run(consumer, fakes, [{TP0: make_messages(TOPIC, 0, [b"x", b"y"])}])

    assert consumer.outcomes == {"handler_error": 2}
    assert fake.committed == {TP0: 2}
    assert "Message handler raised" in caplog.text


class RevokingConsumer(FakeConsumer):
    """Fails the first commit, then revokes partition 0 twice on the next poll."""

    polls = 0

    async def getmany(self, timeout_ms: int = 0) -> dict[TopicPartition, list[FakeMessage]]:
        self.polls += 1
        if self.polls == 2:
            self.commit_error = None
            await self.listener.on_partitions_revoked([TP0])
            await self.listener.on_partitions_revoked([TP0])
        return await super().getmany(timeout_ms)


def test_revocation_commits_marked_offsets_once(caplog: pytest.LogCaptureFixture) -> None:
    events: list[str] = []
    consumer = _consumer(Recorder(), diagnostic=lambda name, payload: events.append(name))

    async def main() -> RevokingConsumer:
        stop = asyncio.Event()
        fake = RevokingConsumer([{TP0: make_messages(TOPIC, 0, [b"a", b"b", b"c"])}], stop)
        fake.commit_error = KafkaError("coordinator moved")
        consumer._consumer_factory = lambda **_: fake
        await consumer.run(stop)
        return fake

    with caplog.at_level(logging.WARNING, logger="logharbour.adapters.kafka_consumer"):
        fake = asyncio.run(main())

    assert fake.commits == [{TP0: 3}]
    assert consumer.marked_offsets == {}
    assert "Offset commit failed" in caplog.text
    assert "offset_commit_failed" in events
    assert events[0] == "consumer_started"
    assert events[-1] == "consumer_stopped"


class RestartingBrokerConsumer(FakeConsumer):
    """Raises a connection error on the first poll, then replays its rounds."""

    failures = 1

    async def getmany(self, timeout_ms: int = 0) -> dict[TopicPartition, list[FakeMessage]]:
        if self.failures:
            self.failures -= 1
            raise KafkaConnectionError("broker restarting")
        return await super().getmany(timeout_ms)


def test_bus_errors_pause_polling_instead_of_stopping(caplog: pytest.LogCaptureFixture) -> None:
    recorder = Recorder()
    events: list[str] = []
    consumer = _consumer(recorder, error_backoff=0.01, diagnostic=lambda name, payload: events.append(name))

    async def main() -> RestartingBrokerConsumer:
        stop = asyncio.Event()
        fake = RestartingBrokerConsumer([{TP0: make_messages(TOPIC, 0, [b"x"])}], stop)
        consumer._consumer_factory = lambda **_: fake
        await consumer.run(stop)
        return fake

    with caplog.at_level(logging.ERROR, logger="logharbour.adapters.kafka_consumer"):
        fake = asyncio.run(main())

    assert recorder.seen == [b"x"]
    assert fake.committed == {TP0: 1}
    assert "consume_error" in events
    assert "Consume round failed" in caplog.text
    assert fake.stopped


def test_stop_event_cuts_the_error_pause_short() -> None:
    async def main() -> float:
        stop = asyncio.Event()

        class AlwaysFailing(FakeConsumer):
            async def getmany(self, timeout_ms: int = 0) -> dict[TopicPartition, list[FakeMessage]]:
                asyncio.get_running_loop().call_later(0.05, stop.set)
                raise KafkaConnectionError("broker gone")

        consumer = _consumer(Recorder(), error_backoff=30.0, consumer_factory=lambda **_: AlwaysFailing([], stop))
        loop = asyncio.get_running_loop()
        started = loop.time()
        await consumer.run(stop)
        return loop.time() - started

    assert asyncio.run(main()) < 5.0


def test_negative_error_backoff_is_rejected() -> None:
    with pytest.raises(ValueError, match="error_backoff"):
        _consumer(Recorder(), error_backoff=-1)
