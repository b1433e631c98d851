from __future__ import annotations

import asyncio
import json
import signal
from typing import Any

import pytest
from aiokafka.structs import TopicPartition
from conftest import FakeBroker, FakeConsumer, ListWriter, MemoryElasticsearch, make_messages

from logharbour import Priority, runtime
from logharbour.adapters.elasticsearch import TEMPLATE_NAME
from logharbour.adapters.fallback import MultiWriter
from logharbour.adapters.kafka_writer import KafkaWriter
from logharbour.config import ConsumerSettings, ProducerSettings


@pytest.fixture
def producer_settings() -> ProducerSettings:
    return ProducerSettings(
        kafka_brokers="kafka-1:9092",
        app="UserService",
        priority="debug",
        batch_max_age=0.02,
        connect_timeout=0.5,
        close_timeout=2.0,
    )


def test_open_writer_mirrors_to_the_local_sink(broker: FakeBroker, producer_settings: ProducerSettings, list_writer: ListWriter) -> None:
    writer = runtime.open_writer(producer_settings, backup=list_writer, producer_factory=broker.factory)

    assert isinstance(writer.primary, MultiWriter)
    writer.write(b'{"id": "1"}')
    writer.close()

    assert broker.values == [b'{"id": "1"}']
    assert list_writer.payloads == [b'{"id": "1"}']


def test_open_writer_without_mirror_keeps_the_sink_for_failures(
    broker: FakeBroker, producer_settings: ProducerSettings, list_writer: ListWriter
) -> None:
    writer = runtime.open_writer(producer_settings, backup=list_writer, mirror=False, producer_factory=broker.factory)

    assert isinstance(writer.primary, KafkaWriter)
    writer.write(b"a")
    writer.close()
    writer.write(b"after close")

    assert broker.values == [b"a"]
    assert list_writer.payloads == [b"after close"]


def test_open_writer_degrades_to_the_sink_when_kafka_is_down(
    broker: FakeBroker, producer_settings: ProducerSettings, list_writer: ListWriter, caplog: pytest.LogCaptureFixture
) -> None:
    broker.unreachable_slots = 1

    writer = runtime.open_writer(producer_settings, backup=list_writer, producer_factory=broker.factory)
    writer.write(b"kept locally")

    assert writer.primary is list_writer
    assert list_writer.payloads == [b"kept locally"]
    assert "Kafka is unavailable" in caplog.text


def test_build_logger_applies_app_and_threshold(producer_settings: ProducerSettings, list_writer: ListWriter) -> None:
    logger = runtime.build_logger(producer_settings, list_writer, system="web-01")

    assert logger.app == "UserService"
    assert logger.context.priority is Priority.DEBUG
    assert logger.debug().log_debug("visible")["ok"] is True
    assert json.loads(list_writer.payloads[0])["system"] == "web-01"


def test_run_consumer_installs_the_template_and_indexes(es: MemoryElasticsearch) -> None:
    settings = ConsumerSettings(kafka_brokers="kafka-1:9092", index_retry_attempts=0)
    payload = b'{"id": "r1", "app": "svc", "type": "change", "pri": "info", "msg": "m", "when": "2025-03-04T05:06:07Z"}'
    options: dict[str, Any] = {}

    async def main() -> Any:
        stop = asyncio.Event()
        rounds = [{TopicPartition(settings.topic, 0): make_messages(settings.topic, 0, [payload])}]

        def factory(**kwargs: Any) -> FakeConsumer:
            options.update(kwargs)
            return FakeConsumer(rounds, stop, **kwargs)

        client = es.client()
        consumer = await runtime.run_consumer(settings, stop, client=client, consumer_factory=factory)
        assert not client.is_closed
        await client.aclose()
        return consumer

    consumer = asyncio.run(main())

    assert TEMPLATE_NAME in es.templates
    assert es.requests[0].method == "GET"
    assert consumer.outcomes == {"indexed": 1}
    assert [index for index, _ in es.find("r1")] == ["logharbour-change-2025.03.04"]
    assert options["group_id"] == "logharbour-consumer"


def test_run_consumer_keeps_going_without_a_reachable_cluster(es: MemoryElasticsearch) -> None:
    es.reachable = False

    async def main() -> Any:
        stop = asyncio.Event()
        async with es.client() as client:
            return await runtime.run_consumer(
                ConsumerSettings(), stop, client=client, consumer_factory=lambda **kwargs: FakeConsumer([], stop, **kwargs)
            )

    consumer = asyncio.run(main())
    assert consumer.outcomes == {}


def test_install_signal_handlers_sets_the_stop_event() -> None:
    async def main() -> bool:
        stop = asyncio.Event()
        installed = runtime.install_signal_handlers(stop)
        try:
            assert signal.SIGTERM in installed
            asyncio.get_running_loop().call_soon(signal.raise_signal, signal.SIGTERM)
            await asyncio.wait_for(stop.wait(), 2.0)
            return stop.is_set()
        finally:
            for sig in installed:
                asyncio.get_running_loop().remove_signal_handler(sig)

    assert asyncio.run(main()) is True


def test_summary_info_lists_metadata() -> None:
    text = runtime.summary_info()
    assert text.startswith("Info for logharbour:")
    assert "version" in text
