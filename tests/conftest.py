"""Shared fakes for Kafka and Elasticsearch plus deterministic clocks and ids."""

from __future__ import annotations

import asyncio
import itertools
import json
import threading
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Iterable

import httpx
import pytest
from aiokafka.errors import KafkaConnectionError, KafkaError
from aiokafka.structs import TopicPartition

from logharbour.adapters.kafka_writer import KafkaWriterConfig

FIXED_NOW = datetime(2025, 1, 2, 10, 30, 15, tzinfo=timezone.utc)


class FixedClock:
    def __init__(self, now: datetime = FIXED_NOW) -> None:
        self.current = now

    def now(self) -> datetime:
        return self.current


class SequentialIds:
    def __init__(self, prefix: str = "rec") -> None:
        self._counter = itertools.count(1)
        self._prefix = prefix

    def __call__(self) -> str:
        return f"{self._prefix}-{next(self._counter)}"


class ListWriter:
    """Writer port keeping every payload in memory."""

    def __init__(self, error: Exception | None = None) -> None:
        self.payloads: list[bytes] = []
        self.error = error
        self.closed = False

    def write(self, payload: bytes) -> None:
        if self.error is not None:
            raise self.error
        self.payloads.append(payload)

    def close(self) -> None:
        self.closed = True


# -- Kafka producer side -------------------------------------------------------


class FakeBroker:
    """In-memory stand-in for the cluster seen by :class:`FakeProducer`."""

    def __init__(self) -> None:
        self.messages: list[tuple[str, bytes | None, bytes]] = []
        self.unreachable_slots: int = 0
        self.fail_sends: int = 0
        self.send_delay: float = 0.0
        self.sending = threading.Event()
        self.producers: list[FakeProducer] = []

    @property
    def values(self) -> list[bytes]:
        return [value for _, _, value in self.messages]

    def factory(self, config: KafkaWriterConfig) -> "FakeProducer":
        producer = FakeProducer(self, config)
        self.producers.append(producer)
        return producer


class FakeProducer:
    def __init__(self, broker: FakeBroker, config: KafkaWriterConfig) -> None:
        self.broker = broker
        self.config = config
        self.started = False
        self.stopped = False

    async def start(self) -> None:
        if self.broker.unreachable_slots > 0:
            self.broker.unreachable_slots -= 1
            raise KafkaConnectionError(f"Unable to bootstrap from {self.config.bootstrap_servers}")
        self.started = True

    async def stop(self) -> None:
        self.stopped = True

    async def send(self, topic: str, value: bytes | None = None, key: bytes | None = None) -> asyncio.Future[None]:
        self.broker.sending.set()
        if self.broker.send_delay:
            await asyncio.sleep(self.broker.send_delay)
        future: asyncio.Future[None] = asyncio.get_running_loop().create_future()
        if self.broker.fail_sends > 0:
            self.broker.fail_sends -= 1
            future.set_exception(KafkaError("leader not available"))
        else:
            self.broker.messages.append((topic, key, value))
            future.set_result(None)
        return future


@pytest.fixture
def broker() -> FakeBroker:
    return FakeBroker()


@pytest.fixture
def writer_config() -> KafkaWriterConfig:
    return KafkaWriterConfig(
        brokers="kafka-1:9092",
        batch_max_records=10,
        batch_max_age=0.02,
        connect_timeout=0.5,
        retry_backoff=0.001,
        retry_backoff_max=0.005,
        close_timeout=2.0,
    )


# -- Kafka consumer side -------------------------------------------------------


@dataclass
class FakeMessage:
    topic: str
    partition: int
    offset: int
    value: bytes | None


class FakeConsumer:
    """Replays scripted ``getmany`` rounds, then sets ``stop_event``."""

    def __init__(self, rounds: Iterable[dict[TopicPartition, list[FakeMessage]]], stop_event: asyncio.Event, **options: Any) -> None:
        self.rounds = list(rounds)
        self.stop_event = stop_event
        self.options = options
        self.commits: list[dict[TopicPartition, int]] = []
        self.subscribed: list[str] = []
        self.listener: Any = None
        self.started = False
        self.stopped = False
        self.commit_error: Exception | None = None

    async def start(self) -> None:
        self.started = True

    def subscribe(self, topics: list[str], listener: Any = None) -> None:
        self.subscribed = list(topics)
        self.listener = listener

    async def getmany(self, timeout_ms: int = 0) -> dict[TopicPartition, list[FakeMessage]]:
        await asyncio.sleep(0)
        if self.rounds:
            return self.rounds.pop(0)
        self.stop_event.set()
        return {}

    async def commit(self, offsets: dict[TopicPartition, int]) -> None:
        if self.commit_error is not None:
            raise self.commit_error
        self.commits.append(dict(offsets))

    async def stop(self) -> None:
        self.stopped = True

    @property
    def committed(self) -> dict[TopicPartition, int]:
        merged: dict[TopicPartition, int] = {}
        for commit in self.commits:
            merged.update(commit)
        return merged


def make_messages(topic: str, partition: int, payloads: list[bytes | None], start: int = 0) -> list[FakeMessage]:
    return [FakeMessage(topic, partition, start + index, payload) for index, payload in enumerate(payloads)]


# -- Elasticsearch ---------------------------------------------------------------


@dataclass
class MemoryElasticsearch:
    """Minimal document store answering the requests the adapters send."""

    docs: dict[tuple[str, str], dict[str, Any]] = field(default_factory=dict)
    templates: dict[str, dict[str, Any]] = field(default_factory=dict)
    requests: list[httpx.Request] = field(default_factory=list)
    fail_index: int = 0
    template_status: int = 200
    reachable: bool = True

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if not self.reachable:
            raise httpx.ConnectError("connection refused", request=request)
        path = request.url.path
        if request.method == "GET" and path == "/":
            return httpx.Response(200, json={"version": {"number": "8.13.0"}})
        if request.method == "PUT" and path.startswith("/_index_template/"):
            if self.template_status >= 300:
                return httpx.Response(self.template_status, json={"error": "template rejected"})
            self.templates[path.rsplit("/", 1)[-1]] = json.loads(request.content)
            return httpx.Response(200, json={"acknowledged": True})
        parts = path.strip("/").split("/")
        if request.method == "PUT" and len(parts) == 3 and parts[1] == "_doc":
            if self.fail_index > 0:
                self.fail_index -= 1
                return httpx.Response(503, json={"error": "unavailable"})
            key = (parts[0], parts[2])
            created = key not in self.docs
            self.docs[key] = json.loads(request.content)
            return httpx.Response(201 if created else 200, json={"result": "created" if created else "updated"})
        return httpx.Response(404, json={"error": "no handler"})

    def client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(base_url="http://es.test:9200", transport=httpx.MockTransport(self.handler))

    def find(self, doc_id: str) -> list[tuple[str, dict[str, Any]]]:
        return [(index, doc) for (index, key), doc in self.docs.items() if key == doc_id]


@pytest.fixture
def es() -> MemoryElasticsearch:
    return MemoryElasticsearch()


@pytest.fixture
def fixed_clock() -> FixedClock:
    return FixedClock()


@pytest.fixture
def ids() -> SequentialIds:
    return SequentialIds()


@pytest.fixture
def list_writer() -> ListWriter:
    return ListWriter()
