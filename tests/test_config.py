from __future__ import annotations

import os
from pathlib import Path
from typing import Iterator

import pytest
from pydantic import ValidationError

from logharbour import config as config_module
from logharbour.config import ConsumerSettings, ProducerSettings, enable_dotenv, should_use_dotenv
from logharbour.domain.priority import Priority

_VARS = (
    "KAFKA_BROKERS",
    "ELASTICSEARCH_URL",
    "LOGHARBOUR_TOPIC",
    "LOGHARBOUR_APP",
    "LOGHARBOUR_PRIORITY",
    "LOGHARBOUR_POOL_SIZE",
    "LOGHARBOUR_SEND_RETRIES",
    "LOGHARBOUR_CONSUMER_GROUP",
    "LOGHARBOUR_INDEX_RETRY_ATTEMPTS",
    "LOGHARBOUR_TEMPLATE_REPLICAS",
    "LOGHARBOUR_USE_DOTENV",
)


@pytest.fixture(autouse=True)
def clean_environment(monkeypatch: pytest.MonkeyPatch) -> Iterator[None]:
    for name in _VARS:
        monkeypatch.delenv(name, raising=False)
    config_module._reset_dotenv_state_for_testing()
    yield
    config_module._reset_dotenv_state_for_testing()


def test_producer_defaults() -> None:
    settings = ProducerSettings()

    assert settings.brokers == ["localhost:9092"]
    assert settings.topic == "logharbour-logs"
    assert settings.threshold is Priority.INFO
    assert settings.writer_config().pool_size == 1


def test_producer_settings_read_the_environment(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("KAFKA_BROKERS", "k1:9092, k2:9092")
    monkeypatch.setenv("LOGHARBOUR_TOPIC", "audit-logs")
    monkeypatch.setenv("LOGHARBOUR_APP", "UserService")
    monkeypatch.setenv("LOGHARBOUR_PRIORITY", "WARN")
    monkeypatch.setenv("LOGHARBOUR_POOL_SIZE", "4")

    settings = ProducerSettings()
    writer_config = settings.writer_config()

    assert settings.brokers == ["k1:9092", "k2:9092"]
    assert settings.priority == "warn"
    assert settings.threshold is Priority.WARN
    assert writer_config.brokers == ("k1:9092", "k2:9092")
    assert writer_config.topic == "audit-logs"
    assert writer_config.pool_size == 4


@pytest.mark.parametrize(
    "name, value",
    [
        ("LOGHARBOUR_PRIORITY", "loud"),
        ("LOGHARBOUR_POOL_SIZE", "0"),
        ("LOGHARBOUR_SEND_RETRIES", "-1"),
        ("KAFKA_BROKERS", " , "),
    ],
)
def test_invalid_producer_values_are_rejected(monkeypatch: pytest.MonkeyPatch, name: str, value: str) -> None:
    monkeypatch.setenv(name, value)
    with pytest.raises(ValidationError):
        ProducerSettings()


def test_consumer_settings_read_the_environment(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("ELASTICSEARCH_URL", "http://es-1:9200")
    monkeypatch.setenv("LOGHARBOUR_CONSUMER_GROUP", "indexers")
    monkeypatch.setenv("LOGHARBOUR_INDEX_RETRY_ATTEMPTS", "2")
    monkeypatch.setenv("LOGHARBOUR_TEMPLATE_REPLICAS", "1")

    settings = ConsumerSettings()

    assert settings.elasticsearch_url == "http://es-1:9200"
    assert settings.group_id == "indexers"
    assert settings.index_retry_attempts == 2
    assert settings.template_replicas == 1
    assert settings.index_timeout == 10.0


def test_consumer_defaults_match_the_group_contract() -> None:
    settings = ConsumerSettings()
    assert settings.group_id == "logharbour-consumer"
    assert settings.elasticsearch_url == "http://localhost:9200"
    assert settings.index_retry_attempts == 0


@pytest.mark.parametrize(
    "explicit, env_value, expected",
    [
        (True, None, True),
        (False, "1", False),
        (None, "yes", True),
        (None, "off", False),
        (None, None, False),
    ],
)
def test_should_use_dotenv_precedence(explicit: bool | None, env_value: str | None, expected: bool) -> None:
    assert should_use_dotenv(explicit=explicit, env_value=env_value) is expected


def test_should_use_dotenv_rejects_garbage() -> None:
    with pytest.raises(ValueError, match="LOGHARBOUR_USE_DOTENV"):
        should_use_dotenv(env_value="maybe")


def test_enable_dotenv_loads_the_nearest_file_without_overriding(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    (tmp_path / ".env").write_text("LOGHARBOUR_APP=FromDotenv\nLOGHARBOUR_TOPIC=dotenv-topic\n", encoding="utf-8")
    nested = tmp_path / "service" / "src"
    nested.mkdir(parents=True)
    monkeypatch.setenv("LOGHARBOUR_TOPIC", "real-topic")

    loaded = enable_dotenv(search_from=nested)

    try:
        assert loaded == (tmp_path / ".env").resolve()
        assert os.environ["LOGHARBOUR_APP"] == "FromDotenv"
        assert os.environ["LOGHARBOUR_TOPIC"] == "real-topic"
        assert ProducerSettings().app == "FromDotenv"
    finally:
        os.environ.pop("LOGHARBOUR_APP", None)


def test_enable_dotenv_without_a_file_returns_none(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(config_module, "find_dotenv", lambda usecwd: "")
    assert enable_dotenv() is None
