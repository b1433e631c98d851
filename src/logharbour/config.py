"""Environment-driven settings and ``.env`` support.

Purpose
-------
Centralise the knobs of both pipeline halves so the CLI and host applications
read the same environment variables, and offer an opt-in ``.env`` loader.

Contents
--------
* :class:`ProducerSettings` / :class:`ConsumerSettings` - ``pydantic-settings``
  models bound to ``KAFKA_BROKERS``, ``ELASTICSEARCH_URL`` and the
  ``LOGHARBOUR_*`` variables.
* :func:`enable_dotenv` / :func:`should_use_dotenv` - python-dotenv helpers.
* :data:`DOTENV_ENV_VAR` - environment toggle for ``.env`` loading.

System Role
-----------
Outer-layer configuration consumed by :mod:`logharbour.runtime` and
:mod:`logharbour.cli`. Real environment variables always win over ``.env``
entries.
"""

from __future__ import annotations

from pathlib import Path

from dotenv import find_dotenv, load_dotenv
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from logharbour.adapters.kafka_writer import DEFAULT_TOPIC, KafkaWriterConfig
from logharbour.domain.priority import Priority

DOTENV_ENV_VAR = "LOGHARBOUR_USE_DOTENV"
LOG_LEVEL_ENV_VAR = "LOGHARBOUR_LOG_LEVEL"

_TRUTHY = {"1", "true", "yes", "on"}
_FALSY = {"0", "false", "no", "off", ""}

_dotenv_loaded: Path | None = None


class _BusSettings(BaseSettings):
    model_config = SettingsConfigDict(extra="ignore", populate_by_name=True)

    kafka_brokers: str = Field("localhost:9092", validation_alias="KAFKA_BROKERS")
    topic: str = Field(DEFAULT_TOPIC, validation_alias="LOGHARBOUR_TOPIC")

    @field_validator("kafka_brokers")
    @classmethod
    def _brokers_not_empty(cls, value: str) -> str:
        if not any(part.strip() for part in value.split(",")):
            raise ValueError("KAFKA_BROKERS must list at least one broker")
        return value

    @property
    def brokers(self) -> list[str]:
        """Return the broker list split on commas."""

        return [part.strip() for part in self.kafka_brokers.split(",") if part.strip()]


class ProducerSettings(_BusSettings):
    """Settings for the producer stack built by :func:`logharbour.runtime.open_writer`."""

    app: str = Field("logharbour", validation_alias="LOGHARBOUR_APP", min_length=1)
    priority: str = Field("info", validation_alias="LOGHARBOUR_PRIORITY")
    pool_size: int = Field(1, validation_alias="LOGHARBOUR_POOL_SIZE", gt=0)
    batch_max_records: int = Field(100, validation_alias="LOGHARBOUR_BATCH_MAX_RECORDS", gt=0)
    batch_max_age: float = Field(0.5, validation_alias="LOGHARBOUR_BATCH_MAX_AGE", gt=0)
    queue_maxsize: int = Field(10_000, validation_alias="LOGHARBOUR_QUEUE_MAXSIZE", gt=0)
    connect_timeout: float = Field(5.0, validation_alias="LOGHARBOUR_CONNECT_TIMEOUT", gt=0)
    close_timeout: float = Field(5.0, validation_alias="LOGHARBOUR_CLOSE_TIMEOUT", gt=0)
    send_retries: int = Field(3, validation_alias="LOGHARBOUR_SEND_RETRIES", ge=0)

    @field_validator("priority")
    @classmethod
    def _known_priority(cls, value: str) -> str:
        return Priority.from_name(value).severity

    @property
    def threshold(self) -> Priority:
        return Priority.from_name(self.priority)

    def writer_config(self) -> KafkaWriterConfig:
        """Translate the settings into a :class:`KafkaWriterConfig`."""

        return KafkaWriterConfig(
            brokers=self.brokers,
            topic=self.topic,
            pool_size=self.pool_size,
            batch_max_records=self.batch_max_records,
            batch_max_age=self.batch_max_age,
            queue_maxsize=self.queue_maxsize,
            connect_timeout=self.connect_timeout,
            send_retries=self.send_retries,
            close_timeout=self.close_timeout,
        )


class ConsumerSettings(_BusSettings):
    """Settings for the consumer worker built by :func:`logharbour.runtime.run_consumer`."""

    elasticsearch_url: str = Field("http://localhost:9200", validation_alias="ELASTICSEARCH_URL")
    group_id: str = Field("logharbour-consumer", validation_alias="LOGHARBOUR_CONSUMER_GROUP", min_length=1)
    index_timeout: float = Field(10.0, validation_alias="LOGHARBOUR_INDEX_TIMEOUT", gt=0)
    index_retry_attempts: int = Field(0, validation_alias="LOGHARBOUR_INDEX_RETRY_ATTEMPTS", ge=0)
    index_retry_backoff: float = Field(0.5, validation_alias="LOGHARBOUR_INDEX_RETRY_BACKOFF", ge=0)
    template_shards: int = Field(1, validation_alias="LOGHARBOUR_TEMPLATE_SHARDS", gt=0)
    template_replicas: int = Field(0, validation_alias="LOGHARBOUR_TEMPLATE_REPLICAS", ge=0)
    session_timeout_ms: int = Field(10_000, validation_alias="LOGHARBOUR_SESSION_TIMEOUT_MS", gt=0)
    poll_timeout_ms: int = Field(1_000, validation_alias="LOGHARBOUR_POLL_TIMEOUT_MS", gt=0)
    max_poll_records: int = Field(500, validation_alias="LOGHARBOUR_MAX_POLL_RECORDS", gt=0)
    consume_error_backoff: float = Field(1.0, validation_alias="LOGHARBOUR_CONSUME_ERROR_BACKOFF", ge=0)


def should_use_dotenv(*, explicit: bool | None = None, env_value: str | None = None) -> bool:
    """Decide whether ``.env`` loading is enabled.

    An explicit CLI choice wins; otherwise the ``LOGHARBOUR_USE_DOTENV`` value
    is interpreted as a boolean.

    Examples
    --------
    >>> should_use_dotenv(explicit=False, env_value="1")
    False
    >>> should_use_dotenv(env_value="yes")
    True
    >>> should_use_dotenv()
    False
    """

    if explicit is not None:
        return explicit
    if env_value is None:
        return False
    normalized = env_value.strip().lower()
    if normalized in _TRUTHY:
        return True
    if normalized in _FALSY:
        return False
    raise ValueError(f"{DOTENV_ENV_VAR} must be a boolean flag, got {env_value!r}")


def enable_dotenv(*, search_from: Path | None = None) -> Path | None:
    """Load the nearest ``.env`` above the working directory (or ``search_from``).

    Existing environment variables are never overridden. Returns the resolved
    path that was loaded, or ``None`` when no file was found.
    """

    global _dotenv_loaded
    if search_from is not None:
        candidate = _find_upwards(search_from.resolve())
    else:
        found = find_dotenv(usecwd=True)
        candidate = Path(found).resolve() if found else None
    if candidate is None:
        return None
    if candidate != _dotenv_loaded:
        load_dotenv(candidate, override=False)
        _dotenv_loaded = candidate
    return candidate


def _find_upwards(start: Path) -> Path | None:
    for directory in (start, *start.parents):
        env_file = directory / ".env"
        if env_file.is_file():
            return env_file
    return None


def _reset_dotenv_state_for_testing() -> None:
    global _dotenv_loaded
    _dotenv_loaded = None


__all__ = [
    "ConsumerSettings",
    "DOTENV_ENV_VAR",
    "LOG_LEVEL_ENV_VAR",
    "ProducerSettings",
    "enable_dotenv",
    "should_use_dotenv",
]
