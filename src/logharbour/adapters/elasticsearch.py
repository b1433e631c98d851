"""Elasticsearch adapters: per-record indexer and index template installer.

Purpose
-------
Write parsed records into their date/type partitioned index keyed by record id
and make sure the ``logharbour-*`` indices share one mapping.

Contents
--------
* :class:`ElasticsearchIndexer` - :class:`~logharbour.application.ports.indexer.IndexerPort`
  over :class:`httpx.AsyncClient`.
* :class:`IndexTemplateInstaller` - composable template installer.
* :data:`TEMPLATE_NAME` / :data:`FIELD_MAPPINGS` - template identity and mappings.

System Role
-----------
Consumer-side sinks. The client is created by the composition root with the
cluster URL as ``base_url`` and shared across partitions. Writes use the
record id as document id, so redelivered messages overwrite instead of
duplicating.
"""

from __future__ import annotations

import logging
from typing import Any, Mapping
from urllib.parse import quote

import httpx

from logharbour.adapters.system import LocalClock
from logharbour.application.ports import ClockPort, IndexerPort
from logharbour.domain.record import LogRecord, serialize
from logharbour.domain.routing import INDEX_PATTERN, index_name_for
from logharbour.errors import IndexFailedError, SerializationError, TemplateInstallError

LOGGER = logging.getLogger(__name__)

TEMPLATE_NAME = "logharbour-template"
STAMPED_FLAG = "when_stamped_by_indexer"

FIELD_MAPPINGS: Mapping[str, Mapping[str, Any]] = {
    "id": {"type": "keyword"},
    "app": {"type": "keyword"},
    "system": {"type": "keyword"},
    "module": {"type": "keyword"},
    "instance_id": {"type": "keyword"},
    "type": {"type": "keyword"},
    "pri": {"type": "keyword"},
    "when": {"type": "date"},
    "who": {"type": "keyword"},
    "remote_ip": {"type": "ip"},
    "trace_id": {"type": "keyword"},
    "msg": {"type": "text"},
    "data": {"type": "object", "dynamic": True},
}

_JSON_HEADERS = {"Content-Type": "application/json"}


def _is_success(response: httpx.Response) -> bool:
    return 200 <= response.status_code < 300


class ElasticsearchIndexer(IndexerPort):
    """Index records with ``PUT /<index>/_doc/<id>?refresh=false``.

    Parameters
    ----------
    client:
        Async client whose ``base_url`` points at the cluster.
    clock:
        Picks the index date and stamps records without ``when``; the host's
        local clock by default.
    timeout:
        Per-request timeout in seconds; the client's default when ``None``.
    """

    def __init__(self, client: httpx.AsyncClient, *, clock: ClockPort | None = None, timeout: float | None = None) -> None:
        self._client = client
        self._clock: ClockPort = clock or LocalClock()
        self._timeout = timeout

    def _request_timeout(self) -> Any:
        return httpx.USE_CLIENT_DEFAULT if self._timeout is None else self._timeout

    async def index(self, record: LogRecord) -> str:
        """Write ``record`` and return the destination index name.

        Raises
        ------
        IndexFailedError
            On transport errors, timeouts and non-2xx responses.
        """

        now = self._clock.now()
        index = index_name_for(record.log_type, now.date())
        if record.when is None:
            data = dict(record.data or {})
            data[STAMPED_FLAG] = True
            record = record.replace(when=now, data=data)
        try:
            body = serialize(record)
        except SerializationError as exc:
            raise IndexFailedError(str(exc)) from exc

        path = f"/{index}/_doc/{quote(record.id, safe='')}"
        try:
            response = await self._client.put(
                path,
                params={"refresh": "false"},
                content=body,
                headers=_JSON_HEADERS,
                timeout=self._request_timeout(),
            )
        except httpx.TimeoutException as exc:
            raise IndexFailedError(f"indexing {record.id} into {index} timed out") from exc
        except httpx.HTTPError as exc:
            raise IndexFailedError(f"indexing {record.id} into {index} failed: {exc}") from exc
        if not _is_success(response):
            raise IndexFailedError(
                f"indexing {record.id} into {index} returned {response.status_code}: {response.text[:200]}"
            )
        return index

    async def ping(self) -> bool:
        """Return ``True`` when ``GET /`` answers with a 2xx status."""

        try:
            response = await self._client.get("/", timeout=self._request_timeout())
        except httpx.HTTPError as exc:
            LOGGER.warning("Elasticsearch at %s is unreachable: %r", self._client.base_url, exc)
            return False
        if not _is_success(response):
            LOGGER.warning("Elasticsearch at %s answered %s", self._client.base_url, response.status_code)
            return False
        LOGGER.info("Elasticsearch at %s is reachable", self._client.base_url)
        return True


class IndexTemplateInstaller:
    """Install the composable template shared by every ``logharbour-*`` index.

    Examples
    --------
    >>> installer = IndexTemplateInstaller(httpx.AsyncClient(base_url="http://es:9200"), replicas=1)
    >>> body = installer.template_body()
    >>> body["index_patterns"], body["template"]["settings"]["number_of_replicas"]
    (['logharbour-*'], 1)
    """

    def __init__(
        self,
        client: httpx.AsyncClient,
        *,
        shards: int = 1,
        replicas: int = 0,
        name: str = TEMPLATE_NAME,
    ) -> None:
        if shards < 1:
            raise ValueError("shards must be at least 1")
        if replicas < 0:
            raise ValueError("replicas must not be negative")
        self._client = client
        self._shards = shards
        self._replicas = replicas
        self._name = name

    @property
    def name(self) -> str:
        return self._name

    def template_body(self) -> dict[str, Any]:
        return {
            "index_patterns": [INDEX_PATTERN],
            "template": {
                "settings": {
                    "number_of_shards": self._shards,
                    "number_of_replicas": self._replicas,
                },
                "mappings": {"properties": {key: dict(value) for key, value in FIELD_MAPPINGS.items()}},
            },
        }

    async def install(self) -> bool:
        """Install the template; warn and return ``False`` on failure."""

        try:
            await self._put_template()
        except TemplateInstallError as exc:
            LOGGER.warning("Index template %s was not installed: %s", self._name, exc)
            return False
        LOGGER.info("Index template %s installed", self._name)
        return True

    async def _put_template(self) -> None:
        try:
            response = await self._client.put(f"/_index_template/{self._name}", json=self.template_body())
        except httpx.HTTPError as exc:
            raise TemplateInstallError(f"request failed: {exc!r}") from exc
        if not _is_success(response):
            raise TemplateInstallError(f"status {response.status_code}: {response.text[:200]}")


__all__ = [
    "ElasticsearchIndexer",
    "FIELD_MAPPINGS",
    "IndexTemplateInstaller",
    "STAMPED_FLAG",
    "TEMPLATE_NAME",
]
