"""Click command-line interface for the logharbour pipeline.

Purpose
-------
Give operators one entry point to inspect metadata, emit test records through
the producer stack, run the consumer worker and install the index template.

Contents
--------
* :func:`cli` - root group handling ``--log-level`` and ``.env`` loading.
* ``info`` / ``emit`` / ``consume`` / ``install-template`` subcommands.
* :func:`main` - test-friendly runner returning an exit code.

System Role
-----------
Presentation layer. Configures stdlib logging with
:class:`rich.logging.RichHandler` once, then delegates to
:mod:`logharbour.runtime` for all wiring.
"""

from __future__ import annotations

import asyncio
import json
import logging
import os
from typing import Any, Sequence

import click
import httpx
from click.core import ParameterSource
from pydantic import ValidationError
from rich.console import Console
from rich.logging import RichHandler

from . import __init__conf__
from . import config as config_module
from .adapters.console import RichConsoleWriter
from .adapters.elasticsearch import IndexTemplateInstaller
from .adapters.fallback import StreamWriter
from .domain.change import ChangeInfo
from .domain.priority import Priority
from .runtime import build_logger, consume_until_signalled, open_writer, summary_info

CLICK_CONTEXT_SETTINGS = dict(help_option_names=["-h", "--help"])
LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")
_HANDLER_NAME = "logharbour-cli"


def _configure_logging(level: str) -> None:
    root = logging.getLogger()
    if not any(handler.get_name() == _HANDLER_NAME for handler in root.handlers):
        handler = RichHandler(console=Console(stderr=True), show_path=False, rich_tracebacks=False)
        handler.set_name(_HANDLER_NAME)
        root.addHandler(handler)
    root.setLevel(level.upper())


def _overrides(**values: Any) -> dict[str, Any]:
    return {key: value for key, value in values.items() if value is not None}


def _load_settings(factory: type[Any], **values: Any) -> Any:
    try:
        return factory(**_overrides(**values))
    except ValidationError as exc:
        raise click.ClickException(f"invalid configuration: {exc}") from exc


def _parse_data(items: Sequence[str]) -> dict[str, Any]:
    data: dict[str, Any] = {}
    for item in items:
        key, sep, raw = item.partition("=")
        if not sep or not key.strip():
            raise click.BadParameter(f"expected KEY=VALUE, got {item!r}", param_hint="--data")
        try:
            data[key.strip()] = json.loads(raw)
        except ValueError:
            data[key.strip()] = raw
    return data


def _parse_change(entity: str | None, op: str, items: Sequence[str]) -> ChangeInfo:
    if not entity or not entity.strip():
        raise click.BadParameter("required for change records", param_hint="--entity")
    try:
        change = ChangeInfo(entity, op)
    except ValueError as exc:
        raise click.BadParameter(str(exc), param_hint="--entity") from exc
    for item in items:
        parts = item.split(",", 2)
        if len(parts) != 3:
            raise click.BadParameter(f"expected FIELD,OLD,NEW, got {item!r}", param_hint="--change")
        try:
            change.add_change(*parts)
        except ValueError as exc:
            raise click.BadParameter(str(exc), param_hint="--change") from exc
    return change


@click.group(
    help="Structured log transport: producer writer, Kafka consumer and index tooling.",
    context_settings=CLICK_CONTEXT_SETTINGS,
    invoke_without_command=True,
)
@click.version_option(
    version=__init__conf__.version,
    prog_name=__init__conf__.shell_command,
    message=f"{__init__conf__.shell_command} version {__init__conf__.version}",
)
@click.option(
    "--log-level",
    type=click.Choice(LOG_LEVELS, case_sensitive=False),
    default=None,
    help=f"Level for the CLI's own diagnostics (default: ${config_module.LOG_LEVEL_ENV_VAR} or INFO).",
)
@click.option(
    "--use-dotenv/--no-use-dotenv",
    default=False,
    help=f"Load a nearby .env before reading settings (default: ${config_module.DOTENV_ENV_VAR}).",
)
@click.pass_context
def cli(ctx: click.Context, log_level: str | None, use_dotenv: bool) -> None:
    """Root command; prints the metadata banner when no subcommand is given."""

    explicit: bool | None = None
    if ctx.get_parameter_source("use_dotenv") is not ParameterSource.DEFAULT:
        explicit = use_dotenv
    try:
        wanted = config_module.should_use_dotenv(
            explicit=explicit,
            env_value=os.getenv(config_module.DOTENV_ENV_VAR),
        )
    except ValueError as exc:
        raise click.ClickException(str(exc)) from exc
    if wanted:
        config_module.enable_dotenv()

    _configure_logging(log_level or os.getenv(config_module.LOG_LEVEL_ENV_VAR) or "INFO")

    if ctx.invoked_subcommand is None:
        click.echo(summary_info(), nl=False)


@cli.command("info", context_settings=CLICK_CONTEXT_SETTINGS)
def cli_info() -> None:
    """Print project metadata."""

    click.echo(summary_info(), nl=False)


@cli.command("emit", context_settings=CLICK_CONTEXT_SETTINGS)
@click.argument("message")
@click.option("--type", "log_type", type=click.Choice(["activity", "change", "debug"]), default="activity", show_default=True)
@click.option(
    "--priority",
    type=click.Choice([priority.severity for priority in Priority]),
    default="info",
    show_default=True,
    help="Priority of the emitted record.",
)
@click.option("--app", default=None, help="Application name (default: $LOGHARBOUR_APP).")
@click.option("--brokers", default=None, help="Comma separated brokers (default: $KAFKA_BROKERS).")
@click.option("--topic", default=None, help="Topic (default: $LOGHARBOUR_TOPIC).")
@click.option("--module", default=None)
@click.option("--instance-id", default=None)
@click.option("--who", default=None)
@click.option("--remote-ip", default=None)
@click.option("--trace-id", default=None)
@click.option("--error", "error_text", default=None, help="Error text stored in data.error (priority error).")
@click.option("--data", "data_items", multiple=True, metavar="KEY=VALUE", help="Data entry; JSON values are decoded.")
@click.option("--entity", default=None, help="Entity for change records.")
@click.option("--op", type=click.Choice(["Create", "Update", "Delete"]), default="Update", show_default=True)
@click.option("--change", "change_items", multiple=True, metavar="FIELD,OLD,NEW", help="Field change for change records.")
@click.option("--mirror/--no-mirror", default=True, show_default=True, help="Also write accepted records to the local sink.")
@click.option("--pretty", is_flag=True, help="Render the local sink with Rich instead of raw JSON lines.")
def cli_emit(
    message: str,
    log_type: str,
    priority: str,
    app: str | None,
    brokers: str | None,
    topic: str | None,
    module: str | None,
    instance_id: str | None,
    who: str | None,
    remote_ip: str | None,
    trace_id: str | None,
    error_text: str | None,
    data_items: tuple[str, ...],
    entity: str | None,
    op: str,
    change_items: tuple[str, ...],
    mirror: bool,
    pretty: bool,
) -> None:
    """Build one record and send it through the Kafka-with-stdout-fallback stack."""

    settings = _load_settings(config_module.ProducerSettings, app=app, kafka_brokers=brokers, topic=topic)
    data = _parse_data(data_items)
    change = _parse_change(entity, op, change_items) if log_type == "change" else None

    sink = RichConsoleWriter() if pretty else StreamWriter()
    writer = open_writer(settings, backup=sink, mirror=mirror)
    try:
        logger = build_logger(settings, writer)
        if module:
            logger = logger.with_module(module)
        if instance_id:
            logger = logger.with_instance_id(instance_id)
        if who:
            logger = logger.with_who(who)
        if remote_ip:
            logger = logger.with_remote_ip(remote_ip)
        if trace_id:
            logger = logger.with_trace_id(trace_id)
        level = Priority.from_name(priority)
        builder = logger.error(error_text) if level is Priority.ERROR else getattr(logger, level.severity)()
        if change is not None:
            result = builder.log_data_change(message, change)
        elif log_type == "debug":
            result = builder.log_debug(message, data or None)
        else:
            result = builder.log_activity(message, data or None)
    finally:
        writer.close()

    click.echo(json.dumps(result, sort_keys=True), err=True)
    if not result["ok"] and result["reason"] in {"writer_error", "serialization_error"}:
        raise click.ClickException(f"record was not written: {result['reason']}")


@cli.command("consume", context_settings=CLICK_CONTEXT_SETTINGS)
@click.option("--brokers", default=None, help="Comma separated brokers (default: $KAFKA_BROKERS).")
@click.option("--topic", default=None, help="Topic (default: $LOGHARBOUR_TOPIC).")
@click.option("--group", "group_id", default=None, help="Consumer group (default: $LOGHARBOUR_CONSUMER_GROUP).")
@click.option("--elasticsearch-url", default=None, help="Cluster URL (default: $ELASTICSEARCH_URL).")
@click.option("--retry-attempts", "index_retry_attempts", type=int, default=None, help="Inline indexing retries per message.")
def cli_consume(
    brokers: str | None,
    topic: str | None,
    group_id: str | None,
    elasticsearch_url: str | None,
    index_retry_attempts: int | None,
) -> None:
    """Run the consumer worker until SIGINT or SIGTERM."""

    settings = _load_settings(
        config_module.ConsumerSettings,
        kafka_brokers=brokers,
        topic=topic,
        group_id=group_id,
        elasticsearch_url=elasticsearch_url,
        index_retry_attempts=index_retry_attempts,
    )
    click.echo(f"Consuming {settings.topic} from {settings.kafka_brokers}; press Ctrl+C to stop.", err=True)
    consumer = consume_until_signalled(settings)
    click.echo(json.dumps(dict(consumer.outcomes), sort_keys=True), err=True)


@cli.command("install-template", context_settings=CLICK_CONTEXT_SETTINGS)
@click.option("--elasticsearch-url", default=None, help="Cluster URL (default: $ELASTICSEARCH_URL).")
@click.option("--shards", "template_shards", type=int, default=None)
@click.option("--replicas", "template_replicas", type=int, default=None)
def cli_install_template(elasticsearch_url: str | None, template_shards: int | None, template_replicas: int | None) -> None:
    """Install the logharbour-* index template."""

    settings = _load_settings(
        config_module.ConsumerSettings,
        elasticsearch_url=elasticsearch_url,
        template_shards=template_shards,
        template_replicas=template_replicas,
    )

    async def _install() -> bool:
        async with httpx.AsyncClient(base_url=settings.elasticsearch_url, timeout=settings.index_timeout) as client:
            installer = IndexTemplateInstaller(
                client,
                shards=settings.template_shards,
                replicas=settings.template_replicas,
            )
            return await installer.install()

    if not asyncio.run(_install()):
        raise click.ClickException("index template installation failed")
    click.echo("Index template installed")


def main(argv: Sequence[str] | None = None) -> int:
    """Run the CLI and return its exit code.

    Examples
    --------
    >>> main(["--version"])  # doctest: +ELLIPSIS
    logharbour version ...
    0
    """

    args = list(argv) if argv is not None else None
    try:
        result = cli.main(args=args, prog_name=__init__conf__.shell_command, standalone_mode=False)
    except click.ClickException as error:
        error.show()
        return error.exit_code
    except click.exceptions.Abort:
        click.echo("Aborted!", err=True)
        return 1
    return result if isinstance(result, int) else 0


__all__ = ["cli", "main"]
