"""Static package metadata surfaced by ``logharbour info``.

Values mirror ``pyproject.toml``; the installed distribution version wins when
the package metadata is available.
"""

from __future__ import annotations

from collections.abc import Callable
from importlib import metadata as _metadata

name = "logharbour"
title = "Structured log transport from producers through Kafka into Elasticsearch"
shell_command = "logharbour"
author = "logharbour contributors"

try:
    version = _metadata.version(name)
except _metadata.PackageNotFoundError:
    version = "0.1.0"


def print_info(writer: Callable[[str], object] | None = None) -> None:
    """Emit the metadata banner line by line through ``writer`` (stdout by default).

    Examples
    --------
    >>> lines = []
    >>> print_info(writer=lines.append)
    >>> lines[0]
    'Info for logharbour:\\n'
    """

    fields = [
        ("name", name),
        ("title", title),
        ("version", version),
        ("author", author),
        ("shell_command", shell_command),
    ]
    width = max(len(label) for label, _ in fields)
    emit = writer if writer is not None else (lambda text: print(text, end=""))
    emit(f"Info for {name}:\n")
    emit("\n")
    for label, value in fields:
        emit(f"    {label:<{width}} = {value}\n")
