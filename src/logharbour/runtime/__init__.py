"""Runtime façade assembling the producer and consumer pipelines.

Purpose
-------
Expose the small set of entry points host applications and the CLI use
instead of importing adapters directly.

Contents
--------
* ``open_writer`` / ``build_logger`` - producer composition.
* ``run_consumer`` / ``consume_until_signalled`` - consumer composition.
* ``install_signal_handlers`` - SIGINT/SIGTERM wiring for the consumer loop.
* ``summary_info`` - metadata banner shared with the CLI.
"""

from __future__ import annotations

from ._composition import build_logger, consume_until_signalled, install_signal_handlers, open_writer, run_consumer


def summary_info() -> str:
    """Return the metadata banner used by ``logharbour info``."""

    from .. import __init__conf__

    lines: list[str] = []
    __init__conf__.print_info(writer=lines.append)
    return "".join(lines)


__all__ = [
    "build_logger",
    "consume_until_signalled",
    "install_signal_handlers",
    "open_writer",
    "run_consumer",
    "summary_info",
]
