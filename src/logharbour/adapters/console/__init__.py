"""Human-facing console sinks."""

from __future__ import annotations

from .rich_console import RichConsoleWriter

__all__ = ["RichConsoleWriter"]
