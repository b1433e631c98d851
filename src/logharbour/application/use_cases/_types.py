"""Shared type aliases for the consumer-side use cases."""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from typing import Any

ProcessResult = dict[str, Any]
"""Outcome of handling one bus message (``{"ok": bool, "reason": str, ...}``)."""

ProcessCallable = Callable[[bytes], Awaitable[ProcessResult]]

DiagnosticHook = Callable[[str, dict[str, Any]], None]

__all__ = ["DiagnosticHook", "ProcessCallable", "ProcessResult"]
