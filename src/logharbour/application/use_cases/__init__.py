"""Application use cases."""

from __future__ import annotations

from ._types import DiagnosticHook, ProcessCallable, ProcessResult
from .process_message import create_process_message

__all__ = ["DiagnosticHook", "ProcessCallable", "ProcessResult", "create_process_message"]
