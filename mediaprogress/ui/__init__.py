"""Qt presentation bridge for the progress orchestrator.

Keep this package import lightweight: Qt is only imported when an export is used,
so headless hosts can run the orchestrator on asyncio without PySide6 GUI libs.
"""

from __future__ import annotations

from importlib import import_module
from typing import Any

__all__ = ["ProgressSignals", "JobEventRelay", "QtTimers"]


def __getattr__(name: str) -> Any:
    if name == "ProgressSignals":
        return import_module("mediaprogress.ui.signals").ProgressSignals
    if name == "JobEventRelay":
        return import_module("mediaprogress.ui.signals").JobEventRelay
    if name == "QtTimers":
        return import_module("mediaprogress.ui.qt_timers").QtTimers
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
