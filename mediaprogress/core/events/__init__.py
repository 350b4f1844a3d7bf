"""Lightweight in-process event bus.

Background jobs publish raw job events; the orchestrator normalizes them and
publishes store change events that views subscribe to.
"""

from .event_bus import EventBus, Subscription
from .job_events import (
    JobCompleted,
    JobFailed,
    JobProgressReported,
    JobStarted,
    SyncFlagChanged,
)
from .progress_events import ControlStateChanged, FlagChanged, SlotChanged

__all__ = [
    "EventBus",
    "Subscription",
    "JobStarted",
    "JobProgressReported",
    "JobCompleted",
    "JobFailed",
    "SyncFlagChanged",
    "SlotChanged",
    "FlagChanged",
    "ControlStateChanged",
]
