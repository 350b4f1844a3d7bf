"""Error types raised by the orchestrator.

Event handlers never let these escape: a bad event is logged and dropped.
Control requests are the exception; they raise to the view that made them so it
can show the reason.
"""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(eq=False)
class AppError(Exception):
    message: str
    cause: Exception | None = None

    def __str__(self) -> str:
        return self.message if self.cause is None else f"{self.message} (cause: {self.cause})"


class DomainError(AppError):
    """An operation is not allowed in the current state."""


class ValidationError(AppError):
    """Input that cannot be interpreted: an event payload or a config file."""


class IntegrationError(AppError):
    """A background job or other collaborator did not do what was asked."""


class MalformedEventError(ValidationError):
    pass


class ConfigError(ValidationError):
    pass


@dataclass(eq=False)
class ControlRequestError(IntegrationError):
    """The job refused a stop/pause/resume request, or the call raised."""

    slot: str = ""
    action: str = ""


@dataclass(eq=False)
class ControlRejectedError(DomainError):
    """Another request for the slot is still in flight, or a stop is under way."""

    slot: str = ""
    action: str = ""


@dataclass(eq=False)
class ControlUnsupportedError(DomainError):
    """Unknown slot, or the job in it does not expose the action."""

    slot: str = ""
    action: str = ""
