"""Typed progress configuration loaded from YAML.

Normalizes the raw mapping through a dataclass:

- missing keys are filled with defaults
- basic type coercion is applied (e.g. "3000" -> 3000)
- unknown keys are ignored (forward compatibility)

Example ``progress_config.yaml``::

    slots: [anime, manga, adulte-game, cloud, translation]
    flags: [mal-sync, anilist-sync, translation, adulte-game, cloud]
    dismiss_delays_ms:
      default: 3000
      manga-enrichment: 2000
    elapsed_ceiling_ms: 86400000
    close_all_when_completed_ms: null
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from mediaprogress.config import (
    CLOSE_ALL_WHEN_COMPLETED_MS,
    DEFAULT_DISMISS_DELAY_MS,
    DEFAULT_DISMISS_DELAYS_MS,
    DEFAULT_FLAGS,
    DEFAULT_SLOTS,
    ELAPSED_CEILING_MS,
    PROGRESS_CONFIG_PATH,
)
from mediaprogress.core.errors import ConfigError

logger = logging.getLogger(__name__)


def _as_int(value: Any, default: int) -> int:
    try:
        if isinstance(value, bool):
            return default
        return int(value)
    except (TypeError, ValueError):
        return default


def _as_names(value: Any, default: tuple[str, ...]) -> tuple[str, ...]:
    if not isinstance(value, (list, tuple)):
        return default
    names = tuple(str(v).strip() for v in value if str(v).strip())
    return names or default


def _as_delays(value: Any) -> dict[str, int]:
    delays = dict(DEFAULT_DISMISS_DELAYS_MS)
    if not isinstance(value, Mapping):
        return delays
    for key, raw in value.items():
        ms = _as_int(raw, -1)
        if ms >= 0:
            delays[str(key)] = ms
    return delays


@dataclass(slots=True)
class ProgressConfig:
    slots: tuple[str, ...] = DEFAULT_SLOTS
    flags: tuple[str, ...] = DEFAULT_FLAGS
    dismiss_delays_ms: dict[str, int] = field(default_factory=lambda: dict(DEFAULT_DISMISS_DELAYS_MS))
    elapsed_ceiling_ms: int = ELAPSED_CEILING_MS
    close_all_when_completed_ms: int | None = CLOSE_ALL_WHEN_COMPLETED_MS

    def dismiss_delay_ms(self, job_kind: str) -> int:
        return self.dismiss_delays_ms.get(
            job_kind, self.dismiss_delays_ms.get("default", DEFAULT_DISMISS_DELAY_MS)
        )

    @classmethod
    def from_dict(cls, data: Mapping[str, Any] | None) -> ProgressConfig:
        if not isinstance(data, Mapping):
            return cls()
        close_all = data.get("close_all_when_completed_ms")
        close_all_ms = None if close_all is None else _as_int(close_all, -1)
        return cls(
            slots=_as_names(data.get("slots"), DEFAULT_SLOTS),
            flags=_as_names(data.get("flags"), DEFAULT_FLAGS),
            dismiss_delays_ms=_as_delays(data.get("dismiss_delays_ms")),
            elapsed_ceiling_ms=max(1, _as_int(data.get("elapsed_ceiling_ms"), ELAPSED_CEILING_MS)),
            close_all_when_completed_ms=close_all_ms if close_all_ms is None or close_all_ms >= 0 else None,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "slots": list(self.slots),
            "flags": list(self.flags),
            "dismiss_delays_ms": dict(self.dismiss_delays_ms),
            "elapsed_ceiling_ms": self.elapsed_ceiling_ms,
            "close_all_when_completed_ms": self.close_all_when_completed_ms,
        }


def read_config(path: Path) -> ProgressConfig:
    """Strict read: raise ``ConfigError`` if the file is missing or not valid YAML."""
    try:
        with open(path, encoding="utf-8") as f:
            data = yaml.safe_load(f)
    except (OSError, yaml.YAMLError) as e:
        raise ConfigError(f"Cannot read progress config {path}", cause=e) from e
    if data is not None and not isinstance(data, Mapping):
        raise ConfigError(f"Progress config {path} must be a mapping")
    return ProgressConfig.from_dict(data)


def load_config(path: Path | None = None) -> ProgressConfig:
    """Lenient read used at startup: defaults when the file is missing or invalid."""
    p = path or PROGRESS_CONFIG_PATH
    if not p.exists():
        return ProgressConfig()
    try:
        return read_config(p)
    except ConfigError:
        logger.warning("Invalid progress config, using defaults", exc_info=True)
        return ProgressConfig()


def save_config(config: ProgressConfig, path: Path | None = None) -> None:
    p = path or PROGRESS_CONFIG_PATH
    p.parent.mkdir(parents=True, exist_ok=True)
    with open(p, "w", encoding="utf-8") as f:
        yaml.safe_dump(config.to_dict(), f, sort_keys=False, allow_unicode=True)
