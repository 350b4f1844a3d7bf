"""Derived progress metrics: percentage, elapsed, speed and ETA."""

from __future__ import annotations

import math
from dataclasses import dataclass

from mediaprogress.config import ELAPSED_CEILING_MS
from mediaprogress.core.progress.models import JobProgress

MS_PER_MINUTE = 60_000


@dataclass(frozen=True, slots=True)
class ProgressMetrics:
    percentage: int
    current: int
    total: int
    elapsed_ms: int | None
    eta_ms: int | None
    speed_per_minute: float | None


def clamp_current(current: int, total: int) -> int:
    return max(0, min(current, total)) if total > 0 else max(0, current)


def percentage(current: int, total: int) -> int:
    if total <= 0:
        return 0
    # Half-up, as the progress banners have always displayed it.
    return math.floor(clamp_current(current, total) / total * 100 + 0.5)


def clamp_elapsed_ms(elapsed_ms: float | None, ceiling_ms: int = ELAPSED_CEILING_MS) -> int | None:
    """Display-safety clamp: anything above the ceiling shows as the ceiling."""
    if elapsed_ms is None or not math.isfinite(elapsed_ms):
        return None
    if elapsed_ms < 0:
        return 0
    return int(min(elapsed_ms, ceiling_ms))


def compute_eta_ms(current: int, total: int, speed_per_minute: float | None) -> int | None:
    if speed_per_minute is None or speed_per_minute <= 0 or current >= total:
        return None
    return round(max(0.0, (total - current) / speed_per_minute * MS_PER_MINUTE))


def derive_speed_per_minute(current: int, elapsed_ms: int | None) -> float | None:
    if elapsed_ms is None or elapsed_ms <= 0 or current <= 0:
        return None
    return current / (elapsed_ms / MS_PER_MINUTE)


def derive_metrics(
    progress: JobProgress, *, elapsed_ceiling_ms: int = ELAPSED_CEILING_MS
) -> ProgressMetrics:
    """Fill what the source omitted. Source-provided ETA and speed always win."""
    elapsed = clamp_elapsed_ms(progress.elapsed_ms, elapsed_ceiling_ms)
    speed = progress.speed_per_minute
    if speed is None:
        speed = derive_speed_per_minute(progress.current, elapsed)
    eta = progress.eta_ms
    if eta is None:
        eta = compute_eta_ms(progress.current, progress.total, speed)
    return ProgressMetrics(
        percentage=percentage(progress.current, progress.total),
        current=clamp_current(progress.current, progress.total),
        total=progress.total,
        elapsed_ms=elapsed,
        eta_ms=eta,
        speed_per_minute=speed,
    )


def format_duration(ms: float | None, ceiling_ms: int = ELAPSED_CEILING_MS) -> str:
    """``M:SS`` below an hour, ``H:MM:SS`` above."""
    clamped = clamp_elapsed_ms(ms, ceiling_ms)
    if not clamped:
        return "0:00"
    total_seconds = clamped // 1000
    hours, rest = divmod(total_seconds, 3600)
    minutes, seconds = divmod(rest, 60)
    if hours > 0:
        return f"{hours}:{minutes:02d}:{seconds:02d}"
    return f"{minutes}:{seconds:02d}"
