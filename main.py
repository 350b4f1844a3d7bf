"""
Replay a recorded background-job event stream through the progress orchestrator.

Run: python main.py replay <events.jsonl> [progress_config.yaml] [--settle-ms N]

Prints every slot transition and the final state. Useful to reproduce ordering
issues captured with ``Container.start_recording``.
"""
from __future__ import annotations

import sys
from pathlib import Path

from mediaprogress.application import Container
from mediaprogress.config import ELAPSED_CEILING_MS
from mediaprogress.core.errors import ConfigError
from mediaprogress.core.events.progress_events import SlotChanged
from mediaprogress.core.observability.logging_config import setup_logging
from mediaprogress.core.progress.metrics import derive_metrics, format_duration
from mediaprogress.core.progress.models import JobProgress
from mediaprogress.core.progress.recording import JsonlEventLog, replay_records
from mediaprogress.core.progress.settings import read_config
from mediaprogress.core.progress.timers import VirtualTimers

USAGE = "usage: python main.py replay <events.jsonl> [progress_config.yaml] [--settle-ms N]"


def describe(progress: JobProgress | None, ceiling_ms: int = ELAPSED_CEILING_MS) -> str:
    if progress is None:
        return "-"
    m = derive_metrics(progress, elapsed_ceiling_ms=ceiling_ms)
    parts = [
        f"{progress.job_kind} {progress.phase.value}",
        f"{m.current}/{m.total} ({m.percentage}%)",
    ]
    if m.elapsed_ms is not None:
        parts.append(f"elapsed {format_duration(m.elapsed_ms, ceiling_ms)}")
    if m.eta_ms is not None:
        parts.append(f"eta {format_duration(m.eta_ms, ceiling_ms)}")
    if progress.error:
        parts.append(f"error: {progress.error}")
    return " | ".join(parts)


def replay(args: list[str]) -> int:
    settle_ms = 0
    if "--settle-ms" in args:
        i = args.index("--settle-ms")
        try:
            settle_ms = int(args[i + 1])
        except (IndexError, ValueError):
            print(USAGE, file=sys.stderr)
            return 2
        del args[i : i + 2]
    if not args:
        print(USAGE, file=sys.stderr)
        return 2

    records = JsonlEventLog(Path(args[0])).load()
    try:
        config = read_config(Path(args[1])) if len(args) > 1 else None
    except ConfigError as e:
        print(e, file=sys.stderr)
        return 2
    first_ms = next((r["at_ms"] for r in records if isinstance(r.get("at_ms"), int)), 0)
    timers = VirtualTimers(start_ms=first_ms)
    container = Container(timers=timers, config=config)
    bus = container.event_bus
    orchestrator = container.progress
    ceiling_ms = container.config.elapsed_ceiling_ms

    def on_slot(e: SlotChanged) -> None:
        print(f"[{timers.now_ms() - first_ms:>8} ms] {e.slot:<12} {describe(e.progress, ceiling_ms)}")

    bus.subscribe(SlotChanged, on_slot)
    final = replay_records(orchestrator, bus, timers, records, settle_ms=settle_ms)
    print("final:")
    for slot, progress in final.items():
        print(f"  {slot:<12} {describe(progress, ceiling_ms)}")
    print(f"  active={orchestrator.has_active_operation()} all_completed={orchestrator.all_completed()}")
    container.close()
    return 0


def main(argv: list[str]) -> int:
    setup_logging(log_to_file=False)
    if len(argv) < 2 or argv[1] != "replay":
        print(USAGE, file=sys.stderr)
        return 2
    return replay(list(argv[2:]))


if __name__ == "__main__":
    try:
        sys.exit(main(sys.argv))
    except KeyboardInterrupt:
        sys.exit(0)
