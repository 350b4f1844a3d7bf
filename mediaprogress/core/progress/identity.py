"""Job identity inferred from event content.

Emitters do not hand out a job handle, so a run is approximated by what its
events carry. Two runs with the same ``total`` that sit at the same index when a
dismiss timer fires cannot be told apart; that approximation is accepted. When an
emitter does send a ``runId`` it takes part in every comparison below.
"""

from __future__ import annotations

from collections.abc import Callable

from mediaprogress.core.progress.models import JobProgress, ProgressPatch, continues_record

RunKey = tuple[str, str, int]
SnapshotKey = tuple[int, int, str, str | None]


def run_key(slot: str, progress: JobProgress) -> RunKey:
    """Key shared by the progress and completion events of one run."""
    return (slot, progress.job_kind, progress.total)


def snapshot_key(progress: JobProgress) -> SnapshotKey:
    """Key of an in-flight snapshot, captured when a dismiss timer is armed."""
    return (progress.current, progress.total, progress.job_kind, progress.run_id)


def same_job(prev: JobProgress | None, new: JobProgress) -> bool:
    """``new`` continues the job held in ``prev`` rather than starting another one."""
    if prev is None or prev.job_kind != new.job_kind:
        return False
    if prev.run_id is not None and new.run_id is not None:
        return prev.run_id == new.run_id
    return True


def same_run(slot: str, prev: JobProgress | None, patch: ProgressPatch) -> bool:
    """A completion or failure event belongs to the run held in ``prev``.

    The event must carry the same job kind (and run id, when both have one); when
    it reports a ``total`` that must match the run key as well.
    """
    if prev is None or not continues_record(prev, patch):
        return False
    if patch.total is None:
        return True
    return run_key(slot, prev) == (slot, patch.job_kind, patch.total)


def still_snapshot(captured: JobProgress) -> Callable[[JobProgress], bool]:
    """Predicate: the slot still holds the terminal snapshot it held when scheduled."""
    key = snapshot_key(captured)

    def _matches(current: JobProgress) -> bool:
        return current.is_terminal and snapshot_key(current) == key

    return _matches
