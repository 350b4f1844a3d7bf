from __future__ import annotations

from mediaprogress.core.progress.identity import run_key, same_job, same_run, snapshot_key, still_snapshot
from mediaprogress.core.progress.models import (
    JobProgress,
    Phase,
    ProgressPatch,
    merge_progress,
    progress_from_patch,
)


def test_new_record_defaults_counters_to_zero_and_leaves_timing_unset() -> None:
    rec = progress_from_patch(ProgressPatch(job_kind="sync", total=100, current=10))

    assert rec.phase is Phase.RUNNING
    assert (rec.imported, rec.updated, rec.skipped, rec.errors) == (0, 0, 0, 0)
    assert rec.elapsed_ms is None
    assert rec.eta_ms is None
    assert rec.speed_per_minute is None


def test_same_job_kind_merges_only_provided_fields() -> None:
    events = [
        ProgressPatch(job_kind="sync", total=100, current=10, imported=4, current_item_label="a"),
        ProgressPatch(job_kind="sync", current=25, updated=2),
        ProgressPatch(job_kind="sync", current=30, elapsed_ms=0),
    ]
    rec = None
    for patch in events:
        rec = merge_progress(rec, patch)

    assert rec is not None
    assert rec.current == 30
    assert rec.total == 100
    assert rec.imported == 4
    assert rec.updated == 2
    assert rec.current_item_label == "a"
    assert rec.elapsed_ms == 0


def test_other_job_kind_replaces_record() -> None:
    prev = JobProgress(phase=Phase.RUNNING, job_kind="manga-enrichment", total=50, current=40, imported=30, errors=3)

    rec = merge_progress(prev, ProgressPatch(job_kind="mihon-import", total=20, current=1))

    assert rec.job_kind == "mihon-import"
    assert rec.imported == 0
    assert rec.errors == 0
    assert rec.total == 20


def test_differing_run_ids_replace_even_with_same_kind() -> None:
    prev = JobProgress(phase=Phase.RUNNING, job_kind="sync", total=10, current=9, imported=9, run_id="r1")

    rec = merge_progress(prev, ProgressPatch(job_kind="sync", current=1, run_id="r2"))

    assert rec.run_id == "r2"
    assert rec.imported == 0
    assert rec.total == 0


def test_identity_keys() -> None:
    a = JobProgress(phase=Phase.COMPLETE, job_kind="sync", total=10, current=10)
    b = JobProgress(phase=Phase.RUNNING, job_kind="sync", total=10, current=3)

    assert run_key("anime", a) == ("anime", "sync", 10)
    assert same_job(b, a)
    assert not same_job(None, a)
    assert not same_job(b, JobProgress(phase=Phase.RUNNING, job_kind="other", total=10))
    assert snapshot_key(a) != snapshot_key(b)


def test_snapshot_predicate_requires_same_terminal_snapshot() -> None:
    done = JobProgress(phase=Phase.COMPLETE, job_kind="sync", total=10, current=10)
    matches = still_snapshot(done)

    assert matches(done)
    assert not matches(JobProgress(phase=Phase.RUNNING, job_kind="sync", total=10, current=10))
    assert not matches(JobProgress(phase=Phase.COMPLETE, job_kind="other", total=10, current=10))
    # Same total and index: indistinguishable from the captured run.
    assert matches(JobProgress(phase=Phase.COMPLETE, job_kind="sync", total=10, current=10, imported=5))


def test_completion_belongs_to_run_only_with_matching_total() -> None:
    running = JobProgress(phase=Phase.RUNNING, job_kind="manga-enrichment", total=40, current=12)

    assert same_run("manga", running, ProgressPatch(job_kind="manga-enrichment", phase=Phase.COMPLETE))
    assert same_run("manga", running, ProgressPatch(job_kind="manga-enrichment", total=40))
    assert not same_run("manga", running, ProgressPatch(job_kind="manga-enrichment", total=41))
    assert not same_run("manga", running, ProgressPatch(job_kind="mihon-import"))
    assert not same_run("manga", None, ProgressPatch(job_kind="manga-enrichment"))
