from __future__ import annotations

import pytest

from mediaprogress.core.errors import MalformedEventError
from mediaprogress.core.progress.models import Phase
from mediaprogress.core.progress.normalizer import ApplyMode, EventContext, ProgressNormalizer
from mediaprogress.core.progress.sources import default_adapters

NOW_MS = 1_000_000


def _ctx(slot: str | None = None, started: dict[str, int] | None = None) -> EventContext:
    starts = started or {}
    return EventContext(slot=slot, now_ms=NOW_MS, started_at=starts.get)


def _normalizer() -> ProgressNormalizer:
    return ProgressNormalizer(default_adapters())


def test_generic_source_reads_camel_case_payload() -> None:
    updates = _normalizer().progress(
        "bulk-rename",
        {"jobKind": "rename", "current": "4", "total": 10, "item": "  One Piece ", "etaMs": 1200},
        _ctx(slot="anime"),
    )

    (u,) = updates
    assert u.slot == "anime"
    assert u.mode is ApplyMode.MERGE
    assert u.patch.job_kind == "rename"
    assert u.patch.phase is Phase.RUNNING
    assert u.patch.current == 4
    assert u.patch.current_item_label == "One Piece"
    assert u.patch.eta_ms == 1200


@pytest.mark.parametrize(
    "payload",
    [
        {"current": -1},
        {"current": "abc"},
        {"total": True},
        {"total": float("inf")},
        {"phase": "exploding"},
    ],
)
def test_malformed_fields_raise(payload: dict) -> None:
    with pytest.raises(MalformedEventError):
        _normalizer().progress("generic", payload, _ctx(slot="anime"))


def test_non_mapping_payload_and_missing_slot_raise() -> None:
    n = _normalizer()

    with pytest.raises(MalformedEventError):
        n.progress("generic", ["not", "a", "mapping"], _ctx(slot="anime"))
    with pytest.raises(MalformedEventError):
        n.progress("generic", {"current": 1}, _ctx())


def test_elapsed_falls_back_to_start_time() -> None:
    n = _normalizer()

    (derived,) = n.progress("translation", {"current": 1, "total": 4}, _ctx(started={"translation": NOW_MS - 5000}))
    (reported,) = n.progress(
        "translation", {"current": 1, "total": 4, "elapsedMs": 42}, _ctx(started={"translation": NOW_MS - 5000})
    )
    (unknown,) = n.progress("translation", {"current": 1, "total": 4}, _ctx())

    assert derived.patch.elapsed_ms == 5000
    assert reported.patch.elapsed_ms == 42
    assert unknown.patch.elapsed_ms is None


def test_catalogue_sync_routes_by_media_type() -> None:
    n = _normalizer()

    (u,) = n.progress("mal-sync", {"type": "manga", "current": 3, "total": 9, "item": "Berserk"}, _ctx())

    assert u.slot == "manga"
    assert u.patch.job_kind == "mal-sync"
    assert u.patch.current_item_label == "Berserk"


def test_catalogue_completion_updates_both_media_slots() -> None:
    updates = _normalizer().completed(
        "anilist-sync",
        {"animes": {"created": 4, "updated": 2}, "mangas": {"created": 1, "updated": 0}},
        _ctx(),
    )

    assert [(u.slot, u.mode, u.patch.imported, u.patch.updated) for u in updates] == [
        ("anime", ApplyMode.EXISTING, 4, 2),
        ("manga", ApplyMode.EXISTING, 1, 0),
    ]
    assert all(u.patch.phase is Phase.COMPLETE for u in updates)


def test_catalogue_failure_without_type_marks_both_slots() -> None:
    updates = _normalizer().failed("mal-sync", "token expired", _ctx())

    assert [u.slot for u in updates] == ["anime", "manga"]
    assert all(u.patch.error == "token expired" for u in updates)


def test_enrichment_maps_counters() -> None:
    (u,) = _normalizer().progress(
        "manga-enrichment", {"current": 5, "total": 20, "enriched": 3, "processed": 5, "errors": 1}, _ctx()
    )

    assert u.slot == "manga"
    assert (u.patch.imported, u.patch.updated, u.patch.errors) == (3, 5, 1)


def test_mihon_steps() -> None:
    n = _normalizer()

    (decoding,) = n.progress("mihon-import", {"step": "decoding"}, _ctx())
    no_total = n.progress("mihon-import", {"step": "importing", "current": 1}, _ctx())
    (importing,) = n.progress("mihon-import", {"step": "importing", "current": 2, "total": 8}, _ctx())
    (done,) = n.progress("mihon-import", {"step": "complete", "imported": 8}, _ctx())

    assert decoding.mode is ApplyMode.REPLACE
    assert not decoding.auto_dismiss
    assert decoding.patch.phase is Phase.START
    assert decoding.patch.current_item_label == "Decoding backup..."
    assert no_total == []
    assert importing.patch.total == 8
    assert done.mode is ApplyMode.EXISTING
    assert done.patch.phase is Phase.COMPLETE


def test_updates_check_phases() -> None:
    n = _normalizer()

    (scraping,) = n.progress("adulte-game-updates", {"phase": "scraping", "current": 2, "total": 10, "gameTitle": "X"}, _ctx())
    (error,) = n.progress("adulte-game-updates", {"phase": "error", "message": "sheet unreachable"}, _ctx())

    assert scraping.slot == "adulte-game"
    assert scraping.patch.phase is Phase.RUNNING
    assert scraping.patch.current_item_label == "X"
    assert error.patch.phase is Phase.ERROR
    assert error.patch.error == "sheet unreachable"
    with pytest.raises(MalformedEventError):
        n.progress("adulte-game-updates", {"phase": "teleport"}, _ctx())


def test_cloud_results_counters() -> None:
    (u,) = _normalizer().progress(
        "cloud-sync",
        {"phase": "complete", "results": {"downloadsCount": 12, "coversDownloaded": 30}},
        _ctx(),
    )

    assert u.slot == "cloud"
    assert u.patch.phase is Phase.COMPLETE
    assert (u.patch.imported, u.patch.updated) == (12, 30)


def test_failed_with_reason_string_on_generic_source() -> None:
    (u,) = _normalizer().failed("bulk-rename", "disk full", _ctx(slot="anime"))

    assert u.patch.phase is Phase.ERROR
    assert u.patch.error == "disk full"
    assert u.patch.job_kind == "bulk-rename"
