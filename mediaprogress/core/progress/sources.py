"""Adapters for the library manager's background job sources."""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from mediaprogress.core.errors import MalformedEventError
from mediaprogress.core.progress.models import Phase, ProgressPatch
from mediaprogress.core.progress.normalizer import (
    ApplyMode,
    EventContext,
    SlotUpdate,
    SourceAdapter,
    count_field,
    text_field,
    timing_fields,
)

CATALOGUE_SLOTS = ("anime", "manga")


class CatalogueSyncAdapter(SourceAdapter):
    """Remote catalogue sync (MyAnimeList, AniList): one stream feeds both media slots.

    Progress carries ``type`` (``anime``/``manga``); completion carries per-media
    totals ``{"animes": {"created", "updated"}, "mangas": {...}}``.
    """

    def __init__(self, source: str) -> None:
        self.source = source
        self.flag = source

    def slot_for(self, payload: Mapping[str, Any], ctx: EventContext) -> str:
        media = text_field(payload, "type")
        if media in CATALOGUE_SLOTS:
            return media
        return super().slot_for(payload, ctx)

    def progress(self, payload: Mapping[str, Any], ctx: EventContext) -> list[SlotUpdate]:
        patch = ProgressPatch(
            job_kind=self.source,
            phase=Phase.RUNNING,
            total=count_field(payload, "total"),
            current=count_field(payload, "current"),
            imported=count_field(payload, "imported"),
            updated=count_field(payload, "updated"),
            current_item_label=text_field(payload, "item"),
            **timing_fields(payload),
        )
        return [SlotUpdate(self.slot_for(payload, ctx), patch)]

    def completed(self, payload: Mapping[str, Any], ctx: EventContext) -> list[SlotUpdate]:
        updates: list[SlotUpdate] = []
        for key, slot in (("animes", "anime"), ("mangas", "manga")):
            result = payload.get(key)
            if result is None:
                continue
            if not isinstance(result, Mapping):
                raise MalformedEventError(f"{self.source} completion {key} must be a mapping")
            patch = ProgressPatch(
                job_kind=self.source,
                phase=Phase.COMPLETE,
                imported=count_field(result, "created", "imported"),
                updated=count_field(result, "updated"),
            )
            updates.append(SlotUpdate(slot, patch, ApplyMode.EXISTING))
        if not updates and ctx.slot:
            updates.append(
                SlotUpdate(ctx.slot, ProgressPatch(job_kind=self.source, phase=Phase.COMPLETE), ApplyMode.EXISTING)
            )
        return updates

    def failed(self, payload: Mapping[str, Any], ctx: EventContext) -> list[SlotUpdate]:
        reason = text_field(payload, "error", "message") or f"{self.source} failed"
        media = text_field(payload, "type")
        slots = (media,) if media in CATALOGUE_SLOTS else ((ctx.slot,) if ctx.slot else CATALOGUE_SLOTS)
        patch = ProgressPatch(job_kind=self.source, phase=Phase.ERROR, error=reason)
        return [SlotUpdate(slot, patch, ApplyMode.EXISTING) for slot in slots]


class EnrichmentAdapter(SourceAdapter):
    """Metadata enrichment: ``enriched`` counts as imported, ``processed`` as updated."""

    def __init__(self, source: str, slot: str) -> None:
        self.source = source
        self._slot = slot

    def slot_for(self, payload: Mapping[str, Any], ctx: EventContext) -> str:
        return self._slot

    def _counters(self, payload: Mapping[str, Any], phase: Phase) -> ProgressPatch:
        return ProgressPatch(
            job_kind=self.source,
            phase=phase,
            total=count_field(payload, "total"),
            current=count_field(payload, "current"),
            imported=count_field(payload, "enriched"),
            updated=count_field(payload, "processed"),
            errors=count_field(payload, "errors"),
            current_item_label=text_field(payload, "item"),
            **timing_fields(payload),
        )

    def progress(self, payload: Mapping[str, Any], ctx: EventContext) -> list[SlotUpdate]:
        return [SlotUpdate(self._slot, self._counters(payload, Phase.RUNNING))]

    def completed(self, payload: Mapping[str, Any], ctx: EventContext) -> list[SlotUpdate]:
        return [SlotUpdate(self._slot, self._counters(payload, Phase.COMPLETE), ApplyMode.EXISTING)]


class MihonImportAdapter(SourceAdapter):
    """Mihon backup import into the manga slot.

    ``step=decoding`` is a pre-phase: it replaces the slot but is not terminal, so it
    arms no dismiss timer. ``step=importing`` reports counters, ``step=complete``
    finishes the run only if the slot still holds a mihon import.
    """

    source = "mihon-import"
    slot = "manga"
    decoding_label = "Decoding backup..."

    def slot_for(self, payload: Mapping[str, Any], ctx: EventContext) -> str:
        return self.slot

    def progress(self, payload: Mapping[str, Any], ctx: EventContext) -> list[SlotUpdate]:
        step = text_field(payload, "step")
        if step == "decoding":
            patch = ProgressPatch(
                job_kind=self.source,
                phase=Phase.START,
                total=1,
                current=0,
                imported=0,
                updated=0,
                skipped=0,
                errors=0,
                current_item_label=text_field(payload, "message") or self.decoding_label,
                elapsed_ms=0,
            )
            return [SlotUpdate(self.slot, patch, ApplyMode.REPLACE, auto_dismiss=False)]
        if step == "importing" and count_field(payload, "total"):
            patch = ProgressPatch(
                job_kind=self.source,
                phase=Phase.RUNNING,
                total=count_field(payload, "total"),
                current=count_field(payload, "current") or 0,
                imported=count_field(payload, "imported"),
                updated=count_field(payload, "updated"),
                errors=count_field(payload, "errors"),
                current_item_label=text_field(payload, "item", "message"),
                **timing_fields(payload),
            )
            return [SlotUpdate(self.slot, patch)]
        if step == "complete":
            return self.completed(payload, ctx)
        return []

    def completed(self, payload: Mapping[str, Any], ctx: EventContext) -> list[SlotUpdate]:
        patch = ProgressPatch(
            job_kind=self.source,
            phase=Phase.COMPLETE,
            current=count_field(payload, "current"),
            imported=count_field(payload, "imported"),
            updated=count_field(payload, "updated"),
            errors=count_field(payload, "errors"),
            elapsed_ms=count_field(payload, "elapsedMs"),
        )
        return [SlotUpdate(self.slot, patch, ApplyMode.EXISTING)]


class TranslationAdapter(SourceAdapter):
    """Synopsis translation: ``translated`` counts as imported."""

    source = "translation"
    flag = "translation"
    slot = "translation"

    def slot_for(self, payload: Mapping[str, Any], ctx: EventContext) -> str:
        return self.slot

    def progress(self, payload: Mapping[str, Any], ctx: EventContext) -> list[SlotUpdate]:
        patch = ProgressPatch(
            job_kind=self.source,
            phase=Phase.RUNNING,
            total=count_field(payload, "total"),
            current=count_field(payload, "current"),
            imported=count_field(payload, "translated"),
            skipped=count_field(payload, "skipped"),
            current_item_label=text_field(payload, "currentAnime", "item"),
            **timing_fields(payload),
        )
        return [SlotUpdate(self.slot, patch)]

    def completed(self, payload: Mapping[str, Any], ctx: EventContext) -> list[SlotUpdate]:
        patch = ProgressPatch(
            job_kind=self.source,
            phase=Phase.COMPLETE,
            imported=count_field(payload, "translated"),
            skipped=count_field(payload, "skipped"),
        )
        return [SlotUpdate(self.slot, patch, ApplyMode.EXISTING)]


class PhasedSourceAdapter(SourceAdapter):
    """Sources reporting their own step names in ``phase``; steps map onto ``Phase``."""

    slot = ""
    phases: Mapping[str, Phase] = {}

    def slot_for(self, payload: Mapping[str, Any], ctx: EventContext) -> str:
        return self.slot

    def read_phase(self, payload: Mapping[str, Any]) -> Phase:
        step = text_field(payload, "phase")
        if step is None:
            return Phase.RUNNING
        try:
            return self.phases[step]
        except KeyError as e:
            raise MalformedEventError(f"{self.source}: unknown phase {step!r}", cause=e) from e

    def read_patch(self, payload: Mapping[str, Any]) -> ProgressPatch:
        raise NotImplementedError

    def progress(self, payload: Mapping[str, Any], ctx: EventContext) -> list[SlotUpdate]:
        patch = self.read_patch(payload).with_values(phase=self.read_phase(payload))
        if patch.phase is Phase.ERROR and patch.error is None:
            patch = patch.with_values(error=patch.message or f"{self.source} failed")
        return [SlotUpdate(self.slot, patch)]

    def completed(self, payload: Mapping[str, Any], ctx: EventContext) -> list[SlotUpdate]:
        return [SlotUpdate(self.slot, self.read_patch(payload).with_values(phase=Phase.COMPLETE))]


class UpdatesCheckAdapter(PhasedSourceAdapter):
    """Game update scan: ``start`` -> ``sheet`` -> ``scraping`` -> ``complete``/``error``."""

    source = "adulte-game-updates"
    flag = "adulte-game"
    slot = "adulte-game"
    phases = {
        "start": Phase.START,
        "sheet": Phase.RUNNING,
        "scraping": Phase.RUNNING,
        "complete": Phase.COMPLETE,
        "error": Phase.ERROR,
    }

    def read_patch(self, payload: Mapping[str, Any]) -> ProgressPatch:
        return ProgressPatch(
            job_kind=self.source,
            total=count_field(payload, "total"),
            current=count_field(payload, "current"),
            updated=count_field(payload, "updated"),
            imported=count_field(payload, "sheetSynced"),
            current_item_label=text_field(payload, "gameTitle"),
            message=text_field(payload, "message"),
            error=text_field(payload, "error"),
            **timing_fields(payload),
        )


class CloudSyncAdapter(PhasedSourceAdapter):
    """Cloud backup: upload and download steps all count as running."""

    source = "cloud-sync"
    flag = "cloud"
    slot = "cloud"
    phases = {
        "start": Phase.START,
        "upload": Phase.RUNNING,
        "upload-covers": Phase.RUNNING,
        "download-db": Phase.RUNNING,
        "download-covers": Phase.RUNNING,
        "complete": Phase.COMPLETE,
        "error": Phase.ERROR,
    }

    def read_patch(self, payload: Mapping[str, Any]) -> ProgressPatch:
        results = payload.get("results")
        results = results if isinstance(results, Mapping) else {}
        return ProgressPatch(
            job_kind=self.source,
            total=count_field(payload, "total"),
            current=count_field(payload, "current"),
            imported=count_field(results, "downloadsCount"),
            updated=count_field(results, "coversDownloaded"),
            current_item_label=text_field(payload, "item"),
            message=text_field(payload, "message"),
            error=text_field(payload, "error"),
        )


def default_adapters() -> list[SourceAdapter]:
    return [
        CatalogueSyncAdapter("mal-sync"),
        CatalogueSyncAdapter("anilist-sync"),
        EnrichmentAdapter("anime-enrichment", "anime"),
        EnrichmentAdapter("manga-enrichment", "manga"),
        MihonImportAdapter(),
        TranslationAdapter(),
        UpdatesCheckAdapter(),
        CloudSyncAdapter(),
    ]
