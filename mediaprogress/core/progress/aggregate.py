from __future__ import annotations

from mediaprogress.core.progress.store import JobStateStore


class AggregateView:
    """Read-only summaries over every slot and running flag."""

    def __init__(self, store: JobStateStore) -> None:
        self._store = store

    def has_active_operation(self) -> bool:
        if any(progress is not None for progress in self._store.snapshot().values()):
            return True
        return any(self._store.flags().values())

    def all_completed(self) -> bool:
        """True once something ran and every slot and flag has finished.

        Never true on an idle store, so no "all done" banner shows on startup.
        """
        if not self.has_active_operation():
            return False
        if any(self._store.flags().values()):
            return False
        return all(
            progress is None or progress.is_terminal
            for progress in self._store.snapshot().values()
        )

    def active_slots(self) -> list[str]:
        return [slot for slot, progress in self._store.snapshot().items() if progress is not None]
