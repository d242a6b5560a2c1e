"""Weighted progress reporting for sync runs.

Overall progress is composed as:
- taxonomy refresh: first 5%
- remaining 95%: split evenly across content types
- within a content type: fetch 50%, media 25%, side data 25%

Reported values never decrease during a run.
"""

from enum import Enum
from typing import Callable, Optional

# (phase, progress in [0, 1], optional detail)
ProgressCallback = Callable[[str, float, Optional[str]], None]

TAXONOMY_WEIGHT = 0.05
FETCH_WEIGHT = 0.50
MEDIA_WEIGHT = 0.25
SIDE_DATA_WEIGHT = 0.25


class SyncPhase(str, Enum):
    TAXONOMIES = "taxonomies"
    FETCH = "fetch"
    RESOLVE_MEDIA = "resolve_media"
    PERSIST = "persist"
    FETCH_SIDE_DATA = "fetch_side_data"
    PERSIST_SIDE_DATA = "persist_side_data"
    DETECT_DELETIONS = "detect_deletions"
    FIELD_AUDIT = "field_audit"
    ORPHAN_DIRTY_CLEAR = "orphan_dirty_clear"
    DONE = "done"


def _fraction(done: int, total: int) -> float:
    if total <= 0:
        return 1.0
    return min(max(done / total, 0.0), 1.0)


class SyncProgress:
    """Turns per-phase counters into monotonic overall progress."""

    def __init__(self, callback: Optional[ProgressCallback], content_type_count: int):
        self._callback = callback
        self._content_type_count = max(content_type_count, 1)
        self._last = 0.0

    @property
    def current(self) -> float:
        return self._last

    def report(self, phase: SyncPhase, progress: float, detail: Optional[str] = None) -> None:
        progress = min(max(progress, self._last), 1.0)
        self._last = progress
        if self._callback is not None:
            self._callback(phase.value, progress, detail)

    def taxonomies(self, done: int, total: int, detail: Optional[str] = None) -> None:
        self.report(SyncPhase.TAXONOMIES, TAXONOMY_WEIGHT * _fraction(done, total), detail)

    def content_type(self, index: int, slug: str) -> "ContentTypeProgress":
        span = (1.0 - TAXONOMY_WEIGHT) / self._content_type_count
        return ContentTypeProgress(self, TAXONOMY_WEIGHT + index * span, span, slug)

    def finish(self, detail: Optional[str] = None) -> None:
        self.report(SyncPhase.DONE, 1.0, detail)


class ContentTypeProgress:
    """Progress within one content type's slice of the run."""

    def __init__(self, parent: SyncProgress, base: float, span: float, slug: str):
        self._parent = parent
        self._base = base
        self._span = span
        self.slug = slug

    def _at(self, offset: float) -> float:
        return self._base + self._span * offset

    def fetch(self, page: int, total_pages: int) -> None:
        self._parent.report(
            SyncPhase.FETCH,
            self._at(FETCH_WEIGHT * _fraction(page, total_pages)),
            f"{self.slug}: page {page}/{total_pages}",
        )

    def media(self, done: int, total: int) -> None:
        self._parent.report(
            SyncPhase.RESOLVE_MEDIA,
            self._at(FETCH_WEIGHT + MEDIA_WEIGHT * _fraction(done, total)),
            f"{self.slug}: media {done}/{total}",
        )

    def side_data(self, done: int, total: int) -> None:
        self._parent.report(
            SyncPhase.FETCH_SIDE_DATA,
            self._at(FETCH_WEIGHT + MEDIA_WEIGHT + SIDE_DATA_WEIGHT * _fraction(done, total)),
            f"{self.slug}: side data {done}/{total}",
        )

    def step(self, phase: SyncPhase, detail: Optional[str] = None) -> None:
        """Report a phase change without moving the bar."""
        self._parent.report(phase, self._parent.current, f"{self.slug}: {detail}" if detail else self.slug)

    def complete(self, phase: SyncPhase) -> None:
        self._parent.report(phase, self._at(1.0), f"{self.slug}: done")
