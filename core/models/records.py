"""Local content models - the editable cache side of the sync.

These models describe rows of the local store after decoding. Field
metadata is deliberately an open map of field id -> decoded JSON value,
since the set of custom fields varies per site.
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


# =============================================================================
# Base
# =============================================================================

class RecordBase(BaseModel):
    """Base for local store models."""
    model_config = ConfigDict(populate_by_name=True)


# =============================================================================
# Terms
# =============================================================================

class Term(RecordBase):
    """A taxonomy term. Unique per (id, taxonomy)."""
    id: int
    taxonomy: str
    name: str
    slug: str
    parent_id: int = 0


# =============================================================================
# Content records
# =============================================================================

class SyncedSnapshot(RecordBase):
    """Last known remote state of a record, used only for diffing."""
    title: str = ""
    slug: str = ""
    status: str = ""
    meta_box: Dict[str, Any] = Field(default_factory=dict)
    taxonomies: Dict[str, List[int]] = Field(default_factory=dict)
    # plugin_id -> data_key -> value, recorded once side data was fetched
    plugin_data: Optional[Dict[str, Dict[str, Any]]] = None


class LocalRecord(RecordBase):
    """A content record as held in the local store."""
    id: int
    post_type: str
    title: str = ""
    slug: str = ""
    status: str = "publish"
    content: str = ""
    excerpt: str = ""
    featured_media: int = 0
    date_gmt: Optional[str] = None
    modified_gmt: Optional[str] = None
    synced_at: Optional[str] = None
    is_dirty: bool = False

    meta_box: Dict[str, Any] = Field(default_factory=dict)
    taxonomies: Dict[str, List[int]] = Field(default_factory=dict)
    synced_snapshot: Optional[SyncedSnapshot] = None
    edited_taxonomies: List[str] = Field(default_factory=list)

    def to_snapshot(self) -> SyncedSnapshot:
        """Snapshot of the record's current diffable state."""
        return SyncedSnapshot(
            title=self.title,
            slug=self.slug,
            status=self.status,
            meta_box=dict(self.meta_box),
            taxonomies={k: list(v) for k, v in self.taxonomies.items()},
        )


# =============================================================================
# Plugin-scoped side data
# =============================================================================

class SeoSocial(RecordBase):
    title: str = ""
    description: str = ""
    image: str = ""


class SeoRobots(RecordBase):
    noindex: bool = False
    nofollow: bool = False
    nosnippet: bool = False
    noimageindex: bool = False


class SeoData(RecordBase):
    """SEO payload stored under plugin 'seopress', key 'seo'."""
    title: str = ""
    description: str = ""
    canonical: str = ""
    target_keywords: str = ""
    og: SeoSocial = Field(default_factory=SeoSocial)
    twitter: SeoSocial = Field(default_factory=SeoSocial)
    robots: SeoRobots = Field(default_factory=SeoRobots)


# =============================================================================
# Audit trail
# =============================================================================

class ChangeLogEntry(RecordBase):
    """One field-level before/after change made locally."""
    id: Optional[int] = None
    post_id: int
    field: str
    old_value: Optional[str] = None
    new_value: Optional[str] = None
    changed_at: Optional[str] = None
