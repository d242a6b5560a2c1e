"""Run result models returned by the sync and push engines."""

from __future__ import annotations

from enum import Enum
from typing import Dict, List, Optional

from pydantic import BaseModel, Field


class SyncMode(str, Enum):
    FULL = "full"
    INCREMENTAL = "incremental"


class SyncResult(BaseModel):
    """Outcome of one sync run. Errors are collected, never raised."""
    mode: SyncMode = SyncMode.FULL
    taxonomies_updated: int = 0
    resources_updated: int = 0
    resources_deleted: int = 0
    dirty_preserved: int = 0
    orphans_cleared: int = 0
    errors: List[str] = Field(default_factory=list)
    started_at: Optional[str] = None
    completed_at: Optional[str] = None

    @property
    def success(self) -> bool:
        return not self.errors


class ConflictInfo(BaseModel):
    """Local 'last known remote modified' disagrees with the remote."""
    resource_id: int
    title: str
    local_modified: Optional[str] = None
    server_modified: Optional[str] = None


class PushResult(BaseModel):
    resource_id: int
    success: bool
    error: Optional[str] = None
    modified_gmt: Optional[str] = None
    side_data_errors: List[str] = Field(default_factory=list)


class PushAllResult(BaseModel):
    results: List[PushResult] = Field(default_factory=list)
    conflicts: List[ConflictInfo] = Field(default_factory=list)

    @property
    def pushed(self) -> int:
        return sum(1 for r in self.results if r.success)

    @property
    def failed(self) -> int:
        return sum(1 for r in self.results if not r.success)


# =============================================================================
# Field audit
# =============================================================================

class FieldSource(str, Enum):
    LOCAL_ONLY = "local_only"
    REMOTE_ONLY = "remote_only"
    BOTH = "both"


class FieldCategory(str, Enum):
    TAXONOMY_META = "taxonomy_meta"
    CONTENT_META = "content_meta"
    UNKNOWN = "unknown"


class FieldStatus(str, Enum):
    OK = "ok"
    MISSING_REMOTE = "missing_remote"
    UNMAPPED_LOCAL = "unmapped_local"


class FieldAuditEntry(BaseModel):
    field_name: str
    source: FieldSource
    category: FieldCategory
    status: FieldStatus
    detail: str = ""
    affected_resources: List[int] = Field(default_factory=list)


class FieldAuditReport(BaseModel):
    """Latest stored audit run plus per-status counts."""
    audit_run_at: Optional[str] = None
    entries: List[FieldAuditEntry] = Field(default_factory=list)
    summary: Dict[str, int] = Field(default_factory=dict)


# =============================================================================
# Stats
# =============================================================================

class SyncStats(BaseModel):
    total_resources: int = 0
    dirty_resources: int = 0
    by_post_type: Dict[str, int] = Field(default_factory=dict)
    terms_by_taxonomy: Dict[str, int] = Field(default_factory=dict)
    last_sync_time: Optional[str] = None
