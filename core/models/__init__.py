"""Core data models - site-neutral record and result types.

This package contains the local-store record models and the result
types returned by the sync and push engines. Remote API shapes live
with their connector in /connectors/.
"""

from core.models.records import (
    # Local store
    Term,
    LocalRecord,
    SyncedSnapshot,
    ChangeLogEntry,

    # Plugin side data
    SeoData,
    SeoSocial,
    SeoRobots,
)

from core.models.results import (
    # Runs
    SyncMode,
    SyncResult,
    ConflictInfo,
    PushResult,
    PushAllResult,

    # Field audit
    FieldSource,
    FieldCategory,
    FieldStatus,
    FieldAuditEntry,
    FieldAuditReport,

    # Stats
    SyncStats,
)

__all__ = [
    "Term",
    "LocalRecord",
    "SyncedSnapshot",
    "ChangeLogEntry",
    "SeoData",
    "SeoSocial",
    "SeoRobots",
    "SyncMode",
    "SyncResult",
    "ConflictInfo",
    "PushResult",
    "PushAllResult",
    "FieldSource",
    "FieldCategory",
    "FieldStatus",
    "FieldAuditEntry",
    "FieldAuditReport",
    "SyncStats",
]
