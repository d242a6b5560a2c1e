"""Field audit - compare locally referenced meta fields with remote ones.

After a full sync every meta_box key seen on remote records is compared
with the fields the local configuration relies on (taxonomy structured
fields and known content fields). Results are stored per run; only the
last MAX_AUDIT_RUNS runs are kept.
"""

import json
from datetime import datetime, timezone
from typing import Dict, Iterable, List, Mapping, Optional

from core.models import (
    FieldAuditEntry,
    FieldAuditReport,
    FieldCategory,
    FieldSource,
    FieldStatus,
)
from connectors.content_base import RemoteRecord
from local_store.db import LocalStore

MAX_AUDIT_RUNS = 5

_STATUS_ORDER = {
    FieldStatus.MISSING_REMOTE: 0,
    FieldStatus.UNMAPPED_LOCAL: 1,
    FieldStatus.OK: 2,
}


def collect_meta_keys(records: Iterable[RemoteRecord]) -> Dict[str, List[int]]:
    """Every non-internal meta_box key mapped to the records carrying it."""
    field_map: Dict[str, List[int]] = {}
    for record in records:
        if not record.meta_box:
            continue
        for key in record.meta_box:
            if key.startswith("_"):
                continue
            field_map.setdefault(key, []).append(record.id)
    return field_map


def run_field_audit(
    remote_fields: Mapping[str, List[int]],
    taxonomy_meta_fields: Mapping[str, str],
    known_content_fields: Iterable[str],
) -> List[FieldAuditEntry]:
    """Classify every local and remote field.

    Args:
        remote_fields: Output of collect_meta_keys()
        taxonomy_meta_fields: taxonomy slug -> structured meta field
        known_content_fields: Content fields the local side references

    Returns:
        Entries sorted missing_remote, unmapped_local, ok
    """
    entries: List[FieldAuditEntry] = []
    processed = set()

    for taxonomy, meta_field in taxonomy_meta_fields.items():
        if meta_field in processed:
            continue
        processed.add(meta_field)
        resource_ids = remote_fields.get(meta_field) or []
        if resource_ids:
            entries.append(FieldAuditEntry(
                field_name=meta_field,
                source=FieldSource.BOTH,
                category=FieldCategory.TAXONOMY_META,
                status=FieldStatus.OK,
                detail=f'Mapped to taxonomy "{taxonomy}", found in {len(resource_ids)} resources',
                affected_resources=resource_ids,
            ))
        else:
            entries.append(FieldAuditEntry(
                field_name=meta_field,
                source=FieldSource.LOCAL_ONLY,
                category=FieldCategory.TAXONOMY_META,
                status=FieldStatus.MISSING_REMOTE,
                detail=f'Mapped to taxonomy "{taxonomy}" but not found in any remote meta_box',
            ))

    for field_name in known_content_fields:
        if field_name in processed:
            continue
        processed.add(field_name)
        resource_ids = remote_fields.get(field_name) or []
        if resource_ids:
            entries.append(FieldAuditEntry(
                field_name=field_name,
                source=FieldSource.BOTH,
                category=FieldCategory.CONTENT_META,
                status=FieldStatus.OK,
                detail=f"Content field found in {len(resource_ids)} resources",
                affected_resources=resource_ids,
            ))
        else:
            entries.append(FieldAuditEntry(
                field_name=field_name,
                source=FieldSource.LOCAL_ONLY,
                category=FieldCategory.CONTENT_META,
                status=FieldStatus.MISSING_REMOTE,
                detail="Content field referenced locally but not found in any remote meta_box",
            ))

    for field_name, resource_ids in remote_fields.items():
        if field_name in processed:
            continue
        entries.append(FieldAuditEntry(
            field_name=field_name,
            source=FieldSource.REMOTE_ONLY,
            category=FieldCategory.UNKNOWN,
            status=FieldStatus.UNMAPPED_LOCAL,
            detail=f"Found in {len(resource_ids)} remote resources but not referenced in local mappings",
            affected_resources=list(resource_ids),
        ))

    entries.sort(key=lambda e: _STATUS_ORDER[e.status])
    return entries


def save_audit_results(
    store: LocalStore,
    entries: List[FieldAuditEntry],
    audit_run_at: Optional[str] = None,
) -> str:
    """Store one audit run and prune to the last MAX_AUDIT_RUNS runs.

    Returns:
        The run timestamp
    """
    audit_run_at = audit_run_at or datetime.now(timezone.utc).isoformat()
    with store.transaction() as conn:
        conn.executemany(
            """
            INSERT INTO field_audit
                (audit_run_at, field_name, source, category, status, detail, affected_resources)
            VALUES (?, ?, ?, ?, ?, ?, ?)
            """,
            [
                (
                    audit_run_at,
                    e.field_name,
                    e.source.value,
                    e.category.value,
                    e.status.value,
                    e.detail,
                    json.dumps(e.affected_resources),
                )
                for e in entries
            ],
        )
        runs = [
            row[0]
            for row in conn.execute(
                "SELECT DISTINCT audit_run_at FROM field_audit ORDER BY audit_run_at DESC"
            ).fetchall()
        ]
        if len(runs) > MAX_AUDIT_RUNS:
            cutoff = runs[MAX_AUDIT_RUNS - 1]
            conn.execute("DELETE FROM field_audit WHERE audit_run_at < ?", (cutoff,))
    return audit_run_at


def get_latest_audit(store: LocalStore) -> Optional[FieldAuditReport]:
    """Most recent audit run with per-status counts, or None."""
    latest = store.query_one("SELECT MAX(audit_run_at) AS run FROM field_audit")
    if latest is None or latest["run"] is None:
        return None

    rows = store.query(
        """
        SELECT field_name, source, category, status, detail, affected_resources
        FROM field_audit WHERE audit_run_at = ? ORDER BY id
        """,
        (latest["run"],),
    )
    entries = []
    for row in rows:
        try:
            affected = json.loads(row["affected_resources"] or "[]")
        except json.JSONDecodeError:
            affected = []
        entries.append(FieldAuditEntry(
            field_name=row["field_name"],
            source=row["source"],
            category=row["category"],
            status=row["status"],
            detail=row["detail"] or "",
            affected_resources=affected,
        ))

    summary = {status.value: 0 for status in FieldStatus}
    for entry in entries:
        summary[entry.status.value] += 1
    summary["total"] = len(entries)

    return FieldAuditReport(audit_run_at=latest["run"], entries=entries, summary=summary)


def list_audit_runs(store: LocalStore) -> List[str]:
    rows = store.query("SELECT DISTINCT audit_run_at FROM field_audit ORDER BY audit_run_at DESC")
    return [row["audit_run_at"] for row in rows]
