"""Content record operations on the local store.

This module handles every read and write of posts and their child rows:
- Loading records with decoded metadata and term assignments
- Dirty-preserving persistence of fetched remote state
- Local edits (dirty flag, change log, edited-taxonomies marker)
- Post-push reconciliation and orphan clearing
- Chunked bulk deletion for deletion diffing
"""

import json
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional, Set

from core.models import LocalRecord, SyncedSnapshot
from core.observability.logging import get_logger
from local_store.change_log import log_change
from local_store.codec import decode_value, encode_value
from local_store.db import LocalStore

logger = get_logger(__name__)


# Meta keys written by the sync engine, not by the remote custom-fields plugin
FEATURED_IMAGE_URL_KEY = "featured_image_url"
FEATURED_MEDIA_ID_KEY = "featured_media_id"
SYNTHETIC_META_KEYS = (FEATURED_IMAGE_URL_KEY, FEATURED_MEDIA_ID_KEY)

# Below SQLite's default bound-parameter limit
DEFAULT_DELETE_CHUNK_SIZE = 500

# Editable columns; content, excerpt and featured_media are remote-owned
_CORE_FIELDS = ("title", "slug", "status")
_EDITABLE_KEYS = frozenset(_CORE_FIELDS + ("meta_box", "taxonomies"))


def utc_timestamp() -> str:
    return datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%S")


# =============================================================================
# Decoding
# =============================================================================

def decode_snapshot(raw: Optional[str]) -> Optional[SyncedSnapshot]:
    """Parse a stored snapshot; malformed snapshots are treated as absent."""
    if not raw:
        return None
    try:
        return SyncedSnapshot.model_validate_json(raw)
    except ValueError as e:
        logger.warning(f"Ignoring malformed synced snapshot: {e}")
        return None


def _decode_edited_taxonomies(raw: Optional[str]) -> List[str]:
    value = decode_value(raw)
    if isinstance(value, list):
        return [str(v) for v in value]
    return []


def _load_meta(store: LocalStore, record_id: int) -> Dict[str, Any]:
    rows = store.query(
        "SELECT field_id, value FROM post_meta WHERE post_id = ? ORDER BY field_id",
        (record_id,),
    )
    return {row["field_id"]: decode_value(row["value"]) for row in rows}


def _load_taxonomies(store: LocalStore, record_id: int) -> Dict[str, List[int]]:
    rows = store.query(
        "SELECT term_id, taxonomy FROM post_terms WHERE post_id = ? ORDER BY taxonomy, term_id",
        (record_id,),
    )
    taxonomies: Dict[str, List[int]] = {}
    for row in rows:
        taxonomies.setdefault(row["taxonomy"], []).append(row["term_id"])
    return taxonomies


def _row_to_record(store: LocalStore, row) -> LocalRecord:
    return LocalRecord(
        id=row["id"],
        post_type=row["post_type"],
        title=row["title"] or "",
        slug=row["slug"] or "",
        status=row["status"] or "",
        content=row["content"] or "",
        excerpt=row["excerpt"] or "",
        featured_media=row["featured_media"] or 0,
        date_gmt=row["date_gmt"],
        modified_gmt=row["modified_gmt"],
        synced_at=row["synced_at"],
        is_dirty=bool(row["is_dirty"]),
        meta_box=_load_meta(store, row["id"]),
        taxonomies=_load_taxonomies(store, row["id"]),
        synced_snapshot=decode_snapshot(row["synced_snapshot"]),
        edited_taxonomies=_decode_edited_taxonomies(row["edited_taxonomies"]),
    )


# =============================================================================
# Reads
# =============================================================================

def get_record(store: LocalStore, record_id: int) -> Optional[LocalRecord]:
    row = store.query_one("SELECT * FROM posts WHERE id = ?", (record_id,))
    if row is None:
        return None
    return _row_to_record(store, row)


def list_records(
    store: LocalStore,
    post_type: Optional[str] = None,
    status: Optional[str] = None,
    is_dirty: Optional[bool] = None,
    search: Optional[str] = None,
) -> List[LocalRecord]:
    """List records, optionally filtered, newest remote modification first."""
    clauses = []
    params: List[Any] = []
    if post_type is not None:
        clauses.append("post_type = ?")
        params.append(post_type)
    if status is not None:
        clauses.append("status = ?")
        params.append(status)
    if is_dirty is not None:
        clauses.append("is_dirty = ?")
        params.append(1 if is_dirty else 0)
    if search:
        clauses.append("(title LIKE ? OR slug LIKE ?)")
        params.extend([f"%{search}%", f"%{search}%"])

    sql = "SELECT * FROM posts"
    if clauses:
        sql += " WHERE " + " AND ".join(clauses)
    sql += " ORDER BY modified_gmt DESC, id"
    return [_row_to_record(store, row) for row in store.query(sql, params)]


def get_dirty_records(store: LocalStore, post_type: Optional[str] = None) -> List[LocalRecord]:
    return list_records(store, post_type=post_type, is_dirty=True)


def get_local_ids(store: LocalStore, post_type: str) -> Set[int]:
    rows = store.query("SELECT id FROM posts WHERE post_type = ?", (post_type,))
    return {row["id"] for row in rows}


# =============================================================================
# Sync writes
# =============================================================================

def _replace_children(conn, record: LocalRecord) -> None:
    conn.execute("DELETE FROM post_meta WHERE post_id = ?", (record.id,))
    conn.executemany(
        "INSERT INTO post_meta (post_id, field_id, value) VALUES (?, ?, ?)",
        [(record.id, field_id, encode_value(value)) for field_id, value in record.meta_box.items()],
    )
    conn.execute("DELETE FROM post_terms WHERE post_id = ?", (record.id,))
    conn.executemany(
        "INSERT OR IGNORE INTO post_terms (post_id, term_id, taxonomy) VALUES (?, ?, ?)",
        [
            (record.id, term_id, taxonomy)
            for taxonomy, term_ids in record.taxonomies.items()
            for term_id in term_ids
        ],
    )


def save_synced_record(store: LocalStore, record: LocalRecord, synced_at: Optional[str] = None) -> bool:
    """Persist freshly fetched remote state without losing local edits.

    A dirty record only gets its snapshot, sync timestamp and remote
    modified timestamp updated. A clean (or new) record is overwritten in
    full: core fields, metadata, term assignments and snapshot.

    Args:
        store: Local store
        record: Remote state mapped onto a LocalRecord
        synced_at: Sync timestamp, defaults to now

    Returns:
        True if the record was dirty and its local edits were preserved
    """
    synced_at = synced_at or utc_timestamp()
    with store.transaction() as conn:
        row = conn.execute(
            "SELECT is_dirty, synced_snapshot FROM posts WHERE id = ?",
            (record.id,),
        ).fetchone()

        snapshot = record.to_snapshot()
        previous = decode_snapshot(row["synced_snapshot"]) if row else None
        if previous is not None and previous.plugin_data is not None:
            snapshot.plugin_data = previous.plugin_data
        snapshot_json = snapshot.model_dump_json()

        if row is not None and row["is_dirty"]:
            conn.execute(
                """
                UPDATE posts SET synced_snapshot = ?, synced_at = ?, modified_gmt = ?
                WHERE id = ?
                """,
                (snapshot_json, synced_at, record.modified_gmt, record.id),
            )
            return True

        # Upsert, not REPLACE: a REPLACE would cascade-delete plugin_data
        conn.execute(
            """
            INSERT INTO posts (id, post_type, title, slug, status, content, excerpt,
                               featured_media, date_gmt, modified_gmt, synced_at,
                               is_dirty, synced_snapshot, edited_taxonomies)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, 0, ?, NULL)
            ON CONFLICT(id) DO UPDATE SET
                post_type = excluded.post_type,
                title = excluded.title,
                slug = excluded.slug,
                status = excluded.status,
                content = excluded.content,
                excerpt = excluded.excerpt,
                featured_media = excluded.featured_media,
                date_gmt = excluded.date_gmt,
                modified_gmt = excluded.modified_gmt,
                synced_at = excluded.synced_at,
                is_dirty = 0,
                synced_snapshot = excluded.synced_snapshot,
                edited_taxonomies = NULL
            """,
            (
                record.id,
                record.post_type,
                record.title,
                record.slug,
                record.status,
                record.content,
                record.excerpt,
                record.featured_media,
                record.date_gmt,
                record.modified_gmt,
                synced_at,
                snapshot_json,
            ),
        )
        _replace_children(conn, record)
    return False


def record_side_data_snapshot(
    store: LocalStore,
    record_id: int,
    plugin_id: str,
    data_key: str,
    value: Any,
) -> None:
    """Remember the remote side-data value in the record's snapshot."""
    row = store.query_one("SELECT synced_snapshot FROM posts WHERE id = ?", (record_id,))
    snapshot = decode_snapshot(row["synced_snapshot"]) if row else None
    if snapshot is None:
        return
    plugin_data = snapshot.plugin_data or {}
    plugin_data.setdefault(plugin_id, {})[data_key] = value
    snapshot.plugin_data = plugin_data
    store.execute(
        "UPDATE posts SET synced_snapshot = ? WHERE id = ?",
        (snapshot.model_dump_json(), record_id),
    )


def delete_records(
    store: LocalStore,
    record_ids: Iterable[int],
    chunk_size: int = DEFAULT_DELETE_CHUNK_SIZE,
) -> int:
    """Delete records (and, by cascade, their child rows) in chunks.

    Returns:
        Number of records deleted
    """
    if chunk_size < 1:
        raise ValueError(f"chunk_size must be at least 1, got {chunk_size}")
    ids = sorted(set(record_ids))
    deleted = 0
    for start in range(0, len(ids), chunk_size):
        chunk = ids[start:start + chunk_size]
        placeholders = ", ".join("?" for _ in chunk)
        with store.transaction() as conn:
            cursor = conn.execute(f"DELETE FROM posts WHERE id IN ({placeholders})", chunk)
            deleted += cursor.rowcount
    return deleted


# =============================================================================
# Local edits
# =============================================================================

def update_local_record(store: LocalStore, record_id: int, updates: Dict[str, Any]) -> LocalRecord:
    """Apply a local edit and mark the record dirty.

    Args:
        store: Local store
        record_id: Record to edit
        updates: Any of title, slug, status, meta_box (partial field map)
            and taxonomies (taxonomy -> term ids, replacing that
            taxonomy's assignment)

    Returns:
        The updated record

    Raises:
        KeyError: If the record does not exist
        ValueError: If updates name a field that is never pushed
    """
    unsupported = sorted(set(updates) - _EDITABLE_KEYS)
    if unsupported:
        raise ValueError(f"Fields cannot be edited locally: {', '.join(unsupported)}")

    current = get_record(store, record_id)
    if current is None:
        raise KeyError(f"Record {record_id} not found")

    changed = False
    edited = list(current.edited_taxonomies)

    with store.transaction() as conn:
        for field in _CORE_FIELDS:
            if field not in updates:
                continue
            old, new = getattr(current, field), updates[field]
            if old == new:
                continue
            conn.execute(f"UPDATE posts SET {field} = ? WHERE id = ?", (new, record_id))
            log_change(store, record_id, field, old, new)
            changed = True

        for field_id, new in (updates.get("meta_box") or {}).items():
            old = current.meta_box.get(field_id)
            if field_id in current.meta_box and old == new:
                continue
            conn.execute(
                "INSERT OR REPLACE INTO post_meta (post_id, field_id, value) VALUES (?, ?, ?)",
                (record_id, field_id, encode_value(new)),
            )
            log_change(store, record_id, f"meta.{field_id}", encode_value(old), encode_value(new))
            changed = True

        for taxonomy, term_ids in (updates.get("taxonomies") or {}).items():
            old_ids = current.taxonomies.get(taxonomy, [])
            new_ids = [int(t) for t in term_ids]
            if set(old_ids) == set(new_ids):
                continue
            conn.execute(
                "DELETE FROM post_terms WHERE post_id = ? AND taxonomy = ?",
                (record_id, taxonomy),
            )
            conn.executemany(
                "INSERT OR IGNORE INTO post_terms (post_id, term_id, taxonomy) VALUES (?, ?, ?)",
                [(record_id, term_id, taxonomy) for term_id in new_ids],
            )
            log_change(store, record_id, f"taxonomy.{taxonomy}", encode_value(old_ids), encode_value(new_ids))
            if taxonomy not in edited:
                edited.append(taxonomy)
            changed = True

        if changed:
            conn.execute(
                "UPDATE posts SET is_dirty = 1, edited_taxonomies = ? WHERE id = ?",
                (json.dumps(edited) if edited else None, record_id),
            )

    return get_record(store, record_id)


def set_dirty(store: LocalStore, record_id: int) -> None:
    store.execute("UPDATE posts SET is_dirty = 1 WHERE id = ?", (record_id,))


def clear_dirty(store: LocalStore, record_id: int) -> None:
    """Clear the dirty flag and the edited-taxonomies marker."""
    store.execute(
        "UPDATE posts SET is_dirty = 0, edited_taxonomies = NULL WHERE id = ?",
        (record_id,),
    )


def mark_record_clean(
    store: LocalStore,
    record_id: int,
    modified_gmt: Optional[str],
    snapshot: Optional[SyncedSnapshot] = None,
) -> None:
    """Reconcile local state after a successful push."""
    with store.transaction() as conn:
        conn.execute(
            """
            UPDATE posts
            SET is_dirty = 0,
                edited_taxonomies = NULL,
                modified_gmt = COALESCE(?, modified_gmt)
            WHERE id = ?
            """,
            (modified_gmt, record_id),
        )
        if snapshot is not None:
            conn.execute(
                "UPDATE posts SET synced_snapshot = ? WHERE id = ?",
                (snapshot.model_dump_json(), record_id),
            )
