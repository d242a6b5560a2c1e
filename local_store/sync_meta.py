"""Generic key/value sync metadata and store-wide statistics."""

from typing import Optional

from core.models import SyncStats
from local_store.db import LocalStore


LAST_SYNC_TIME_KEY = "last_sync_time"


def get_sync_meta(store: LocalStore, key: str) -> Optional[str]:
    row = store.query_one("SELECT value FROM sync_meta WHERE key = ?", (key,))
    return row["value"] if row else None


def set_sync_meta(store: LocalStore, key: str, value: str) -> None:
    store.execute(
        "INSERT OR REPLACE INTO sync_meta (key, value) VALUES (?, ?)",
        (key, value),
    )


def get_last_sync_time(store: LocalStore) -> Optional[str]:
    return get_sync_meta(store, LAST_SYNC_TIME_KEY)


def set_last_sync_time(store: LocalStore, timestamp: str) -> None:
    set_sync_meta(store, LAST_SYNC_TIME_KEY, timestamp)


def get_sync_stats(store: LocalStore) -> SyncStats:
    """Record, dirty and term counts plus the last successful sync time."""
    total = store.query_one("SELECT COUNT(*) AS n FROM posts")["n"]
    dirty = store.query_one("SELECT COUNT(*) AS n FROM posts WHERE is_dirty = 1")["n"]
    by_type = {
        row["post_type"]: row["n"]
        for row in store.query("SELECT post_type, COUNT(*) AS n FROM posts GROUP BY post_type")
    }
    terms = {
        row["taxonomy"]: row["n"]
        for row in store.query("SELECT taxonomy, COUNT(*) AS n FROM terms GROUP BY taxonomy")
    }
    return SyncStats(
        total_resources=total,
        dirty_resources=dirty,
        by_post_type=by_type,
        terms_by_taxonomy=terms,
        last_sync_time=get_last_sync_time(store),
    )
