"""Plugin-scoped key/value side data attached to records.

Each plugin stores JSON values under (post_id, plugin_id, data_key).
Saving with mark_dirty=True is a local edit: the owning record is
flagged dirty so the value is pushed on the next push run.
"""

from typing import Any, Dict, Optional

from local_store.codec import decode_value, encode_value
from local_store.db import LocalStore
from local_store.records import set_dirty


def get_plugin_data(store: LocalStore, post_id: int, plugin_id: str, data_key: str) -> Any:
    """Stored value, the raw string if it is not valid JSON, or None."""
    row = store.query_one(
        """
        SELECT data_value FROM plugin_data
        WHERE post_id = ? AND plugin_id = ? AND data_key = ?
        """,
        (post_id, plugin_id, data_key),
    )
    if row is None or not row["data_value"]:
        return None
    return decode_value(row["data_value"])


def save_plugin_data(
    store: LocalStore,
    post_id: int,
    plugin_id: str,
    data_key: str,
    value: Any,
    mark_dirty: bool = True,
) -> None:
    with store.transaction() as conn:
        conn.execute(
            """
            INSERT OR REPLACE INTO plugin_data (post_id, plugin_id, data_key, data_value)
            VALUES (?, ?, ?, ?)
            """,
            (post_id, plugin_id, data_key, encode_value(value)),
        )
        if mark_dirty:
            set_dirty(store, post_id)


def delete_plugin_data(
    store: LocalStore,
    post_id: int,
    plugin_id: str,
    data_key: Optional[str] = None,
) -> int:
    """Delete one key, or every key of the plugin when data_key is None."""
    if data_key is None:
        cursor = store.execute(
            "DELETE FROM plugin_data WHERE post_id = ? AND plugin_id = ?",
            (post_id, plugin_id),
        )
    else:
        cursor = store.execute(
            "DELETE FROM plugin_data WHERE post_id = ? AND plugin_id = ? AND data_key = ?",
            (post_id, plugin_id, data_key),
        )
    return cursor.rowcount


def get_all_plugin_data(store: LocalStore, post_id: int) -> Dict[str, Dict[str, Any]]:
    """All side data of a record as plugin_id -> data_key -> value."""
    rows = store.query(
        "SELECT plugin_id, data_key, data_value FROM plugin_data WHERE post_id = ?",
        (post_id,),
    )
    result: Dict[str, Dict[str, Any]] = {}
    for row in rows:
        result.setdefault(row["plugin_id"], {})[row["data_key"]] = decode_value(row["data_value"])
    return result
