"""Clear dirty flags left on records whose edits were reverted.

A record can be dirty while holding exactly the values last seen on the
remote site (an edit followed by a manual revert, or a push whose
reconciliation failed). Such records are compared structurally against
their snapshot and cleaned.
"""

from typing import Any, Dict, List, Mapping

from core.models import LocalRecord, SyncedSnapshot
from core.observability.logging import get_logger
from local_store.db import LocalStore
from local_store.plugin_data import get_all_plugin_data
from local_store.records import clear_dirty, get_dirty_records

logger = get_logger(__name__)


def _normalize_taxonomies(taxonomies: Mapping[str, List[int]]) -> Dict[str, frozenset]:
    return {name: frozenset(ids) for name, ids in taxonomies.items() if ids}


def _plugin_data_matches(
    local: Mapping[str, Mapping[str, Any]],
    synced: Mapping[str, Mapping[str, Any]],
) -> bool:
    # A local value with no synced counterpart is compared against None
    for plugin_id in set(local) | set(synced):
        local_values = local.get(plugin_id, {})
        synced_values = synced.get(plugin_id, {})
        for data_key in set(local_values) | set(synced_values):
            if local_values.get(data_key) != synced_values.get(data_key):
                return False
    return True


def matches_snapshot(
    record: LocalRecord,
    snapshot: SyncedSnapshot,
    plugin_data: Mapping[str, Mapping[str, Any]],
) -> bool:
    """True if the record's diffable state equals its snapshot."""
    if (record.title, record.slug, record.status) != (snapshot.title, snapshot.slug, snapshot.status):
        return False
    if record.meta_box != snapshot.meta_box:
        return False
    if _normalize_taxonomies(record.taxonomies) != _normalize_taxonomies(snapshot.taxonomies):
        return False
    return _plugin_data_matches(plugin_data, snapshot.plugin_data or {})


def clear_orphaned_dirty_flags(store: LocalStore) -> int:
    """Clean every dirty record that matches its snapshot.

    Returns:
        Number of records cleaned
    """
    cleared = 0
    for record in get_dirty_records(store):
        if record.synced_snapshot is None:
            continue
        if not matches_snapshot(record, record.synced_snapshot, get_all_plugin_data(store, record.id)):
            continue
        clear_dirty(store, record.id)
        cleared += 1
        logger.debug(f"Cleared orphaned dirty flag on record {record.id}")

    if cleared:
        logger.info(f"Cleared {cleared} orphaned dirty flags")
    return cleared
