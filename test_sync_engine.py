"""
Sync Engine Tests

Runs full and incremental syncs against an in-memory connector and checks:
1. Records, terms, media and side data land in the store
2. Idempotence across consecutive full syncs
3. Local edits survive a sync (dirty preservation)
4. Deletion diffing in full mode only
5. Soft failure policy and last_sync_time handling
6. Orphaned dirty flags are cleared
7. Progress is monotonic
"""

import asyncio
from unittest.mock import patch

import pytest

from core.models import SyncMode
from local_store.plugin_data import get_plugin_data, save_plugin_data
from local_store.records import delete_records, get_record, update_local_record
from local_store.sync_meta import get_last_sync_time, set_last_sync_time
from local_store.terms import get_terms
from sync_engine import HookName, HookPipeline, SyncEngine
from sync_engine.field_audit import list_audit_runs


def run(coro):
    return asyncio.run(coro)


class TestFullSync:
    """Full sync into an empty store."""

    def test_records_terms_and_media(self, store, connector, config, remote):
        connector.terms["topic"] = [{"id": 5, "name": "Tips &amp; Tricks", "slug": "tips"}]
        connector.media[50] = "https://example.test/uploads/hero.jpg"
        connector.add("resource", remote(
            1,
            title="Rock &amp; Roll",
            featured_media=50,
            meta_box={"tax_topic": [{"term_id": 5}], "intro_text": "Hi"},
            **{"resource-type": [7]},
        ))
        connector.add("resource", remote(2, featured_media=50))

        result = run(SyncEngine(store, connector, config).full_sync())

        assert result.errors == []
        assert result.mode == SyncMode.FULL
        assert result.taxonomies_updated == 1
        assert result.resources_updated == 2

        record = get_record(store, 1)
        assert record.title == "Rock & Roll"
        assert record.taxonomies == {"topic": [5], "resource-type": [7]}
        assert record.meta_box["featured_image_url"] == "https://example.test/uploads/hero.jpg"
        assert record.meta_box["featured_media_id"] == 50
        assert record.meta_box["intro_text"] == "Hi"
        assert record.synced_snapshot.title == "Rock & Roll"
        assert get_terms(store, "topic")[0].name == "Tips & Tricks"

        media_calls = [c for c in connector.calls if c[0] == "fetch_media_url"]
        assert media_calls == [("fetch_media_url", 50)]

    def test_side_data_saved_without_marking_dirty(self, store, connector, config, remote, seo):
        connector.add("resource", remote(1))
        seo.values[1] = {"title": "SEO title"}

        run(SyncEngine(store, connector, config, side_data=[seo]).full_sync())

        assert get_plugin_data(store, 1, "seopress", "seo") == {"title": "SEO title"}
        record = get_record(store, 1)
        assert record.is_dirty is False
        assert record.synced_snapshot.plugin_data == {"seopress": {"seo": {"title": "SEO title"}}}

    def test_idempotent(self, store, connector, config, remote):
        """Two full syncs with no remote change give the same counts and no duplicates."""
        for record_id in range(1, 4):
            connector.add("resource", remote(record_id, meta_box={"tax_topic": [1, 2]}))
        engine = SyncEngine(store, connector, config)

        first = run(engine.full_sync())
        second = run(engine.full_sync())

        assert first.resources_updated == second.resources_updated == 3
        assert second.resources_deleted == 0
        assert store.query_one("SELECT COUNT(*) FROM posts")[0] == 3
        assert store.query_one("SELECT COUNT(*) FROM post_terms")[0] == 6
        assert store.query_one("SELECT COUNT(*) FROM post_meta")[0] == 3

    def test_field_audit_recorded(self, store, connector, config, remote):
        connector.add("resource", remote(1, meta_box={"tax_topic": [], "intro_text": "x"}))
        run(SyncEngine(store, connector, config).full_sync())
        assert len(list_audit_runs(store)) == 1

    def test_hooks_applied(self, store, connector, config, remote):
        connector.add("resource", remote(1))
        hooks = HookPipeline()
        hooks.register(HookName.RECORD_BEFORE_SYNC, lambda r, c: r.model_copy(update={"slug": "hooked"}))
        completed = []
        hooks.register(HookName.SYNC_COMPLETE, lambda r, c: completed.append(c["mode"]))

        run(SyncEngine(store, connector, config, hooks=hooks).full_sync())

        assert get_record(store, 1).slug == "hooked"
        assert completed == ["full"]

    def test_progress_is_monotonic(self, store, connector, config, remote, seo):
        connector.add("resource", remote(1, featured_media=9))
        connector.media[9] = "https://example.test/a.jpg"
        seen = []

        engine = SyncEngine(
            store, connector, config, side_data=[seo],
            progress=lambda phase, value, detail: seen.append((phase, value)),
        )
        run(engine.full_sync())

        values = [value for _, value in seen]
        assert values == sorted(values)
        assert all(0.0 <= v <= 1.0 for v in values)
        assert seen[0][0] == "taxonomies"
        assert seen[-1] == ("done", 1.0)


class TestDirtyPreservation:

    def test_local_title_survives(self, store, connector, config, remote):
        """Local title "A" stays; snapshot title becomes "B"."""
        connector.add("resource", remote(1, title="Original"))
        engine = SyncEngine(store, connector, config)
        run(engine.full_sync())
        update_local_record(store, 1, {"title": "A"})

        connector.add("resource", remote(1, title="B", modified_gmt="2024-01-02T00:00:00"))
        result = run(engine.full_sync())

        record = get_record(store, 1)
        assert result.dirty_preserved == 1
        assert record.title == "A"
        assert record.is_dirty is True
        assert record.synced_snapshot.title == "B"
        assert record.modified_gmt == "2024-01-02T00:00:00"

    def test_local_side_data_not_overwritten(self, store, connector, config, remote, seo):
        connector.add("resource", remote(1))
        seo.values[1] = {"title": "Remote SEO"}
        engine = SyncEngine(store, connector, config, side_data=[seo])
        run(engine.full_sync())

        save_plugin_data(store, 1, "seopress", "seo", {"title": "Local SEO"})
        seo.values[1] = {"title": "Remote SEO v2"}
        run(engine.full_sync())

        assert get_plugin_data(store, 1, "seopress", "seo") == {"title": "Local SEO"}
        record = get_record(store, 1)
        assert record.is_dirty is True
        assert record.synced_snapshot.plugin_data["seopress"]["seo"] == {"title": "Remote SEO v2"}


class TestOrphanClearing:

    def test_reverted_edit_is_cleared(self, store, connector, config, remote):
        connector.add("resource", remote(1, title="Same", meta_box={"tax_topic": [3]}))
        engine = SyncEngine(store, connector, config)
        run(engine.full_sync())

        update_local_record(store, 1, {"title": "Changed"})
        update_local_record(store, 1, {"title": "Same"})
        assert get_record(store, 1).is_dirty is True

        result = run(engine.full_sync())
        record = get_record(store, 1)
        assert result.orphans_cleared == 1
        assert record.is_dirty is False
        assert record.edited_taxonomies == []

    def test_real_edit_kept(self, store, connector, config, remote):
        connector.add("resource", remote(1, meta_box={"tax_topic": [3]}))
        engine = SyncEngine(store, connector, config)
        run(engine.full_sync())
        update_local_record(store, 1, {"taxonomies": {"topic": [3, 4]}})

        result = run(engine.full_sync())
        assert result.orphans_cleared == 0
        assert get_record(store, 1).is_dirty is True

    def test_local_side_data_without_remote_value_kept(self, store, connector, config, remote, seo):
        """Remote has no SEO for the record; a local SEO edit must stay dirty."""
        connector.add("resource", remote(1))
        engine = SyncEngine(store, connector, config, side_data=[seo])
        run(engine.full_sync())
        assert get_record(store, 1).synced_snapshot.plugin_data is None

        save_plugin_data(store, 1, "seopress", "seo", {"title": "new local"})

        result = run(engine.full_sync())
        assert result.orphans_cleared == 0
        assert get_record(store, 1).is_dirty is True
        assert get_plugin_data(store, 1, "seopress", "seo") == {"title": "new local"}

    def test_side_data_edit_against_snapshot_kept(self, store, connector, config, remote, seo):
        seo.values[1] = {"title": "Remote SEO"}
        connector.add("resource", remote(1))
        engine = SyncEngine(store, connector, config, side_data=[seo])
        run(engine.full_sync())

        save_plugin_data(store, 1, "seopress", "seo", {"title": "Local SEO"})
        run(engine.full_sync())
        assert get_record(store, 1).is_dirty is True

        save_plugin_data(store, 1, "seopress", "seo", {"title": "Remote SEO"})
        result = run(engine.full_sync())
        assert result.orphans_cleared == 1
        assert get_record(store, 1).is_dirty is False

    def test_remote_owned_edit_rejected_before_sync(self, store, connector, config, remote):
        """A body edit is refused rather than left to be overwritten by the next sync."""
        connector.add("resource", remote(1))
        engine = SyncEngine(store, connector, config)
        run(engine.full_sync())

        with pytest.raises(ValueError):
            update_local_record(store, 1, {"content": "<p>local body</p>"})

        run(engine.full_sync())
        record = get_record(store, 1)
        assert record.is_dirty is False
        assert record.content == "<p>Body 1</p>"


class TestDeletionDiffing:

    def test_deletes_missing_ids_in_chunks(self, store, connector, config, remote):
        """Local {1..10}, remote {1..5} deletes exactly {6..10}."""
        for record_id in range(1, 11):
            connector.add("resource", remote(record_id))
        engine = SyncEngine(store, connector, config)
        run(engine.full_sync())

        for record_id in range(6, 11):
            del connector.records["resource"][record_id]

        with patch("sync_engine.engine.delete_records", wraps=delete_records) as spy:
            result = run(engine.full_sync())

        assert result.resources_deleted == 5
        ids = {row["id"] for row in store.query("SELECT id FROM posts")}
        assert ids == {1, 2, 3, 4, 5}
        args, _ = spy.call_args
        assert set(args[1]) == {6, 7, 8, 9, 10}
        assert args[2] == config.delete_chunk_size

    def test_other_content_types_untouched(self, store, connector, config, remote):
        connector.add("resource", remote(1))
        run(SyncEngine(store, connector, config).full_sync())
        store.execute("INSERT INTO posts (id, post_type, title) VALUES (500, 'guide', 'Other')")

        run(SyncEngine(store, connector, config).full_sync())
        assert get_record(store, 500) is not None


class TestIncrementalSync:

    def test_uses_last_sync_time_and_skips_deletions(self, store, connector, config, remote):
        connector.add("resource", remote(1, modified_gmt="2024-01-01T00:00:00"))
        connector.add("resource", remote(2, modified_gmt="2024-01-01T00:00:00"))
        engine = SyncEngine(store, connector, config)
        run(engine.full_sync())
        audits_before = len(list_audit_runs(store))

        set_last_sync_time(store, "2024-01-15T00:00:00")
        del connector.records["resource"][2]
        connector.add("resource", remote(1, title="Updated", modified_gmt="2024-02-01T00:00:00"))
        connector.calls.clear()

        result = run(engine.incremental_sync())

        assert result.mode == SyncMode.INCREMENTAL
        assert result.resources_updated == 1
        assert result.resources_deleted == 0
        assert ("fetch_resources", "resource", "2024-01-15T00:00:00") in connector.calls
        assert not any(c[0] == "fetch_resource_ids" for c in connector.calls)
        assert get_record(store, 1).title == "Updated"
        assert get_record(store, 2) is not None
        assert len(list_audit_runs(store)) == audits_before


class TestFailurePolicy:

    def test_errors_collected_and_run_continues(self, store, connector, config, remote):
        connector.add("resource", remote(1, featured_media=3))
        connector.fail = {"fetch_media_url", "fetch_terms"}

        result = run(SyncEngine(store, connector, config).full_sync())

        assert not result.success
        assert any(e.startswith("resolve_media[resource]:") for e in result.errors)
        assert any(e.startswith("taxonomies[topic]:") for e in result.errors)
        assert get_record(store, 1) is not None
        assert get_last_sync_time(store) is None

    def test_side_data_failure_recorded(self, store, connector, config, remote, seo):
        connector.add("resource", remote(1))
        seo.fail_fetch = True

        result = run(SyncEngine(store, connector, config, side_data=[seo]).full_sync())

        assert [e.split(":")[0] for e in result.errors] == ["fetch_side_data[resource]"]
        assert get_record(store, 1) is not None

    def test_last_sync_time_is_run_start(self, store, connector, config, remote):
        connector.add("resource", remote(1))
        result = run(SyncEngine(store, connector, config).full_sync())
        assert result.success
        assert get_last_sync_time(store) == result.started_at
