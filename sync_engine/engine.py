"""Sync engine - pull remote content into the local store.

Run phases:
    TAXONOMIES -> per content type (FETCH -> RESOLVE_MEDIA -> PERSIST ->
    FETCH_SIDE_DATA -> PERSIST_SIDE_DATA -> DETECT_DELETIONS, full mode
    only) -> FIELD_AUDIT (full mode only) -> ORPHAN_DIRTY_CLEAR -> DONE

Every phase error is collected into SyncResult.errors as
"<phase>[<content type>]: <message>" and logged; no phase error stops
the run. last_sync_time only advances when a run finishes without
errors, and is set to the time the run started.

Usage:
    from sync_engine import SyncEngine

    async with create_connector(config) as connector:
        engine = SyncEngine(store, connector, config, side_data=[seo_provider])
        result = await engine.full_sync()
        print(result.resources_updated, result.errors)
"""

import uuid
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence, Tuple

from connectors.content_base import ContentConnector, RemoteRecord, SideDataProvider
from core.config import ContentTypeConfig, SyncConfig
from core.models import LocalRecord, SyncMode, SyncResult
from core.observability.logging import get_logger, with_correlation
from local_store.db import LocalStore
from local_store.plugin_data import save_plugin_data
from local_store.records import (
    FEATURED_IMAGE_URL_KEY,
    FEATURED_MEDIA_ID_KEY,
    delete_records,
    get_local_ids,
    record_side_data_snapshot,
    save_synced_record,
    utc_timestamp,
)
from local_store.sync_meta import get_last_sync_time, set_last_sync_time
from local_store.terms import save_terms
from sync_engine.concurrency import bounded_map
from sync_engine.field_audit import collect_meta_keys, run_field_audit, save_audit_results
from sync_engine.hooks import HookName, HookPipeline
from sync_engine.orphans import clear_orphaned_dirty_flags
from sync_engine.progress import ContentTypeProgress, ProgressCallback, SyncPhase, SyncProgress
from sync_engine.terms import resolve_taxonomy_terms

logger = get_logger(__name__)


@dataclass
class _RunState:
    """Mutable state shared by the phases of one run."""
    mode: SyncMode
    result: SyncResult
    progress: SyncProgress
    media_cache: Dict[int, Optional[str]] = field(default_factory=dict)
    fetched: List[RemoteRecord] = field(default_factory=list)

    def fail(self, phase: SyncPhase, error: Exception, scope: Optional[str] = None) -> None:
        where = f"{phase.value}[{scope}]" if scope else phase.value
        message = f"{where}: {error}"
        self.result.errors.append(message)
        logger.error(f"Phase failed: {message}", exc_info=True, extra_fields={"phase": phase.value})


def build_local_record(
    remote: RemoteRecord,
    content_type: ContentTypeConfig,
    config: SyncConfig,
    featured_image_url: Optional[str] = None,
) -> LocalRecord:
    """Map a fetched remote record onto the local record shape.

    Synthetic media keys are added to meta_box: the resolved image URL
    (overriding any remote value of the same name) and the featured media
    id when one is set.
    """
    meta_box: Dict[str, Any] = dict(remote.meta_box or {})
    if featured_image_url:
        meta_box[FEATURED_IMAGE_URL_KEY] = featured_image_url
    if remote.featured_media > 0:
        meta_box[FEATURED_MEDIA_ID_KEY] = remote.featured_media

    return LocalRecord(
        id=remote.id,
        post_type=content_type.slug,
        title=remote.plain_title,
        slug=remote.slug,
        status=remote.status,
        content=remote.content.rendered,
        excerpt=remote.excerpt.rendered,
        featured_media=remote.featured_media,
        date_gmt=remote.date_gmt,
        modified_gmt=remote.modified_gmt,
        meta_box=meta_box,
        taxonomies=resolve_taxonomy_terms(
            config.taxonomies, remote.meta_box, remote.top_level_fields()
        ),
    )


class SyncEngine:
    """Pulls taxonomies, records and side data from a remote site.

    The store, connector, side-data providers and hook pipeline are all
    injected; the engine owns none of them.
    """

    def __init__(
        self,
        store: LocalStore,
        connector: ContentConnector,
        config: SyncConfig,
        side_data: Optional[Sequence[SideDataProvider]] = None,
        hooks: Optional[HookPipeline] = None,
        progress: Optional[ProgressCallback] = None,
    ):
        self.store = store
        self.connector = connector
        self.config = config
        self.side_data = list(side_data or [])
        self.hooks = hooks or HookPipeline()
        self.progress_callback = progress

    # =========================================================================
    # Entry points
    # =========================================================================

    async def full_sync(self) -> SyncResult:
        """Fetch everything, delete what disappeared remotely, audit fields."""
        return await self.sync(SyncMode.FULL)

    async def incremental_sync(self) -> SyncResult:
        """Fetch records modified since the last successful sync."""
        return await self.sync(SyncMode.INCREMENTAL)

    async def sync(self, mode: SyncMode) -> SyncResult:
        run_id = f"sync-{uuid.uuid4().hex[:8]}"
        started_at = utc_timestamp()
        state = _RunState(
            mode=mode,
            result=SyncResult(mode=mode, started_at=started_at),
            progress=SyncProgress(self.progress_callback, len(self.config.content_types)),
        )

        with with_correlation(run_id=run_id, run_kind=f"{mode.value}_sync"):
            logger.info(f"Starting {mode.value} sync")

            modified_after = None
            if mode == SyncMode.INCREMENTAL:
                modified_after = get_last_sync_time(self.store)
                logger.info(f"Fetching records modified after {modified_after}")

            with with_correlation(phase=SyncPhase.TAXONOMIES.value):
                await self._sync_taxonomies(state)

            for index, content_type in enumerate(self.config.content_types):
                with with_correlation(content_type=content_type.slug):
                    await self._sync_content_type(
                        state,
                        content_type,
                        state.progress.content_type(index, content_type.slug),
                        modified_after,
                    )

            if mode == SyncMode.FULL:
                with with_correlation(phase=SyncPhase.FIELD_AUDIT.value):
                    self._run_field_audit(state)

            with with_correlation(phase=SyncPhase.ORPHAN_DIRTY_CLEAR.value):
                self._clear_orphans(state)

            result = state.result
            result.completed_at = utc_timestamp()
            if result.success:
                set_last_sync_time(self.store, started_at)
            else:
                logger.warning(f"Sync finished with {len(result.errors)} errors; last sync time not advanced")

            state.progress.finish(
                f"{result.resources_updated} updated, {result.resources_deleted} deleted"
            )
            logger.info(
                f"Finished {mode.value} sync",
                extra_fields={
                    "taxonomies_updated": result.taxonomies_updated,
                    "resources_updated": result.resources_updated,
                    "resources_deleted": result.resources_deleted,
                    "dirty_preserved": result.dirty_preserved,
                    "orphans_cleared": result.orphans_cleared,
                    "errors": len(result.errors),
                },
            )
            return self.hooks.apply(HookName.SYNC_COMPLETE, result, {"mode": mode.value})

    # =========================================================================
    # Taxonomies
    # =========================================================================

    async def _sync_taxonomies(self, state: _RunState) -> int:
        """Fetch and store every configured taxonomy's terms."""
        taxonomies = self.config.taxonomies
        state.progress.taxonomies(0, len(taxonomies))
        updated = 0
        for done, taxonomy in enumerate(taxonomies, start=1):
            try:
                remote_terms = await self.connector.fetch_terms(taxonomy)
                updated += save_terms(self.store, [t.to_term(taxonomy.slug) for t in remote_terms])
            except Exception as e:
                state.fail(SyncPhase.TAXONOMIES, e, taxonomy.slug)
            state.progress.taxonomies(done, len(taxonomies), taxonomy.slug)

        state.result.taxonomies_updated += updated
        logger.info(f"Synced {updated} terms across {len(taxonomies)} taxonomies")
        return updated

    # =========================================================================
    # Content types
    # =========================================================================

    async def _sync_content_type(
        self,
        state: _RunState,
        content_type: ContentTypeConfig,
        progress: ContentTypeProgress,
        modified_after: Optional[str],
    ) -> None:
        slug = content_type.slug
        records: Optional[List[RemoteRecord]] = None

        progress.step(SyncPhase.FETCH)
        with with_correlation(phase=SyncPhase.FETCH.value):
            try:
                records = await self.connector.fetch_resources(
                    content_type, modified_after=modified_after, on_page=progress.fetch
                )
                state.fetched.extend(records)
                logger.info(f"Fetched {len(records)} {slug} records")
            except Exception as e:
                state.fail(SyncPhase.FETCH, e, slug)

        if records is not None:
            with with_correlation(phase=SyncPhase.RESOLVE_MEDIA.value):
                try:
                    await self._resolve_media(state, records, progress)
                except Exception as e:
                    state.fail(SyncPhase.RESOLVE_MEDIA, e, slug)

            with with_correlation(phase=SyncPhase.PERSIST.value):
                persisted = self._persist_records(state, content_type, records, progress)

            side_data: List[Tuple[int, SideDataProvider, Optional[Dict[str, Any]]]] = []
            with with_correlation(phase=SyncPhase.FETCH_SIDE_DATA.value):
                try:
                    side_data = await self._fetch_side_data(persisted, progress)
                except Exception as e:
                    state.fail(SyncPhase.FETCH_SIDE_DATA, e, slug)

            with with_correlation(phase=SyncPhase.PERSIST_SIDE_DATA.value):
                try:
                    self._persist_side_data(side_data, progress)
                except Exception as e:
                    state.fail(SyncPhase.PERSIST_SIDE_DATA, e, slug)

        if state.mode == SyncMode.FULL:
            progress.step(SyncPhase.DETECT_DELETIONS)
            with with_correlation(phase=SyncPhase.DETECT_DELETIONS.value):
                try:
                    state.result.resources_deleted += await self._detect_deletions(content_type)
                except Exception as e:
                    state.fail(SyncPhase.DETECT_DELETIONS, e, slug)

        last_phase = SyncPhase.DETECT_DELETIONS if state.mode == SyncMode.FULL else SyncPhase.PERSIST_SIDE_DATA
        progress.complete(last_phase)

    async def _resolve_media(
        self,
        state: _RunState,
        records: List[RemoteRecord],
        progress: ContentTypeProgress,
    ) -> None:
        """Resolve featured media ids to URLs, once per id per run."""
        media_ids = sorted({
            r.featured_media for r in records
            if r.featured_media > 0 and r.featured_media not in state.media_cache
        })
        total = len(media_ids)
        done = 0
        progress.media(0, total)

        async def resolve(media_id: int) -> None:
            nonlocal done
            state.media_cache[media_id] = await self.connector.fetch_media_url(media_id)
            done += 1
            progress.media(done, total)

        await bounded_map(media_ids, resolve, self.config.concurrency)
        logger.debug(f"Resolved {total} media URLs")

    def _persist_records(
        self,
        state: _RunState,
        content_type: ContentTypeConfig,
        records: List[RemoteRecord],
        progress: ContentTypeProgress,
    ) -> List[int]:
        """Store each record; returns ids that were persisted."""
        progress.step(SyncPhase.PERSIST, f"{len(records)} records")
        synced_at = utc_timestamp()
        persisted: List[int] = []
        for remote in records:
            with with_correlation(record_id=remote.id):
                try:
                    remote = self.hooks.apply(
                        HookName.RECORD_BEFORE_SYNC,
                        remote,
                        {"content_type": content_type.slug, "mode": state.mode.value},
                    )
                    local = build_local_record(
                        remote,
                        content_type,
                        self.config,
                        state.media_cache.get(remote.featured_media),
                    )
                    if save_synced_record(self.store, local, synced_at):
                        state.result.dirty_preserved += 1
                        logger.debug("Preserved local edits on dirty record")
                    persisted.append(remote.id)
                    state.result.resources_updated += 1
                except Exception as e:
                    state.fail(SyncPhase.PERSIST, e, f"{content_type.slug}#{remote.id}")
        return persisted

    async def _fetch_side_data(
        self,
        record_ids: List[int],
        progress: ContentTypeProgress,
    ) -> List[Tuple[int, SideDataProvider, Optional[Dict[str, Any]]]]:
        if not self.side_data:
            progress.side_data(1, 1)
            return []

        jobs = [(record_id, provider) for record_id in record_ids for provider in self.side_data]
        total = len(jobs)
        done = 0
        progress.side_data(0, total)

        async def fetch(job: Tuple[int, SideDataProvider]):
            nonlocal done
            record_id, provider = job
            value = await provider.fetch(record_id)
            done += 1
            progress.side_data(done, total)
            return record_id, provider, value

        return await bounded_map(jobs, fetch, self.config.concurrency)

    def _persist_side_data(
        self,
        fetched: List[Tuple[int, SideDataProvider, Optional[Dict[str, Any]]]],
        progress: ContentTypeProgress,
    ) -> int:
        """Store fetched side data without touching local edits.

        Clean records get the remote value; dirty records only get their
        snapshot updated so the next orphan check sees the remote value.
        """
        progress.step(SyncPhase.PERSIST_SIDE_DATA)
        saved = 0
        for record_id, provider, value in fetched:
            if value is None:
                continue
            row = self.store.query_one("SELECT is_dirty FROM posts WHERE id = ?", (record_id,))
            if row is None:
                continue
            if not row["is_dirty"]:
                save_plugin_data(
                    self.store, record_id, provider.plugin_id, provider.data_key, value, mark_dirty=False
                )
            record_side_data_snapshot(self.store, record_id, provider.plugin_id, provider.data_key, value)
            saved += 1
        if fetched:
            logger.info(f"Saved side data for {saved} records")
        return saved

    async def _detect_deletions(self, content_type: ContentTypeConfig) -> int:
        """Delete local records of a content type that are gone remotely."""
        remote_ids = set(await self.connector.fetch_resource_ids(content_type))
        stale = get_local_ids(self.store, content_type.slug) - remote_ids
        if not stale:
            return 0
        deleted = delete_records(self.store, stale, self.config.delete_chunk_size)
        logger.info(f"Deleted {deleted} {content_type.slug} records no longer on the remote site")
        return deleted

    # =========================================================================
    # Run-level phases
    # =========================================================================

    def _run_field_audit(self, state: _RunState) -> None:
        if not state.fetched:
            return
        state.progress.report(SyncPhase.FIELD_AUDIT, state.progress.current)
        try:
            entries = run_field_audit(
                collect_meta_keys(state.fetched),
                self.config.taxonomy_meta_fields(),
                self.config.known_meta_fields,
            )
            audit_run_at = save_audit_results(self.store, entries)
            logger.info(f"Field audit completed at {audit_run_at}: {len(entries)} fields checked")
        except Exception as e:
            state.fail(SyncPhase.FIELD_AUDIT, e)

    def _clear_orphans(self, state: _RunState) -> None:
        state.progress.report(SyncPhase.ORPHAN_DIRTY_CLEAR, state.progress.current)
        try:
            state.result.orphans_cleared = clear_orphaned_dirty_flags(self.store)
        except Exception as e:
            state.fail(SyncPhase.ORPHAN_DIRTY_CLEAR, e)
