"""Push engine - send local edits back to the remote site.

Records are pushed one at a time through the regular update endpoint,
never through the batch endpoint, with a fixed delay between requests.
A failed push leaves the record dirty and returns the error text.

Usage:
    from push_engine import PushEngine

    engine = PushEngine(store, connector, config, side_data=[seo_provider])
    result = await engine.push_all_dirty()
    print(result.pushed, result.failed, len(result.conflicts))
"""

import asyncio
import uuid
from typing import Any, Dict, List, Optional, Sequence

from connectors.content_base import ContentConnector, SideDataProvider
from core.config import SyncConfig
from core.errors import ConflictError
from core.models import ConflictInfo, LocalRecord, PushAllResult, PushResult
from core.observability.logging import get_logger, with_correlation
from local_store.db import LocalStore
from local_store.plugin_data import get_plugin_data
from local_store.records import get_dirty_records, get_record, mark_record_clean
from push_engine.media import resolve_featured_media
from push_engine.payload import build_update_payload
from sync_engine.hooks import HookName, HookPipeline

logger = get_logger(__name__)


class PushEngine:
    """Builds payloads from dirty records, gates on conflicts, pushes."""

    def __init__(
        self,
        store: LocalStore,
        connector: ContentConnector,
        config: SyncConfig,
        side_data: Optional[Sequence[SideDataProvider]] = None,
        hooks: Optional[HookPipeline] = None,
    ):
        self.store = store
        self.connector = connector
        self.config = config
        self.side_data = list(side_data or [])
        self.hooks = hooks or HookPipeline()

    # =========================================================================
    # Payload
    # =========================================================================

    async def build_update_payload(self, record_id: int) -> Dict[str, Any]:
        """Payload for one record, with featured media resolved.

        Raises:
            KeyError: If the record does not exist locally
            ValidationError: If a required taxonomy has no terms
        """
        record = get_record(self.store, record_id)
        if record is None:
            raise KeyError(f"Record {record_id} not found")
        return await self._build_payload(record)

    async def _build_payload(self, record: LocalRecord) -> Dict[str, Any]:
        featured_media = await resolve_featured_media(
            self.connector, record.meta_box, record.featured_media
        )
        return build_update_payload(record, self.config, featured_media, self.hooks)

    # =========================================================================
    # Conflicts
    # =========================================================================

    async def check_for_conflicts(self, record_ids: Sequence[int]) -> List[ConflictInfo]:
        """Compare each record's last known remote modified time with the remote.

        Records missing locally or failing to fetch are logged and skipped.
        """
        conflicts: List[ConflictInfo] = []
        for record_id in record_ids:
            record = get_record(self.store, record_id)
            if record is None:
                logger.warning(f"Conflict check skipped: record {record_id} not found locally")
                continue
            try:
                content_type = self.config.get_content_type(record.post_type)
                remote = await self.connector.fetch_resource(content_type, record_id)
            except Exception as e:
                logger.error(f"Conflict check failed for record {record_id}: {e}", exc_info=True)
                continue

            if remote.modified_gmt != record.modified_gmt:
                conflicts.append(ConflictInfo(
                    resource_id=record_id,
                    title=record.title,
                    local_modified=record.modified_gmt,
                    server_modified=remote.modified_gmt,
                ))
        return conflicts

    # =========================================================================
    # Push
    # =========================================================================

    async def push_resource(self, record_id: int, skip_conflict_check: bool = False) -> PushResult:
        """Push one record and reconcile local state.

        Never raises: every failure becomes a failed PushResult and the
        record stays dirty.
        """
        with with_correlation(record_id=record_id):
            try:
                if not skip_conflict_check:
                    conflicts = await self.check_for_conflicts([record_id])
                    if conflicts:
                        raise ConflictError(conflicts)

                record = get_record(self.store, record_id)
                if record is None:
                    raise KeyError(f"Record {record_id} not found")

                content_type = self.config.get_content_type(record.post_type)
                payload = await self._build_payload(record)
                updated = await self.connector.update_resource(content_type, record_id, payload)

                side_data_errors, pushed_side_data = await self._push_side_data(record_id)

                snapshot = record.to_snapshot()
                previous = record.synced_snapshot
                plugin_data = dict(previous.plugin_data) if previous and previous.plugin_data else {}
                for plugin_id, values in pushed_side_data.items():
                    plugin_data.setdefault(plugin_id, {}).update(values)
                snapshot.plugin_data = plugin_data or None

                mark_record_clean(self.store, record_id, updated.modified_gmt, snapshot)
                result = PushResult(
                    resource_id=record_id,
                    success=True,
                    modified_gmt=updated.modified_gmt,
                    side_data_errors=side_data_errors,
                )
                logger.info(f"Pushed record {record_id}")
            except Exception as e:
                logger.error(f"Push failed for record {record_id}: {e}", exc_info=True)
                result = PushResult(resource_id=record_id, success=False, error=str(e))

            return self.hooks.apply(HookName.RECORD_AFTER_PUSH, result, {"record_id": record_id})

    async def _push_side_data(self, record_id: int):
        """Best-effort side-data push.

        Returns:
            (error messages, plugin_id -> data_key -> value pushed cleanly)
        """
        errors: List[str] = []
        pushed: Dict[str, Dict[str, Any]] = {}
        for provider in self.side_data:
            value = get_plugin_data(self.store, record_id, provider.plugin_id, provider.data_key)
            if value is None:
                continue
            try:
                failed_sections = await provider.push(record_id, value)
            except Exception as e:
                logger.warning(f"{provider.plugin_id} push failed for record {record_id}: {e}", exc_info=True)
                errors.append(f"{provider.plugin_id}: {e}")
                continue
            if failed_sections:
                logger.warning(
                    f"{provider.plugin_id} push partially failed for record {record_id}",
                    extra_fields={"failed_sections": failed_sections},
                )
                errors.extend(f"{provider.plugin_id}: {message}" for message in failed_sections)
                continue
            pushed.setdefault(provider.plugin_id, {})[provider.data_key] = value
        return errors, pushed

    async def push_all_dirty(
        self,
        skip_conflict_check: bool = False,
        content_type: Optional[str] = None,
    ) -> PushAllResult:
        """Push every dirty record, optionally of one content type.

        Conflicts are reported but do not block the pushes.
        """
        run_id = f"push-{uuid.uuid4().hex[:8]}"
        with with_correlation(run_id=run_id, run_kind="push", content_type=content_type):
            record_ids = [r.id for r in get_dirty_records(self.store, post_type=content_type)]
            if not record_ids:
                logger.info("No dirty records to push")
                return PushAllResult()

            conflicts: List[ConflictInfo] = []
            if not skip_conflict_check:
                conflicts = await self.check_for_conflicts(record_ids)
                if conflicts:
                    logger.warning(f"{len(conflicts)} conflict(s) detected, pushing anyway")
                    for c in conflicts:
                        logger.warning(
                            f"Record {c.resource_id} {c.title!r}: "
                            f"local={c.local_modified}, server={c.server_modified}"
                        )

            results: List[PushResult] = []
            for index, record_id in enumerate(record_ids):
                if index > 0 and self.config.push_delay_seconds > 0:
                    await asyncio.sleep(self.config.push_delay_seconds)
                results.append(await self.push_resource(record_id, skip_conflict_check=True))

            outcome = PushAllResult(results=results, conflicts=conflicts)
            logger.info(
                f"Pushed {outcome.pushed} of {len(results)} dirty records",
                extra_fields={"failed": outcome.failed, "conflicts": len(conflicts)},
            )
            return outcome
