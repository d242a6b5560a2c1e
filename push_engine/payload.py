"""Outbound update payload construction.

The payload mirrors what the remote update endpoint accepts: core
fields, a meta_box map for the custom-fields plugin and top-level term
arrays per taxonomy. Taxonomies are only sent when they were edited
locally, so a push never clears assignments the local copy did not load.
"""

import re
from typing import Any, Dict, Optional

from core.config import SyncConfig
from core.errors import ValidationError
from core.models import LocalRecord
from local_store.records import SYNTHETIC_META_KEYS
from sync_engine.hooks import HookName, HookPipeline

_NUMERIC_STRING = re.compile(r"^\d+$")


def coerce_numeric_strings(value: Any) -> Any:
    """Convert numeric strings nested in list/dict values to int.

    Group and repeater fields reference terms and attachments by id,
    which the remote API only accepts as numbers.
    """
    if isinstance(value, dict):
        return {k: _coerce_nested(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_coerce_nested(v) for v in value]
    return value


def _coerce_nested(value: Any) -> Any:
    if isinstance(value, str) and _NUMERIC_STRING.match(value):
        return int(value)
    return coerce_numeric_strings(value)


def build_update_payload(
    record: LocalRecord,
    config: SyncConfig,
    featured_media: Optional[int] = None,
    hooks: Optional[HookPipeline] = None,
) -> Dict[str, Any]:
    """Build the update payload for a local record.

    Args:
        record: The local record
        config: Site configuration (taxonomies and their meta fields)
        featured_media: Resolved featured media id, defaults to the record's
        hooks: Pipeline whose RECORD_BEFORE_PUSH transforms are applied

    Returns:
        Payload dict for ContentConnector.update_resource()

    Raises:
        ValidationError: If a required taxonomy has no terms
    """
    for taxonomy in config.taxonomies:
        if taxonomy.required and not record.taxonomies.get(taxonomy.slug):
            raise ValidationError(
                f"Record {record.id} has no terms for required taxonomy {taxonomy.slug}"
            )

    payload: Dict[str, Any] = {
        "title": record.title,
        "slug": record.slug,
        "status": record.status,
        "featured_media": record.featured_media if featured_media is None else featured_media,
    }

    taxonomy_fields = set(config.taxonomy_meta_fields().values())
    meta_box: Dict[str, Any] = {}
    for key, value in record.meta_box.items():
        if key in SYNTHETIC_META_KEYS or key.startswith("_") or key in taxonomy_fields:
            continue
        meta_box[key] = coerce_numeric_strings(value)

    for taxonomy in config.taxonomies:
        if taxonomy.slug not in record.edited_taxonomies:
            continue
        term_ids = list(record.taxonomies.get(taxonomy.slug, []))
        payload[taxonomy.rest_field] = term_ids
        if taxonomy.meta_field:
            meta_box[taxonomy.meta_field] = term_ids

    if meta_box:
        payload["meta_box"] = meta_box

    if hooks is not None:
        payload = hooks.apply(
            HookName.RECORD_BEFORE_PUSH,
            payload,
            {"record_id": record.id, "content_type": record.post_type},
        )
    return payload
