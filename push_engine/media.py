"""Featured media resolution for outbound payloads.

When a record carries only a cached image URL (for example after a local
upload) the remote media id is looked up by filename. WordPress renames
derived images with size suffixes ("photo-1024x768.jpg") and large
originals with "-scaled", so matching is done on the stripped base name
as well as on the exact filename.
"""

import re
from typing import Any, List, Mapping, Optional
from urllib.parse import unquote, urlparse

from connectors.content_base import ContentConnector, RemoteMedia
from core.observability.logging import get_logger
from local_store.records import FEATURED_IMAGE_URL_KEY, FEATURED_MEDIA_ID_KEY
from sync_engine.terms import parse_term_value

logger = get_logger(__name__)

_SIZE_SUFFIX = re.compile(r"-\d+x\d+$")
_SCALED_SUFFIX = re.compile(r"-scaled$")


def media_filename(url: str) -> str:
    """Last path segment of a media URL, percent-decoded."""
    path = urlparse(url).path or url
    return unquote(path.rstrip("/").rsplit("/", 1)[-1])


def media_base_name(filename: str) -> str:
    """Filename without extension and generated size/scaled suffixes.

    Usage:
        media_base_name("hero-image-1024x768.jpg")   # "hero-image"
        media_base_name("hero-image-scaled.jpg")     # "hero-image"
    """
    stem = filename.rsplit(".", 1)[0] if "." in filename else filename
    while True:
        stripped = _SCALED_SUFFIX.sub("", _SIZE_SUFFIX.sub("", stem))
        if stripped == stem:
            return stem
        stem = stripped


def confirmed_media_id(meta_box: Mapping[str, Any]) -> Optional[int]:
    """featured_media_id from meta, if it is a positive id."""
    ids = parse_term_value(meta_box.get(FEATURED_MEDIA_ID_KEY)).ids
    if ids and ids[0] > 0:
        return ids[0]
    return None


def pick_media(url: str, candidates: List[RemoteMedia]) -> Optional[RemoteMedia]:
    """Choose the search result matching a cached URL.

    Preference: exact filename, then stripped base name, then the only
    result when the search returned exactly one.
    """
    filename = media_filename(url)
    base = media_base_name(filename)

    for media in candidates:
        if media.url and media_filename(media.url) == filename:
            return media
    for media in candidates:
        if media.url and media_base_name(media_filename(media.url)) == base:
            return media
    if len(candidates) == 1:
        return candidates[0]
    return None


async def resolve_featured_media(
    connector: ContentConnector,
    meta_box: Mapping[str, Any],
    stored_media_id: int,
) -> int:
    """Media id to send as featured_media.

    Args:
        connector: Remote connector used for the media search
        meta_box: The record's metadata
        stored_media_id: The record's featured_media column

    Returns:
        The confirmed id, a resolved id, or stored_media_id
    """
    media_id = confirmed_media_id(meta_box)
    if media_id is not None:
        return media_id

    url = meta_box.get(FEATURED_IMAGE_URL_KEY)
    if not url or not isinstance(url, str):
        return stored_media_id

    base = media_base_name(media_filename(url))
    if not base:
        return stored_media_id

    candidates = await connector.search_media(base)
    match = pick_media(url, candidates)
    if match is None:
        logger.warning(
            f"Could not resolve featured image {url!r} ({len(candidates)} search results), "
            f"keeping media id {stored_media_id}"
        )
        return stored_media_id

    logger.info(f"Resolved featured image {url!r} to media {match.id}")
    return match.id
