"""Push Engine - send locally edited records back to the remote site."""

from push_engine.engine import PushEngine
from push_engine.media import media_base_name, resolve_featured_media
from push_engine.payload import build_update_payload, coerce_numeric_strings

__all__ = [
    "PushEngine",
    "build_update_payload",
    "coerce_numeric_strings",
    "media_base_name",
    "resolve_featured_media",
]
