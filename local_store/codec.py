"""JSON encoding of stored field values.

Values are stored as JSON text. Reading never raises: a value that is not
valid JSON comes back as the raw string so one corrupt field cannot block
reading the rest of a record.
"""

import json
from typing import Any, Optional

from core.observability.logging import get_logger

logger = get_logger(__name__)


def encode_value(value: Any) -> str:
    return json.dumps(value, default=str)


def decode_value(raw: Optional[str]) -> Any:
    """Decode a stored JSON value, falling back to the raw string."""
    if raw is None:
        return None
    try:
        return json.loads(raw)
    except (json.JSONDecodeError, TypeError):
        logger.debug(f"Stored value is not valid JSON, returning raw string: {str(raw)[:60]!r}")
        return raw
