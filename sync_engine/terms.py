"""Term resolver - normalize taxonomy values into term id lists.

Remote records carry term assignments in two places:
- a structured per-taxonomy field inside meta_box (custom-fields plugin)
- the platform's native top-level array named after the taxonomy

and the structured field comes in several shapes depending on how the
field is configured. parse_term_value() recognizes every accepted shape
in one place and returns a typed result.

Usage:
    from sync_engine.terms import parse_term_value, resolve_taxonomy_terms

    parse_term_value([{"term_id": 5}, {"id": "7"}, 9]).ids   # [5, 7, 9]
"""

import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional, Sequence

from core.config import TaxonomyConfig


_NUMERIC_STRING = re.compile(r"^\s*\d+\s*$")


class TermShape(str, Enum):
    """Every accepted shape of a raw taxonomy value."""
    OBJECT_LIST = "object_list"      # [{"term_id": 5}, {"id": 7}]
    ID_LIST = "id_list"              # [5, "7"]
    MIXED_LIST = "mixed_list"        # [{"term_id": 5}, 9]
    SINGLE_ID = "single_id"          # 5 or "5"
    SINGLE_OBJECT = "single_object"  # {"term_id": 5}
    EMPTY = "empty"                  # [] / None / ""
    UNRECOGNIZED = "unrecognized"    # anything else


@dataclass
class ParsedTerms:
    shape: TermShape
    ids: List[int] = field(default_factory=list)


def _as_term_id(value: Any) -> Optional[int]:
    """Parse a scalar term id; booleans and non-integral floats are rejected."""
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return int(value) if value.is_integer() else None
    if isinstance(value, str) and _NUMERIC_STRING.match(value):
        return int(value)
    return None


def _object_term_id(value: Mapping[str, Any]) -> Optional[int]:
    if "term_id" in value:
        term_id = _as_term_id(value["term_id"])
        if term_id is not None:
            return term_id
    if "id" in value:
        return _as_term_id(value["id"])
    return None


def parse_term_value(value: Any) -> ParsedTerms:
    """Normalize a raw taxonomy value into term ids.

    Unresolvable list entries are dropped silently.
    """
    if value is None or value == "" or (isinstance(value, (list, tuple)) and not value):
        return ParsedTerms(TermShape.EMPTY)

    if isinstance(value, Mapping):
        term_id = _object_term_id(value)
        if term_id is None:
            return ParsedTerms(TermShape.UNRECOGNIZED)
        return ParsedTerms(TermShape.SINGLE_OBJECT, [term_id])

    if isinstance(value, (list, tuple)):
        ids: List[int] = []
        saw_object = saw_scalar = False
        for item in value:
            if isinstance(item, Mapping):
                saw_object = True
                term_id = _object_term_id(item)
            else:
                saw_scalar = True
                term_id = _as_term_id(item)
            if term_id is not None:
                ids.append(term_id)
        if saw_object and saw_scalar:
            shape = TermShape.MIXED_LIST
        elif saw_object:
            shape = TermShape.OBJECT_LIST
        else:
            shape = TermShape.ID_LIST
        return ParsedTerms(shape, ids)

    term_id = _as_term_id(value)
    if term_id is not None:
        return ParsedTerms(TermShape.SINGLE_ID, [term_id])
    return ParsedTerms(TermShape.UNRECOGNIZED)


def resolve_terms(
    taxonomy: TaxonomyConfig,
    meta_box: Optional[Mapping[str, Any]],
    top_level: Mapping[str, Any],
) -> List[int]:
    """Term ids for one taxonomy of a record.

    The structured meta field wins whenever it is present, even when it
    is empty: an explicit empty value means "no terms". The native
    top-level array is used only when the structured field is absent.
    """
    if taxonomy.meta_field and meta_box is not None and taxonomy.meta_field in meta_box:
        return parse_term_value(meta_box[taxonomy.meta_field]).ids
    if taxonomy.rest_field in top_level:
        return parse_term_value(top_level[taxonomy.rest_field]).ids
    return []


def resolve_taxonomy_terms(
    taxonomies: Sequence[TaxonomyConfig],
    meta_box: Optional[Mapping[str, Any]],
    top_level: Mapping[str, Any],
) -> Dict[str, List[int]]:
    """Resolve every configured taxonomy, dropping duplicate ids."""
    resolved: Dict[str, List[int]] = {}
    for taxonomy in taxonomies:
        ids = list(dict.fromkeys(resolve_terms(taxonomy, meta_box, top_level)))
        if ids:
            resolved[taxonomy.slug] = ids
    return resolved
