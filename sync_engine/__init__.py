"""Sync Engine - pull remote content into the local store.

Orchestrates taxonomy refresh, per-content-type record fetch, media and
side-data enrichment, dirty-preserving persistence, deletion detection,
field audit and orphaned dirty-flag cleanup.
"""

from sync_engine.engine import SyncEngine, build_local_record
from sync_engine.hooks import HookName, HookPipeline
from sync_engine.progress import ProgressCallback, SyncPhase
from sync_engine.terms import ParsedTerms, TermShape, parse_term_value, resolve_taxonomy_terms

__all__ = [
    "SyncEngine",
    "build_local_record",
    "HookName",
    "HookPipeline",
    "ProgressCallback",
    "SyncPhase",
    "ParsedTerms",
    "TermShape",
    "parse_term_value",
    "resolve_taxonomy_terms",
]
