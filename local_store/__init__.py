"""Local store - SQLite cache of remote content.

Holds terms, content records, per-field metadata, term assignments,
plugin-scoped side data, the change log, the field audit and sync
metadata, behind a versioned schema with a migration chain.
"""

from local_store.db import LocalStore
from local_store.schema import SCHEMA_VERSION

__all__ = [
    "LocalStore",
    "SCHEMA_VERSION",
]
