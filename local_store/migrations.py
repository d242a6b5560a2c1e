"""Schema versioning and the ordered migration chain.

The schema version lives in sync_meta under 'schema_version'. On open the
store either creates the current schema from scratch or applies every
pending step of MIGRATIONS, in order, inside a single transaction. Each
step checks for existing tables/columns before acting so re-running it is
harmless. Any failure rolls back every pending step and raises
MigrationError.

Usage:
    from local_store.migrations import ensure_schema

    version = ensure_schema(conn)
"""

import json
import sqlite3
from dataclasses import dataclass
from typing import Callable, List

from core.errors import MigrationError
from core.models import SeoData
from core.observability.logging import get_logger
from local_store import schema

logger = get_logger(__name__)


# =============================================================================
# Introspection helpers
# =============================================================================

def table_exists(conn: sqlite3.Connection, name: str) -> bool:
    row = conn.execute(
        "SELECT name FROM sqlite_master WHERE type = 'table' AND name = ?",
        (name,),
    ).fetchone()
    return row is not None


def view_exists(conn: sqlite3.Connection, name: str) -> bool:
    row = conn.execute(
        "SELECT name FROM sqlite_master WHERE type = 'view' AND name = ?",
        (name,),
    ).fetchone()
    return row is not None


def column_exists(conn: sqlite3.Connection, table: str, column: str) -> bool:
    rows = conn.execute(f"PRAGMA table_info({table})").fetchall()
    return any(row[1] == column for row in rows)


def get_schema_version(conn: sqlite3.Connection) -> int:
    """Stored schema version; databases without sync_meta are v1."""
    if not table_exists(conn, "sync_meta"):
        return 1
    row = conn.execute(
        "SELECT value FROM sync_meta WHERE key = 'schema_version'"
    ).fetchone()
    return int(row[0]) if row else 1


def set_schema_version(conn: sqlite3.Connection, version: int) -> None:
    conn.execute(
        "INSERT OR REPLACE INTO sync_meta (key, value) VALUES ('schema_version', ?)",
        (str(version),),
    )


# =============================================================================
# Steps
# =============================================================================

@dataclass(frozen=True)
class Migration:
    """One (from_version -> to_version) step."""
    from_version: int
    to_version: int
    description: str
    apply: Callable[[sqlite3.Connection], None]


def _rebuild_resources_as_posts(conn: sqlite3.Connection) -> None:
    if table_exists(conn, "posts") or not table_exists(conn, "resources"):
        return
    conn.execute("""
        CREATE TABLE posts (
            id INTEGER PRIMARY KEY,
            post_type TEXT NOT NULL DEFAULT 'resource',
            title TEXT,
            slug TEXT,
            status TEXT DEFAULT 'publish',
            content TEXT,
            excerpt TEXT,
            featured_media INTEGER DEFAULT 0,
            date_gmt TEXT,
            modified_gmt TEXT,
            synced_at TEXT,
            is_dirty INTEGER DEFAULT 0
        )
    """)
    conn.execute("""
        INSERT INTO posts (id, post_type, title, slug, status, content, excerpt,
                           featured_media, date_gmt, modified_gmt, synced_at, is_dirty)
        SELECT id, 'resource', title, slug, status, content, excerpt,
               featured_media, date_gmt, modified_gmt, synced_at, is_dirty
        FROM resources
    """)
    conn.execute("DROP TABLE resources")
    conn.execute("""
        CREATE VIEW IF NOT EXISTS resources AS
        SELECT id, title, slug, status, content, excerpt, featured_media,
               date_gmt, modified_gmt, synced_at, is_dirty
        FROM posts WHERE post_type = 'resource'
    """)


def _rebuild_child_table(
    conn: sqlite3.Connection,
    old_name: str,
    new_ddl: str,
    new_name: str,
    columns: str,
) -> None:
    """Move rows of old_name (keyed by resource_id) into new_name (post_id)."""
    if table_exists(conn, new_name) or not table_exists(conn, old_name):
        return
    conn.execute(new_ddl)
    conn.execute(
        f"INSERT INTO {new_name} (post_id, {columns}) "
        f"SELECT resource_id, {columns} FROM {old_name}"
    )
    conn.execute(f"DROP TABLE {old_name}")
    conn.execute(
        f"CREATE VIEW IF NOT EXISTS {old_name} AS "
        f"SELECT post_id AS resource_id, {columns} FROM {new_name}"
    )


def _seo_row_to_json(row: sqlite3.Row) -> str:
    seo = SeoData(
        title=row["seo_title"] or "",
        description=row["seo_description"] or "",
        canonical=row["seo_canonical"] or "",
        target_keywords=row["seo_target_keywords"] or "",
        og={
            "title": row["og_title"] or "",
            "description": row["og_description"] or "",
            "image": row["og_image"] or "",
        },
        twitter={
            "title": row["twitter_title"] or "",
            "description": row["twitter_description"] or "",
            "image": row["twitter_image"] or "",
        },
        robots={
            "noindex": row["robots_noindex"] == 1,
            "nofollow": row["robots_nofollow"] == 1,
            "nosnippet": row["robots_nosnippet"] == 1,
            "noimageindex": row["robots_noimageindex"] == 1,
        },
    )
    return json.dumps(seo.model_dump(mode="json"))


def _migrate_resource_seo(conn: sqlite3.Connection) -> None:
    # resource_seo is left in place for older readers
    if not table_exists(conn, "resource_seo"):
        return
    previous_factory = conn.row_factory
    conn.row_factory = sqlite3.Row
    try:
        rows = conn.execute("SELECT * FROM resource_seo").fetchall()
    finally:
        conn.row_factory = previous_factory
    for row in rows:
        conn.execute(
            """
            INSERT OR REPLACE INTO plugin_data (post_id, plugin_id, data_key, data_value)
            VALUES (?, 'seopress', 'seo', ?)
            """,
            (row["resource_id"], _seo_row_to_json(row)),
        )
    logger.info(f"Moved {len(rows)} resource_seo rows into plugin_data")


def _rebuild_change_log(conn: sqlite3.Connection) -> None:
    if not table_exists(conn, "change_log") or not column_exists(conn, "change_log", "resource_id"):
        return
    conn.execute("""
        CREATE TABLE change_log_new (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            post_id INTEGER NOT NULL,
            field TEXT NOT NULL,
            old_value TEXT,
            new_value TEXT,
            changed_at TEXT DEFAULT (datetime('now'))
        )
    """)
    conn.execute("""
        INSERT INTO change_log_new (id, post_id, field, old_value, new_value, changed_at)
        SELECT id, resource_id, field, old_value, new_value, changed_at FROM change_log
    """)
    conn.execute("DROP TABLE change_log")
    conn.execute("ALTER TABLE change_log_new RENAME TO change_log")


def migrate_v1_to_v2(conn: sqlite3.Connection) -> None:
    """resources/resource_meta/resource_terms -> posts/post_meta/post_terms.

    Adds post_type, creates plugin_data and moves resource_seo rows into it
    under plugin 'seopress'. The old names remain readable as views.
    """
    conn.execute(schema.SYNC_META_TABLE)
    conn.execute(schema.TERMS_TABLE)
    _rebuild_resources_as_posts(conn)
    _rebuild_child_table(
        conn, "resource_meta", schema.POST_META_TABLE, "post_meta", "field_id, value"
    )
    _rebuild_child_table(
        conn, "resource_terms", schema.POST_TERMS_TABLE, "post_terms", "term_id, taxonomy"
    )
    conn.execute(schema.POST_META_TABLE)
    conn.execute(schema.POST_TERMS_TABLE)
    conn.execute(schema.PLUGIN_DATA_TABLE)
    _migrate_resource_seo(conn)
    _rebuild_change_log(conn)
    conn.execute(schema.CHANGE_LOG_TABLE)
    for statement in schema.INDEXES:
        conn.execute(statement)


def migrate_v2_to_v3(conn: sqlite3.Connection) -> None:
    """Add posts.synced_snapshot."""
    if not column_exists(conn, "posts", "synced_snapshot"):
        conn.execute("ALTER TABLE posts ADD COLUMN synced_snapshot TEXT")


def migrate_v3_to_v4(conn: sqlite3.Connection) -> None:
    """Add posts.edited_taxonomies and the field_audit table."""
    if not column_exists(conn, "posts", "edited_taxonomies"):
        conn.execute("ALTER TABLE posts ADD COLUMN edited_taxonomies TEXT")
    conn.execute(schema.FIELD_AUDIT_TABLE)


MIGRATIONS: List[Migration] = [
    Migration(1, 2, "rename resources to posts, add plugin_data", migrate_v1_to_v2),
    Migration(2, 3, "add synced_snapshot", migrate_v2_to_v3),
    Migration(3, 4, "add edited_taxonomies and field_audit", migrate_v3_to_v4),
]


# =============================================================================
# Runner
# =============================================================================

def is_fresh_database(conn: sqlite3.Connection) -> bool:
    return not table_exists(conn, "posts") and not table_exists(conn, "resources")


def run_migrations(
    conn: sqlite3.Connection,
    current_version: int,
    migrations: List[Migration] = MIGRATIONS,
) -> int:
    """Apply every step from current_version upwards in one transaction.

    Args:
        conn: Connection in autocommit mode (isolation_level=None)
        current_version: Version currently stored in the database
        migrations: Ordered chain of steps

    Returns:
        The version the database is at afterwards

    Raises:
        MigrationError: If any step fails; nothing is committed
    """
    pending = [m for m in migrations if m.from_version >= current_version]
    if not pending:
        return current_version

    target = pending[-1].to_version
    logger.info(f"Migrating schema from v{current_version} to v{target}")

    conn.execute("BEGIN")
    step = pending[0]
    try:
        for step in pending:
            logger.info(f"Running migration v{step.from_version} -> v{step.to_version}: {step.description}")
            step.apply(conn)
            set_schema_version(conn, step.to_version)
        conn.execute("COMMIT")
    except Exception as e:
        conn.execute("ROLLBACK")
        logger.error(f"Migration v{step.from_version} -> v{step.to_version} failed, rolled back: {e}")
        raise MigrationError(step.from_version, step.to_version, e) from e

    logger.info(f"Migration complete. Schema is now at v{target}")
    return target


def ensure_schema(conn: sqlite3.Connection) -> int:
    """Create or upgrade the schema to schema.SCHEMA_VERSION.

    Returns:
        The schema version after the call
    """
    if is_fresh_database(conn):
        conn.execute("BEGIN")
        try:
            schema.create_schema(conn)
            set_schema_version(conn, schema.SCHEMA_VERSION)
            conn.execute("COMMIT")
        except Exception as e:
            conn.execute("ROLLBACK")
            raise MigrationError(0, schema.SCHEMA_VERSION, e) from e
        logger.info(f"Created fresh schema at v{schema.SCHEMA_VERSION}")
        return schema.SCHEMA_VERSION

    current = get_schema_version(conn)
    if current >= schema.SCHEMA_VERSION:
        return current
    return run_migrations(conn, current)
