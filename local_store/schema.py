"""Fresh schema for the local content store.

A database created from scratch gets these tables directly at
SCHEMA_VERSION. Older databases are brought up to the same shape by the
migration chain in local_store.migrations.
"""

import sqlite3


SCHEMA_VERSION = 4


SYNC_META_TABLE = """
    CREATE TABLE IF NOT EXISTS sync_meta (
        key TEXT PRIMARY KEY,
        value TEXT
    )
"""

TERMS_TABLE = """
    CREATE TABLE IF NOT EXISTS terms (
        id INTEGER NOT NULL,
        taxonomy TEXT NOT NULL,
        name TEXT NOT NULL,
        slug TEXT NOT NULL,
        parent_id INTEGER DEFAULT 0,
        UNIQUE(id, taxonomy)
    )
"""

POSTS_TABLE = """
    CREATE TABLE IF NOT EXISTS posts (
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
        is_dirty INTEGER DEFAULT 0,
        synced_snapshot TEXT,
        edited_taxonomies TEXT
    )
"""

POST_META_TABLE = """
    CREATE TABLE IF NOT EXISTS post_meta (
        post_id INTEGER NOT NULL,
        field_id TEXT NOT NULL,
        value TEXT,
        PRIMARY KEY (post_id, field_id),
        FOREIGN KEY (post_id) REFERENCES posts(id) ON DELETE CASCADE
    )
"""

POST_TERMS_TABLE = """
    CREATE TABLE IF NOT EXISTS post_terms (
        post_id INTEGER NOT NULL,
        term_id INTEGER NOT NULL,
        taxonomy TEXT NOT NULL,
        PRIMARY KEY (post_id, term_id),
        FOREIGN KEY (post_id) REFERENCES posts(id) ON DELETE CASCADE
    )
"""

PLUGIN_DATA_TABLE = """
    CREATE TABLE IF NOT EXISTS plugin_data (
        post_id INTEGER NOT NULL,
        plugin_id TEXT NOT NULL,
        data_key TEXT NOT NULL,
        data_value TEXT,
        PRIMARY KEY (post_id, plugin_id, data_key),
        FOREIGN KEY (post_id) REFERENCES posts(id) ON DELETE CASCADE
    )
"""

CHANGE_LOG_TABLE = """
    CREATE TABLE IF NOT EXISTS change_log (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        post_id INTEGER NOT NULL,
        field TEXT NOT NULL,
        old_value TEXT,
        new_value TEXT,
        changed_at TEXT DEFAULT (datetime('now'))
    )
"""

FIELD_AUDIT_TABLE = """
    CREATE TABLE IF NOT EXISTS field_audit (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        audit_run_at TEXT NOT NULL,
        field_name TEXT NOT NULL,
        source TEXT NOT NULL,
        category TEXT NOT NULL,
        status TEXT NOT NULL,
        detail TEXT,
        affected_resources TEXT,
        UNIQUE(audit_run_at, field_name)
    )
"""

INDEXES = [
    "CREATE INDEX IF NOT EXISTS idx_terms_taxonomy ON terms(taxonomy)",
    "CREATE INDEX IF NOT EXISTS idx_posts_post_type ON posts(post_type)",
    "CREATE INDEX IF NOT EXISTS idx_posts_status ON posts(status)",
    "CREATE INDEX IF NOT EXISTS idx_posts_dirty ON posts(is_dirty)",
    "CREATE INDEX IF NOT EXISTS idx_post_meta_post ON post_meta(post_id)",
    "CREATE INDEX IF NOT EXISTS idx_post_terms_post ON post_terms(post_id)",
    "CREATE INDEX IF NOT EXISTS idx_post_terms_taxonomy ON post_terms(taxonomy)",
    "CREATE INDEX IF NOT EXISTS idx_plugin_data_plugin ON plugin_data(plugin_id)",
    "CREATE INDEX IF NOT EXISTS idx_plugin_data_post ON plugin_data(post_id)",
]

TABLES = [
    SYNC_META_TABLE,
    TERMS_TABLE,
    POSTS_TABLE,
    POST_META_TABLE,
    POST_TERMS_TABLE,
    PLUGIN_DATA_TABLE,
    CHANGE_LOG_TABLE,
    FIELD_AUDIT_TABLE,
]


def create_schema(conn: sqlite3.Connection) -> None:
    """Create every table and index of the current schema.

    Statements are executed one by one (never executescript) so the
    caller's transaction stays open.
    """
    for statement in TABLES:
        conn.execute(statement)
    for statement in INDEXES:
        conn.execute(statement)
