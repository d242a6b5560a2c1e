"""Configuration for the content sync engine.

The site profile (content types, taxonomies and their structured meta
fields) is injected as plain data; credentials and paths come from the
environment, optionally via a .env file.

Usage:
    from core.config import SyncConfig

    config = SyncConfig.from_env()
    for content_type in config.content_types:
        print(content_type.slug, content_type.rest_base)
"""

import json
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

from dotenv import load_dotenv

from core.errors import ConfigurationError


DATA_DIR = Path("data")
DEFAULT_DB_PATH = DATA_DIR / "content_sync.db"
LEGACY_DB_PATH = DATA_DIR / "plexkits.db"

DEFAULT_CONCURRENCY = 5
DEFAULT_PUSH_DELAY_SECONDS = 0.2
DEFAULT_DELETE_CHUNK_SIZE = 500


@dataclass
class TaxonomyConfig:
    """A taxonomy synced from the remote site."""
    slug: str
    rest_base: Optional[str] = None
    # Structured per-taxonomy field in meta_box (custom-fields plugin)
    meta_field: Optional[str] = None
    required: bool = False

    @property
    def rest_field(self) -> str:
        """Field name carrying the native top-level term array on a record."""
        return self.rest_base or self.slug


@dataclass
class ContentTypeConfig:
    """A content type (post type) synced from the remote site."""
    slug: str
    rest_base: str
    is_primary: bool = False


@dataclass
class SiteCredentials:
    """Application-password credentials for the remote site."""
    username: str
    app_password: str


@dataclass
class SyncConfig:
    """Everything the sync and push engines need to know about a site."""
    base_url: str
    credentials: Optional[SiteCredentials] = None
    connector_type: str = "wordpress"
    content_types: List[ContentTypeConfig] = field(default_factory=list)
    taxonomies: List[TaxonomyConfig] = field(default_factory=list)
    known_meta_fields: List[str] = field(default_factory=list)
    db_path: Path = DEFAULT_DB_PATH
    legacy_db_path: Optional[Path] = LEGACY_DB_PATH
    concurrency: int = DEFAULT_CONCURRENCY
    push_delay_seconds: float = DEFAULT_PUSH_DELAY_SECONDS
    delete_chunk_size: int = DEFAULT_DELETE_CHUNK_SIZE

    def get_content_type(self, slug: str) -> ContentTypeConfig:
        """Look up a configured content type by slug.

        Raises:
            ConfigurationError: If the content type is not configured
        """
        for content_type in self.content_types:
            if content_type.slug == slug:
                return content_type
        raise ConfigurationError(f"Unknown content type: {slug}")

    def taxonomy_meta_fields(self) -> Dict[str, str]:
        """Map of taxonomy slug -> structured meta field name."""
        return {t.slug: t.meta_field for t in self.taxonomies if t.meta_field}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SyncConfig":
        """Build a config from a profile dict.

        Accepts both the profile shape (``post_types``) and the native
        shape (``content_types``).
        """
        if not data.get("base_url"):
            raise ConfigurationError("Profile is missing base_url")

        content_types = [
            ContentTypeConfig(
                slug=ct["slug"],
                rest_base=ct.get("rest_base") or ct["slug"],
                is_primary=bool(ct.get("is_primary", False)),
            )
            for ct in data.get("content_types", data.get("post_types", []))
        ]
        taxonomies = [
            TaxonomyConfig(
                slug=tax["slug"],
                rest_base=tax.get("rest_base"),
                meta_field=tax.get("meta_field"),
                required=bool(tax.get("required", False)),
            )
            for tax in data.get("taxonomies", [])
        ]

        credentials = None
        creds = data.get("credentials")
        if creds and creds.get("username") and creds.get("app_password"):
            credentials = SiteCredentials(creds["username"], creds["app_password"])

        config = cls(
            base_url=data["base_url"].rstrip("/"),
            credentials=credentials,
            connector_type=data.get("connector_type", "wordpress"),
            content_types=content_types,
            taxonomies=taxonomies,
            known_meta_fields=list(data.get("known_meta_fields", [])),
        )
        if "db_path" in data:
            config.db_path = Path(data["db_path"])
        if "concurrency" in data:
            config.concurrency = int(data["concurrency"])
        if "push_delay_seconds" in data:
            config.push_delay_seconds = float(data["push_delay_seconds"])
        if "delete_chunk_size" in data:
            config.delete_chunk_size = int(data["delete_chunk_size"])
        return config

    @classmethod
    def from_env(cls, env_file: Optional[Path] = None) -> "SyncConfig":
        """Build a config from environment variables.

        Reads configuration from environment variables:
        - CONTENT_SYNC_PROFILE: Path to the JSON site profile (required)
        - CONTENT_SYNC_BASE_URL: Site URL, overrides the profile's base_url
        - CONTENT_SYNC_USERNAME / CONTENT_SYNC_APP_PASSWORD: Credentials
        - CONTENT_SYNC_DB_PATH: Local database file
        - CONTENT_SYNC_CONCURRENCY: Worker count for media/SEO lookups

        Raises:
            ConfigurationError: If required environment variables are missing
        """
        if env_file is not None:
            load_dotenv(env_file)
        else:
            load_dotenv()

        profile_path = os.getenv("CONTENT_SYNC_PROFILE")
        if not profile_path:
            raise ConfigurationError(
                "CONTENT_SYNC_PROFILE environment variable not set. "
                "Set to the path of the site profile JSON file"
            )
        try:
            profile = json.loads(Path(profile_path).read_text())
        except (OSError, json.JSONDecodeError) as e:
            raise ConfigurationError(f"Cannot read profile {profile_path}: {e}") from e

        base_url = os.getenv("CONTENT_SYNC_BASE_URL")
        if base_url:
            profile["base_url"] = base_url

        config = cls.from_dict(profile)

        username = os.getenv("CONTENT_SYNC_USERNAME")
        app_password = os.getenv("CONTENT_SYNC_APP_PASSWORD")
        if username and app_password:
            config.credentials = SiteCredentials(username, app_password)

        db_path = os.getenv("CONTENT_SYNC_DB_PATH")
        if db_path:
            config.db_path = Path(db_path)

        concurrency = os.getenv("CONTENT_SYNC_CONCURRENCY")
        if concurrency:
            config.concurrency = int(concurrency)

        return config
