"""Abstract Content Connector Interface.

This module defines the interface that remote CMS connectors implement.
It is intentionally CMS-agnostic: the sync and push engines depend only
on ContentConnector and SideDataProvider, never on a concrete client.

Connectors implement this interface to:
1. Connect and authenticate with the remote site
2. Page through taxonomy terms and content records
3. List record ids for deletion diffing
4. Fetch, create and update single records
5. Look up media by id or by search

Key Design Principles:
- All methods return NORMALIZED remote models (RemoteRecord, RemoteTerm, ...)
- No retries; transport failures raise core.errors.TransportError
- CMS-specific implementations live in connector subfolders
"""

import html
from abc import ABC, abstractmethod
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, field_validator

from core.config import ContentTypeConfig, SyncConfig, TaxonomyConfig
from core.models import Term


# Called after each fetched page with (page, total_pages)
PageCallback = Callable[[int, int], None]

_MISSING = object()


# =============================================================================
# Enums
# =============================================================================

class RemoteConnectionStatus(str, Enum):
    """Connection status to the remote site."""
    CONNECTED = "CONNECTED"
    DISCONNECTED = "DISCONNECTED"
    FAILED = "FAILED"


# =============================================================================
# Normalized remote models
# =============================================================================

class RemoteBase(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class Rendered(RemoteBase):
    """A rendered/raw text pair as returned by the REST API."""
    rendered: str = ""
    raw: Optional[str] = None


class RemoteTerm(RemoteBase):
    id: int
    name: str = ""
    slug: str = ""
    parent: int = 0
    taxonomy: Optional[str] = None

    def to_term(self, taxonomy: str) -> Term:
        return Term(
            id=self.id,
            taxonomy=taxonomy,
            name=html.unescape(self.name),
            slug=self.slug,
            parent_id=self.parent or 0,
        )


class RemoteRecord(RemoteBase):
    """A content record as returned by the remote API.

    Unknown top-level fields (notably the native per-taxonomy term
    arrays) are kept and reachable through extra_field().
    """
    model_config = ConfigDict(populate_by_name=True, extra="allow")

    id: int
    type: Optional[str] = None
    date_gmt: Optional[str] = None
    modified_gmt: Optional[str] = None
    slug: str = ""
    status: str = ""
    title: Rendered = Field(default_factory=Rendered)
    content: Rendered = Field(default_factory=Rendered)
    excerpt: Rendered = Field(default_factory=Rendered)
    featured_media: int = 0
    meta_box: Optional[Dict[str, Any]] = None

    @field_validator("title", "content", "excerpt", mode="before")
    @classmethod
    def _coerce_rendered(cls, value):
        if value is None:
            return {}
        if isinstance(value, str):
            return {"rendered": value, "raw": value}
        return value

    @field_validator("featured_media", mode="before")
    @classmethod
    def _coerce_media(cls, value):
        return value or 0

    @property
    def plain_title(self) -> str:
        """Title with HTML entities decoded."""
        return html.unescape(self.title.rendered)

    def extra_field(self, name: str) -> Tuple[bool, Any]:
        """Return (present, value) for a field outside the declared schema."""
        extra = self.model_extra or {}
        value = extra.get(name, _MISSING)
        if value is _MISSING:
            return False, None
        return True, value

    def top_level_fields(self) -> Dict[str, Any]:
        return dict(self.model_extra or {})


class RemoteMedia(RemoteBase):
    id: int
    source_url: Optional[str] = None
    guid: Optional[Rendered] = None
    title: Optional[Rendered] = None

    @field_validator("guid", "title", mode="before")
    @classmethod
    def _coerce_rendered(cls, value):
        if isinstance(value, str):
            return {"rendered": value}
        return value

    @property
    def url(self) -> Optional[str]:
        if self.source_url:
            return self.source_url
        if self.guid and self.guid.rendered:
            return self.guid.rendered
        return None


class BatchRequest(RemoteBase):
    method: str = "POST"
    path: str
    body: Dict[str, Any] = Field(default_factory=dict)


class BatchResponse(RemoteBase):
    status: int
    body: Any = None
    path: Optional[str] = None

    @property
    def ok(self) -> bool:
        return 200 <= self.status < 300


# =============================================================================
# Connector interface
# =============================================================================

class ContentConnector(ABC):
    """Abstract base class for remote content connectors.

    Implementations:
    - connectors/wordpress/wp_connector.py
    """

    def __init__(self, config: SyncConfig):
        self.config = config
        self._connection_status = RemoteConnectionStatus.DISCONNECTED

    # =========================================================================
    # Connection Management
    # =========================================================================

    @abstractmethod
    async def connect(self) -> bool:
        """Open the HTTP session.

        Returns:
            True if connection successful
        """
        pass

    @abstractmethod
    async def disconnect(self) -> None:
        pass

    @abstractmethod
    async def test_connection(self) -> bool:
        """Check that the site is reachable and the credentials work."""
        pass

    @property
    def connection_status(self) -> RemoteConnectionStatus:
        return self._connection_status

    async def __aenter__(self) -> "ContentConnector":
        await self.connect()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.disconnect()

    # =========================================================================
    # Reads
    # =========================================================================

    @abstractmethod
    async def fetch_terms(self, taxonomy: TaxonomyConfig) -> List[RemoteTerm]:
        """Fetch every page of a taxonomy's terms."""
        pass

    @abstractmethod
    async def fetch_resources(
        self,
        content_type: ContentTypeConfig,
        modified_after: Optional[str] = None,
        on_page: Optional[PageCallback] = None,
    ) -> List[RemoteRecord]:
        """Fetch every page of a content type, in any status.

        Args:
            content_type: Content type to fetch
            modified_after: Only records modified after this ISO timestamp
            on_page: Progress callback invoked after each page
        """
        pass

    @abstractmethod
    async def fetch_resource_ids(self, content_type: ContentTypeConfig) -> List[int]:
        """Id-only listing of every remote record of a content type."""
        pass

    @abstractmethod
    async def fetch_resource(self, content_type: ContentTypeConfig, resource_id: int) -> RemoteRecord:
        pass

    @abstractmethod
    async def fetch_media_url(self, media_id: int) -> Optional[str]:
        """URL of a media item, or None if it no longer exists."""
        pass

    @abstractmethod
    async def search_media(self, search: str) -> List[RemoteMedia]:
        pass

    # =========================================================================
    # Writes
    # =========================================================================

    @abstractmethod
    async def create_resource(self, content_type: ContentTypeConfig, payload: Dict[str, Any]) -> RemoteRecord:
        pass

    @abstractmethod
    async def update_resource(
        self,
        content_type: ContentTypeConfig,
        resource_id: int,
        payload: Dict[str, Any],
    ) -> RemoteRecord:
        pass

    @abstractmethod
    async def batch_update(self, requests: List[BatchRequest]) -> List[BatchResponse]:
        """Best-effort batch write; only title/status writes are trusted."""
        pass


class SideDataProvider(ABC):
    """Per-record plugin data fetched and pushed outside the main record.

    Values are stored in plugin_data under (plugin_id, data_key).
    """

    plugin_id: str = ""
    data_key: str = ""

    @abstractmethod
    async def fetch(self, record_id: int) -> Optional[Dict[str, Any]]:
        """Remote value for a record, or None if the record has none."""
        pass

    @abstractmethod
    async def push(self, record_id: int, value: Any) -> List[str]:
        """Write a value; returns one message per failed section."""
        pass


# =============================================================================
# Connector Registry
# =============================================================================

_connector_registry: Dict[str, type] = {}


def register_connector(connector_type: str):
    """Decorator to register a connector implementation."""
    def decorator(cls):
        _connector_registry[connector_type] = cls
        return cls
    return decorator


def create_connector(config: SyncConfig) -> ContentConnector:
    """Create a connector instance from configuration.

    Raises:
        ValueError: If connector_type is not registered
    """
    connector_type = config.connector_type.lower()

    if connector_type not in _connector_registry:
        available = list(_connector_registry.keys())
        raise ValueError(
            f"Unknown connector type: {connector_type}. "
            f"Available: {available}"
        )

    return _connector_registry[connector_type](config)


def list_available_connectors() -> List[str]:
    return list(_connector_registry.keys())
