"""Content Connectors - pluggable remote CMS integrations.

This package contains the abstract content interface and concrete
implementations for specific CMSs (WordPress, ...).

The sync and push engines depend ONLY on ContentConnector and
SideDataProvider. All methods return NORMALIZED remote models; no
CMS-specific response types leak through the interface.

To add a new CMS:
1. Create a new folder (e.g., ghost/)
2. Implement ContentConnector
3. Register using @register_connector decorator
"""

from connectors.content_base import (
    # Core interface
    ContentConnector,
    SideDataProvider,
    RemoteConnectionStatus,
    PageCallback,

    # Normalized remote models
    Rendered,
    RemoteTerm,
    RemoteRecord,
    RemoteMedia,
    BatchRequest,
    BatchResponse,

    # Factory functions
    create_connector,
    register_connector,
    list_available_connectors,
)

__all__ = [
    # Core interface
    "ContentConnector",
    "SideDataProvider",
    "RemoteConnectionStatus",
    "PageCallback",

    # Normalized remote models
    "Rendered",
    "RemoteTerm",
    "RemoteRecord",
    "RemoteMedia",
    "BatchRequest",
    "BatchResponse",

    # Factory
    "create_connector",
    "register_connector",
    "list_available_connectors",
]
