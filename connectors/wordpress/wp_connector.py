"""WordPress implementation of the ContentConnector interface.

Maps profile content types and taxonomies onto /wp/v2 endpoints and
returns normalized remote models.
"""

from typing import Any, Dict, List, Optional

from core.config import ContentTypeConfig, SyncConfig, TaxonomyConfig
from core.errors import TransportError
from core.observability.logging import get_logger
from connectors.content_base import (
    BatchRequest,
    BatchResponse,
    ContentConnector,
    PageCallback,
    RemoteConnectionStatus,
    RemoteMedia,
    RemoteRecord,
    RemoteTerm,
    register_connector,
)
from connectors.wordpress.wp_auth import WPAuthConfig, WPAuthProvider
from connectors.wordpress.wp_client import (
    WPApiClient,
    WPApiConfig,
    WPNotFoundError,
)

logger = get_logger(__name__)

WP_V2 = "/wp/v2"


@register_connector("wordpress")
class WordPressConnector(ContentConnector):
    """WordPress REST connector.

    Usage:
        async with WordPressConnector(config) as connector:
            resources = await connector.fetch_resources(config.content_types[0])
    """

    def __init__(self, config: SyncConfig, client: Optional[WPApiClient] = None):
        super().__init__(config)
        self.client = client or WPApiClient(
            WPApiConfig(base_url=config.base_url),
            WPAuthProvider(WPAuthConfig.from_credentials(config.credentials)),
        )

    # =========================================================================
    # Connection Management
    # =========================================================================

    async def connect(self) -> bool:
        connected = await self.client.connect()
        self._connection_status = (
            RemoteConnectionStatus.CONNECTED if connected else RemoteConnectionStatus.FAILED
        )
        return connected

    async def disconnect(self) -> None:
        await self.client.disconnect()
        self._connection_status = RemoteConnectionStatus.DISCONNECTED

    async def test_connection(self) -> bool:
        path = f"{WP_V2}/users/me" if self.client.is_authenticated else f"{WP_V2}/"
        try:
            await self.client.get(path)
        except TransportError as e:
            logger.warning(f"Connection test failed: {e}")
            self._connection_status = RemoteConnectionStatus.FAILED
            return False
        self._connection_status = RemoteConnectionStatus.CONNECTED
        return True

    def _status_param(self) -> str:
        # Non-public statuses are only visible to authenticated users
        return "any" if self.client.is_authenticated else "publish"

    # =========================================================================
    # Reads
    # =========================================================================

    async def fetch_terms(self, taxonomy: TaxonomyConfig) -> List[RemoteTerm]:
        items = await self.client.get_all(f"{WP_V2}/{taxonomy.rest_field}")
        return [RemoteTerm.model_validate({**item, "taxonomy": taxonomy.slug}) for item in items]

    async def fetch_resources(
        self,
        content_type: ContentTypeConfig,
        modified_after: Optional[str] = None,
        on_page: Optional[PageCallback] = None,
    ) -> List[RemoteRecord]:
        params: Dict[str, Any] = {"status": self._status_param()}
        if modified_after:
            params["modified_after"] = modified_after
        items = await self.client.get_all(f"{WP_V2}/{content_type.rest_base}", params, on_page)
        logger.info(f"Received {len(items)} {content_type.slug} records from WordPress")
        return [RemoteRecord.model_validate(item) for item in items]

    async def fetch_resource_ids(self, content_type: ContentTypeConfig) -> List[int]:
        items = await self.client.get_all(
            f"{WP_V2}/{content_type.rest_base}",
            {"_fields": "id", "status": self._status_param()},
        )
        return [int(item["id"]) for item in items if "id" in item]

    async def fetch_resource(self, content_type: ContentTypeConfig, resource_id: int) -> RemoteRecord:
        response = await self.client.get(
            f"{WP_V2}/{content_type.rest_base}/{resource_id}",
            {"context": "edit"} if self.client.is_authenticated else None,
        )
        return RemoteRecord.model_validate(response.data)

    async def fetch_media_url(self, media_id: int) -> Optional[str]:
        try:
            response = await self.client.get(f"{WP_V2}/media/{media_id}")
        except WPNotFoundError:
            logger.debug(f"Media {media_id} no longer exists")
            return None
        return RemoteMedia.model_validate(response.data).url

    async def search_media(self, search: str) -> List[RemoteMedia]:
        response = await self.client.get(
            f"{WP_V2}/media",
            {"search": search, "per_page": 20, "media_type": "image"},
        )
        items = response.data if isinstance(response.data, list) else []
        return [RemoteMedia.model_validate(item) for item in items]

    # =========================================================================
    # Writes
    # =========================================================================

    async def create_resource(self, content_type: ContentTypeConfig, payload: Dict[str, Any]) -> RemoteRecord:
        response = await self.client.post(f"{WP_V2}/{content_type.rest_base}", payload)
        return RemoteRecord.model_validate(response.data)

    async def update_resource(
        self,
        content_type: ContentTypeConfig,
        resource_id: int,
        payload: Dict[str, Any],
    ) -> RemoteRecord:
        logger.info(
            f"Updating {content_type.rest_base} {resource_id}",
            extra_fields={"payload_keys": sorted(payload.keys())},
        )
        response = await self.client.post(f"{WP_V2}/{content_type.rest_base}/{resource_id}", payload)
        updated = RemoteRecord.model_validate(response.data)
        self._verify_update(resource_id, payload, updated)
        return updated

    def _verify_update(self, resource_id: int, payload: Dict[str, Any], updated: RemoteRecord) -> None:
        """Warn when WordPress silently ignored part of an update."""
        if "title" in payload:
            received = updated.title.raw if updated.title.raw is not None else updated.plain_title
            if received != payload["title"]:
                logger.warning(
                    f"Title mismatch for {resource_id}: sent={payload['title']!r}, received={received!r}"
                )
        for taxonomy in self.config.taxonomies:
            sent = payload.get(taxonomy.rest_field)
            if not sent:
                continue
            _, received = updated.extra_field(taxonomy.rest_field)
            if sorted(sent) != sorted(received or []):
                logger.warning(
                    f"Taxonomy mismatch for {taxonomy.slug} on {resource_id}: "
                    f"sent={sent}, received={received}"
                )

    async def batch_update(self, requests: List[BatchRequest]) -> List[BatchResponse]:
        raw_requests = [r.model_dump() for r in requests]
        responses = await self.client.batch(raw_requests)
        return [
            BatchResponse(status=item["status"], body=item["body"], path=request.path)
            for request, item in zip(requests, responses)
        ]
