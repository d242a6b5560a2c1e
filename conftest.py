"""Shared pytest fixtures: a temporary local store, a site config and
in-memory fakes for the remote connector and the SEO side channel."""

from typing import Any, Dict, List, Optional

import pytest

from connectors.content_base import (
    BatchRequest,
    BatchResponse,
    ContentConnector,
    RemoteMedia,
    RemoteRecord,
    RemoteTerm,
    SideDataProvider,
)
from core.config import ContentTypeConfig, SyncConfig, TaxonomyConfig
from core.errors import TransportError
from local_store.db import LocalStore


class FakeConnector(ContentConnector):
    """In-memory remote site.

    records: content type slug -> record id -> raw REST dict
    fail: method names that raise TransportError when called
    """

    def __init__(self, config: SyncConfig):
        super().__init__(config)
        self.records: Dict[str, Dict[int, Dict[str, Any]]] = {ct.slug: {} for ct in config.content_types}
        self.terms: Dict[str, List[Dict[str, Any]]] = {}
        self.media: Dict[int, Optional[str]] = {}
        self.media_search: List[Dict[str, Any]] = []
        self.fail: set = set()
        self.calls: List[tuple] = []
        self.updates: List[tuple] = []
        self.batch_calls = 0
        self.next_modified = "2024-03-01T00:00:00"

    def _check(self, name: str, *args) -> None:
        self.calls.append((name,) + args)
        if name in self.fail:
            raise TransportError(f"{name} failed", status_code=500)

    def add(self, content_type: str, raw: Dict[str, Any]) -> None:
        self.records[content_type][raw["id"]] = raw

    async def connect(self) -> bool:
        return True

    async def disconnect(self) -> None:
        pass

    async def test_connection(self) -> bool:
        return True

    async def fetch_terms(self, taxonomy: TaxonomyConfig) -> List[RemoteTerm]:
        self._check("fetch_terms", taxonomy.slug)
        return [RemoteTerm.model_validate(t) for t in self.terms.get(taxonomy.slug, [])]

    async def fetch_resources(self, content_type, modified_after=None, on_page=None) -> List[RemoteRecord]:
        self._check("fetch_resources", content_type.slug, modified_after)
        raws = list(self.records[content_type.slug].values())
        if modified_after:
            raws = [r for r in raws if (r.get("modified_gmt") or "") > modified_after]
        if on_page:
            on_page(1, 1)
        return [RemoteRecord.model_validate(r) for r in raws]

    async def fetch_resource_ids(self, content_type) -> List[int]:
        self._check("fetch_resource_ids", content_type.slug)
        return list(self.records[content_type.slug])

    async def fetch_resource(self, content_type, resource_id: int) -> RemoteRecord:
        self._check("fetch_resource", resource_id)
        raw = self.records[content_type.slug].get(resource_id)
        if raw is None:
            raise TransportError("Not found", status_code=404)
        return RemoteRecord.model_validate(raw)

    async def fetch_media_url(self, media_id: int) -> Optional[str]:
        self._check("fetch_media_url", media_id)
        return self.media.get(media_id)

    async def search_media(self, search: str) -> List[RemoteMedia]:
        self._check("search_media", search)
        return [RemoteMedia.model_validate(m) for m in self.media_search]

    async def create_resource(self, content_type, payload) -> RemoteRecord:
        self._check("create_resource", content_type.slug)
        new_id = max(self.records[content_type.slug] or [0]) + 1
        raw = {"id": new_id, "modified_gmt": self.next_modified, **payload}
        self.records[content_type.slug][new_id] = raw
        return RemoteRecord.model_validate(raw)

    async def update_resource(self, content_type, resource_id: int, payload) -> RemoteRecord:
        self._check("update_resource", resource_id)
        self.updates.append((resource_id, payload))
        raw = dict(self.records[content_type.slug].get(resource_id, {"id": resource_id}))
        raw.update({k: v for k, v in payload.items() if k != "meta_box"})
        raw["title"] = {"rendered": payload.get("title", ""), "raw": payload.get("title", "")}
        raw["modified_gmt"] = self.next_modified
        self.records[content_type.slug][resource_id] = raw
        return RemoteRecord.model_validate(raw)

    async def batch_update(self, requests: List[BatchRequest]) -> List[BatchResponse]:
        self.batch_calls += 1
        return [BatchResponse(status=200, path=r.path) for r in requests]


class FakeSideData(SideDataProvider):
    plugin_id = "seopress"
    data_key = "seo"

    def __init__(self):
        self.values: Dict[int, Dict[str, Any]] = {}
        self.pushed: List[tuple] = []
        self.push_errors: List[str] = []
        self.fail_fetch = False
        self.fail_push = False

    async def fetch(self, record_id: int) -> Optional[Dict[str, Any]]:
        if self.fail_fetch:
            raise TransportError("SEO fetch failed", status_code=500)
        return self.values.get(record_id)

    async def push(self, record_id: int, value: Any) -> List[str]:
        if self.fail_push:
            raise TransportError("SEO push failed", status_code=500)
        self.pushed.append((record_id, value))
        return list(self.push_errors)


def make_remote(record_id: int, title: str = "Title", modified_gmt: str = "2024-01-01T00:00:00", **extra):
    """Raw REST dict for a content record."""
    raw = {
        "id": record_id,
        "type": "resource",
        "date_gmt": "2023-12-01T00:00:00",
        "modified_gmt": modified_gmt,
        "slug": f"record-{record_id}",
        "status": "publish",
        "title": {"rendered": title},
        "content": {"rendered": f"<p>Body {record_id}</p>"},
        "excerpt": {"rendered": ""},
        "featured_media": 0,
        "meta_box": {},
    }
    raw.update(extra)
    return raw


@pytest.fixture
def config():
    return SyncConfig(
        base_url="https://example.test",
        content_types=[ContentTypeConfig(slug="resource", rest_base="resource", is_primary=True)],
        taxonomies=[
            TaxonomyConfig(slug="topic", meta_field="tax_topic"),
            TaxonomyConfig(slug="resource-type", meta_field="tax_resource_type"),
        ],
        known_meta_fields=["intro_text"],
        legacy_db_path=None,
        push_delay_seconds=0,
        delete_chunk_size=3,
    )


@pytest.fixture
def store(tmp_path):
    local_store = LocalStore(tmp_path / "content_sync.db", legacy_path=None)
    yield local_store
    local_store.close()


@pytest.fixture
def connector(config):
    return FakeConnector(config)


@pytest.fixture
def seo():
    return FakeSideData()


@pytest.fixture
def remote():
    return make_remote
