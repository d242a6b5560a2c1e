"""
WordPress Connector Tests

Runs the REST client, connector and SEOPress provider against a local
aiohttp test server:
1. Header-driven pagination and the short-page fallback
2. Error mapping to TransportError subclasses
3. Authenticated listing (status=any) and incremental filters
4. Batch response normalization
5. Media and SEO 404s map to None
"""

import asyncio

import pytest
from aiohttp import web
from aiohttp import test_utils

from core.config import SiteCredentials
from core.errors import TransportError
from core.models import SeoData
from connectors.wordpress import (
    SEOPressProvider,
    WordPressConnector,
    WPApiClient,
    WPApiConfig,
    WPApiError,
    WPAuthConfig,
    WPAuthenticationError,
    WPAuthProvider,
    WPNotFoundError,
    WPRateLimitError,
    WPValidationError,
)
from connectors.wordpress.seopress import build_seopress_sections, parse_seopress_response
from connectors.wordpress.wp_client import MAX_BATCH_REQUESTS, normalize_batch_responses


def run_with_client(app, fn, per_page=100, credentials=None):
    """Start a test server for app, run fn(client) against it, tear down."""
    async def main():
        server = test_utils.TestServer(app)
        await server.start_server()
        auth = WPAuthProvider(WPAuthConfig(*credentials) if credentials else None)
        client = WPApiClient(WPApiConfig(base_url=str(server.make_url("/")), per_page=per_page), auth)
        await client.connect()
        try:
            return await fn(client)
        finally:
            await client.disconnect()
            await server.close()

    return asyncio.run(main())


def paged_app(items, per_page, send_total_pages=True, seen=None):
    """App serving items from /wp-json/wp/v2/resource in pages."""
    async def handler(request):
        if seen is not None:
            seen.append(dict(request.query))
        page = int(request.query.get("page", 1))
        chunk = items[(page - 1) * per_page:page * per_page]
        headers = {"X-WP-Total": str(len(items))}
        if send_total_pages:
            headers["X-WP-TotalPages"] = str(max(1, -(-len(items) // per_page)))
        return web.json_response(chunk, headers=headers)

    app = web.Application()
    app.router.add_get("/wp-json/wp/v2/resource", handler)
    return app


def status_app(status, body="nope", headers=None):
    async def handler(request):
        return web.Response(status=status, text=body, headers=headers or {})

    app = web.Application()
    app.router.add_route("*", "/wp-json/{tail:.*}", handler)
    return app


class TestPagination:

    def test_follows_total_pages_header(self):
        items = [{"id": i} for i in range(1, 6)]
        pages = []

        result = run_with_client(
            paged_app(items, per_page=2),
            lambda c: c.get_all("/wp/v2/resource", on_page=lambda p, t: pages.append((p, t))),
            per_page=2,
        )

        assert [item["id"] for item in result] == [1, 2, 3, 4, 5]
        assert pages == [(1, 3), (2, 3), (3, 3)]

    def test_short_page_ends_listing_without_header(self):
        items = [{"id": i} for i in range(1, 6)]
        seen = []
        result = run_with_client(
            paged_app(items, per_page=2, send_total_pages=False, seen=seen),
            lambda c: c.get_all("/wp/v2/resource"),
            per_page=2,
        )
        assert len(result) == 5
        assert [q["page"] for q in seen] == ["1", "2", "3"]

    def test_empty_collection(self):
        assert run_with_client(paged_app([], per_page=10), lambda c: c.get_all("/wp/v2/resource")) == []


class TestErrorMapping:

    @pytest.mark.parametrize("status,error_cls", [
        (401, WPAuthenticationError),
        (403, WPAuthenticationError),
        (404, WPNotFoundError),
        (400, WPValidationError),
        (500, WPApiError),
    ])
    def test_status_codes(self, status, error_cls):
        with pytest.raises(error_cls) as excinfo:
            run_with_client(status_app(status), lambda c: c.get("/wp/v2/resource/1"))
        assert excinfo.value.status_code == status
        assert isinstance(excinfo.value, TransportError)

    def test_rate_limit_retry_after(self):
        with pytest.raises(WPRateLimitError) as excinfo:
            run_with_client(
                status_app(429, headers={"Retry-After": "7"}),
                lambda c: c.get("/wp/v2/resource"),
            )
        assert excinfo.value.retry_after == 7

    def test_invalid_json(self):
        with pytest.raises(WPApiError):
            run_with_client(status_app(200, body="<html>"), lambda c: c.get("/wp/v2/resource"))

    def test_not_connected(self):
        client = WPApiClient(WPApiConfig(base_url="https://example.test"))
        with pytest.raises(TransportError):
            asyncio.run(client.get("/wp/v2/resource"))


class TestBatch:

    def test_list_shape(self):
        requests = [{"path": "/wp/v2/resource/1"}, {"path": "/wp/v2/resource/2"}]
        result = normalize_batch_responses(requests, {"responses": [{"status": 200, "body": {"id": 1}}]})
        assert result == [
            {"status": 200, "body": {"id": 1}},
            {"status": 500, "body": {"error": "No response for request"}},
        ]

    def test_keyed_by_path_shape(self):
        requests = [{"path": "/wp/v2/resource/1"}, {"path": "/wp/v2/resource/2"}]
        result = normalize_batch_responses(requests, {"responses": {
            "/wp/v2/resource/2": {"status": 400, "body": {"code": "bad"}},
            "/wp/v2/resource/1": {"status": 200, "body": {"id": 1}},
        }})
        assert [r["status"] for r in result] == [200, 400]

    def test_too_many_requests(self):
        client = WPApiClient(WPApiConfig(base_url="https://example.test"))
        requests = [{"path": f"/wp/v2/resource/{i}"} for i in range(MAX_BATCH_REQUESTS + 1)]
        with pytest.raises(ValueError):
            asyncio.run(client.batch(requests))

    def test_posts_to_batch_endpoint(self):
        received = []

        async def handler(request):
            received.append(await request.json())
            return web.json_response([{"status": 200, "body": {"id": 1}}])

        app = web.Application()
        app.router.add_post("/wp-json/batch/v1", handler)

        result = run_with_client(app, lambda c: c.batch([{"method": "POST", "path": "/wp/v2/resource/1"}]))
        assert result == [{"status": 200, "body": {"id": 1}}]
        assert received[0]["requests"][0]["path"] == "/wp/v2/resource/1"


class TestWordPressConnector:

    def test_authenticated_listing_uses_status_any(self, config):
        seen = []
        app = paged_app([{"id": 1, "title": {"rendered": "A"}}], per_page=100, seen=seen)
        config.credentials = SiteCredentials("editor", "app pass")

        async def fetch(client):
            connector = WordPressConnector(config, client=client)
            return await connector.fetch_resources(
                config.content_types[0], modified_after="2024-01-01T00:00:00"
            )

        records = run_with_client(app, fetch, credentials=("editor", "app pass"))

        assert records[0].plain_title == "A"
        assert seen[0]["status"] == "any"
        assert seen[0]["modified_after"] == "2024-01-01T00:00:00"

    def test_anonymous_listing_is_published_only(self, config):
        seen = []
        app = paged_app([{"id": 1}, {"id": 2}], per_page=100, seen=seen)

        ids = run_with_client(
            app, lambda c: WordPressConnector(config, client=c).fetch_resource_ids(config.content_types[0])
        )
        assert ids == [1, 2]
        assert seen[0]["status"] == "publish"
        assert seen[0]["_fields"] == "id"

    def test_authorization_header_sent(self, config):
        headers = []

        async def handler(request):
            headers.append(request.headers.get("Authorization"))
            return web.json_response({"id": 7})

        app = web.Application()
        app.router.add_get("/wp-json/wp/v2/users/me", handler)

        ok = run_with_client(
            app,
            lambda c: WordPressConnector(config, client=c).test_connection(),
            credentials=("editor", "secret"),
        )
        assert ok is True
        assert headers[0].startswith("Basic ")

    def test_missing_media_is_none(self, config):
        async def handler(request):
            media_id = request.match_info["id"]
            if media_id == "1":
                return web.json_response({"id": 1, "source_url": "https://example.test/a.jpg"})
            return web.json_response({"code": "rest_post_invalid_id"}, status=404)

        app = web.Application()
        app.router.add_get("/wp-json/wp/v2/media/{id}", handler)

        async def fetch(client):
            connector = WordPressConnector(config, client=client)
            return await connector.fetch_media_url(1), await connector.fetch_media_url(2)

        assert run_with_client(app, fetch) == ("https://example.test/a.jpg", None)


class TestSEOPress:

    def test_fetch_parses_and_maps_404(self):
        async def handler(request):
            if request.match_info["id"] == "1":
                return web.json_response({
                    "title": "SEO",
                    "target_kw": "guides",
                    "og": {"title": "OG"},
                    "robots": {"noindex": True},
                })
            return web.json_response({"code": "not_found"}, status=404)

        app = web.Application()
        app.router.add_get("/wp-json/seopress/v1/posts/{id}", handler)

        async def fetch(client):
            provider = SEOPressProvider(client)
            return await provider.fetch(1), await provider.fetch(2)

        found, missing = run_with_client(app, fetch)
        assert found["title"] == "SEO"
        assert found["target_keywords"] == "guides"
        assert found["og"]["title"] == "OG"
        assert found["robots"]["noindex"] is True
        assert missing is None

    def test_push_reports_failed_sections(self):
        written = []

        async def handler(request):
            section = request.match_info["section"]
            if section == "social-settings":
                return web.json_response({"code": "boom"}, status=500)
            written.append(section)
            return web.json_response({"code": "success"})

        app = web.Application()
        app.router.add_put("/wp-json/seopress/v1/posts/{id}/{section}", handler)
        value = {"title": "T", "og": {"title": "OG"}}

        errors = run_with_client(app, lambda c: SEOPressProvider(c).push(1, value))

        assert sorted(written) == ["meta-robot-settings", "title-description-metas"]
        assert len(errors) == 1
        assert errors[0].startswith("social-settings:")

    def test_sections(self):
        seo = parse_seopress_response({"canonical": "https://example.test/x", "robots": {"nofollow": True}})
        sections = build_seopress_sections(seo)

        assert list(sections) == ["meta-robot-settings"]
        robots = sections["meta-robot-settings"]
        assert robots["_seopress_robots_index"] == "yes"
        assert robots["_seopress_robots_follow"] == "no"
        assert robots["_seopress_robots_canonical"] == "https://example.test/x"

    def test_empty_seo_only_sends_robots(self):
        assert list(build_seopress_sections(SeoData())) == ["meta-robot-settings"]
