"""SEOPress side channel.

SEOPress exposes per-post SEO metadata outside the post object:
- GET  /seopress/v1/posts/{id}                           (read everything)
- PUT  /seopress/v1/posts/{id}/title-description-metas   (title, description)
- PUT  /seopress/v1/posts/{id}/target-keywords           (focus keywords)
- PUT  /seopress/v1/posts/{id}/social-settings           (Open Graph / Twitter)
- PUT  /seopress/v1/posts/{id}/meta-robot-settings       (robots, canonical)

Each write endpoint is independent; a failure in one does not stop the
others and is reported back as a message.
"""

from typing import Any, Dict, List, Optional

from core.errors import TransportError
from core.models import SeoData
from core.observability.logging import get_logger
from connectors.content_base import SideDataProvider
from connectors.wordpress.wp_client import WPApiClient, WPNotFoundError

logger = get_logger(__name__)

SEOPRESS_PLUGIN_ID = "seopress"
SEO_DATA_KEY = "seo"


def _yes_no(flag: bool) -> str:
    # SEOPress stores robots directives as "index"-style switches
    return "no" if flag else "yes"


def parse_seopress_response(data: Dict[str, Any]) -> SeoData:
    """Map the SEOPress read payload onto SeoData."""
    og = data.get("og") or {}
    twitter = data.get("twitter") or {}
    robots = data.get("robots") or {}
    return SeoData(
        title=data.get("title") or "",
        description=data.get("description") or "",
        canonical=data.get("canonical") or "",
        target_keywords=data.get("target_kw") or "",
        og={
            "title": og.get("title") or "",
            "description": og.get("description") or "",
            "image": og.get("image") or "",
        },
        twitter={
            "title": twitter.get("title") or "",
            "description": twitter.get("description") or "",
            "image": twitter.get("image") or "",
        },
        robots={
            "noindex": bool(robots.get("noindex")),
            "nofollow": bool(robots.get("nofollow")),
            "nosnippet": bool(robots.get("nosnippet")),
            "noimageindex": bool(robots.get("noimageindex")),
        },
    )


def build_seopress_sections(seo: SeoData) -> Dict[str, Dict[str, Any]]:
    """Split SeoData into the write endpoints' payloads.

    Sections with nothing to send are left out.
    """
    sections: Dict[str, Dict[str, Any]] = {}

    if seo.title or seo.description:
        sections["title-description-metas"] = {
            "title": seo.title,
            "description": seo.description,
        }

    if seo.target_keywords:
        sections["target-keywords"] = {"_seopress_analysis_target_kw": seo.target_keywords}

    social = {
        "_seopress_social_fb_title": seo.og.title,
        "_seopress_social_fb_desc": seo.og.description,
        "_seopress_social_fb_img": seo.og.image,
        "_seopress_social_twitter_title": seo.twitter.title,
        "_seopress_social_twitter_desc": seo.twitter.description,
        "_seopress_social_twitter_img": seo.twitter.image,
    }
    if any(social.values()):
        sections["social-settings"] = social

    robots = {
        "_seopress_robots_index": _yes_no(seo.robots.noindex),
        "_seopress_robots_follow": _yes_no(seo.robots.nofollow),
        "_seopress_robots_snippet": _yes_no(seo.robots.nosnippet),
        "_seopress_robots_imageindex": _yes_no(seo.robots.noimageindex),
    }
    if seo.canonical:
        robots["_seopress_robots_canonical"] = seo.canonical
    sections["meta-robot-settings"] = robots

    return sections


class SEOPressProvider(SideDataProvider):
    """Reads and writes SEOPress data through the WordPress client."""

    plugin_id = SEOPRESS_PLUGIN_ID
    data_key = SEO_DATA_KEY

    def __init__(self, client: WPApiClient):
        self.client = client

    async def fetch(self, record_id: int) -> Optional[Dict[str, Any]]:
        try:
            response = await self.client.get(f"/seopress/v1/posts/{record_id}")
        except WPNotFoundError:
            return None
        if not isinstance(response.data, dict):
            return None
        return parse_seopress_response(response.data).model_dump(mode="json")

    async def push(self, record_id: int, value: Any) -> List[str]:
        seo = SeoData.model_validate(value)
        errors: List[str] = []
        for section, payload in build_seopress_sections(seo).items():
            try:
                await self.client.put(f"/seopress/v1/posts/{record_id}/{section}", payload)
            except TransportError as e:
                logger.warning(f"SEOPress {section} update failed for {record_id}: {e}")
                errors.append(f"{section}: {e}")
        return errors
