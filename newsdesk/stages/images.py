"""Image candidate collection and selection.

Candidates come from fixed tiers in priority order: the cluster's current
image when it is already relevant, images declared by member articles, images
found in article HTML, and as a last resort a live fetch of one article page.
The highest tier present wins; the content service only re-ranks when that
tier holds more than one strong candidate.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import List, Optional
from urllib.parse import urljoin

from newsdesk.models import ImageResult, SummaryResult
from newsdesk.quality import gate
from newsdesk.stages.context import EnrichmentContext
from newsdesk.utils import fetch_page, get_logger, normalize_http_url
from newsdesk.validators import score_image

logger = get_logger(__name__)

TIERS = ("existing", "article", "html", "page")
TIER_BONUS = {"existing": 30.0, "article": 20.0, "html": 10.0, "page": 0.0}

_IMG_ATTR = re.compile(r"<img[^>]+?(?:data-lazy-src|data-original|data-src|src)=[\"']([^\"']+)[\"']", re.IGNORECASE)
_OG_IMAGE = re.compile(r"<meta[^>]+property=[\"']og:image[\"'][^>]+content=[\"']([^\"']+)[\"']", re.IGNORECASE)
_SIZE = re.compile(r"(\d+)x(\d+)")
_AD_SEGMENT = re.compile(r"(?:^|[/_.-])ads?(?:[/_.-]|$)")

NON_CONTENT_PATTERNS = (
    "placeholder", "default", "no-image", "noimage", "missing", "logo", "icon",
    "avatar", "profile-pic", "advertisement", "banner", "promo",
    "pixel", "1x1", "spacer", "transparent.gif", "loading", "spinner", "favicon",
    "badge", "button", "widget", "tracking", "beacon", "analytics",
    "facebook", "twitter", "instagram", "linkedin", "social", "share",
)


def is_content_image(url: str) -> bool:
    low = (url or "").lower()
    if not low.startswith(("http://", "https://")):
        return False
    if low.endswith(".ico") or low.endswith(".svg"):
        return False
    if any(p in low for p in NON_CONTENT_PATTERNS):
        return False
    if _AD_SEGMENT.search(low.split("//", 1)[-1]):
        return False
    m = _SIZE.search(low)
    if m and int(m.group(1)) < 100 and int(m.group(2)) < 100:
        return False
    return True


def extract_image_urls(html: str, base_url: str) -> List[str]:
    if not html:
        return []
    found = _OG_IMAGE.findall(html) + _IMG_ATTR.findall(html)
    return [urljoin(base_url, u.strip()) for u in found if u.strip()]


@dataclass
class Candidate:
    url: str
    tier: str

    @property
    def priority(self) -> int:
        return TIERS.index(self.tier)


def collect_candidates(ctx: EnrichmentContext, *, allow_fetch: bool = True) -> List[Candidate]:
    seen = set()
    out: List[Candidate] = []

    def add(raw: Optional[str], tier: str) -> None:
        url = normalize_http_url(raw)
        if url and url not in seen and is_content_image(url):
            seen.add(url)
            out.append(Candidate(url, tier))

    cluster = ctx.cluster
    if cluster.image_url and (cluster.image_relevance or 0.0) >= ctx.settings.image_threshold:
        add(cluster.image_url, "existing")
    for a in ctx.articles:
        add(a.image_url, "article")
        for u in a.image_urls:
            add(u, "article")
    for a in ctx.articles:
        for u in extract_image_urls(a.content_html or "", a.url):
            add(u, "html")

    if not out and allow_fetch and ctx.articles:
        url = ctx.articles[0].url
        try:
            html = fetch_page(url)
        except Exception as exc:
            ctx.record("image", f"page fetch {url}: {exc}")
        else:
            for u in extract_image_urls(html, url):
                add(u, "page")
    return out


def select_image(ctx: EnrichmentContext, summary: SummaryResult) -> Optional[ImageResult]:
    if not ctx.flags.needs_image:
        return None
    headline = ctx.cluster.headline
    candidates = collect_candidates(ctx, allow_fetch=ctx.settings.live_image_fetch)
    if not candidates:
        logger.info("image: cluster=%s no candidates", ctx.cluster_id)
        return ImageResult(url=None, relevance=0.0, source="none")

    top = min(c.priority for c in candidates)
    tier = TIERS[top]
    pool = [c.url for c in candidates if c.priority == top]
    bonus = TIER_BONUS[tier]
    threshold = ctx.settings.image_threshold

    def relevance(url: Optional[str]) -> float:
        return score_image(url, headline, bonus) if url in pool else 0.0

    strong = [u for u in pool if relevance(u) / 100.0 >= threshold]
    chosen = strong[0] if strong else pool[0]

    if len(strong) > 1:
        outcome = gate(
            lambda: ctx.content.select_image(strong, headline, summary.text),
            relevance,
            threshold=threshold,
            max_retries=ctx.settings.max_retries,
            default=None,
            label="image",
        )
        if outcome.value in strong:
            chosen = outcome.value
        elif outcome.errors:
            ctx.record("image", outcome.errors[-1])

    result = ImageResult(url=chosen, relevance=relevance(chosen) / 100.0, source=tier)
    logger.info(
        "image: cluster=%s tier=%s candidates=%d strong=%d score=%.2f",
        ctx.cluster_id, tier, len(candidates), len(strong), result.relevance,
    )
    return result
