from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Protocol

import requests
from pydantic import ValidationError
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from newsdesk.models import FeedItem, PipelineError, Source
from newsdesk.utils import get_logger, parse_datetime_safe

logger = get_logger(__name__)


class FeedFetcher(Protocol):
    def fetch(self, feed_url: str) -> List[FeedItem]: ...


def _to_item(raw: Dict[str, Any]) -> Optional[FeedItem]:
    title = (raw.get("title") or "").strip()
    url = (raw.get("url") or raw.get("link") or "").strip()
    if not title or not url:
        return None
    published = raw.get("published_at") or raw.get("publishedAt") or raw.get("pubDate")
    images = raw.get("image_urls") or raw.get("imageUrls") or []
    if raw.get("image_url"):
        images = [raw["image_url"], *images]
    try:
        return FeedItem(
            title=title,
            url=url,
            guid=raw.get("guid") or raw.get("id"),
            published_at=parse_datetime_safe(published) if published else None,
            content=raw.get("content") or raw.get("summary") or "",
            content_html=raw.get("content_html"),
            image_urls=[u for u in images if isinstance(u, str)],
        )
    except ValidationError as exc:
        logger.debug("feed item dropped url=%s: %s", url, exc)
        return None


class JsonFeedFetcher:
    """Client for a feed-normalizer service returning ``{"items": [...]}``.

    RSS/XML parsing happens behind that service; this side only maps the
    normalized JSON to ``FeedItem``.
    """

    def __init__(self, base_url: str, timeout: float = 30.0, session: Optional[requests.Session] = None):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.session = session or requests.Session()

    @retry(stop=stop_after_attempt(3), wait=wait_exponential(multiplier=1, min=1, max=8),
           retry=retry_if_exception_type(requests.RequestException), reraise=True)
    def _get(self, feed_url: str) -> Dict[str, Any]:
        r = self.session.get(
            f"{self.base_url}/feed",
            params={"url": feed_url},
            timeout=self.timeout,
            headers={"User-Agent": "newsdesk/0.1"},
        )
        r.raise_for_status()
        return r.json()

    def fetch(self, feed_url: str) -> List[FeedItem]:
        data = self._get(feed_url)
        raw_items = data.get("items", []) if isinstance(data, dict) else data
        items = [it for it in (_to_item(r) for r in raw_items or [] if isinstance(r, dict)) if it]
        logger.debug("feed fetched url=%s items=%d", feed_url, len(items))
        return items


@dataclass
class FetchedBatch:
    source: Source
    items: List[FeedItem]


def fetch_all_sources(
    sources: List[Source],
    fetcher: FeedFetcher,
    *,
    concurrency: int = 4,
    errors: Optional[List[PipelineError]] = None,
) -> List[FetchedBatch]:
    """Fetch every source with a fixed-size pool; failures are recorded per source."""
    if not sources:
        return []
    results: List[FetchedBatch] = []
    with ThreadPoolExecutor(max_workers=max(1, concurrency)) as pool:
        futures = {pool.submit(fetcher.fetch, s.feed_url): s for s in sources}
        for fut in as_completed(futures):
            source = futures[fut]
            try:
                items = fut.result()
            except Exception as exc:
                logger.warning("fetch failed source=%s url=%s: %s", source.id, source.feed_url, exc)
                if errors is not None:
                    errors.append(PipelineError(stage="fetch", message=str(exc) or "fetch failed", source_id=source.id))
                continue
            results.append(FetchedBatch(source, items))
    # as_completed order is arbitrary; keep the source list order for ingestion
    order = {s.id: i for i, s in enumerate(sources)}
    results.sort(key=lambda b: order[b.source.id])
    logger.info("fetch: sources=%d ok=%d items=%d", len(sources), len(results), sum(len(b.items) for b in results))
    return results
