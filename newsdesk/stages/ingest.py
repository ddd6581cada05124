from __future__ import annotations

from typing import List, Optional

from newsdesk.feeds import FetchedBatch
from newsdesk.language import detect_language
from newsdesk.models import Article, FeedItem, PipelineError, Source
from newsdesk.store import Store
from newsdesk.utils import clean_text, get_logger, make_article_hash, normalize_http_url, truncate

logger = get_logger(__name__)

EXCERPT_CHARS = 400


def to_article(item: FeedItem, source: Source) -> Article:
    content = clean_text(item.content_html or item.content or "")
    images = [u for u in (normalize_http_url(x) for x in item.image_urls) if u]
    return Article(
        source_id=source.id,
        title=item.title.strip(),
        url=item.url,
        guid=item.guid,
        content=content,
        excerpt=truncate(content, EXCERPT_CHARS) or None,
        content_html=item.content_html,
        published_at=item.published_at,
        lang=detect_language(item.title or content, hint=source.language),
        hash=make_article_hash(item.url, item.guid, item.title),
        image_url=images[0] if images else None,
        image_urls=images,
    )


def insert_batches(store: Store, batches: List[FetchedBatch],
                   errors: Optional[List[PipelineError]] = None) -> List[Article]:
    """Insert each source's items; a failing batch is logged and skipped."""
    inserted: List[Article] = []
    for batch in batches:
        rows = [to_article(it, batch.source) for it in batch.items]
        rows = [r for r in rows if r.hash and r.hash.strip()]
        if not rows:
            continue
        try:
            new_rows = store.upsert_articles(rows)
        except Exception as exc:
            logger.error("insert failed source=%s rows=%d: %s", batch.source.id, len(rows), exc)
            if errors is not None:
                errors.append(PipelineError(stage="insert", message=str(exc), source_id=batch.source.id))
            continue
        inserted.extend(new_rows)
        logger.debug("insert source=%s rows=%d new=%d", batch.source.id, len(rows), len(new_rows))
    logger.info("insert: batches=%d inserted=%d", len(batches), len(inserted))
    return inserted
