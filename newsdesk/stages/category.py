from __future__ import annotations

from typing import Optional

from newsdesk.models import CategoryResult
from newsdesk.stages.context import EnrichmentContext
from newsdesk.topics import normalize_category
from newsdesk.utils import get_logger

logger = get_logger(__name__)


def categorize(ctx: EnrichmentContext) -> Optional[CategoryResult]:
    """Ask for a category; answers outside the vocabulary become ``other``.

    Returns None when the cluster already has a category or the call failed.
    """
    if not ctx.flags.needs_category:
        return None
    try:
        raw = ctx.content.categorize(ctx.article_payload())
    except Exception as exc:
        ctx.record("category", exc)
        return None
    category = normalize_category(raw)
    logger.info("category: cluster=%s raw=%s category=%s", ctx.cluster_id, raw, category)
    return CategoryResult(category=category)
