from __future__ import annotations

from typing import Dict, Optional

from newsdesk.content import SeoExtraction
from newsdesk.models import SeoMeta, SEOResult, SummaryResult, TranslationResult
from newsdesk.stages.context import EnrichmentContext
from newsdesk.topics import normalize_topic, repair_topics
from newsdesk.utils import get_logger, truncate

logger = get_logger(__name__)

META_TITLE_CHARS = 60
META_DESCRIPTION_CHARS = 160


def fallback_meta(headline: str, summary: str) -> SeoMeta:
    return SeoMeta(
        title=truncate(headline, META_TITLE_CHARS),
        description=truncate(summary or headline, META_DESCRIPTION_CHARS),
    )


def _pick(fields: Dict, lang: str, fallback: str) -> str:
    f = fields.get(lang)
    return f.text if f is not None and f.text.strip() else fallback


def extract_seo(
    ctx: EnrichmentContext,
    summary: SummaryResult,
    translation: TranslationResult,
    category: Optional[str] = None,
) -> Optional[SEOResult]:
    """Meta fields per language plus the repaired topic taxonomy.

    A failed extraction still yields a result: meta fields fall back to the
    headline and summary, topics to the injected defaults.
    """
    if not ctx.flags.needs_seo:
        return None

    base_lang = ctx.settings.fallback_language
    headline = _pick(translation.headlines, base_lang, ctx.cluster.headline)
    summary_text = _pick(translation.summaries, base_lang, summary.text)

    try:
        raw = ctx.content.extract_seo(summary_text, headline, ctx.article_payload())
    except Exception as exc:
        ctx.record("seo", exc)
        raw = SeoExtraction()

    meta: Dict[str, SeoMeta] = {}
    for lang in ctx.settings.languages:
        fb = fallback_meta(
            _pick(translation.headlines, lang, headline),
            _pick(translation.summaries, lang, summary_text),
        )
        title = (raw.titles.get(lang) or "").strip() or fb.title
        desc = (raw.descriptions.get(lang) or "").strip() or fb.description
        meta[lang] = SeoMeta(title=title, description=desc)

    topics = repair_topics(raw.topics, category or ctx.cluster.category)
    normalized = [t for t in (normalize_topic(x) for x in raw.topics) if t]
    repaired = topics != list(dict.fromkeys(normalized))
    if repaired:
        logger.info("seo.topics repaired cluster=%s raw=%s final=%s", ctx.cluster_id, raw.topics, topics)

    return SEOResult(
        meta=meta,
        topics=topics,
        district=raw.district,
        primary_entity=raw.primary_entity,
        event_type=raw.event_type,
        keywords=[k.strip() for k in raw.keywords if k and k.strip()],
        key_facts={base_lang: raw.key_facts} if raw.key_facts else {},
        repaired=repaired,
    )
