from __future__ import annotations

from typing import Dict, Optional, Sequence, Tuple

from newsdesk.models import (
    PUBLISHED, CategoryResult, Cluster, ImageResult, SEOResult, Summary, SummaryResult,
    TranslatedField, TranslationResult,
)
from newsdesk.stages.context import EnrichmentContext
from newsdesk.stages.seo import fallback_meta
from newsdesk.text import slugify
from newsdesk.topics import CONTENT_TOPICS, repair_topics
from newsdesk.utils import get_logger

logger = get_logger(__name__)

META_TITLE_PREFIX = 50
ID_FRAGMENT = 8


def fill_missing(
    fields: Dict[str, TranslatedField],
    languages: Sequence[str],
    min_length: int,
    preferred: str,
    last_resort: str,
) -> Dict[str, TranslatedField]:
    """Every language gets a field at least ``min_length`` long where possible.

    Short or empty fields take the best available language: the preferred
    one if it qualifies, else the first configured language that does, else
    the longest text seen, else ``last_resort``.
    """
    def usable(f: Optional[TranslatedField]) -> bool:
        return f is not None and len(f.text.strip()) >= min_length

    best: Optional[TranslatedField] = None
    for lang in (preferred, *languages):
        if usable(fields.get(lang)):
            best = fields[lang]
            break
    if best is None:
        texts = [f for f in fields.values() if f.text.strip()]
        best = max(texts, key=lambda f: len(f.text.strip())) if texts else None
    if best is None:
        best = TranslatedField(text=last_resort, quality=0.0, status="source")

    out = dict(fields)
    for lang in languages:
        current = out.get(lang)
        if current is not best and not usable(current):
            out[lang] = TranslatedField(text=best.text, quality=0.0, status="fallback")
    return out


def unique_meta_title(ctx: EnrichmentContext, title: str) -> str:
    if ctx.store.meta_title_taken(title, exclude_id=ctx.cluster_id, lang=ctx.settings.fallback_language):
        return f"{title[:META_TITLE_PREFIX].rstrip()} | {ctx.cluster_id[:ID_FRAGMENT]}"
    return title


def stable_slug(ctx: EnrichmentContext, title: str) -> str:
    if ctx.cluster.slug:
        return ctx.cluster.slug
    base = slugify(title)
    if ctx.store.slug_taken(base, exclude_id=ctx.cluster_id):
        return f"{base}-{ctx.cluster_id[:ID_FRAGMENT]}"
    return base


def _apply_seo(ctx: EnrichmentContext, cluster: Cluster, seo: Optional[SEOResult],
               headlines: Dict[str, TranslatedField], summaries: Dict[str, TranslatedField]) -> None:
    s = ctx.settings
    if seo is not None:
        for lang, meta in seo.meta.items():
            cluster.meta_titles[lang] = meta.title
            cluster.meta_descriptions[lang] = meta.description
        cluster.topics = list(seo.topics)
        cluster.keywords = seo.keywords or cluster.keywords
        cluster.district = seo.district or cluster.district
        cluster.primary_entity = seo.primary_entity or cluster.primary_entity
        cluster.event_type = seo.event_type or cluster.event_type
    # the taxonomy holds even when the SEO stage produced nothing
    cluster.topics = repair_topics(cluster.topics, cluster.category)
    cluster.topic = next((t for t in cluster.topics if t in CONTENT_TOPICS), cluster.topic)
    # meta fields must never be published empty, whatever the SEO stage did
    for lang in s.languages:
        if not cluster.meta_titles.get(lang) or not cluster.meta_descriptions.get(lang):
            fb = fallback_meta(headlines[lang].text, summaries[lang].text)
            cluster.meta_titles[lang] = cluster.meta_titles.get(lang) or fb.title
            cluster.meta_descriptions[lang] = cluster.meta_descriptions.get(lang) or fb.description
    base = s.fallback_language
    cluster.meta_titles[base] = unique_meta_title(ctx, cluster.meta_titles[base])


def _status(f: TranslatedField, prev: Optional[Summary], lang: str) -> str:
    if f.status == "existing":
        return prev.translation_status.get(lang, "generated") if prev else "generated"
    return f.status


def _build_summary(ctx: EnrichmentContext, summary: SummaryResult,
                   summaries: Dict[str, TranslatedField], seo: Optional[SEOResult]) -> Tuple[Summary, bool]:
    prev = ctx.summary
    regenerated = summary.origin != "existing"
    version = (prev.version if prev else 0) + (1 if regenerated or prev is None else 0)
    key_facts = dict(prev.key_facts) if prev else {}
    if seo is not None and seo.key_facts:
        key_facts.update(seo.key_facts)
    row = Summary(
        cluster_id=ctx.cluster_id,
        texts={lang: f.text for lang, f in summaries.items()},
        quality={lang: round(f.quality, 4) for lang, f in summaries.items()},
        lengths={lang: len(f.text) for lang, f in summaries.items()},
        key_facts=key_facts,
        translation_status={lang: _status(f, prev, lang) for lang, f in summaries.items()},
        source_lang=summary.language,
        source_count=ctx.cluster.source_count if regenerated or prev is None else prev.source_count,
        needs_review=summary.needs_review,
        version=version,
        updated_at=ctx.now,
    )
    return row, regenerated


def publish(
    ctx: EnrichmentContext,
    summary: SummaryResult,
    translation: TranslationResult,
    seo: Optional[SEOResult] = None,
    image: Optional[ImageResult] = None,
    category: Optional[CategoryResult] = None,
) -> Cluster:
    """Persist every enriched field and mark the cluster published."""
    s = ctx.settings
    cluster = ctx.cluster.model_copy(deep=True)

    headlines = fill_missing(translation.headlines, s.languages, s.min_field_length,
                             preferred=translation.source_lang, last_resort=cluster.headline)
    summaries = fill_missing(translation.summaries, s.languages, s.min_field_length,
                             preferred=summary.language, last_resort=summary.text or cluster.headline)

    for lang in s.languages:
        cluster.headlines[lang] = headlines[lang].text
        cluster.headline_quality[lang] = round(headlines[lang].quality, 4)

    if category is not None:
        cluster.category = category.category
    _apply_seo(ctx, cluster, seo, headlines, summaries)

    if image is not None and image.url:
        cluster.image_url = image.url
        cluster.image_relevance = round(image.relevance, 4)
        cluster.image_source = image.source

    cluster.slug = stable_slug(ctx, cluster.meta_titles.get(s.fallback_language) or headlines[s.fallback_language].text)
    cluster.status = PUBLISHED
    cluster.published_at = cluster.published_at or ctx.now

    row, regenerated = _build_summary(ctx, summary, summaries, seo)
    ctx.store.save_summary(row)
    ctx.store.update_cluster(cluster)
    logger.info(
        "publish: cluster=%s slug=%s summary_version=%d regenerated=%s image=%s",
        ctx.cluster_id, cluster.slug, row.version, regenerated, bool(cluster.image_url),
    )
    return cluster
