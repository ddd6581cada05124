from __future__ import annotations

from typing import Callable

from newsdesk.eligibility import headline_language
from newsdesk.models import SummaryResult, TranslatedField, TranslationResult
from newsdesk.quality import gate
from newsdesk.stages.context import EnrichmentContext
from newsdesk.utils import get_logger
from newsdesk.validators import score_headline_translation, score_translation

logger = get_logger(__name__)


def _gated_translate(
    ctx: EnrichmentContext,
    text: str,
    from_lang: str,
    to_lang: str,
    kind: str,
    scorer: Callable[[str, str, str, str], float],
    threshold: float,
) -> TranslatedField:
    outcome = gate(
        lambda: ctx.content.translate(text, from_lang, to_lang, kind),
        lambda out: scorer(text, out, from_lang, to_lang),
        threshold=threshold,
        max_retries=ctx.settings.max_retries,
        default=None,
        label=f"{kind}.{from_lang}-{to_lang}",
    )
    out = (outcome.value or "").strip()
    if not out:
        if outcome.errors:
            ctx.record("translate", f"{kind} {to_lang}: {outcome.errors[-1]}")
        # copy the language we already have rather than leave the field empty
        field = TranslatedField(text=text, quality=scorer(text, text, from_lang, to_lang) / 100.0, status="fallback")
    else:
        field = TranslatedField(text=out, quality=outcome.score, status="generated")
    logger.info(
        "translate: cluster=%s kind=%s %s->%s status=%s score=%.2f attempts=%d",
        ctx.cluster_id, kind, from_lang, to_lang, field.status, field.quality, outcome.attempts,
    )
    return field


def _headline(ctx: EnrichmentContext, lang: str, head_lang: str) -> TranslatedField:
    cluster = ctx.cluster
    if lang == head_lang:
        return TranslatedField(text=cluster.headline, quality=1.0, status="source")
    existing = cluster.headlines.get(lang)
    quality = cluster.headline_quality.get(lang, 0.0)
    if existing and quality >= ctx.settings.headline_threshold:
        return TranslatedField(text=existing, quality=quality, status="existing")
    return _gated_translate(
        ctx, cluster.headline, head_lang, lang, "headline",
        score_headline_translation, ctx.settings.headline_threshold,
    )


def _summary(ctx: EnrichmentContext, lang: str, summary: SummaryResult) -> TranslatedField:
    if lang == summary.language:
        return TranslatedField(text=summary.text, quality=summary.quality, status="source")
    prev = ctx.summary
    if summary.origin == "existing" and prev is not None:
        existing = prev.texts.get(lang)
        quality = prev.quality.get(lang, 0.0)
        if existing and quality >= ctx.settings.translation_threshold:
            return TranslatedField(text=existing, quality=quality, status="existing")
    return _gated_translate(
        ctx, summary.text, summary.language, lang, "summary",
        score_translation, ctx.settings.translation_threshold,
    )


def translate(ctx: EnrichmentContext, summary: SummaryResult) -> TranslationResult:
    """Headline and summary in every configured language, each gated on its own."""
    head_lang = headline_language(ctx.cluster)
    result = TranslationResult(source_lang=summary.language)
    for lang in ctx.settings.languages:
        result.headlines[lang] = _headline(ctx, lang, head_lang)
        result.summaries[lang] = _summary(ctx, lang, summary)
    return result


def translation_from_state(ctx: EnrichmentContext, summary: SummaryResult) -> TranslationResult:
    """Persisted fields only, with no external calls. Gaps are filled at publish."""
    head_lang = headline_language(ctx.cluster)
    result = TranslationResult(source_lang=summary.language)
    prev = ctx.summary
    for lang in ctx.settings.languages:
        if lang == head_lang:
            result.headlines[lang] = TranslatedField(text=ctx.cluster.headline, quality=1.0, status="source")
        elif ctx.cluster.headlines.get(lang):
            result.headlines[lang] = TranslatedField(
                text=ctx.cluster.headlines[lang],
                quality=ctx.cluster.headline_quality.get(lang, 0.0),
                status="existing",
            )
        if lang == summary.language:
            result.summaries[lang] = TranslatedField(text=summary.text, quality=summary.quality, status="source")
        elif summary.origin == "existing" and prev is not None and prev.texts.get(lang):
            result.summaries[lang] = TranslatedField(
                text=prev.texts[lang], quality=prev.quality.get(lang, 0.0), status="existing",
            )
    return result
