from __future__ import annotations

from collections import Counter
from typing import List, Optional

from newsdesk.language import detect_language
from newsdesk.models import SummaryResult
from newsdesk.quality import gate
from newsdesk.stages.context import EnrichmentContext
from newsdesk.stages.packer import clip_sentences, pool_text
from newsdesk.utils import get_logger
from newsdesk.validators import needs_review, score_summary

logger = get_logger(__name__)

SOURCE_TEXT_CHARS = 600


def _lang_hint(ctx: EnrichmentContext) -> Optional[str]:
    langs = Counter(a.lang for a in ctx.articles)
    if not langs:
        return ctx.cluster.language
    return langs.most_common(1)[0][0]


def _source_texts(ctx: EnrichmentContext) -> List[str]:
    return [f"{s.title} {s.content}" for s in ctx.sources]


def source_text_summary(ctx: EnrichmentContext, lang_hint: Optional[str] = None) -> SummaryResult:
    """Degraded summary built from the lead source text unchanged."""
    lead = ctx.sources[0].content if ctx.sources else ""
    text = clip_sentences(lead, SOURCE_TEXT_CHARS) or ctx.cluster.headline
    lang = detect_language(text, hint=lang_hint or ctx.cluster.language)
    return SummaryResult(
        text=text,
        language=lang,
        quality=score_summary(text) / 100.0,
        origin="source_text",
    )


def summary_from_state(ctx: EnrichmentContext) -> SummaryResult:
    """The persisted summary, or the source-text default when there is none."""
    prev = ctx.summary
    if prev is not None and prev.texts.get(prev.source_lang):
        return SummaryResult(
            text=prev.texts[prev.source_lang],
            language=prev.source_lang,
            quality=prev.quality.get(prev.source_lang, 0.0),
            origin="existing",
            needs_review=prev.needs_review,
        )
    return source_text_summary(ctx)


def summarize(ctx: EnrichmentContext) -> SummaryResult:
    if not ctx.flags.needs_summary:
        return summary_from_state(ctx)

    s = ctx.settings
    payload = [src.as_payload() for src in ctx.sources]
    texts = _source_texts(ctx)
    lang = detect_language(pool_text(ctx.sources), hint=_lang_hint(ctx))
    previous = ctx.summary.texts.get(lang) if ctx.summary else None

    fallback = None
    if lang != "en":
        def fallback():
            return ctx.content.summarize(payload, "en", None)

    outcome = gate(
        lambda: ctx.content.summarize(payload, lang, previous),
        lambda text: score_summary(text, texts),
        threshold=s.summary_threshold,
        max_retries=s.max_retries,
        fallback=fallback,
        default=None,
        label=f"summary.{lang}",
    )

    if outcome.origin == "default" or not (outcome.value or "").strip():
        ctx.record("summary", "; ".join(outcome.errors[-2:]) or "empty summary")
        result = source_text_summary(ctx, lang)
    else:
        text = outcome.value.strip()
        result = SummaryResult(
            text=text,
            language="en" if outcome.origin == "fallback" else lang,
            quality=outcome.score,
            origin="fallback_en" if outcome.origin == "fallback" else "generated",
            needs_review=needs_review(text, texts),
        )

    logger.info(
        "summary: cluster=%s lang=%s origin=%s score=%.2f attempts=%d accepted=%s",
        ctx.cluster_id, result.language, result.origin, result.quality, outcome.attempts, outcome.accepted,
    )
    return result
