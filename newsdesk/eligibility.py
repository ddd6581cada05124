"""Per-cluster eligibility flags.

Flags are re-derived from persisted state on every run and never cached.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Sequence

from newsdesk.language import detect_language
from newsdesk.models import Cluster, Summary
from newsdesk.topics import topics_complete


@dataclass
class EligibilityPolicy:
    min_article_count: int = 1
    min_source_count: int = 1

    @classmethod
    def from_config(cls, cfg: dict) -> "EligibilityPolicy":
        e = cfg.get("eligibility") or {}
        return cls(
            min_article_count=int(e.get("min_article_count", 1)),
            min_source_count=int(e.get("min_source_count", 1)),
        )

    def allows(self, cluster: Cluster) -> bool:
        # an empty cluster has nothing to summarize, whatever the policy says
        if cluster.article_count <= 0:
            return False
        return (
            cluster.article_count >= self.min_article_count
            and cluster.source_count >= self.min_source_count
        )


@dataclass
class EnrichmentFlags:
    needs_summary: bool = False
    needs_headlines: bool = False
    needs_translation: bool = False
    needs_seo: bool = False
    needs_image: bool = False
    needs_category: bool = False

    @property
    def any(self) -> bool:
        return (
            self.needs_summary or self.needs_headlines or self.needs_translation
            or self.needs_seo or self.needs_image or self.needs_category
        )

    def describe(self) -> str:
        names = [k for k, v in vars(self).items() if v]
        return ",".join(n.replace("needs_", "") for n in names) or "none"


def headline_language(cluster: Cluster) -> str:
    return detect_language(cluster.headline, hint=cluster.language)


def compute_flags(
    cluster: Cluster,
    summary: Optional[Summary],
    *,
    languages: Sequence[str],
    summary_threshold: float,
    translation_threshold: float,
    headline_threshold: float,
) -> EnrichmentFlags:
    flags = EnrichmentFlags()

    if summary is None or not summary.texts.get(summary.source_lang):
        flags.needs_summary = True
    else:
        if summary.source_count != cluster.source_count:
            flags.needs_summary = True
        if summary.quality.get(summary.source_lang, 0.0) < summary_threshold:
            flags.needs_summary = True

    head_lang = headline_language(cluster)
    for lang in languages:
        if lang == head_lang:
            continue
        if not cluster.headlines.get(lang) or cluster.headline_quality.get(lang, 0.0) < headline_threshold:
            flags.needs_headlines = True

    if flags.needs_summary:
        flags.needs_translation = True
    elif summary is not None:
        for lang in languages:
            if lang == summary.source_lang:
                continue
            if not summary.texts.get(lang) or summary.quality.get(lang, 0.0) < translation_threshold:
                flags.needs_translation = True

    for lang in languages:
        if not cluster.meta_titles.get(lang) or not cluster.meta_descriptions.get(lang):
            flags.needs_seo = True
    if not topics_complete(cluster.topics):
        flags.needs_seo = True

    flags.needs_image = not cluster.image_url
    flags.needs_category = not cluster.category
    return flags
