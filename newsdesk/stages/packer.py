from __future__ import annotations

import datetime as dt
import re
import typing as t
from dataclasses import dataclass

from newsdesk.models import Article
from newsdesk.utils import get_logger, now_utc

logger = get_logger(__name__)

AUTHORITY_PATTERNS = [
    re.compile(p, re.IGNORECASE)
    for p in (
        r"\.gov\.lk", r"\.gov\.", r"ministry", r"department", r"parliament",
        r"president", r"prime.?minister", r"cabinet", r"official",
        r"press.?release", r"announcement",
    )
]

RECENCY_HORIZON = dt.timedelta(days=7)
LEAD_WEIGHT = 1.5
RECENCY_BOOST = 0.3


def _sent_split(text: str) -> t.List[str]:
    sents = re.split(r"(?<=[。！？.!?।])\s+", (text or "").strip())
    return [s for s in sents if s]


def clip_sentences(text: str, limit: int) -> str:
    """Keep whole sentences up to ``limit`` chars; a single long sentence is cut."""
    out: t.List[str] = []
    total = 0
    for s in _sent_split(text):
        if total + len(s) > limit:
            break
        out.append(s)
        total += len(s) + 1
    if not out:
        return (text or "").strip()[:limit]
    return " ".join(out)


def is_authority_url(url: str) -> bool:
    return any(p.search(url or "") for p in AUTHORITY_PATTERNS)


def recency_score(published_at: t.Optional[dt.datetime], now: dt.datetime) -> float:
    if published_at is None:
        return 0.5
    age = now - published_at
    return max(0.0, 1.0 - age / RECENCY_HORIZON)


@dataclass
class WeightedSource:
    title: str
    content: str
    url: str
    published_at: t.Optional[dt.datetime]
    weight: float
    authority: bool = False
    recency: float = 0.5

    def as_payload(self) -> dict:
        return {
            "title": self.title,
            "content": self.content,
            "weight": round(self.weight, 4),
            "published_at": self.published_at.isoformat() if self.published_at else None,
        }


def weight_sources(
    articles: t.List[Article],
    *,
    now: t.Optional[dt.datetime] = None,
    authority_weight: float = 2.0,
    max_articles: int = 8,
    char_limit: int = 1500,
) -> t.List[WeightedSource]:
    """Weight member articles by position, authority and recency.

    ``articles`` are expected newest first, as the store returns them.
    """
    now = now or now_utc()
    out: t.List[WeightedSource] = []
    for idx, a in enumerate(articles):
        base = LEAD_WEIGHT if idx == 0 else 1.0
        authority = is_authority_url(a.url)
        if authority:
            base *= authority_weight
        recency = recency_score(a.published_at, now)
        body = a.excerpt or a.content or a.title
        out.append(WeightedSource(
            title=a.title,
            content=clip_sentences(body, char_limit),
            url=a.url,
            published_at=a.published_at,
            weight=base * (1.0 + recency * RECENCY_BOOST),
            authority=authority,
            recency=recency,
        ))
    out.sort(key=lambda s: s.weight, reverse=True)
    kept = out[:max_articles]
    logger.debug("packer.weight: kept=%d from=%d authority=%d", len(kept), len(out), sum(1 for s in kept if s.authority))
    return kept


def pool_text(sources: t.List[WeightedSource], per_source_chars: int = 200) -> str:
    return " ".join(f"{s.title} {s.content[:per_source_chars]}" for s in sources).strip()
