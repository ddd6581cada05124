"""Fixed topic vocabulary and taxonomy repair."""

from __future__ import annotations

import re
from typing import Iterable, List, Optional

VALID_TOPICS = (
    "politics", "economy", "business", "sports", "crime", "education", "health",
    "environment", "technology", "culture", "entertainment", "science",
    "sri-lanka", "world", "local",
)

GEO_TOPICS = ("sri-lanka", "world", "local")
CONTENT_TOPICS = tuple(t for t in VALID_TOPICS if t not in GEO_TOPICS)

DEFAULT_GEO_TOPIC = "sri-lanka"
DEFAULT_CONTENT_TOPIC = "politics"
UNKNOWN_CATEGORY = "other"

_ALIASES = {
    "sri lanka": "sri-lanka",
    "srilanka": "sri-lanka",
    "sri_lanka": "sri-lanka",
    "tech": "technology",
    "env": "environment",
    "edu": "education",
    "pol": "politics",
    "econ": "economy",
    "biz": "business",
    "ent": "entertainment",
    "sci": "science",
}


def normalize_topic(topic: Optional[str]) -> Optional[str]:
    if not topic:
        return None
    s = topic.strip().lower()
    s = _ALIASES.get(s, s)
    s = re.sub(r"[\s_]+", "-", s)
    s = re.sub(r"[^a-z0-9-]", "", s)
    s = re.sub(r"-+", "-", s).strip("-")
    return s if s in VALID_TOPICS else None


def normalize_category(category: Optional[str]) -> str:
    """Content-topic category, or ``other`` for anything outside the vocabulary."""
    t = normalize_topic(category)
    return t if t in CONTENT_TOPICS else UNKNOWN_CATEGORY


def repair_topics(topics: Iterable[str], category: Optional[str] = None) -> List[str]:
    """Normalize, dedupe, and guarantee one geographic and one content tag.

    Missing tags are injected deterministically: the geographic default, and
    the cluster category (when it is a content topic) or the content default.
    """
    out: List[str] = []
    for raw in topics or []:
        t = normalize_topic(raw)
        if t and t not in out:
            out.append(t)
    if not any(t in GEO_TOPICS for t in out):
        out.insert(0, DEFAULT_GEO_TOPIC)
    if not any(t in CONTENT_TOPICS for t in out):
        cat = normalize_topic(category)
        out.append(cat if cat in CONTENT_TOPICS else DEFAULT_CONTENT_TOPIC)
    return out


def topics_complete(topics: Iterable[str]) -> bool:
    """True when the tags already carry one geographic and one content topic."""
    tags = set(topics or [])
    return bool(tags & set(GEO_TOPICS)) and bool(tags & set(CONTENT_TOPICS))
