"""Title normalization and similarity scoring used by clustering.

Titles are reduced to two comparable feature sets: normalized tokens and
gazetteer entities. Both functions are pure; an empty title yields empty sets.
"""

from __future__ import annotations

import re
import unicodedata
from dataclasses import dataclass
from typing import FrozenSet, Iterable

STOP_WORDS = frozenset({
    "the", "a", "an", "of", "in", "on", "and", "or", "to", "for", "with", "by", "at", "from",
})

SYNONYMS = {
    "govt": "government",
    "gov": "government",
    "lanka": "sri lanka",
    "sl": "sri lanka",
}

# Places plus the offices that anchor most political stories.
GAZETTEER = frozenset({
    "colombo", "jaffna", "kandy", "galle", "matara", "kurunegala", "trincomalee",
    "batticaloa", "anuradhapura", "negombo", "ratnapura", "badulla",
    "sri lanka", "president", "parliament", "prime minister", "cabinet",
})

TOKEN_WEIGHT = 0.7
ENTITY_WEIGHT = 0.3

_CAPITALIZED_SPAN = re.compile(r"\b[A-Z][a-z]+(?:\s+[A-Z][a-z]+)*\b")


@dataclass(frozen=True)
class TitleFeatures:
    tokens: FrozenSet[str]
    entities: FrozenSet[str]


def _canonicalize(text: str) -> str:
    text = unicodedata.normalize("NFKC", text or "").strip()
    text = re.sub(r"\s+", " ", text)
    text = re.sub(r"[“”]", '"', text)
    text = re.sub(r"[‘’]", "'", text)
    return text


def _strip_symbols(text: str) -> str:
    # Letters, digits and combining marks survive so Sinhala/Tamil words stay intact.
    return "".join(
        ch if unicodedata.category(ch)[0] in ("L", "N", "M") else " "
        for ch in text
    )


def normalize_title(title: str) -> FrozenSet[str]:
    lowered = _strip_symbols(_canonicalize(title).lower())
    tokens = set()
    for raw in lowered.split():
        for tok in SYNONYMS.get(raw, raw).split():
            if tok and tok not in STOP_WORDS:
                tokens.add(tok)
    return frozenset(tokens)


def extract_entities(title: str) -> FrozenSet[str]:
    found = set()
    for span in _CAPITALIZED_SPAN.findall(_canonicalize(title)):
        words = span.lower().split()
        # Every contiguous sub-span is a candidate so "Colombo President" finds both.
        for i in range(len(words)):
            for j in range(i + 1, len(words) + 1):
                candidate = " ".join(words[i:j])
                if candidate in GAZETTEER:
                    found.add(candidate)
    return frozenset(found)


def title_features(title: str) -> TitleFeatures:
    return TitleFeatures(tokens=normalize_title(title), entities=extract_entities(title))


def jaccard(a: Iterable[str], b: Iterable[str]) -> float:
    sa, sb = set(a), set(b)
    union = sa | sb
    if not union:
        return 0.0
    return len(sa & sb) / len(union)


def similarity(a: TitleFeatures, b: TitleFeatures) -> float:
    """Blended similarity in [0, 1]; symmetric."""
    return TOKEN_WEIGHT * jaccard(a.tokens, b.tokens) + ENTITY_WEIGHT * jaccard(a.entities, b.entities)


def slugify(text: str, max_len: int = 80) -> str:
    ascii_text = unicodedata.normalize("NFKD", text or "").encode("ascii", "ignore").decode("ascii")
    slug = re.sub(r"[^a-z0-9]+", "-", ascii_text.lower()).strip("-")
    if len(slug) > max_len:
        slug = slug[:max_len].rsplit("-", 1)[0] or slug[:max_len]
    return slug or "story"
