"""Local, pure scoring functions consumed by the quality gate.

Every scorer returns a number in 0..100. They are heuristics over structure
only; nothing here calls out to a model.
"""

from __future__ import annotations

import re
from typing import Iterable, List, Optional

from newsdesk.language import matches_script
from newsdesk.models import Language

_NUMBER = re.compile(r"\b\d[\d,]*(?:\.\d+)?\b")
_SENTENCE_END = re.compile(r"[.!?।。]\s*$")


def _clamp(score: float) -> float:
    return max(0.0, min(100.0, score))


def _numbers(text: str) -> List[str]:
    return [n.replace(",", "") for n in _NUMBER.findall(text or "")]


def needs_review(summary: str, sources: Iterable[str]) -> bool:
    """True when the summary cites a number that none of the sources contain."""
    source_numbers = {n for s in sources for n in _numbers(s)}
    return any(n not in source_numbers for n in set(_numbers(summary)))


def _sentences(text: str) -> List[str]:
    parts = re.split(r"(?<=[.!?।])\s+", (text or "").strip())
    return [p for p in parts if p.strip()]


def score_summary(text: str, sources: Optional[Iterable[str]] = None) -> float:
    text = (text or "").strip()
    if not text:
        return 0.0
    score = 100.0
    words = len(text.split())
    if words < 40:
        score -= 30
    elif words < 80:
        score -= 10
    elif words > 400:
        score -= 15

    sents = _sentences(text)
    if len(sents) < 2:
        score -= 20
    if len(set(s.strip().lower() for s in sents)) < len(sents):
        score -= 15
    if not _SENTENCE_END.search(text):
        score -= 10
    if sources is not None and needs_review(text, sources):
        score -= 20
    return _clamp(score)


def _score_pair(source: str, target: str, from_lang: Language, to_lang: Language,
                ratio_bounds: tuple) -> float:
    source = (source or "").strip()
    target = (target or "").strip()
    if not target:
        return 0.0
    if from_lang != to_lang and target == source:
        return 20.0
    score = 100.0
    if not matches_script(target, to_lang):
        score -= 50
    if source:
        ratio = len(target) / len(source)
        lo, hi = ratio_bounds
        if ratio < lo or ratio > hi:
            score -= 25
    return _clamp(score)


def score_translation(source: str, target: str, from_lang: Language, to_lang: Language) -> float:
    return _score_pair(source, target, from_lang, to_lang, (0.5, 2.5))


def score_headline_translation(source: str, target: str, from_lang: Language, to_lang: Language) -> float:
    score = _score_pair(source, target, from_lang, to_lang, (0.3, 3.0))
    if len((target or "").strip()) > 160:
        score -= 15
    return _clamp(score)


_URL_WORD = re.compile(r"[a-z]{3,}")


def score_image(url: str, headline: str = "", tier_bonus: float = 0.0) -> float:
    """Relevance of an image URL to a headline from URL words and candidate tier."""
    url = (url or "").strip()
    if not url.lower().startswith(("http://", "https://")):
        return 0.0
    score = 60.0 + tier_bonus
    words = set(_URL_WORD.findall(url.lower().rsplit("/", 1)[-1]))
    head = set(_URL_WORD.findall((headline or "").lower()))
    if words & head:
        score += min(20.0, 10.0 * len(words & head))
    return _clamp(score)
