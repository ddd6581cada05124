from __future__ import annotations

from typing import Optional

from newsdesk.models import Language

SINHALA_RANGE = (0x0D80, 0x0DFF)
TAMIL_RANGE = (0x0B80, 0x0BFF)

# Share of letters that must belong to a script before it decides the language.
SCRIPT_SHARE = 0.3


def script_counts(text: str) -> dict:
    counts = {"si": 0, "ta": 0, "latin": 0}
    for ch in text or "":
        cp = ord(ch)
        if SINHALA_RANGE[0] <= cp <= SINHALA_RANGE[1]:
            counts["si"] += 1
        elif TAMIL_RANGE[0] <= cp <= TAMIL_RANGE[1]:
            counts["ta"] += 1
        elif ch.isascii() and ch.isalpha():
            counts["latin"] += 1
    return counts


def detect_language(text: str, hint: Optional[Language] = None) -> Language:
    """Script-based detection for en/si/ta.

    A hint wins only when the text carries no decisive script.
    """
    counts = script_counts(text)
    total = sum(counts.values())
    if total == 0:
        return hint or "en"
    si_share = counts["si"] / total
    ta_share = counts["ta"] / total
    if si_share >= SCRIPT_SHARE and si_share >= ta_share:
        return "si"
    if ta_share >= SCRIPT_SHARE:
        return "ta"
    if hint and counts["latin"] / total < 0.9:
        return hint
    return "en"


def matches_script(text: str, lang: Language) -> bool:
    counts = script_counts(text)
    total = sum(counts.values())
    if total == 0:
        return False
    if lang == "en":
        return counts["latin"] / total >= 0.5
    return counts[lang] / total >= SCRIPT_SHARE
