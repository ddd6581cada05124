"""Quality gate: attempt, validate, retry or degrade.

``gate`` wraps any scored generation call. Validators score on 0..100; the
outcome carries the score normalized to 0..1, the scale thresholds and stored
quality fields use.

The gate never raises for a low score. It raises ``QualityGateError`` only
when every attempt and the fallback raised and no default was supplied.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Callable, Generic, List, Optional, TypeVar

from newsdesk.utils import get_logger

logger = get_logger(__name__)

T = TypeVar("T")

_NO_DEFAULT: Any = object()


class QualityGateError(RuntimeError):
    def __init__(self, label: str, errors: List[str]):
        super().__init__(f"{label}: all attempts failed ({'; '.join(errors[-3:])})")
        self.label = label
        self.errors = errors


@dataclass
class GateOutcome(Generic[T]):
    value: T
    score: float
    attempts: int
    accepted: bool
    origin: str = "attempt"
    errors: List[str] = field(default_factory=list)

    @property
    def degraded(self) -> bool:
        return not self.accepted


def _normalized(validate: Callable[[T], float], value: T, label: str) -> float:
    try:
        raw = float(validate(value))
    except Exception as exc:
        logger.warning("gate.%s: validator raised, scoring 0: %s", label, exc)
        return 0.0
    return max(0.0, min(100.0, raw)) / 100.0


def gate(
    attempt: Callable[[], T],
    validate: Callable[[T], float],
    threshold: float,
    max_retries: int,
    fallback: Optional[Callable[[], T]] = None,
    default: Any = _NO_DEFAULT,
    label: str = "gate",
) -> GateOutcome[T]:
    """Call ``attempt`` at most ``max_retries + 1`` times.

    Returns the first result scoring at or above ``threshold``; otherwise the
    best-scoring result observed. If every attempt raised, ``fallback()`` is
    used, then ``default``.
    """
    errors: List[str] = []
    best: Optional[T] = None
    best_score = -1.0
    attempts = 0

    for _ in range(max(0, int(max_retries)) + 1):
        attempts += 1
        try:
            result = attempt()
        except Exception as exc:
            errors.append(f"{type(exc).__name__}: {exc}")
            logger.warning("gate.%s: attempt %d raised: %s", label, attempts, exc)
            continue
        score = _normalized(validate, result, label)
        if score > best_score:
            best, best_score = result, score
        if score >= threshold:
            return GateOutcome(result, score, attempts, True, "attempt", errors)
        logger.info("gate.%s: attempt %d below threshold score=%.2f thr=%.2f", label, attempts, score, threshold)

    if best_score >= 0.0:
        return GateOutcome(best, best_score, attempts, False, "attempt", errors)  # type: ignore[arg-type]

    if fallback is not None:
        try:
            value = fallback()
        except Exception as exc:
            errors.append(f"fallback {type(exc).__name__}: {exc}")
            logger.warning("gate.%s: fallback raised: %s", label, exc)
        else:
            score = _normalized(validate, value, label)
            return GateOutcome(value, score, attempts, score >= threshold, "fallback", errors)

    if default is not _NO_DEFAULT:
        return GateOutcome(default, 0.0, attempts, False, "default", errors)

    raise QualityGateError(label, errors)
