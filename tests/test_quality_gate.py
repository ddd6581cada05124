import pytest

from newsdesk.quality import QualityGateError, gate


def _sequence(values):
    it = iter(values)
    calls = []

    def attempt():
        calls.append(1)
        v = next(it)
        if isinstance(v, Exception):
            raise v
        return v

    return attempt, calls


def test_returns_first_result_at_threshold():
    attempt, calls = _sequence([50, 80, 95])
    out = gate(attempt, lambda v: v, threshold=0.7, max_retries=5)
    assert out.value == 80
    assert out.accepted and out.attempts == 2
    assert len(calls) == 2


@pytest.mark.parametrize("max_retries", [0, 1, 3])
def test_never_exceeds_retry_bound(max_retries):
    attempt, calls = _sequence([10] * 10)
    gate(attempt, lambda v: v, threshold=0.9, max_retries=max_retries)
    assert len(calls) == max_retries + 1


def test_best_result_wins_when_threshold_missed():
    attempt, _ = _sequence([30, 60, 40])
    out = gate(attempt, lambda v: v, threshold=0.9, max_retries=2)
    assert out.value == 60
    assert out.score == pytest.approx(0.6)
    assert out.degraded


def test_raising_attempts_use_fallback_then_default():
    attempt, calls = _sequence([RuntimeError("x")] * 3)
    out = gate(attempt, lambda v: 100, threshold=0.5, max_retries=2, fallback=lambda: "fb")
    assert out.value == "fb" and out.origin == "fallback"
    assert len(calls) == 3

    def broken():
        raise RuntimeError("fallback down")

    attempt, _ = _sequence([RuntimeError("x")] * 2)
    out = gate(attempt, lambda v: 100, threshold=0.5, max_retries=1, fallback=broken, default="source text")
    assert out.value == "source text" and out.origin == "default"
    assert out.score == 0.0


def test_raises_when_nothing_is_left():
    attempt, _ = _sequence([RuntimeError("x")] * 2)
    with pytest.raises(QualityGateError):
        gate(attempt, lambda v: 100, threshold=0.5, max_retries=1)


def test_validator_errors_score_zero():
    attempt, _ = _sequence(["a", "b"])

    def validate(v):
        raise ValueError("bad")

    out = gate(attempt, validate, threshold=0.5, max_retries=1)
    assert out.value == "a" and out.score == 0.0
