from newsdesk.language import detect_language, matches_script
from newsdesk.validators import (
    needs_review, score_headline_translation, score_image, score_summary, score_translation,
)

from helpers import SUMMARY_EN, native_text


def test_detect_language_by_script():
    assert detect_language("ජනාධිපති නව අයවැය") == "si"
    assert detect_language("ஜனாதிபதி புதிய வரவு") == "ta"
    assert detect_language("President announces budget") == "en"
    assert detect_language("", hint="ta") == "ta"
    assert detect_language("President announces budget", hint="si") == "en"


def test_matches_script():
    assert matches_script(native_text("hello world", "si"), "si")
    assert not matches_script("hello world", "ta")


def test_score_summary_penalizes_short_and_unsupported_numbers():
    assert score_summary("") == 0
    assert score_summary(SUMMARY_EN) == 90
    assert score_summary("Too short") < 50
    assert needs_review("The budget is 500 billion.", ["A budget was announced."])
    assert not needs_review("The budget is 1,500 rupees.", ["Budget of 1500 rupees"])
    assert score_summary(SUMMARY_EN + " It costs 12 billion.", [SUMMARY_EN]) < score_summary(SUMMARY_EN, [SUMMARY_EN])


def test_score_translation_rules():
    src = "The President announced a new budget policy."
    assert score_translation(src, native_text(src, "si"), "en", "si") == 100
    assert score_translation(src, src, "en", "si") == 20
    assert score_translation(src, "", "en", "si") == 0
    assert score_translation(src, native_text(src, "ta"), "en", "si") == 50
    assert score_translation(src, native_text(src * 4, "si"), "en", "si") == 75
    assert score_headline_translation("Short", native_text("x" * 200, "si"), "en", "si") < 100


def test_score_image_uses_url_words():
    assert score_image("ftp://x/y.jpg") == 0
    plain = score_image("https://cdn.example/a/photo123.jpg", "Budget day")
    matched = score_image("https://cdn.example/a/budget-speech.jpg", "Budget day")
    assert matched > plain == 60
