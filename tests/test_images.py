from newsdesk.eligibility import EligibilityPolicy
from newsdesk.enrichment import prepare
from newsdesk.models import SummaryResult
from newsdesk.stages import images
from newsdesk.stages.clustering import ClusterWindow, assign_articles
from newsdesk.stages.context import EnrichmentSettings
from newsdesk.stages.images import extract_image_urls, is_content_image, select_image
from newsdesk.store import MemoryStore

from helpers import NOW, SUMMARY_EN, FakeContent, base_config, make_article

SUMMARY = SummaryResult(text=SUMMARY_EN, language="en", quality=0.9)


def _context(content, cfg=None, **article_kw):
    cfg = cfg or base_config()
    store = MemoryStore()
    arts = store.upsert_articles([make_article("Budget speech in parliament", "s1", **article_kw)])
    window = ClusterWindow.load(store, window_hours=48, now=NOW)
    (cid,) = assign_articles(arts, window, store, threshold=0.4, now=NOW).touched
    ctx, _ = prepare(cid, store=store, content=content, settings=EnrichmentSettings.from_config(cfg),
                     policy=EligibilityPolicy.from_config(cfg), now=NOW)
    return ctx


def test_is_content_image_filters_junk():
    assert is_content_image("https://cdn.example/news/road-closure.jpg")
    assert is_content_image("https://cdn.example/photo-800x600.jpg")
    assert not is_content_image("https://cdn.example/site-logo.png")
    assert not is_content_image("https://cdn.example/ads/banner1.jpg")
    assert not is_content_image("https://cdn.example/thumb-50x50.jpg")
    assert not is_content_image("https://cdn.example/mark.svg")
    assert not is_content_image("data:image/png;base64,AAAA")


def test_extract_image_urls_resolves_relative_and_lazy_sources():
    html = ('<meta property="og:image" content="/img/lead.jpg">'
            '<p>text</p><img class="wide" data-src="inline.jpg">')
    assert extract_image_urls(html, "https://news.example/story/1") == [
        "https://news.example/img/lead.jpg",
        "https://news.example/story/inline.jpg",
    ]
    assert extract_image_urls("", "https://news.example/") == []


def test_article_tier_beats_html_tier():
    content = FakeContent()
    ctx = _context(
        content,
        image_urls=["https://cdn.example/budget.jpg"],
        content_html='<img src="https://cdn.example/inline-budget.jpg">',
    )
    result = select_image(ctx, SUMMARY)
    assert result.url == "https://cdn.example/budget.jpg"
    assert result.source == "article"
    assert content.calls["select_image"] == 0


def test_several_strong_candidates_go_to_the_content_service():
    content = FakeContent()
    ctx = _context(content, image_urls=["https://cdn.example/budget-a.jpg", "https://cdn.example/budget-b.jpg"])
    result = select_image(ctx, SUMMARY)
    assert content.calls["select_image"] == 1
    assert result.url == "https://cdn.example/budget-b.jpg"
    assert result.relevance >= 0.6


def test_weak_candidates_take_the_first_without_a_call():
    content = FakeContent()
    cfg = base_config(quality={"image_threshold": 0.95})
    ctx = _context(content, cfg, image_urls=["https://cdn.example/a1.jpg", "https://cdn.example/a2.jpg"])
    result = select_image(ctx, SUMMARY)
    assert result.url == "https://cdn.example/a1.jpg"
    assert content.calls["select_image"] == 0


def test_page_fetch_only_when_nothing_else(monkeypatch):
    fetched = []

    def fake_fetch(url, timeout=10.0):
        fetched.append(url)
        return '<meta property="og:image" content="https://cdn.example/page-photo.jpg">'

    monkeypatch.setattr(images, "fetch_page", fake_fetch)
    cfg = base_config(enrichment={"live_image_fetch": True})
    ctx = _context(FakeContent(), cfg)
    result = select_image(ctx, SUMMARY)
    assert result.source == "page"
    assert result.url == "https://cdn.example/page-photo.jpg"
    assert len(fetched) == 1


def test_page_fetch_failure_is_recorded(monkeypatch):
    def broken(url, timeout=10.0):
        raise ConnectionError("refused")

    monkeypatch.setattr(images, "fetch_page", broken)
    ctx = _context(FakeContent(), base_config(enrichment={"live_image_fetch": True}))
    result = select_image(ctx, SUMMARY)
    assert result.url is None and result.source == "none"
    assert [e.stage for e in ctx.errors] == ["image"]
