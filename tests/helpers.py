import datetime as dt
from collections import Counter
from typing import List, Optional

from newsdesk.content import SeoExtraction
from newsdesk.models import Article, Cluster, FeedItem, Source
from newsdesk.utils import make_article_hash

NOW = dt.datetime(2025, 3, 1, 12, 0, tzinfo=dt.timezone.utc)

SUMMARY_EN = (
    "The President announced a new budget policy in Colombo on Monday. "
    "The plan shifts spending towards schools, rural hospitals and public transport over the coming year. "
    "Opposition members said the proposal lacked detail on how the extra spending would be funded. "
    "Officials expect parliament to debate the measures before the end of the month."
)

SCRIPT_CHAR = {"si": "අ", "ta": "த"}


def native_text(text: str, lang: str) -> str:
    """A string in the target script of roughly the same length as ``text``."""
    if lang == "en":
        return text
    word = SCRIPT_CHAR[lang] * 5
    return " ".join([word] * max(1, len(text) // 6))


class FakeContent:
    """Deterministic content service; every call is counted."""

    def __init__(self, summary: str = SUMMARY_EN, fail: Optional[set] = None, topics: Optional[List[str]] = None):
        self.summary = summary
        self.fail = fail or set()
        self.topics = ["politics"] if topics is None else topics
        self.calls = Counter()
        self.summarize_langs: List[str] = []

    def total_calls(self) -> int:
        return sum(self.calls.values())

    def _maybe_fail(self, op: str) -> None:
        self.calls[op] += 1
        if op in self.fail:
            raise RuntimeError(f"{op} unavailable")

    def summarize(self, sources, lang, previous=None):
        self.summarize_langs.append(lang)
        self._maybe_fail("summarize")
        return native_text(self.summary, lang)

    def translate(self, text, from_lang, to_lang, kind="summary"):
        self._maybe_fail("translate")
        return native_text(text, to_lang)

    def extract_seo(self, summary, headline, articles):
        self._maybe_fail("extract_seo")
        return SeoExtraction(
            titles={"en": headline[:60], "si": native_text(headline[:40], "si"), "ta": native_text(headline[:40], "ta")},
            descriptions={"en": summary[:150], "si": native_text(summary[:100], "si"), "ta": native_text(summary[:100], "ta")},
            topics=list(self.topics),
            keywords=["budget", "policy"],
            key_facts=["Budget announced"],
        )

    def select_image(self, candidates, headline, summary):
        self._maybe_fail("select_image")
        return candidates[-1]

    def categorize(self, articles):
        self._maybe_fail("categorize")
        return "Politics"


class FakeFetcher:
    def __init__(self, feeds, failing=()):
        self.feeds = feeds
        self.failing = set(failing)

    def fetch(self, feed_url):
        if feed_url in self.failing:
            raise ConnectionError(f"cannot reach {feed_url}")
        return list(self.feeds.get(feed_url, []))


def make_source(source_id: str, feed_url: Optional[str] = None, language=None) -> Source:
    return Source(id=source_id, name=source_id.upper(), feed_url=feed_url or f"https://{source_id}.example/rss", language=language)


def make_item(title: str, slug: str, **kw) -> FeedItem:
    return FeedItem(title=title, url=f"https://news.example/{slug}", guid=slug,
                    published_at=kw.pop("published_at", NOW - dt.timedelta(hours=1)), **kw)


def make_article(title: str, source_id: str = "s1", slug: Optional[str] = None, **kw) -> Article:
    slug = slug or title.lower().replace(" ", "-")
    url = kw.pop("url", f"https://{source_id}.example/{slug}")
    return Article(
        source_id=source_id,
        title=title,
        url=url,
        hash=make_article_hash(url, None, title),
        published_at=kw.pop("published_at", NOW - dt.timedelta(hours=2)),
        excerpt=kw.pop("excerpt", SUMMARY_EN),
        **kw,
    )


def make_cluster(headline: str, cluster_id: Optional[str] = None, *, seen: dt.datetime = NOW, **kw) -> Cluster:
    return Cluster(
        id=cluster_id,
        headline=headline,
        first_seen_at=kw.pop("first_seen_at", seen),
        last_seen_at=seen,
        expires_at=kw.pop("expires_at", seen + dt.timedelta(days=30)),
        **kw,
    )


def base_config(**sections) -> dict:
    cfg = {
        "clustering": {"window_hours": 48, "similarity_threshold": 0.4, "cluster_ttl_days": 30},
        "eligibility": {"min_article_count": 1, "min_source_count": 1},
        "quality": {"summary_threshold": 0.7, "translation_threshold": 0.7, "headline_threshold": 0.7,
                    "image_threshold": 0.6, "max_retries": 2, "min_field_length": 10},
        "languages": ["en", "si", "ta"],
        "enrichment": {"mode": "sequential", "live_image_fetch": False},
        "workers": {"concurrency": 2, "task_timeout_s": 5, "task_max_retries": 1, "poll_interval_s": 0.01},
        "fetch": {"concurrency": 2},
        "run": {"min_interval_minutes": 10},
    }
    for name, value in sections.items():
        if isinstance(value, dict):
            cfg.setdefault(name, {}).update(value)
        else:
            cfg[name] = value
    return cfg
