import time

from newsdesk.eligibility import EligibilityPolicy
from newsdesk.enrichment import enrich_cluster, enrich_clusters_parallel
from newsdesk.stages.clustering import ClusterWindow, assign_articles
from newsdesk.stages.context import EnrichmentSettings
from newsdesk.store import MemoryStore
from newsdesk.topics import CONTENT_TOPICS, GEO_TOPICS, topics_complete

from helpers import NOW, FakeContent, base_config, make_article, make_cluster

LANGS = ("en", "si", "ta")


def _seeded_store(*titles_and_sources, **article_kw):
    store = MemoryStore()
    arts = store.upsert_articles([make_article(t, s, **article_kw) for t, s in titles_and_sources])
    window = ClusterWindow.load(store, window_hours=48, now=NOW)
    res = assign_articles(arts, window, store, threshold=0.4, now=NOW)
    return store, sorted(res.touched)


def _run(store, cid, content, cfg=None):
    cfg = cfg or base_config()
    return enrich_cluster(
        cid,
        store=store,
        content=content,
        settings=EnrichmentSettings.from_config(cfg),
        policy=EligibilityPolicy.from_config(cfg),
        now=NOW,
    )


def test_full_enrichment_publishes_every_language():
    store, (cid,) = _seeded_store(
        ("President announces new budget policy", "s1"),
        ("President unveils budget policy changes", "s2"),
        image_urls=["https://cdn.example/photos/budget-speech.jpg"],
    )
    content = FakeContent()
    out = _run(store, cid, content)

    assert out.published and out.summarized and out.categorized
    cluster = store.get_cluster(cid)
    summary = store.get_summary(cid)
    assert cluster.status == "published"
    assert cluster.category == "politics"
    assert cluster.slug
    assert cluster.image_url == "https://cdn.example/photos/budget-speech.jpg"
    for lang in LANGS:
        assert cluster.headlines[lang].strip()
        assert cluster.meta_titles[lang] and cluster.meta_descriptions[lang]
        assert summary.texts[lang].strip()
    assert summary.version == 1
    assert summary.source_count == 2
    assert summary.translation_status == {"en": "source", "si": "generated", "ta": "generated"}


def test_rerun_with_nothing_to_do_makes_no_calls():
    store, (cid,) = _seeded_store(
        ("President announces new budget policy", "s1"),
        image_urls=["https://cdn.example/photos/budget-speech.jpg"],
    )
    _run(store, cid, FakeContent())
    before_cluster = store.get_cluster(cid)
    before_summary = store.get_summary(cid)

    content = FakeContent()
    out = _run(store, cid, content)

    assert out.skipped and out.reason == "up_to_date"
    assert content.total_calls() == 0
    assert store.get_cluster(cid) == before_cluster
    assert store.get_summary(cid) == before_summary


def test_new_source_regenerates_summary_and_bumps_version():
    store, (cid,) = _seeded_store(
        ("President announces new budget policy", "s1"),
        image_urls=["https://cdn.example/photos/budget-speech.jpg"],
    )
    _run(store, cid, FakeContent())
    extra = store.upsert_articles([make_article("President unveils budget policy changes", "s2")])
    window = ClusterWindow.load(store, window_hours=48, now=NOW)
    assign_articles(extra, window, store, threshold=0.4, now=NOW)

    content = FakeContent()
    out = _run(store, cid, content)
    assert out.summarized
    assert content.calls["summarize"] == 1
    assert store.get_summary(cid).version == 2
    assert store.get_summary(cid).source_count == 2


def test_translation_failure_copies_available_language():
    store, (cid,) = _seeded_store(("President announces new budget policy", "s1"))
    content = FakeContent(fail={"translate"})
    out = _run(store, cid, content)

    cluster = store.get_cluster(cid)
    summary = store.get_summary(cid)
    assert out.published
    for lang in ("si", "ta"):
        assert cluster.headlines[lang] == cluster.headline
        assert summary.texts[lang] == summary.texts["en"]
        assert summary.translation_status[lang] == "fallback"
    assert any(e.stage == "translate" for e in out.errors)
    # 2 target languages x (headline + summary) x (1 + max_retries)
    assert content.calls["translate"] == 2 * 2 * 3


def test_every_generation_call_failing_still_publishes():
    store, (cid,) = _seeded_store(("President announces new budget policy", "s1"))
    content = FakeContent(fail={"summarize", "translate", "extract_seo", "categorize", "select_image"})
    out = _run(store, cid, content)

    cluster = store.get_cluster(cid)
    summary = store.get_summary(cid)
    assert out.published
    for lang in LANGS:
        assert cluster.headlines[lang].strip()
        assert summary.texts[lang].strip()
        assert cluster.meta_titles[lang].strip()
    assert cluster.topics == ["sri-lanka", "politics"]
    assert cluster.image_url is None
    assert cluster.category is None


def test_topics_always_have_geo_and_content_tags():
    store, (cid,) = _seeded_store(("President announces new budget policy", "s1"))
    _run(store, cid, FakeContent(topics=["nonsense"]))
    topics = store.get_cluster(cid).topics
    assert any(t in GEO_TOPICS for t in topics)
    assert any(t in CONTENT_TOPICS for t in topics)


def test_non_english_summary_falls_back_to_english():
    store, (cid,) = _seeded_store(("ජනාධිපති නව අයවැය ප්‍රතිපත්තිය නිවේදනය කරයි", "s1"),
                                  excerpt="ජනාධිපති නව අයවැය ප්‍රතිපත්තිය නිවේදනය කරයි. " * 5)

    class SinhalaDown(FakeContent):
        def summarize(self, sources, lang, previous=None):
            if lang == "si":
                self.calls["summarize"] += 1
                raise RuntimeError("si model down")
            return super().summarize(sources, lang, previous)

    content = SinhalaDown()
    _run(store, cid, content)
    summary = store.get_summary(cid)
    assert summary.source_lang == "en"
    assert content.summarize_langs == ["en"]
    assert summary.texts["en"].startswith("The President")


def test_empty_cluster_is_skipped():
    store = MemoryStore()
    store.create_cluster(make_cluster("Nothing here", "c0"))
    content = FakeContent()
    out = _run(store, "c0", content)
    assert out.skipped and out.reason == "ineligible"
    assert content.total_calls() == 0


def test_parallel_mode_matches_sequential_outcome():
    store, cids = _seeded_store(
        ("President announces new budget policy", "s1"),
        ("Cricket team wins match", "s2"),
        image_urls=["https://cdn.example/photos/budget-speech.jpg"],
    )
    cfg = base_config(enrichment={"mode": "parallel"})
    content = FakeContent()
    outcomes = enrich_clusters_parallel(
        cids,
        store=store,
        content=content,
        settings=EnrichmentSettings.from_config(cfg),
        policy=EligibilityPolicy.from_config(cfg),
        concurrency=3,
        task_timeout_s=5,
        task_max_retries=0,
        poll_interval_s=0.01,
        now=NOW,
    )
    assert [o.cluster_id for o in outcomes] == cids
    assert all(o.published for o in outcomes)
    for cid in cids:
        cluster = store.get_cluster(cid)
        assert cluster.status == "published"
        assert store.get_summary(cid).version == 1
        for lang in LANGS:
            assert cluster.headlines[lang] and cluster.meta_titles[lang]


def test_parallel_mode_survives_summary_outage():
    store, (cid,) = _seeded_store(("President announces new budget policy", "s1"))
    cfg = base_config()
    content = FakeContent(fail={"summarize"})
    outcomes = enrich_clusters_parallel(
        [cid],
        store=store,
        content=content,
        settings=EnrichmentSettings.from_config(cfg),
        policy=EligibilityPolicy.from_config(cfg),
        concurrency=2,
        task_timeout_s=5,
        task_max_retries=0,
        poll_interval_s=0.01,
        now=NOW,
    )
    assert outcomes[0].published
    summary = store.get_summary(cid)
    assert all(summary.texts[lang].strip() for lang in LANGS)


class SlowContent(FakeContent):
    """Operations named in ``slow`` outlast the worker task timeout."""

    def __init__(self, slow, delay=0.6, **kw):
        super().__init__(**kw)
        self.slow = set(slow)
        self.delay = delay

    def _maybe_fail(self, op):
        if op in self.slow:
            time.sleep(self.delay)
        super()._maybe_fail(op)


def _run_parallel(store, cids, content):
    cfg = base_config()
    return enrich_clusters_parallel(
        cids,
        store=store,
        content=content,
        settings=EnrichmentSettings.from_config(cfg),
        policy=EligibilityPolicy.from_config(cfg),
        concurrency=3,
        task_timeout_s=0.25,
        task_max_retries=0,
        poll_interval_s=0.01,
        now=NOW,
    )


def _assert_publishable(store, cid):
    cluster = store.get_cluster(cid)
    summary = store.get_summary(cid)
    assert cluster.status == "published"
    for lang in LANGS:
        assert cluster.headlines[lang].strip()
        assert cluster.meta_titles[lang].strip() and cluster.meta_descriptions[lang].strip()
        assert summary.texts[lang].strip()
    assert topics_complete(cluster.topics)
    return cluster


def test_parallel_seo_timeout_still_publishes_valid_topics():
    store, (cid,) = _seeded_store(("President announces new budget policy", "s1"),
                                  image_urls=["https://cdn.example/photos/budget-speech.jpg"])
    (out,) = _run_parallel(store, [cid], SlowContent({"extract_seo"}))

    assert out.published
    assert any(e.stage == "seo" and "TaskTimeout" in e.message for e in out.errors)
    cluster = _assert_publishable(store, cid)
    assert cluster.topics == ["sri-lanka", "politics"]

    rerun = _run(store, cid, FakeContent())
    assert rerun.skipped and rerun.reason == "up_to_date"
    assert topics_complete(store.get_cluster(cid).topics)


def test_parallel_translation_timeout_fills_from_available_language():
    store, (cid,) = _seeded_store(("President announces new budget policy", "s1"))
    (out,) = _run_parallel(store, [cid], SlowContent({"translate"}))

    assert out.published
    assert any(e.stage == "translation" for e in out.errors)
    cluster = _assert_publishable(store, cid)
    summary = store.get_summary(cid)
    for lang in ("si", "ta"):
        assert cluster.headlines[lang] == cluster.headline
        assert summary.texts[lang] == summary.texts["en"]


def test_parallel_summary_timeout_uses_source_text():
    store, (cid,) = _seeded_store(("President announces new budget policy", "s1"))
    (out,) = _run_parallel(store, [cid], SlowContent({"summarize"}))

    assert out.published and not out.summarized
    assert any(e.stage == "summary" for e in out.errors)
    _assert_publishable(store, cid)
    assert store.get_summary(cid).texts["en"].startswith("The President announced")
