import pytest

from newsdesk.models import PipelineError, Summary
from newsdesk.store import MemoryStore, StoreError

from helpers import NOW, make_article, make_cluster, make_source


def test_upsert_ignores_duplicate_hashes_and_rejects_missing_hash():
    store = MemoryStore()
    first = store.upsert_articles([make_article("Fuel prices rise", "s1")])
    again = store.upsert_articles([make_article("Fuel prices rise", "s1")])
    assert len(first) == 1 and again == []

    with pytest.raises(StoreError):
        store.upsert_articles([make_article("No hash", "s1").model_copy(update={"hash": " "})])


def test_cluster_articles_newest_first():
    store = MemoryStore()
    c = store.create_cluster(make_cluster("Fuel", "c1"))
    older = make_article("Older", "s1", published_at=NOW.replace(hour=1))
    newer = make_article("Newer", "s2", published_at=NOW.replace(hour=9))
    for a in store.upsert_articles([older, newer]):
        store.assign_article(a.id, c.id)
    assert [a.title for a in store.cluster_articles("c1")] == ["Newer", "Older"]
    assert [a.title for a in store.cluster_articles("c1", limit=1)] == ["Newer"]


def test_snapshot_round_trip(tmp_path):
    store = MemoryStore()
    store.add_source(make_source("s1"))
    c = store.create_cluster(make_cluster("Fuel prices rise", "c1", slug="fuel-prices-rise"))
    (a,) = store.upsert_articles([make_article("Fuel prices rise", "s1")])
    store.assign_article(a.id, c.id)
    store.save_summary(Summary(cluster_id="c1", texts={"en": "Prices went up."}, version=1))
    run_id = store.start_run()
    store.log_error(run_id, PipelineError(stage="fetch", message="timeout", source_id="s1"))
    store.finish_run(run_id, "success")
    store.mark_successful_run(NOW)

    path = str(tmp_path / "nested" / "store.json")
    store.save(path)
    loaded = MemoryStore.load(path)

    assert loaded.get_cluster("c1") == store.get_cluster("c1")
    assert [x.id for x in loaded.cluster_articles("c1")] == [a.id]
    assert loaded.get_summary("c1").texts == {"en": "Prices went up."}
    assert loaded.slug_taken("fuel-prices-rise")
    assert not loaded.slug_taken("fuel-prices-rise", exclude_id="c1")
    assert loaded.last_successful_run() == NOW
    assert loaded.runs[run_id].status == "success"
    assert loaded.errors[0].source_id == "s1"
    assert loaded.upsert_articles([make_article("Fuel prices rise", "s1")]) == []


def test_missing_snapshot_gives_empty_store(tmp_path):
    store = MemoryStore.load(str(tmp_path / "absent.json"))
    assert store.clusters == {} and store.last_successful_run() is None


def test_unknown_ids_raise():
    store = MemoryStore()
    with pytest.raises(StoreError):
        store.get_cluster("nope")
    with pytest.raises(StoreError):
        store.save_summary(Summary(cluster_id="nope"))
    with pytest.raises(StoreError):
        store.finish_run("nope", "success")
