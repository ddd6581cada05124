import time
import uuid
import datetime as dt
from typing import Dict, Any, List, Optional

from newsdesk.content import ContentService, HttpContentService
from newsdesk.eligibility import EligibilityPolicy
from newsdesk.enrichment import EnrichmentOutcome, enrich_cluster, enrich_clusters_parallel
from newsdesk.feeds import FeedFetcher, JsonFeedFetcher, fetch_all_sources
from newsdesk.models import PipelineError, PipelineStats
from newsdesk.stages.clustering import ClusterWindow, assign_articles
from newsdesk.stages.context import EnrichmentSettings
from newsdesk.stages.ingest import insert_batches
from newsdesk.store import MemoryStore, Store
from newsdesk.utils import load_config, get_logger, now_utc

logger = get_logger(__name__)


def _apply_overrides(cfg: Dict[str, Any], overrides: Optional[Dict[str, Any]]) -> None:
    if not overrides:
        return

    if overrides.get("window_hours") is not None or overrides.get("similarity_threshold") is not None:
        cl = cfg.setdefault("clustering", {})
        if overrides.get("window_hours") is not None:
            cl["window_hours"] = float(overrides["window_hours"])  # type: ignore[arg-type]
        if overrides.get("similarity_threshold") is not None:
            cl["similarity_threshold"] = float(overrides["similarity_threshold"])  # type: ignore[arg-type]

    if overrides.get("min_source_count") is not None:
        cfg.setdefault("eligibility", {})["min_source_count"] = int(overrides["min_source_count"])  # type: ignore[arg-type]

    if overrides.get("parallel") is not None:
        cfg.setdefault("enrichment", {})["mode"] = "parallel" if overrides["parallel"] else "sequential"

    if overrides.get("workers") is not None:
        cfg.setdefault("workers", {})["concurrency"] = int(overrides["workers"])  # type: ignore[arg-type]


def _record(store: Store, run_id: Optional[str], stats: PipelineStats, errors: List[PipelineError]) -> None:
    for err in errors:
        stats.errors.append(err)
        try:
            store.log_error(run_id, err)
        except Exception as e:
            logger.warning("error log write failed stage=%s: %s", err.stage, e)


def _enrich(
    cluster_ids: List[str],
    cfg: Dict[str, Any],
    store: Store,
    content: ContentService,
    now: dt.datetime,
) -> List[EnrichmentOutcome]:
    settings = EnrichmentSettings.from_config(cfg)
    policy = EligibilityPolicy.from_config(cfg)
    if settings.mode == "parallel":
        w = cfg.get("workers") or {}
        return enrich_clusters_parallel(
            cluster_ids,
            store=store,
            content=content,
            settings=settings,
            policy=policy,
            concurrency=int(w.get("concurrency", 4)),
            task_timeout_s=float(w.get("task_timeout_s", 60)),
            task_max_retries=int(w.get("task_max_retries", 1)),
            poll_interval_s=float(w.get("poll_interval_s", 0.05)),
            now=now,
        )

    outcomes: List[EnrichmentOutcome] = []
    for cid in cluster_ids:
        try:
            outcomes.append(enrich_cluster(cid, store=store, content=content, settings=settings, policy=policy, now=now))
        except Exception as e:
            # stage errors are handled inside; this is a store failure for one cluster
            logger.error("enrich failed cluster=%s: %s", cid, e)
            outcomes.append(EnrichmentOutcome(cid, errors=[PipelineError(stage="enrich", message=str(e), cluster_id=cid)]))
    return outcomes


def _tally(stats: PipelineStats, outcomes: List[EnrichmentOutcome]) -> List[PipelineError]:
    errors: List[PipelineError] = []
    for o in outcomes:
        stats.categorized += int(o.categorized)
        stats.summaries += int(o.summarized)
        stats.published += int(o.published)
        errors.extend(o.errors)
    return errors


def _too_soon(store: Store, cfg: Dict[str, Any], now: dt.datetime) -> bool:
    minutes = float((cfg.get("run") or {}).get("min_interval_minutes", 10))
    last = store.last_successful_run()
    return last is not None and now - last < dt.timedelta(minutes=minutes)


def run_full_pipeline(
    cfg: Dict[str, Any],
    store: Store,
    fetcher: FeedFetcher,
    content: ContentService,
    *,
    now: Optional[dt.datetime] = None,
    force: bool = False,
) -> PipelineStats:
    """fetch -> insert -> cluster -> enrich/publish, with per-stage error isolation."""
    now = now or now_utc()
    if not force and _too_soon(store, cfg, now):
        logger.info("run skipped: previous successful run is too recent")
        return PipelineStats(skipped=True, reason="too_soon")

    run_id = store.start_run()
    stats = PipelineStats(run_id=run_id)
    errors: List[PipelineError] = []
    try:
        t0 = time.monotonic()
        sources = store.list_active_sources()
        fcfg = cfg.get("fetch") or {}
        batches = fetch_all_sources(sources, fetcher, concurrency=int(fcfg.get("concurrency", 4)), errors=errors)
        stats.fetched = sum(len(b.items) for b in batches)
        logger.info("fetched sources=%d items=%d took_ms=%d", len(sources), stats.fetched, int((time.monotonic()-t0)*1000))

        t1 = time.monotonic()
        inserted = insert_batches(store, batches, errors)
        stats.inserted = len(inserted)
        logger.info("inserted articles=%d took_ms=%d", stats.inserted, int((time.monotonic()-t1)*1000))

        t2 = time.monotonic()
        ccfg = cfg.get("clustering") or {}
        window = ClusterWindow.load(store, window_hours=float(ccfg.get("window_hours", 48)), now=now)
        clustered = assign_articles(
            inserted,
            window,
            store,
            threshold=float(ccfg.get("similarity_threshold", 0.4)),
            ttl_days=int(ccfg.get("cluster_ttl_days", 30)),
            now=now,
        )
        errors.extend(clustered.errors)
        stats.clusters_touched = len(clustered.touched)
        logger.info("clustered touched=%d took_ms=%d", stats.clusters_touched, int((time.monotonic()-t2)*1000))

        t3 = time.monotonic()
        outcomes = _enrich(sorted(clustered.touched), cfg, store, content, now)
        errors.extend(_tally(stats, outcomes))
        logger.info(
            "enriched clusters=%d categorized=%d summaries=%d published=%d took_ms=%d",
            len(outcomes), stats.categorized, stats.summaries, stats.published, int((time.monotonic()-t3)*1000),
        )

        _record(store, run_id, stats, errors)
        store.finish_run(run_id, "success", notes=f"errors={len(stats.errors)}")
        store.mark_successful_run(now)
    except Exception as e:
        logger.error("Pipeline execution failed run=%s: %s", run_id, e)
        try:
            store.finish_run(run_id, "error", notes=str(e))
        except Exception as inner:
            logger.error("could not mark run=%s as failed: %s", run_id, inner)
        raise
    return stats


def run_enrichment(
    cfg: Dict[str, Any],
    store: Store,
    content: ContentService,
    *,
    now: Optional[dt.datetime] = None,
) -> PipelineStats:
    """Re-derive flags for recently seen clusters and backfill what is missing."""
    now = now or now_utc()
    settings = EnrichmentSettings.from_config(cfg)
    run_id = store.start_run()
    stats = PipelineStats(run_id=run_id)
    try:
        recent = store.recent_clusters(settings.recent_cluster_limit)
        ids = sorted(c.id for c in recent if c.id)
        outcomes = _enrich(ids, cfg, store, content, now)
        errors = _tally(stats, outcomes)
        stats.clusters_touched = sum(1 for o in outcomes if not o.skipped)
        _record(store, run_id, stats, errors)
        store.finish_run(run_id, "success", notes=f"enrich-only errors={len(stats.errors)}")
    except Exception as e:
        logger.error("Enrichment pass failed run=%s: %s", run_id, e)
        try:
            store.finish_run(run_id, "error", notes=str(e))
        except Exception as inner:
            logger.error("could not mark run=%s as failed: %s", run_id, inner)
        raise
    logger.info("enrichment pass clusters=%d published=%d", len(ids), stats.published)
    return stats


def run_once(
    config_path: str,
    *,
    force: bool = False,
    enrich_only: bool = False,
    overrides: Optional[Dict[str, Any]] = None,
) -> PipelineStats:
    """Execute the pipeline once with the given config file path."""
    run_id = uuid.uuid4().hex[:8]
    logger.info("=== run start id=%s ===", run_id)

    try:
        cfg = load_config(config_path)
        _apply_overrides(cfg, overrides)

        store_path = (cfg.get("store") or {}).get("path", "data/newsdesk.json")
        store = MemoryStore.load(store_path)
        content = HttpContentService.from_config(cfg)
        if enrich_only:
            stats = run_enrichment(cfg, store, content)
        else:
            fcfg = cfg.get("fetch") or {}
            fetcher = JsonFeedFetcher(fcfg.get("base_url", "http://localhost:8090"), timeout=float(fcfg.get("timeout", 30)))
            stats = run_full_pipeline(cfg, store, fetcher, content, force=force)
        store.save(store_path)
        logger.info(
            "OK: fetched=%d inserted=%d clusters_touched=%d categorized=%d summaries=%d published=%d errors=%d skipped=%s",
            stats.fetched, stats.inserted, stats.clusters_touched, stats.categorized,
            stats.summaries, stats.published, len(stats.errors), stats.skipped,
        )
        return stats
    except Exception as e:
        logger.error("Pipeline execution failed: %s", e)
        raise
    finally:
        logger.info("=== run end id=%s ===", run_id)
