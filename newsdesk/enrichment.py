"""Per-cluster enrichment: eligibility, stage sequencing, fallbacks, publish.

Two execution modes share the same stage functions. ``enrich_cluster`` runs
the stages of one cluster in order. ``enrich_clusters_parallel`` turns every
cluster's stages into queue tasks with dependencies and lets the worker pool
settle them; a stage whose upstream failed reads the persisted value instead.
"""

from __future__ import annotations

import datetime as dt
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Tuple

from newsdesk.content import ContentService
from newsdesk.eligibility import EligibilityPolicy, EnrichmentFlags, compute_flags
from newsdesk.models import PipelineError
from newsdesk.stages.category import categorize
from newsdesk.stages.context import EnrichmentContext, EnrichmentSettings
from newsdesk.stages.images import select_image
from newsdesk.stages.packer import weight_sources
from newsdesk.stages.publish import publish
from newsdesk.stages.seo import extract_seo
from newsdesk.stages.summary import summarize, summary_from_state
from newsdesk.stages.translation import translate, translation_from_state
from newsdesk.store import Store
from newsdesk.taskqueue import Task, TaskQueue, WorkerPool
from newsdesk.utils import get_logger, now_utc

logger = get_logger(__name__)


@dataclass
class EnrichmentOutcome:
    cluster_id: str
    skipped: bool = False
    reason: Optional[str] = None
    flags: Optional[EnrichmentFlags] = None
    categorized: bool = False
    summarized: bool = False
    published: bool = False
    errors: List[PipelineError] = field(default_factory=list)


def prepare(
    cluster_id: str,
    *,
    store: Store,
    content: ContentService,
    settings: EnrichmentSettings,
    policy: EligibilityPolicy,
    now: Optional[dt.datetime] = None,
) -> Tuple[Optional[EnrichmentContext], EnrichmentOutcome]:
    """Load state and derive flags; the context is None when nothing is to be done."""
    now = now or now_utc()
    cluster = store.get_cluster(cluster_id)
    outcome = EnrichmentOutcome(cluster_id)
    if not policy.allows(cluster):
        outcome.skipped, outcome.reason = True, "ineligible"
        return None, outcome

    summary = store.get_summary(cluster_id)
    flags = compute_flags(
        cluster, summary,
        languages=settings.languages,
        summary_threshold=settings.summary_threshold,
        translation_threshold=settings.translation_threshold,
        headline_threshold=settings.headline_threshold,
    )
    outcome.flags = flags
    if not flags.any:
        outcome.skipped, outcome.reason = True, "up_to_date"
        logger.debug("enrich: cluster=%s up to date", cluster_id)
        return None, outcome

    articles = store.cluster_articles(cluster_id)
    sources = weight_sources(
        articles,
        now=now,
        authority_weight=settings.authority_weight,
        max_articles=settings.max_summary_articles,
        char_limit=settings.article_char_limit,
    )
    ctx = EnrichmentContext(
        cluster=cluster, summary=summary, articles=articles, sources=sources, flags=flags,
        store=store, content=content, settings=settings, now=now,
    )
    logger.info("enrich: cluster=%s flags=%s articles=%d sources=%d",
                cluster_id, flags.describe(), len(articles), cluster.source_count)
    return ctx, outcome


def enrich_cluster(
    cluster_id: str,
    *,
    store: Store,
    content: ContentService,
    settings: EnrichmentSettings,
    policy: EligibilityPolicy,
    now: Optional[dt.datetime] = None,
) -> EnrichmentOutcome:
    ctx, outcome = prepare(cluster_id, store=store, content=content, settings=settings, policy=policy, now=now)
    if ctx is None:
        return outcome

    category = categorize(ctx)
    summary = summarize(ctx)
    translation = translate(ctx, summary)
    seo = extract_seo(ctx, summary, translation, category.category if category else None)
    image = select_image(ctx, summary)
    publish(ctx, summary, translation, seo=seo, image=image, category=category)

    outcome.categorized = category is not None
    outcome.summarized = summary.origin != "existing"
    outcome.published = True
    outcome.errors = list(ctx.errors)
    return outcome


# ---------- Parallel mode ----------

STAGE_PRIORITY = {"category": 1, "summary": 1, "translation": 2, "image": 2, "seo": 3, "publish": 4}


def _cluster_tasks(cluster_id: str, max_retries: int) -> Dict[str, Task]:
    def mk(kind: str, deps: List[Task]) -> Task:
        return Task(
            type=kind,
            cluster_id=cluster_id,
            priority=STAGE_PRIORITY[kind],
            dependencies=[d.id for d in deps],
            max_retries=max_retries,
        )

    category = mk("category", [])
    summary = mk("summary", [])
    translation = mk("translation", [summary])
    image = mk("image", [summary])
    seo = mk("seo", [translation, category])
    publish_task = mk("publish", [category, summary, translation, image, seo])
    return {t.type: t for t in (category, summary, translation, image, seo, publish_task)}


class _ParallelRun:
    def __init__(self, queue: TaskQueue):
        self.queue = queue
        self.contexts: Dict[str, EnrichmentContext] = {}
        self.tasks: Dict[str, Dict[str, Task]] = {}

    def upstream(self, cluster_id: str, kind: str, fallback: Callable[[], Any]) -> Any:
        res = self.queue.result(self.tasks[cluster_id][kind].id)
        if res is not None and res.success:
            return res.value
        return fallback()

    def __call__(self, task: Task) -> Any:
        ctx = self.contexts[task.cluster_id]
        cid = task.cluster_id

        def summary():
            return self.upstream(cid, "summary", lambda: summary_from_state(ctx))

        def translation():
            return self.upstream(cid, "translation", lambda: translation_from_state(ctx, summary()))

        def category():
            return self.upstream(cid, "category", lambda: None)

        if task.type == "category":
            return categorize(ctx)
        if task.type == "summary":
            return summarize(ctx)
        if task.type == "translation":
            return translate(ctx, summary())
        if task.type == "image":
            return select_image(ctx, summary())
        if task.type == "seo":
            cat = category()
            return extract_seo(ctx, summary(), translation(), cat.category if cat else None)
        if task.type == "publish":
            return publish(
                ctx, summary(), translation(),
                seo=self.upstream(cid, "seo", lambda: None),
                image=self.upstream(cid, "image", lambda: None),
                category=category(),
            )
        raise ValueError(f"unknown task type: {task.type}")


def enrich_clusters_parallel(
    cluster_ids: List[str],
    *,
    store: Store,
    content: ContentService,
    settings: EnrichmentSettings,
    policy: EligibilityPolicy,
    concurrency: int = 4,
    task_timeout_s: float = 60.0,
    task_max_retries: int = 1,
    poll_interval_s: float = 0.05,
    now: Optional[dt.datetime] = None,
) -> List[EnrichmentOutcome]:
    queue = TaskQueue()
    run = _ParallelRun(queue)
    outcomes: Dict[str, EnrichmentOutcome] = {}

    for cid in cluster_ids:
        ctx, outcome = prepare(cid, store=store, content=content, settings=settings, policy=policy, now=now)
        outcomes[cid] = outcome
        if ctx is None:
            continue
        run.contexts[cid] = ctx
        run.tasks[cid] = _cluster_tasks(cid, task_max_retries)
        queue.add_tasks(list(run.tasks[cid].values()))

    if run.tasks:
        pool = WorkerPool(queue, run, concurrency=concurrency, timeout_s=task_timeout_s, poll_interval_s=poll_interval_s)
        stats = pool.run()
        logger.info("enrich.parallel: clusters=%d completed=%d failed=%d",
                    len(run.tasks), stats.completed, stats.failed)

    for cid, tasks in run.tasks.items():
        outcome = outcomes[cid]
        ctx = run.contexts[cid]
        for kind, task in tasks.items():
            res = queue.result(task.id)
            if res is None or not res.success:
                ctx.record(kind, res.error if res else "not run")
        cat = queue.result(tasks["category"].id)
        summ = queue.result(tasks["summary"].id)
        pub = queue.result(tasks["publish"].id)
        outcome.categorized = bool(cat and cat.success and cat.value is not None)
        outcome.summarized = bool(summ and summ.success and summ.value.origin != "existing")
        outcome.published = bool(pub and pub.success)
        outcome.errors = list(ctx.errors)
    return [outcomes[cid] for cid in cluster_ids]
