from __future__ import annotations

import datetime as dt
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Tuple

from newsdesk.models import DRAFT, Article, Cluster, PipelineError
from newsdesk.store import Store, StoreError
from newsdesk.text import TitleFeatures, similarity, title_features
from newsdesk.utils import get_logger, now_utc

logger = get_logger(__name__)


@dataclass
class ClusterStats:
    id: str
    headline: str
    first_seen_at: dt.datetime
    last_seen_at: dt.datetime
    source_count: int
    article_count: int

    @classmethod
    def of(cls, cluster: Cluster) -> "ClusterStats":
        return cls(
            id=cluster.id,
            headline=cluster.headline,
            first_seen_at=cluster.first_seen_at,
            last_seen_at=cluster.last_seen_at,
            source_count=cluster.source_count,
            article_count=cluster.article_count,
        )


@dataclass
class _Entry:
    stats: ClusterStats
    features: TitleFeatures


class ClusterWindow:
    """Active-window cluster cache owned by a single pipeline run.

    Holds clusters with ``last_seen_at >= now - window_hours`` that have not
    expired. Headline features are computed once per cluster. Discard the
    window when the run ends.
    """

    def __init__(self, clusters: Iterable[Cluster] = ()):
        self._entries: Dict[str, _Entry] = {}
        for c in clusters:
            self.add(c)

    @classmethod
    def load(cls, store: Store, *, window_hours: float, now: Optional[dt.datetime] = None) -> "ClusterWindow":
        now = now or now_utc()
        cutoff = now - dt.timedelta(hours=window_hours)
        active = [c for c in store.clusters_seen_since(cutoff) if c.expires_at > now]
        logger.info("cluster.window: loaded=%d cutoff=%s", len(active), cutoff.isoformat())
        return cls(active)

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, cluster_id: str) -> bool:
        return cluster_id in self._entries

    def add(self, cluster: Cluster) -> None:
        self._entries[cluster.id] = _Entry(ClusterStats.of(cluster), title_features(cluster.headline))

    def update(self, cluster: Cluster) -> ClusterStats:
        entry = self._entries.get(cluster.id)
        if entry is None:
            self.add(cluster)
            return self._entries[cluster.id].stats
        entry.stats = ClusterStats.of(cluster)
        return entry.stats

    def best_match(self, features: TitleFeatures, threshold: float) -> Optional[Tuple[str, float]]:
        """Highest score at or above threshold; equal scores go to the lowest cluster id."""
        best: Optional[Tuple[str, float]] = None
        for cluster_id in sorted(self._entries):
            score = similarity(features, self._entries[cluster_id].features)
            if score >= threshold and (best is None or score > best[1]):
                best = (cluster_id, score)
        return best


@dataclass
class ClusteringResult:
    touched: Dict[str, ClusterStats] = field(default_factory=dict)
    assigned: Dict[str, str] = field(default_factory=dict)
    errors: List[PipelineError] = field(default_factory=list)


def _new_cluster(article: Article, now: dt.datetime, ttl_days: int) -> Cluster:
    return Cluster(
        headline=article.title,
        status=DRAFT,
        first_seen_at=now,
        last_seen_at=now,
        expires_at=now + dt.timedelta(days=ttl_days),
        source_count=0,
        article_count=0,
        language=article.lang,
    )


def _refresh_counts(store: Store, cluster_id: str, now: dt.datetime) -> Cluster:
    members = store.cluster_articles(cluster_id)
    cluster = store.get_cluster(cluster_id)
    cluster.source_count = len({m.source_id for m in members})
    cluster.article_count = len(members)
    cluster.last_seen_at = max(cluster.last_seen_at, now)
    store.update_cluster(cluster)
    return cluster


def assign_articles(
    articles: List[Article],
    window: ClusterWindow,
    store: Store,
    *,
    threshold: float,
    ttl_days: int = 30,
    now: Optional[dt.datetime] = None,
) -> ClusteringResult:
    """Assign each new article to its best active cluster or a fresh one.

    Articles are consumed in list order. A failure for one article leaves it
    unclustered and is recorded; the rest of the batch continues.
    """
    result = ClusteringResult()
    for article in articles:
        if not article.id:
            continue
        now_ts = now or now_utc()
        feats = title_features(article.title)
        match = window.best_match(feats, threshold)

        if match is not None:
            cluster_id, score = match
        else:
            score = 0.0
            try:
                created = store.create_cluster(_new_cluster(article, now_ts, ttl_days))
            except Exception as exc:
                logger.error("cluster.create failed article=%s: %s", article.id, exc)
                result.errors.append(PipelineError(stage="cluster", message=f"create cluster: {exc}", source_id=article.source_id))
                continue
            window.add(created)
            cluster_id = created.id

        try:
            store.assign_article(article.id, cluster_id)
            cluster = _refresh_counts(store, cluster_id, now_ts)
        except StoreError as exc:
            logger.error("cluster.assign failed article=%s cluster=%s: %s", article.id, cluster_id, exc)
            result.errors.append(PipelineError(stage="cluster", message=str(exc), source_id=article.source_id, cluster_id=cluster_id))
            continue

        result.touched[cluster_id] = window.update(cluster)
        result.assigned[article.id] = cluster_id
        logger.debug("cluster.assign: article=%s cluster=%s score=%.2f", article.id, cluster_id, score)

    logger.info(
        "cluster.assign: articles=%d assigned=%d touched=%d errors=%d",
        len(articles), len(result.assigned), len(result.touched), len(result.errors),
    )
    return result
