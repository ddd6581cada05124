"""Persistent store contract and an in-memory implementation.

The pipeline only needs: upsert-by-hash for articles, "clusters seen since"
range reads, update-by-id for clusters and summaries, and uniqueness checks
for slugs and meta titles. ``MemoryStore`` implements exactly that and can
snapshot itself to a JSON file.
"""

from __future__ import annotations

import datetime as dt
import json
import os
import threading
import uuid
from typing import Dict, List, Optional, Protocol

from pydantic import BaseModel, Field

from newsdesk.models import Article, Cluster, PipelineError, Source, Summary
from newsdesk.utils import get_logger, now_utc

logger = get_logger(__name__)


class StoreError(RuntimeError):
    pass


class Store(Protocol):
    def list_active_sources(self) -> List[Source]: ...
    def get_source(self, source_id: str) -> Optional[Source]: ...
    def upsert_articles(self, rows: List[Article]) -> List[Article]: ...
    def clusters_seen_since(self, cutoff: dt.datetime) -> List[Cluster]: ...
    def create_cluster(self, cluster: Cluster) -> Cluster: ...
    def assign_article(self, article_id: str, cluster_id: str) -> None: ...
    def cluster_articles(self, cluster_id: str, limit: Optional[int] = None) -> List[Article]: ...
    def get_cluster(self, cluster_id: str) -> Cluster: ...
    def update_cluster(self, cluster: Cluster) -> None: ...
    def recent_clusters(self, limit: int) -> List[Cluster]: ...
    def get_summary(self, cluster_id: str) -> Optional[Summary]: ...
    def save_summary(self, summary: Summary) -> None: ...
    def slug_taken(self, slug: str, exclude_id: Optional[str] = None) -> bool: ...
    def meta_title_taken(self, title: str, exclude_id: Optional[str] = None, lang: str = "en") -> bool: ...
    def start_run(self) -> str: ...
    def finish_run(self, run_id: str, status: str, notes: str = "") -> None: ...
    def log_error(self, run_id: Optional[str], error: PipelineError) -> None: ...
    def last_successful_run(self) -> Optional[dt.datetime]: ...
    def mark_successful_run(self, when: dt.datetime) -> None: ...


class RunRecord(BaseModel):
    id: str
    status: str = "started"
    started_at: dt.datetime
    finished_at: Optional[dt.datetime] = None
    notes: str = ""


class _Snapshot(BaseModel):
    sources: List[Source] = Field(default_factory=list)
    articles: List[Article] = Field(default_factory=list)
    clusters: List[Cluster] = Field(default_factory=list)
    summaries: List[Summary] = Field(default_factory=list)
    runs: List[RunRecord] = Field(default_factory=list)
    errors: List[PipelineError] = Field(default_factory=list)
    last_successful_run: Optional[dt.datetime] = None


def _new_id() -> str:
    return uuid.uuid4().hex


class MemoryStore:
    def __init__(self):
        self._lock = threading.RLock()
        self.sources: Dict[str, Source] = {}
        self.articles: Dict[str, Article] = {}
        self.hashes: Dict[str, str] = {}
        self.clusters: Dict[str, Cluster] = {}
        self.members: Dict[str, str] = {}
        self.summaries: Dict[str, Summary] = {}
        self.runs: Dict[str, RunRecord] = {}
        self.errors: List[PipelineError] = []
        self._last_success: Optional[dt.datetime] = None

    # ---------- sources ----------

    def add_source(self, source: Source) -> None:
        with self._lock:
            self.sources[source.id] = source

    def list_active_sources(self) -> List[Source]:
        with self._lock:
            return [s.model_copy() for s in self.sources.values() if s.active]

    def get_source(self, source_id: str) -> Optional[Source]:
        with self._lock:
            s = self.sources.get(source_id)
            return s.model_copy() if s else None

    # ---------- articles ----------

    def upsert_articles(self, rows: List[Article]) -> List[Article]:
        """Insert rows whose hash is new; duplicates are ignored."""
        inserted: List[Article] = []
        with self._lock:
            for row in rows:
                if not row.hash or not row.hash.strip():
                    raise StoreError(f"article without hash: {row.url}")
                if row.hash in self.hashes:
                    continue
                art = row.model_copy(update={"id": row.id or _new_id(), "cluster_id": None})
                self.articles[art.id] = art
                self.hashes[art.hash] = art.id
                inserted.append(art.model_copy())
        return inserted

    def get_article(self, article_id: str) -> Article:
        with self._lock:
            if article_id not in self.articles:
                raise StoreError(f"unknown article {article_id}")
            return self.articles[article_id].model_copy()

    # ---------- clusters ----------

    def clusters_seen_since(self, cutoff: dt.datetime) -> List[Cluster]:
        with self._lock:
            return [c.model_copy(deep=True) for c in self.clusters.values() if c.last_seen_at >= cutoff]

    def create_cluster(self, cluster: Cluster) -> Cluster:
        with self._lock:
            created = cluster.model_copy(deep=True, update={"id": cluster.id or _new_id()})
            if created.id in self.clusters:
                raise StoreError(f"cluster {created.id} already exists")
            self.clusters[created.id] = created
            return created.model_copy(deep=True)

    def assign_article(self, article_id: str, cluster_id: str) -> None:
        with self._lock:
            if article_id not in self.articles:
                raise StoreError(f"unknown article {article_id}")
            if cluster_id not in self.clusters:
                raise StoreError(f"unknown cluster {cluster_id}")
            current = self.members.get(article_id)
            if current is not None and current != cluster_id:
                raise StoreError(f"article {article_id} already belongs to cluster {current}")
            self.members[article_id] = cluster_id
            self.articles[article_id].cluster_id = cluster_id

    def cluster_articles(self, cluster_id: str, limit: Optional[int] = None) -> List[Article]:
        oldest = dt.datetime.min.replace(tzinfo=dt.timezone.utc)
        with self._lock:
            rows = [self.articles[a].model_copy() for a, c in self.members.items() if c == cluster_id]
        rows.sort(key=lambda a: a.published_at or oldest, reverse=True)
        return rows[:limit] if limit else rows

    def get_cluster(self, cluster_id: str) -> Cluster:
        with self._lock:
            if cluster_id not in self.clusters:
                raise StoreError(f"unknown cluster {cluster_id}")
            return self.clusters[cluster_id].model_copy(deep=True)

    def update_cluster(self, cluster: Cluster) -> None:
        with self._lock:
            if cluster.id not in self.clusters:
                raise StoreError(f"unknown cluster {cluster.id}")
            self.clusters[cluster.id] = cluster.model_copy(deep=True, update={"updated_at": now_utc()})

    def recent_clusters(self, limit: int) -> List[Cluster]:
        with self._lock:
            rows = sorted(self.clusters.values(), key=lambda c: c.last_seen_at, reverse=True)
            return [c.model_copy(deep=True) for c in rows[:limit]]

    # ---------- summaries ----------

    def get_summary(self, cluster_id: str) -> Optional[Summary]:
        with self._lock:
            s = self.summaries.get(cluster_id)
            return s.model_copy(deep=True) if s else None

    def save_summary(self, summary: Summary) -> None:
        with self._lock:
            if summary.cluster_id not in self.clusters:
                raise StoreError(f"unknown cluster {summary.cluster_id}")
            self.summaries[summary.cluster_id] = summary.model_copy(deep=True)

    # ---------- uniqueness ----------

    def slug_taken(self, slug: str, exclude_id: Optional[str] = None) -> bool:
        with self._lock:
            return any(c.slug == slug and c.id != exclude_id for c in self.clusters.values())

    def meta_title_taken(self, title: str, exclude_id: Optional[str] = None, lang: str = "en") -> bool:
        with self._lock:
            return any(
                c.meta_titles.get(lang) == title and c.id != exclude_id
                for c in self.clusters.values()
            )

    # ---------- runs ----------

    def start_run(self) -> str:
        with self._lock:
            run = RunRecord(id=_new_id()[:8], started_at=now_utc())
            self.runs[run.id] = run
            return run.id

    def finish_run(self, run_id: str, status: str, notes: str = "") -> None:
        with self._lock:
            run = self.runs.get(run_id)
            if run is None:
                raise StoreError(f"unknown run {run_id}")
            run.status = status
            run.notes = notes
            run.finished_at = now_utc()

    def log_error(self, run_id: Optional[str], error: PipelineError) -> None:
        with self._lock:
            self.errors.append(error)

    def last_successful_run(self) -> Optional[dt.datetime]:
        return self._last_success

    def mark_successful_run(self, when: dt.datetime) -> None:
        with self._lock:
            self._last_success = when

    # ---------- snapshots ----------

    def save(self, path: str) -> None:
        with self._lock:
            snap = _Snapshot(
                sources=list(self.sources.values()),
                articles=list(self.articles.values()),
                clusters=list(self.clusters.values()),
                summaries=list(self.summaries.values()),
                runs=list(self.runs.values()),
                errors=self.errors,
                last_successful_run=self._last_success,
            )
        parent = os.path.dirname(os.path.abspath(path))
        os.makedirs(parent, exist_ok=True)
        with open(path, "w", encoding="utf-8") as f:
            json.dump(snap.model_dump(mode="json"), f, ensure_ascii=False, indent=2)
        logger.info("store snapshot written path=%s clusters=%d articles=%d", path, len(snap.clusters), len(snap.articles))

    @classmethod
    def load(cls, path: str) -> "MemoryStore":
        store = cls()
        if not os.path.exists(path):
            return store
        with open(path, "r", encoding="utf-8") as f:
            snap = _Snapshot.model_validate(json.load(f))
        for s in snap.sources:
            store.sources[s.id] = s
        for a in snap.articles:
            store.articles[a.id] = a
            store.hashes[a.hash] = a.id
            if a.cluster_id:
                store.members[a.id] = a.cluster_id
        for c in snap.clusters:
            store.clusters[c.id] = c
        for s in snap.summaries:
            store.summaries[s.cluster_id] = s
        for r in snap.runs:
            store.runs[r.id] = r
        store.errors = list(snap.errors)
        store._last_success = snap.last_successful_run
        return store
