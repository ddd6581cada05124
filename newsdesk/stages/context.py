from __future__ import annotations

import datetime as dt
import threading
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

from newsdesk.content import ContentService
from newsdesk.eligibility import EnrichmentFlags
from newsdesk.models import Article, Cluster, PipelineError, Summary
from newsdesk.stages.packer import WeightedSource
from newsdesk.store import Store
from newsdesk.utils import get_logger, redact_secrets

logger = get_logger(__name__)


@dataclass
class EnrichmentSettings:
    languages: Tuple[str, ...] = ("en", "si", "ta")
    summary_threshold: float = 0.7
    translation_threshold: float = 0.7
    headline_threshold: float = 0.7
    image_threshold: float = 0.6
    max_retries: int = 2
    min_field_length: int = 10
    mode: str = "sequential"
    max_summary_articles: int = 8
    article_char_limit: int = 1500
    authority_weight: float = 2.0
    recent_cluster_limit: int = 50
    live_image_fetch: bool = True

    @classmethod
    def from_config(cls, cfg: dict) -> "EnrichmentSettings":
        q = cfg.get("quality") or {}
        e = cfg.get("enrichment") or {}
        d = cls()
        return cls(
            languages=tuple(cfg.get("languages") or d.languages),
            summary_threshold=float(q.get("summary_threshold", d.summary_threshold)),
            translation_threshold=float(q.get("translation_threshold", d.translation_threshold)),
            headline_threshold=float(q.get("headline_threshold", d.headline_threshold)),
            image_threshold=float(q.get("image_threshold", d.image_threshold)),
            max_retries=int(q.get("max_retries", d.max_retries)),
            min_field_length=int(q.get("min_field_length", d.min_field_length)),
            mode=str(e.get("mode", d.mode)),
            max_summary_articles=int(e.get("max_summary_articles", d.max_summary_articles)),
            article_char_limit=int(e.get("article_char_limit", d.article_char_limit)),
            authority_weight=float(e.get("authority_weight", d.authority_weight)),
            recent_cluster_limit=int(e.get("recent_cluster_limit", d.recent_cluster_limit)),
            live_image_fetch=bool(e.get("live_image_fetch", d.live_image_fetch)),
        )

    @property
    def fallback_language(self) -> str:
        return self.languages[0] if self.languages else "en"


@dataclass
class EnrichmentContext:
    """Everything one cluster's stages read; built once per cluster per run."""

    cluster: Cluster
    summary: Optional[Summary]
    articles: List[Article]
    sources: List[WeightedSource]
    flags: EnrichmentFlags
    store: Store
    content: ContentService
    settings: EnrichmentSettings
    now: dt.datetime
    errors: List[PipelineError] = field(default_factory=list)
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False)

    @property
    def cluster_id(self) -> str:
        return self.cluster.id or ""

    def record(self, stage: str, error: Any) -> None:
        message = redact_secrets(str(error)) or f"{stage} failed"
        logger.warning("stage.%s failed cluster=%s: %s", stage, self.cluster_id, message)
        with self._lock:
            self.errors.append(PipelineError(stage=stage, message=message, cluster_id=self.cluster_id))

    def article_payload(self, limit: int = 10) -> List[Dict[str, Any]]:
        return [{"title": a.title, "content_excerpt": a.excerpt} for a in self.articles[:limit]]
