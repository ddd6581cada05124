"""Records shared across the pipeline.

Store-backed records (Article, Cluster, Summary, Source) and the typed results
of each generation kind are pydantic models so they validate at the boundary
with the content service and snapshot cleanly to JSON.
"""

from __future__ import annotations

import datetime as dt
from typing import Dict, List, Literal, Optional

from pydantic import BaseModel, Field

Language = Literal["en", "si", "ta"]

DRAFT = "draft"
PUBLISHED = "published"


class Source(BaseModel):
    id: str
    name: str = ""
    feed_url: str
    language: Optional[Language] = None
    active: bool = True


class FeedItem(BaseModel):
    title: str
    url: str
    guid: Optional[str] = None
    published_at: Optional[dt.datetime] = None
    content: str = ""
    content_html: Optional[str] = None
    image_urls: List[str] = Field(default_factory=list)


class Article(BaseModel):
    id: Optional[str] = None
    source_id: str
    title: str
    url: str
    guid: Optional[str] = None
    content: str = ""
    excerpt: Optional[str] = None
    content_html: Optional[str] = None
    published_at: Optional[dt.datetime] = None
    lang: Language = "en"
    hash: str
    image_url: Optional[str] = None
    image_urls: List[str] = Field(default_factory=list)
    cluster_id: Optional[str] = None


class Cluster(BaseModel):
    id: Optional[str] = None
    headline: str
    status: str = DRAFT
    first_seen_at: dt.datetime
    last_seen_at: dt.datetime
    expires_at: dt.datetime
    source_count: int = 0
    article_count: int = 0
    headlines: Dict[str, str] = Field(default_factory=dict)
    headline_quality: Dict[str, float] = Field(default_factory=dict)
    meta_titles: Dict[str, str] = Field(default_factory=dict)
    meta_descriptions: Dict[str, str] = Field(default_factory=dict)
    category: Optional[str] = None
    topic: Optional[str] = None
    topics: List[str] = Field(default_factory=list)
    keywords: List[str] = Field(default_factory=list)
    district: Optional[str] = None
    primary_entity: Optional[str] = None
    event_type: Optional[str] = None
    slug: Optional[str] = None
    image_url: Optional[str] = None
    image_relevance: Optional[float] = None
    image_source: Optional[str] = None
    language: Optional[Language] = None
    published_at: Optional[dt.datetime] = None
    updated_at: Optional[dt.datetime] = None


class Summary(BaseModel):
    cluster_id: str
    texts: Dict[str, str] = Field(default_factory=dict)
    quality: Dict[str, float] = Field(default_factory=dict)
    lengths: Dict[str, int] = Field(default_factory=dict)
    key_facts: Dict[str, List[str]] = Field(default_factory=dict)
    translation_status: Dict[str, str] = Field(default_factory=dict)
    source_lang: Language = "en"
    source_count: int = 0
    needs_review: bool = False
    version: int = 0
    updated_at: Optional[dt.datetime] = None


# ---------- Generation results ----------

class SummaryResult(BaseModel):
    kind: Literal["summary"] = "summary"
    text: str
    language: Language
    quality: float
    origin: Literal["generated", "fallback_en", "source_text", "existing"] = "generated"
    needs_review: bool = False


class TranslatedField(BaseModel):
    text: str
    quality: float
    status: Literal["generated", "fallback", "source", "existing"] = "generated"


class TranslationResult(BaseModel):
    kind: Literal["translation"] = "translation"
    source_lang: Language
    headlines: Dict[str, TranslatedField] = Field(default_factory=dict)
    summaries: Dict[str, TranslatedField] = Field(default_factory=dict)


class SeoMeta(BaseModel):
    title: str
    description: str


class SEOResult(BaseModel):
    kind: Literal["seo"] = "seo"
    meta: Dict[str, SeoMeta] = Field(default_factory=dict)
    topics: List[str] = Field(default_factory=list)
    district: Optional[str] = None
    primary_entity: Optional[str] = None
    event_type: Optional[str] = None
    keywords: List[str] = Field(default_factory=list)
    key_facts: Dict[str, List[str]] = Field(default_factory=dict)
    repaired: bool = False


class ImageResult(BaseModel):
    kind: Literal["image"] = "image"
    url: Optional[str] = None
    relevance: float = 0.0
    source: str = "none"


class CategoryResult(BaseModel):
    kind: Literal["category"] = "category"
    category: str


# ---------- Run reporting ----------

class PipelineError(BaseModel):
    stage: str
    message: str
    source_id: Optional[str] = None
    cluster_id: Optional[str] = None


class PipelineStats(BaseModel):
    run_id: Optional[str] = None
    fetched: int = 0
    inserted: int = 0
    clusters_touched: int = 0
    categorized: int = 0
    summaries: int = 0
    published: int = 0
    skipped: bool = False
    reason: Optional[str] = None
    errors: List[PipelineError] = Field(default_factory=list)
