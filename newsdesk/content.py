"""Content generation service boundary.

The pipeline treats summarization, translation, SEO extraction, image
selection and categorization as opaque calls that either return a result or
raise. ``HttpContentService`` is the default transport: JSON POST to
``<base_url>/<operation>``, responses validated with pydantic.
"""

from __future__ import annotations

import os
from typing import Any, Dict, List, Optional, Protocol

import requests
from pydantic import BaseModel, Field, ValidationError
from tenacity import Retrying, retry_if_exception_type, stop_after_attempt, wait_exponential

from newsdesk.models import Language
from newsdesk.utils import get_logger, redact_secrets

logger = get_logger(__name__)


class ContentServiceError(RuntimeError):
    pass


class SeoExtraction(BaseModel):
    titles: Dict[str, str] = Field(default_factory=dict)
    descriptions: Dict[str, str] = Field(default_factory=dict)
    topics: List[str] = Field(default_factory=list)
    district: Optional[str] = None
    primary_entity: Optional[str] = None
    event_type: Optional[str] = None
    keywords: List[str] = Field(default_factory=list)
    key_facts: List[str] = Field(default_factory=list)


class ContentService(Protocol):
    def summarize(self, sources: List[Dict[str, Any]], lang: Language, previous: Optional[str] = None) -> str: ...
    def translate(self, text: str, from_lang: Language, to_lang: Language, kind: str = "summary") -> str: ...
    def extract_seo(self, summary: str, headline: str, articles: List[Dict[str, Any]]) -> SeoExtraction: ...
    def select_image(self, candidates: List[str], headline: str, summary: str) -> Optional[str]: ...
    def categorize(self, articles: List[Dict[str, Any]]) -> str: ...


class _TextReply(BaseModel):
    text: str


class _ImageReply(BaseModel):
    url: Optional[str] = None


class _CategoryReply(BaseModel):
    category: str


class HttpContentService:
    def __init__(self, base_url: str, *, timeout: float = 60.0, retries: int = 3,
                 api_key: Optional[str] = None, session: Optional[requests.Session] = None):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.retries = max(1, int(retries))
        self.api_key = api_key if api_key is not None else os.getenv("NEWSDESK_CONTENT_API_KEY")
        self.session = session or requests.Session()

    @classmethod
    def from_config(cls, cfg: dict) -> "HttpContentService":
        c = cfg.get("content") or {}
        return cls(
            c.get("base_url", "http://localhost:8080"),
            timeout=float(c.get("timeout", 60)),
            retries=int(c.get("retries", 3)),
        )

    def _headers(self) -> Dict[str, str]:
        headers = {"Content-Type": "application/json", "User-Agent": "newsdesk/0.1"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"
        return headers

    def _post(self, operation: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        url = f"{self.base_url}/{operation}"
        retrying = Retrying(
            stop=stop_after_attempt(self.retries),
            wait=wait_exponential(multiplier=1, min=1, max=8),
            retry=retry_if_exception_type(requests.RequestException),
            reraise=True,
        )
        try:
            for attempt in retrying:
                with attempt:
                    r = self.session.post(url, json=payload, headers=self._headers(), timeout=self.timeout)
                    r.raise_for_status()
                    body = r.json()
        except requests.RequestException as exc:
            logger.warning("content.%s failed: %s", operation, redact_secrets(str(exc)))
            raise
        if not isinstance(body, dict):
            raise ContentServiceError(f"{operation}: expected JSON object, got {type(body).__name__}")
        return body

    def _parse(self, operation: str, model, body: Dict[str, Any]):
        try:
            return model.model_validate(body)
        except ValidationError as exc:
            raise ContentServiceError(f"{operation}: invalid response: {exc.error_count()} errors") from exc

    def summarize(self, sources, lang, previous=None):
        body = self._post("summarize", {"sources": sources, "language": lang, "previous": previous})
        return self._parse("summarize", _TextReply, body).text

    def translate(self, text, from_lang, to_lang, kind="summary"):
        body = self._post("translate", {"text": text, "from": from_lang, "to": to_lang, "kind": kind})
        return self._parse("translate", _TextReply, body).text

    def extract_seo(self, summary, headline, articles):
        body = self._post("seo", {"summary": summary, "headline": headline, "articles": articles})
        return self._parse("seo", SeoExtraction, body)

    def select_image(self, candidates, headline, summary):
        body = self._post("select-image", {"candidates": candidates, "headline": headline, "summary": summary})
        return self._parse("select-image", _ImageReply, body).url

    def categorize(self, articles):
        body = self._post("categorize", {"articles": articles})
        return self._parse("categorize", _CategoryReply, body).category
