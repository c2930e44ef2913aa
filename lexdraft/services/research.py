"""
Legal research via the Tavily search API.

``TavilyResearchClient.search`` returns an empty list when no API key is
configured; transport failures are raised so each caller can decide how to
degrade (citation verification marks the article unconfirmed, the pipelines
fall back to no references).
"""
from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional, Sequence

import httpx

from lexdraft.config import settings
from lexdraft.models.domain import ResearchResult

logger = logging.getLogger(__name__)

JURISPRUDENCE_DOMAINS = ("stj.jus.br", "jusbrasil.com.br", "conjur.com.br")


def _string_field(item: Dict[str, Any], *keys: str) -> Optional[str]:
    for key in keys:
        value = item.get(key)
        if isinstance(value, str) and value.strip():
            return value.strip()
    return None


def _to_result(item: Dict[str, Any]) -> ResearchResult:
    return ResearchResult(
        title=_string_field(item, "title"),
        snippet=_string_field(item, "snippet", "content"),
        url=_string_field(item, "url"),
        published_at=_string_field(item, "published_date", "publishedAt"),
    )


def format_references(results: Sequence[ResearchResult]) -> List[str]:
    """Render results as prompt-ready reference blocks, skipping empty ones."""
    return [ref for ref in (r.as_reference() for r in results) if ref]


class TavilyResearchClient:
    """Thin async wrapper around POST /search."""

    def __init__(self, api_key: Optional[str] = None, api_url: Optional[str] = None) -> None:
        self.api_key = api_key if api_key is not None else settings.TAVILY_API_KEY
        self.api_url = api_url or settings.TAVILY_API_URL
        self.timeout = httpx.Timeout(float(settings.TAVILY_TIMEOUT), connect=10.0)

    @property
    def is_configured(self) -> bool:
        return bool(self.api_key)

    async def search(
        self,
        query: str,
        domains: Optional[Sequence[str]] = None,
        max_results: int = 5,
    ) -> List[ResearchResult]:
        """
        Run one search restricted to *domains*.

        Returns results in the order Tavily ranks them. Reads ``results`` and
        falls back to ``hits`` for older response shapes.
        """
        if not self.api_key:
            logger.warning("Tavily API key not configured; returning empty result set")
            return []

        payload: Dict[str, Any] = {
            "api_key": self.api_key,
            "query": query,
            "max_results": max_results,
        }
        if domains:
            payload["include_domains"] = list(domains)

        async with httpx.AsyncClient(timeout=self.timeout) as client:
            resp = await client.post(self.api_url, json=payload)
        resp.raise_for_status()

        data = resp.json() or {}
        items = data.get("results") or data.get("hits") or []
        results = [_to_result(item) for item in items if isinstance(item, dict)]
        logger.info("search: %d results for %r", len(results), query[:80])
        return results[:max_results]
