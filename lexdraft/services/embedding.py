"""
Embedding generation service using the Ollama API.

Provides:
- OllamaEmbeddingService: concurrency-limited, caching, normalizing embedder
  used by the memory gateway to vectorize stored passages and queries.

Memory is a best-effort side channel, so a failed embedding is logged and
reported as ``None``; it is not retried.
"""
from __future__ import annotations

import asyncio
import hashlib
import logging
import math
import time
from typing import Dict, List, Optional

import httpx

from lexdraft.config import settings

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Module-level embedding cache: sha256(text) → normalized vector
# ---------------------------------------------------------------------------
_embedding_cache: Dict[str, List[float]] = {}


def _hash_text(content: str) -> str:
    """SHA-256 digest of a text string, used as cache key."""
    return hashlib.sha256(content.encode("utf-8")).hexdigest()


def _normalize(vector: List[float]) -> List[float]:
    """Return a unit-length copy of *vector*."""
    magnitude = math.sqrt(sum(x * x for x in vector))
    if magnitude == 0.0:
        return vector
    return [x / magnitude for x in vector]


# ---------------------------------------------------------------------------
# Main service class
# ---------------------------------------------------------------------------

class OllamaEmbeddingService:
    """
    Embedding generation via Ollama:

    * Semaphore caps concurrent Ollama calls (MAX_CONCURRENT = 3)
    * Unit-length normalization so cosine distance behaves in the store
    * In-process content-hash cache — identical text is embedded only once
    """

    MAX_CONCURRENT: int = 3

    def __init__(self, base_url: Optional[str] = None, model: Optional[str] = None) -> None:
        self.base_url = (base_url or settings.OLLAMA_BASE_URL).rstrip("/")
        self.model = model or settings.OLLAMA_EMBED_MODEL
        self.timeout = httpx.Timeout(60.0, connect=10.0)
        self._semaphore = asyncio.Semaphore(self.MAX_CONCURRENT)

    async def embed_text(self, text: str) -> Optional[List[float]]:
        """
        Embed a single text string.

        Returns a normalized vector, or ``None`` on failure. Results are
        cached by SHA-256 of the stripped input text.
        """
        if not text or not text.strip():
            logger.warning("embed_text: received empty/blank text, skipping")
            return None

        text = text.strip()
        key = _hash_text(text)
        if key in _embedding_cache:
            return _embedding_cache[key]

        embedding = await self._call_ollama(text)
        if embedding is not None:
            _embedding_cache[key] = embedding
        return embedding

    async def embed_batch(self, texts: List[str]) -> List[Optional[List[float]]]:
        """
        Embed a list of texts concurrently (bounded by the semaphore).

        Returns a list of the same length as *texts*; failed items are ``None``.
        """
        gathered = await asyncio.gather(
            *[self.embed_text(t) for t in texts],
            return_exceptions=True,
        )

        results: List[Optional[List[float]]] = []
        for idx, res in enumerate(gathered):
            if isinstance(res, Exception):
                logger.error("embed_batch: item %d raised: %s", idx, res)
                results.append(None)
            else:
                results.append(res)

        logger.info(
            "embed_batch: %d/%d embeddings generated successfully",
            sum(1 for r in results if r is not None),
            len(texts),
        )
        return results

    async def check_ollama_health(self) -> bool:
        """Return ``True`` if Ollama is reachable and returns HTTP 200."""
        try:
            async with httpx.AsyncClient(timeout=5.0) as client:
                resp = await client.get(f"{self.base_url}/api/tags")
                return resp.status_code == 200
        except Exception as exc:
            logger.error("Ollama health check failed: %s", exc)
            return False

    async def _call_ollama(self, text: str) -> Optional[List[float]]:
        """POST to Ollama /api/embeddings once; ``None`` on any failure."""
        async with self._semaphore:
            try:
                t0 = time.perf_counter()
                async with httpx.AsyncClient(timeout=self.timeout) as client:
                    resp = await client.post(
                        f"{self.base_url}/api/embeddings",
                        json={"model": self.model, "prompt": text},
                    )
                elapsed_ms = (time.perf_counter() - t0) * 1000
            except httpx.TimeoutException as exc:
                logger.warning("Ollama timeout: %s", exc)
                return None
            except httpx.HTTPError as exc:
                logger.warning("Ollama connect error: %s", exc)
                return None

        if resp.status_code != 200:
            logger.error(
                "Ollama /api/embeddings returned %d: %s",
                resp.status_code,
                resp.text[:300],
            )
            return None

        try:
            payload = resp.json()
        except ValueError as exc:
            logger.error("Ollama /api/embeddings returned invalid JSON: %s", exc)
            return None

        raw = payload.get("embedding") if isinstance(payload, dict) else None
        if not raw:
            logger.error("Ollama response missing 'embedding' field")
            return None

        logger.debug("Embedded %d chars → %d-dim in %.1f ms", len(text), len(raw), elapsed_ms)
        return _normalize([float(x) for x in raw])
