"""
Legal memory: a Chroma-backed retrieval store plus a fire-and-forget writer.

Public API
----------
ChromaMemoryGateway.write(items)                               -> None
ChromaMemoryGateway.query(text, top_k, type, owner_filters)    -> List[str]
ChromaMemoryGateway.list_records(owner_filters, type, limit)   -> List[MemoryRecord]
MemoryFanout.schedule(items, label)                            -> asyncio.Task
MemoryFanout.drain()                                           -> None

The gateway methods swallow transport errors after logging them: memory
grounds generation but is never required for a response.
"""
from __future__ import annotations

import asyncio
import logging
import uuid
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Set
from urllib.parse import quote

import httpx

from lexdraft.config import settings
from lexdraft.models.domain import MemoryItem, MemoryRecord, MemoryType
from lexdraft.services.embedding import OllamaEmbeddingService
from lexdraft.utils.helpers import split_text_into_chunks

logger = logging.getLogger(__name__)

MAX_LIST_LIMIT = 100


def _sanitize_metadata(metadata: Dict[str, Any]) -> Dict[str, Any]:
    """Chroma only accepts scalar metadata values."""
    clean: Dict[str, Any] = {}
    for key, value in metadata.items():
        if value is None:
            continue
        if isinstance(value, (str, int, float, bool)):
            clean[key] = value
        elif isinstance(value, MemoryType):
            clean[key] = value.value
        else:
            clean[key] = str(value)
    return clean


def _build_where(conditions: Dict[str, Any]) -> Optional[Dict[str, Any]]:
    """Chroma needs an explicit ``$and`` once there is more than one condition."""
    items = [{key: value} for key, value in conditions.items() if value]
    if not items:
        return None
    if len(items) == 1:
        return items[0]
    return {"$and": items}


def _flatten(values: Any) -> List[Any]:
    """Chroma ``get`` returns flat lists; ``query`` nests one list per embedding."""
    flat: List[Any] = []
    for value in values or []:
        if isinstance(value, list):
            flat.extend(value)
        else:
            flat.append(value)
    return flat


def _str_or_none(value: Any) -> Optional[str]:
    return value if isinstance(value, str) and value else None


# ---------------------------------------------------------------------------
# Gateway
# ---------------------------------------------------------------------------

class ChromaMemoryGateway:
    """Memory store over the Chroma REST API with Ollama embeddings."""

    def __init__(
        self,
        embedder: Optional[OllamaEmbeddingService] = None,
        host: Optional[str] = None,
        collection: Optional[str] = None,
    ) -> None:
        self.embedder = embedder or OllamaEmbeddingService()
        self.host = (host if host is not None else settings.CHROMA_HOST).rstrip("/")
        self.collection = collection or settings.CHROMA_COLLECTION
        self.chunk_size = settings.MEMORY_CHUNK_SIZE
        self.chunk_overlap = settings.MEMORY_CHUNK_OVERLAP
        self.timeout = httpx.Timeout(float(settings.CHROMA_TIMEOUT), connect=10.0)
        self._collection_id: Optional[str] = None
        self._collection_lock = asyncio.Lock()

    @property
    def is_configured(self) -> bool:
        return bool(self.host)

    def _headers(self) -> Dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if settings.CHROMA_API_KEY:
            headers["Authorization"] = f"Bearer {settings.CHROMA_API_KEY}"
        if settings.CHROMA_TENANT:
            headers["X-Chroma-Tenant"] = settings.CHROMA_TENANT
        if settings.CHROMA_DATABASE:
            headers["X-Chroma-Database"] = settings.CHROMA_DATABASE
        return headers

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(base_url=self.host, headers=self._headers(), timeout=self.timeout)

    async def _ensure_collection(self) -> Optional[str]:
        """Return the collection id, creating the collection on first use."""
        if not self.is_configured:
            logger.warning("Chroma host not configured; memory disabled")
            return None
        if self._collection_id:
            return self._collection_id

        async with self._collection_lock:
            if self._collection_id:
                return self._collection_id
            try:
                async with self._client() as client:
                    resp = await client.get(f"/api/v1/collections/{quote(self.collection)}")
                    if resp.status_code in (404, 400, 500):
                        resp = await client.post(
                            "/api/v1/collections",
                            json={"name": self.collection, "get_or_create": True},
                        )
                resp.raise_for_status()
                self._collection_id = resp.json().get("id") or self.collection
            except (httpx.HTTPError, ValueError) as exc:
                logger.warning("Could not access Chroma collection %r: %s", self.collection, exc)
                return None
        return self._collection_id

    # ------------------------------------------------------------------
    # Write
    # ------------------------------------------------------------------

    async def write(self, items: List[MemoryItem]) -> None:
        """Chunk, embed and store *items*. Failures are logged, never raised."""
        documents: List[str] = []
        metadatas: List[Dict[str, Any]] = []
        now = datetime.now(timezone.utc).isoformat()

        for item in items:
            if not item.text or not item.text.strip():
                continue
            for chunk in split_text_into_chunks(item.text, self.chunk_size, self.chunk_overlap):
                metadata = {**item.metadata, "tipo": item.type.value}
                metadata.setdefault("criado_em", now)
                documents.append(chunk)
                metadatas.append(_sanitize_metadata(metadata))

        if not documents:
            return

        collection_id = await self._ensure_collection()
        if collection_id is None:
            return

        embeddings = await self.embedder.embed_batch(documents)
        kept = [i for i, emb in enumerate(embeddings) if emb is not None]
        if not kept:
            logger.warning("write: no embeddings generated; %d chunks dropped", len(documents))
            return

        payload = {
            "ids": [uuid.uuid4().hex for _ in kept],
            "documents": [documents[i] for i in kept],
            "metadatas": [metadatas[i] for i in kept],
            "embeddings": [embeddings[i] for i in kept],
        }
        try:
            async with self._client() as client:
                resp = await client.post(f"/api/v1/collections/{collection_id}/add", json=payload)
            resp.raise_for_status()
        except httpx.HTTPError as exc:
            logger.warning("write: failed to add %d chunks to memory: %s", len(kept), exc)
            return

        logger.info("write: stored %d memory chunks", len(kept))

    # ------------------------------------------------------------------
    # Query
    # ------------------------------------------------------------------

    async def query(
        self,
        text: str,
        top_k: int = 5,
        type: Optional[MemoryType] = None,
        owner_filters: Optional[Dict[str, Any]] = None,
    ) -> List[str]:
        """Return stored passages related to *text*; ``[]`` on any failure."""
        if not text or not text.strip():
            return []

        collection_id = await self._ensure_collection()
        if collection_id is None:
            return []

        embedding = await self.embedder.embed_text(text)
        if embedding is None:
            return []

        conditions: Dict[str, Any] = dict(owner_filters or {})
        if type is not None:
            conditions["tipo"] = type.value

        payload: Dict[str, Any] = {"query_embeddings": [embedding], "n_results": top_k}
        where = _build_where(conditions)
        if where:
            payload["where"] = where

        try:
            async with self._client() as client:
                resp = await client.post(f"/api/v1/collections/{collection_id}/query", json=payload)
            resp.raise_for_status()
            data = resp.json()
        except (httpx.HTTPError, ValueError) as exc:
            logger.warning("query: memory lookup failed: %s", exc)
            return []

        passages: List[str] = []
        for batch in data.get("documents") or []:
            if not isinstance(batch, list):
                continue
            for doc in batch:
                if isinstance(doc, str) and doc.strip():
                    passages.append(doc.strip())
        return passages

    # ------------------------------------------------------------------
    # Listing
    # ------------------------------------------------------------------

    async def list_records(
        self,
        owner_filters: Optional[Dict[str, Any]] = None,
        type: Optional[MemoryType] = None,
        limit: int = 20,
    ) -> List[MemoryRecord]:
        """
        List stored chunks matching *owner_filters* (``cliente_id``,
        ``processo_id``) without a similarity search.

        Uses Chroma's ``get`` with a metadata ``where``; ``[]`` on any failure.
        """
        collection_id = await self._ensure_collection()
        if collection_id is None:
            return []

        conditions: Dict[str, Any] = dict(owner_filters or {})
        if type is not None:
            conditions["tipo"] = type.value

        payload: Dict[str, Any] = {
            "limit": max(1, min(limit, MAX_LIST_LIMIT)),
            "include": ["documents", "metadatas"],
        }
        where = _build_where(conditions)
        if where:
            payload["where"] = where

        try:
            async with self._client() as client:
                resp = await client.post(f"/api/v1/collections/{collection_id}/get", json=payload)
            resp.raise_for_status()
            data = resp.json()
        except (httpx.HTTPError, ValueError) as exc:
            logger.warning("list_records: memory listing failed: %s", exc)
            return []

        documents = _flatten(data.get("documents"))
        metadatas = _flatten(data.get("metadatas"))
        ids = _flatten(data.get("ids"))

        records: List[MemoryRecord] = []
        for index, doc in enumerate(documents):
            if not isinstance(doc, str) or not doc.strip():
                continue
            meta = metadatas[index] if index < len(metadatas) and isinstance(metadatas[index], dict) else {}
            record_id = ids[index] if index < len(ids) and isinstance(ids[index], str) else f"memoria_{index}"
            records.append(
                MemoryRecord(
                    id=record_id,
                    text=doc.strip(),
                    type=_str_or_none(meta.get("tipo")),
                    client_id=_str_or_none(meta.get("cliente_id")),
                    process_id=_str_or_none(meta.get("processo_id")),
                    created_at=_str_or_none(meta.get("criado_em")),
                    metadata=meta,
                )
            )
        logger.info("list_records: %d records for %s", len(records), conditions or "all")
        return records


# ---------------------------------------------------------------------------
# Fire-and-forget fan-out
# ---------------------------------------------------------------------------

class MemoryFanout:
    """
    Runs memory writes as background asyncio.Tasks.

    Each item is written independently so one failure cannot abort the
    others. Task references are kept until completion; ``drain`` awaits
    whatever is still in flight (used on shutdown and in tests).
    """

    def __init__(self, gateway) -> None:
        self.gateway = gateway
        self._tasks: Set[asyncio.Task] = set()

    @property
    def pending(self) -> int:
        return sum(1 for task in self._tasks if not task.done())

    def schedule(self, items: List[MemoryItem], label: str = "memory") -> Optional[asyncio.Task]:
        if not items:
            return None

        async def _run() -> None:
            results = await asyncio.gather(
                *[self.gateway.write([item]) for item in items],
                return_exceptions=True,
            )
            failures = [r for r in results if isinstance(r, Exception)]
            for failure in failures:
                logger.warning("%s: memory write failed: %s", label, failure)
            logger.info(
                "%s: %d/%d memory items written", label, len(items) - len(failures), len(items)
            )

        task = asyncio.create_task(_run())
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def write_now(self, items: List[MemoryItem], label: str = "memory") -> None:
        """Awaited best-effort write; logs instead of raising."""
        try:
            await self.gateway.write(items)
        except Exception as exc:
            logger.warning("%s: memory write failed: %s", label, exc)

    async def drain(self) -> None:
        if self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)
