"""
Legal memory lookup endpoints.

Route summary
-------------
GET    /api/memory                         - similarity search over stored memory
GET    /api/memory/client/{client_id}      - records stored for one client
GET    /api/memory/process/{process_id}    - records stored for one case

The memory store degrades to empty results when Chroma or Ollama is
unreachable, so these routes never fail because of the store itself.
"""
import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status

from lexdraft.dependencies.services import get_memory
from lexdraft.models.schemas import MemoryListResponse, MemoryRecordResponse, MemorySearchResponse
from lexdraft.services.memory import ChromaMemoryGateway
from lexdraft.utils.request_parsing import normalize_memory_type, sanitize_text

logger = logging.getLogger(__name__)

router = APIRouter()

MAX_SEARCH_TOP_K = 20
DEFAULT_LIST_LIMIT = 20
MAX_LIST_LIMIT = 100


def _clamp(value: int, low: int, high: int) -> int:
    return max(low, min(high, value))


@router.get("", response_model=MemorySearchResponse)
async def search_memory(
    query: Optional[str] = Query(None),
    client_id: Optional[str] = Query(None),
    process_id: Optional[str] = Query(None),
    type: Optional[str] = Query(None),
    top_k: int = Query(5),
    memory: ChromaMemoryGateway = Depends(get_memory),
):
    """Return the stored passages closest to *query*, filtered by owner and type."""
    text = sanitize_text(query)
    if not text:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="query is required")

    owner_filters = {
        key: value
        for key, value in (
            ("cliente_id", sanitize_text(client_id)),
            ("processo_id", sanitize_text(process_id)),
        )
        if value
    }
    passages = await memory.query(
        text,
        top_k=_clamp(top_k, 1, MAX_SEARCH_TOP_K),
        type=normalize_memory_type(type),
        owner_filters=owner_filters or None,
    )
    return MemorySearchResponse(results=passages)


async def _list_by_owner(memory, key: str, owner_id: str, limit: int) -> MemoryListResponse:
    value = sanitize_text(owner_id)
    if not value:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=f"{key} is required")

    records = await memory.list_records(
        owner_filters={key: value}, limit=_clamp(limit, 1, MAX_LIST_LIMIT)
    )
    return MemoryListResponse(results=[MemoryRecordResponse.model_validate(r) for r in records])


@router.get("/client/{client_id}", response_model=MemoryListResponse)
async def list_client_memory(
    client_id: str,
    limit: int = Query(DEFAULT_LIST_LIMIT),
    memory: ChromaMemoryGateway = Depends(get_memory),
):
    """List memory records tagged with ``cliente_id``."""
    return await _list_by_owner(memory, "cliente_id", client_id, limit)


@router.get("/process/{process_id}", response_model=MemoryListResponse)
async def list_process_memory(
    process_id: str,
    limit: int = Query(DEFAULT_LIST_LIMIT),
    memory: ChromaMemoryGateway = Depends(get_memory),
):
    """List memory records tagged with ``processo_id``."""
    return await _list_by_owner(memory, "processo_id", process_id, limit)
