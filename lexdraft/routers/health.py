"""
Health check endpoint.
"""
import logging
from datetime import datetime, timezone

from fastapi import APIRouter, Depends

from lexdraft.dependencies.services import (
    get_embedder,
    get_fanout,
    get_llm,
    get_memory,
    get_research,
    get_store,
)
from lexdraft.models.schemas import HealthCheckResponse

logger = logging.getLogger(__name__)

router = APIRouter()


def _configured(gateway) -> str:
    return "configured" if getattr(gateway, "is_configured", False) else "not_configured"


@router.get("/", response_model=HealthCheckResponse)
async def health_check(
    llm=Depends(get_llm),
    research=Depends(get_research),
    memory=Depends(get_memory),
    embedder=Depends(get_embedder),
    store=Depends(get_store),
    fanout=Depends(get_fanout),
):
    """
    Health check endpoint to verify system status.

    Returns:
        HealthCheckResponse with the configuration status of each gateway
        and whether Ollama answers.
    """
    ollama_status = "ok"
    try:
        if not await embedder.check_ollama_health():
            ollama_status = "error"
    except Exception as e:
        logger.error("Ollama health check failed: %s", e)
        ollama_status = "error"

    llm_status = _configured(llm)
    overall_status = "healthy" if llm_status == "configured" and ollama_status == "ok" else "degraded"

    return HealthCheckResponse(
        status=overall_status,
        llm=llm_status,
        research=_configured(research),
        memory=_configured(memory),
        ollama=ollama_status,
        stored_pieces=len(store),
        pending_memory_writes=fanout.pending,
        timestamp=datetime.now(timezone.utc),
    )
