"""
Main FastAPI application for the LexDraft backend.
Handles CORS, request logging middleware, lifespan events, error translation
and router registration.
"""
import logging
import time
from contextlib import asynccontextmanager
from datetime import datetime, timezone

import httpx
from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from lexdraft.config import settings
from lexdraft.dependencies.services import get_fanout
from lexdraft.exceptions import (
    ContainerBuildFailed,
    GenerationError,
    MissingRequiredFields,
    PieceNotFound,
    TopicNotFound,
    UnknownDocumentType,
)
from lexdraft.routers import health, memory, pieces

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Startup / shutdown helpers
# ---------------------------------------------------------------------------

def _log_gateways() -> None:
    """Log which external gateways have credentials.  Never raises."""
    if settings.LLM_API_KEY:
        logger.info("✓ Content generation: %s (%s)", settings.LLM_MODEL, settings.LLM_API_URL)
    else:
        logger.warning("⚠ LLM_API_KEY not set — piece generation will fail with 502")

    if settings.TAVILY_API_KEY:
        logger.info("✓ Research: Tavily")
    else:
        logger.warning("⚠ TAVILY_API_KEY not set — citations stay unverified, no jurisprudence")

    if settings.CHROMA_HOST:
        logger.info("✓ Memory: Chroma collection '%s' at %s", settings.CHROMA_COLLECTION, settings.CHROMA_HOST)
    else:
        logger.warning("⚠ CHROMA_HOST not set — memory writes and lookups are disabled")

    if settings.PIECE_TTL_SECONDS > 0:
        logger.info("  Pieces expire after %d s", settings.PIECE_TTL_SECONDS)


async def _check_ollama() -> dict:
    """
    Verify Ollama is reachable and the embedding model is available.
    Returns a dict with status info.  Never raises; warnings are logged instead.
    """
    result = {"reachable": False, "embed_model": False, "models": []}
    try:
        async with httpx.AsyncClient(timeout=10.0) as client:
            resp = await client.get(f"{settings.OLLAMA_BASE_URL}/api/tags")
        if resp.status_code != 200:
            logger.warning("⚠ Ollama responded with status %d", resp.status_code)
            return result

        result["reachable"] = True
        available = [m["name"] for m in resp.json().get("models", [])]
        result["models"] = available
        logger.info("✓ Ollama reachable — available models: %s", available)

        # Partial match so "nomic-embed-text:latest" still matches
        embed_model = settings.OLLAMA_EMBED_MODEL
        result["embed_model"] = any(
            m == embed_model or m.startswith(embed_model.split(":")[0])
            for m in available
        )
        if result["embed_model"]:
            logger.info("  ✓ Embedding model '%s' is available", embed_model)
        else:
            logger.warning(
                "  ⚠ Embedding model '%s' not found — run: ollama pull %s",
                embed_model,
                embed_model,
            )

    except Exception as exc:
        logger.error("✗ Ollama unreachable (%s) — memory writes and lookups will be skipped", exc)
    return result


# ---------------------------------------------------------------------------
# Lifespan
# ---------------------------------------------------------------------------

@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown event handler."""
    logger.info("=" * 60)
    logger.info("  Starting LexDraft backend …")
    logger.info("=" * 60)

    # 1. Gateways (optional; logs warnings but continues)
    _log_gateways()

    # 2. Ollama embeddings (optional)
    ollama_status = await _check_ollama()
    if not ollama_status["reachable"]:
        logger.warning(
            "Ollama is not running.  Start it with: ollama serve\n"
            "  Memory features will be unavailable until Ollama is up."
        )

    logger.info("=" * 60)
    logger.info("  LexDraft backend ready on http://%s:%d", settings.HOST, settings.PORT)
    logger.info("  Swagger UI : http://%s:%d/docs", settings.HOST, settings.PORT)
    logger.info("  Health     : http://%s:%d/api/health", settings.HOST, settings.PORT)
    logger.info("=" * 60)

    yield  # ← server is running

    logger.info("Shutting down LexDraft backend …")
    fanout = get_fanout()
    if fanout.pending:
        logger.info("  Waiting for %d memory writes …", fanout.pending)
    await fanout.drain()
    logger.info("✓ Shutdown complete.")


# ---------------------------------------------------------------------------
# Application
# ---------------------------------------------------------------------------

app = FastAPI(
    title="LexDraft API",
    description=(
        "**LexDraft** — legal piece drafting and refinement.\n\n"
        "Generate Brazilian court filings from a fact summary and parties, "
        "verify the statutory articles they cite, rewrite single topics with "
        "memory and jurisprudence, and export the result as DOCX.\n\n"
        "Key endpoints:\n"
        "- `GET  /api/pieces/types` — document types and their blocks\n"
        "- `POST /api/pieces/generate` — generate and store a piece\n"
        "- `POST /api/pieces/{id}/topics/{topic}/refine` — rewrite one topic\n"
        "- `GET  /api/pieces/{id}/export` — download as DOCX\n"
        "- `GET  /api/memory?query=...` — search stored legal memory\n"
    ),
    version="0.1.0",
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_url="/openapi.json",
)


# ---------------------------------------------------------------------------
# CORS
# ---------------------------------------------------------------------------

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.get_allowed_origins(),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ---------------------------------------------------------------------------
# Request / response logging middleware
# ---------------------------------------------------------------------------

@app.middleware("http")
async def log_requests(request: Request, call_next):
    """
    Log every request with method, path, status code, and elapsed time.
    Attaches an ``X-Process-Time`` header (milliseconds) to every response.
    """
    t0 = time.monotonic()
    response = await call_next(request)
    elapsed_ms = round((time.monotonic() - t0) * 1000, 2)

    # Skip noisy health-check polling from the frontend
    if request.url.path not in ("/api/health", "/api/health/", "/"):
        logger.info(
            "%s %s → %d  (%.2f ms)",
            request.method,
            request.url.path,
            response.status_code,
            elapsed_ms,
        )

    response.headers["X-Process-Time"] = f"{elapsed_ms}ms"
    return response


# ---------------------------------------------------------------------------
# Exception handlers
# ---------------------------------------------------------------------------

@app.exception_handler(UnknownDocumentType)
async def unknown_document_type_handler(request: Request, exc: UnknownDocumentType):
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={"error": "invalid_document_type", "detail": str(exc)},
    )


@app.exception_handler(MissingRequiredFields)
async def missing_fields_handler(request: Request, exc: MissingRequiredFields):
    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content={"error": "missing_required_fields", "fields": exc.fields, "detail": str(exc)},
    )


@app.exception_handler(PieceNotFound)
async def piece_not_found_handler(request: Request, exc: PieceNotFound):
    return JSONResponse(
        status_code=status.HTTP_404_NOT_FOUND,
        content={"error": "piece_not_found", "detail": str(exc)},
    )


@app.exception_handler(TopicNotFound)
async def topic_not_found_handler(request: Request, exc: TopicNotFound):
    return JSONResponse(
        status_code=status.HTTP_404_NOT_FOUND,
        content={"error": "topic_not_found", "detail": str(exc)},
    )


@app.exception_handler(GenerationError)
async def generation_error_handler(request: Request, exc: GenerationError):
    logger.error("Generation failed on %s %s: %s", request.method, request.url.path, exc)
    return JSONResponse(
        status_code=status.HTTP_502_BAD_GATEWAY,
        content={"error": "generation_failed", "detail": str(exc)},
    )


@app.exception_handler(ContainerBuildFailed)
async def container_build_failed_handler(request: Request, exc: ContainerBuildFailed):
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"error": "export_failed", "detail": str(exc)},
    )


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """Return a structured JSON error for any unhandled exception."""
    logger.error(
        "Unhandled exception on %s %s: %s",
        request.method,
        request.url.path,
        exc,
        exc_info=True,
    )
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={
            "detail": "Internal server error",
            "error": str(exc),
            "path": str(request.url.path),
            "timestamp": datetime.now(timezone.utc).isoformat(),
        },
    )


# ---------------------------------------------------------------------------
# Routers
# ---------------------------------------------------------------------------

app.include_router(health.router, prefix="/api/health", tags=["Health"])
app.include_router(pieces.router, prefix="/api/pieces", tags=["Pieces"])
app.include_router(memory.router, prefix="/api/memory", tags=["Memory"])


# ---------------------------------------------------------------------------
# Root
# ---------------------------------------------------------------------------

@app.get("/", tags=["Root"], include_in_schema=False)
async def root():
    """API root: returns basic service info."""
    return {
        "name": "LexDraft API",
        "version": "0.1.0",
        "description": "Legal Piece Drafting Backend",
        "docs": "/docs",
        "health": "/api/health",
        "endpoints": {
            "types": "/api/pieces/types",
            "generate": "/api/pieces/generate",
            "refine_topic": "/api/pieces/refine-topic",
            "rewrite_text": "/api/pieces/rewrite-text",
            "pieces": "/api/pieces/{id}",
            "export": "/api/pieces/{id}/export",
            "memory": "/api/memory",
        },
    }


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------

if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "lexdraft.main:app",
        host=settings.HOST,
        port=settings.PORT,
        reload=True,
        log_level="info",
    )
