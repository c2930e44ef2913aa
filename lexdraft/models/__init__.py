"""Domain objects and API schemas for LexDraft."""
from lexdraft.models.domain import (
    ArticleCitation,
    DocumentType,
    MemoryItem,
    MemoryRecord,
    MemoryType,
    Party,
    PartyRole,
    Piece,
    ResearchResult,
)
from lexdraft.models.schemas import (
    CitationResponse,
    DocumentTypeResponse,
    GeneratePieceResponse,
    GenerateRequest,
    HealthCheckResponse,
    MemoryListResponse,
    MemoryRecordResponse,
    MemorySearchResponse,
    PieceResponse,
    RefineStoredTopicBody,
    RefineStoredTopicResponse,
    RefineTopicBody,
    ResearchResultResponse,
    RewriteTextBody,
    RewriteTextResponse,
    TopicRewriteResponse,
)

__all__ = [
    # Domain objects
    "ArticleCitation",
    "DocumentType",
    "MemoryItem",
    "MemoryRecord",
    "MemoryType",
    "Party",
    "PartyRole",
    "Piece",
    "ResearchResult",
    # Pydantic schemas
    "CitationResponse",
    "DocumentTypeResponse",
    "GeneratePieceResponse",
    "GenerateRequest",
    "HealthCheckResponse",
    "MemoryListResponse",
    "MemoryRecordResponse",
    "MemorySearchResponse",
    "PieceResponse",
    "RefineStoredTopicBody",
    "RefineStoredTopicResponse",
    "RefineTopicBody",
    "ResearchResultResponse",
    "RewriteTextBody",
    "RewriteTextResponse",
    "TopicRewriteResponse",
]
