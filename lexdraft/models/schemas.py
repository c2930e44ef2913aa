"""
Pydantic schemas for request/response validation.
"""
import math
from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from lexdraft.models.domain import DocumentType, MemoryType, PartyRole
from lexdraft.utils.request_parsing import (
    normalize_document_list,
    normalize_memory_type,
    parse_metadata,
    parse_parties,
    sanitize_text,
)


def _coerce_top_k(value: Any) -> Optional[int]:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    if isinstance(value, float) and not math.isfinite(value):
        return None
    return int(value)


def _party_dicts(value: Any) -> List[Dict[str, Any]]:
    return [
        {"name": p.name, "role": p.role, "qualification": p.qualification}
        for p in parse_parties(value)
    ]


# Party Schemas
class PartySchema(BaseModel):
    """A party to the case, as accepted and returned by the API."""

    name: str
    role: PartyRole
    qualification: Optional[str] = None

    model_config = ConfigDict(from_attributes=True)


# Generation Schemas
class GenerateRequest(BaseModel):
    """
    Schema for full-piece generation.

    ``document_type`` stays a plain string so an unknown value is reported
    as 400 by the router instead of a schema error.
    """

    document_type: Optional[str] = None
    fact_summary: Optional[str] = None
    parties: List[PartySchema] = Field(default_factory=list)
    requested_relief: Optional[str] = None
    documents: List[str] = Field(default_factory=list)
    client_id: Optional[str] = None

    @field_validator("document_type", "fact_summary", "requested_relief", "client_id", mode="before")
    @classmethod
    def _clean_text(cls, value: Any) -> Optional[str]:
        return sanitize_text(value)

    @field_validator("parties", mode="before")
    @classmethod
    def _clean_parties(cls, value: Any) -> List[Dict[str, Any]]:
        return _party_dicts(value)

    @field_validator("documents", mode="before")
    @classmethod
    def _clean_documents(cls, value: Any) -> List[str]:
        return normalize_document_list(value)


class ResearchResultResponse(BaseModel):
    """Jurisprudence / research hit returned alongside generated text."""

    title: Optional[str] = None
    snippet: Optional[str] = None
    url: Optional[str] = None
    published_at: Optional[str] = None

    model_config = ConfigDict(from_attributes=True)


class CitationResponse(BaseModel):
    """Statutory article found in the text and its verification status."""

    article: str
    confirmed: bool
    reference: Optional[str] = None

    model_config = ConfigDict(from_attributes=True)


class GeneratePieceResponse(BaseModel):
    """Schema for the generation response."""

    id: str
    document_type: DocumentType
    text: str
    research_results: List[ResearchResultResponse] = Field(default_factory=list)
    citations: List[CitationResponse] = Field(default_factory=list)


class PieceResponse(BaseModel):
    """Schema for a stored piece."""

    id: str
    document_type: DocumentType
    text: str
    client_name: str
    client_id: Optional[str] = None
    parties: List[PartySchema] = Field(default_factory=list)
    citations: List[CitationResponse] = Field(default_factory=list)
    created_at: datetime
    updated_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


# Template Schemas
class SectionResponse(BaseModel):
    name: str
    title: str


class DocumentTypeResponse(BaseModel):
    """One entry of the template catalog."""

    document_type: DocumentType
    title: str
    sections: List[SectionResponse]
    required_fields: List[str]


# Refinement Schemas
class RefineStoredTopicBody(BaseModel):
    """
    Schema for rewriting one topic of a stored piece.

    ``content`` is the new material for the topic; it is memorized before the
    rewrite and passed to the generator as new information.
    """

    content: Optional[str] = None
    content_type: Optional[MemoryType] = None
    memory_type: Optional[MemoryType] = None
    supplementary_research: Optional[str] = None
    client_id: Optional[str] = None
    parties: Optional[List[PartySchema]] = None
    top_k: Optional[int] = Field(None, ge=1, le=50)
    metadata: Dict[str, Any] = Field(default_factory=dict)

    @field_validator("content", "supplementary_research", "client_id", mode="before")
    @classmethod
    def _clean_text(cls, value: Any) -> Optional[str]:
        return sanitize_text(value)

    @field_validator("content_type", "memory_type", mode="before")
    @classmethod
    def _clean_memory_type(cls, value: Any) -> Optional[MemoryType]:
        return normalize_memory_type(value)

    @field_validator("parties", mode="before")
    @classmethod
    def _clean_parties(cls, value: Any) -> Optional[List[Dict[str, Any]]]:
        # An absent or empty list keeps the piece's current parties
        return _party_dicts(value) or None

    @field_validator("top_k", mode="before")
    @classmethod
    def _clean_top_k(cls, value: Any) -> Optional[int]:
        return _coerce_top_k(value)

    @field_validator("metadata", mode="before")
    @classmethod
    def _clean_metadata(cls, value: Any) -> Dict[str, Any]:
        return parse_metadata(value)


class RefineStoredTopicResponse(BaseModel):
    topic_text: str
    full_text: str
    related_memory: List[str] = Field(default_factory=list)
    research_results: List[ResearchResultResponse] = Field(default_factory=list)
    citations: List[CitationResponse] = Field(default_factory=list)


class RefineTopicBody(BaseModel):
    """Schema for the stateless topic rewrite."""

    document_type: Optional[str] = None
    topic: Optional[str] = None
    current_content: Optional[str] = None
    new_information: Optional[str] = None
    supplementary_research: Optional[str] = None
    client_id: Optional[str] = None
    parties: List[PartySchema] = Field(default_factory=list)
    top_k: Optional[int] = Field(None, ge=1, le=50)

    @field_validator(
        "document_type",
        "topic",
        "current_content",
        "new_information",
        "supplementary_research",
        "client_id",
        mode="before",
    )
    @classmethod
    def _clean_text(cls, value: Any) -> Optional[str]:
        return sanitize_text(value)

    @field_validator("parties", mode="before")
    @classmethod
    def _clean_parties(cls, value: Any) -> List[Dict[str, Any]]:
        return _party_dicts(value)

    @field_validator("top_k", mode="before")
    @classmethod
    def _clean_top_k(cls, value: Any) -> Optional[int]:
        return _coerce_top_k(value)


class TopicRewriteResponse(BaseModel):
    text: str
    related_memory: List[str] = Field(default_factory=list)
    research_results: List[ResearchResultResponse] = Field(default_factory=list)


class RewriteTextBody(BaseModel):
    """
    Schema for the free-text rewrite.

    ``client_id`` / ``process_id`` and ``memory_type`` narrow the memory used
    as context; scalar ``metadata`` entries are passed along as case context.
    """

    text: Optional[str] = None
    instructions: Optional[str] = None
    client_id: Optional[str] = None
    process_id: Optional[str] = None
    memory_type: Optional[MemoryType] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)
    top_k: Optional[int] = Field(None, ge=1, le=50)

    @field_validator("text", "instructions", "client_id", "process_id", mode="before")
    @classmethod
    def _clean_text(cls, value: Any) -> Optional[str]:
        return sanitize_text(value)

    @field_validator("memory_type", mode="before")
    @classmethod
    def _clean_memory_type(cls, value: Any) -> Optional[MemoryType]:
        return normalize_memory_type(value)

    @field_validator("metadata", mode="before")
    @classmethod
    def _clean_metadata(cls, value: Any) -> Dict[str, Any]:
        return parse_metadata(value)

    @field_validator("top_k", mode="before")
    @classmethod
    def _clean_top_k(cls, value: Any) -> Optional[int]:
        return _coerce_top_k(value)


class RewriteTextResponse(BaseModel):
    text: str
    related_memory: List[str] = Field(default_factory=list)
    citations: List[CitationResponse] = Field(default_factory=list)


# Memory Schemas
class MemoryRecordResponse(BaseModel):
    id: str
    text: str
    type: Optional[str] = None
    client_id: Optional[str] = None
    process_id: Optional[str] = None
    created_at: Optional[str] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)

    model_config = ConfigDict(from_attributes=True)


class MemorySearchResponse(BaseModel):
    results: List[str]


class MemoryListResponse(BaseModel):
    results: List[MemoryRecordResponse]


# Health Schemas
class HealthCheckResponse(BaseModel):
    """Schema for health check endpoint."""

    status: str
    llm: str
    research: str
    memory: str
    ollama: str
    stored_pieces: int = 0
    pending_memory_writes: int = 0
    timestamp: datetime
    version: str = "0.1.0"
