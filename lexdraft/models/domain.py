"""
Core domain objects shared by the generation and refinement pipelines.

These are plain dataclasses; the HTTP layer converts to and from the Pydantic
schemas in ``lexdraft.models.schemas``.
"""
from __future__ import annotations

import enum
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------

class DocumentType(str, enum.Enum):
    """Closed set of filing kinds the engine can draft."""

    PETITION = "petition"
    ANSWER = "answer"
    REPLY = "reply"
    URGENT_RELIEF = "urgent_relief"
    INTERLOCUTORY_APPEAL = "interlocutory_appeal"
    CASE_MANAGEMENT_REQUEST = "case_management_request"
    EVIDENCE_PRODUCTION = "evidence_production"
    INTERLOCUTORY_MOTION = "interlocutory_motion"
    STATEMENT = "statement"
    EXPERT_QUESTIONS = "expert_questions"
    CLOSING_BRIEFS = "closing_briefs"
    APPEAL = "appeal"


class PartyRole(str, enum.Enum):
    CLAIMANT = "claimant"
    RESPONDENT = "respondent"
    THIRD_PARTY = "third_party"


class MemoryType(str, enum.Enum):
    """Tags attached to memory items written to the retrieval store."""

    PIECE = "peca"
    TOPIC = "topico"
    JURISPRUDENCE = "jurisprudencia"
    DOCTRINE = "doutrina"
    ARTICLE = "artigo"
    THESIS = "tese"
    INSIGHT = "insight"


# ---------------------------------------------------------------------------
# Inputs
# ---------------------------------------------------------------------------

@dataclass
class Party:
    name: str
    role: PartyRole
    qualification: Optional[str] = None


@dataclass
class GenerationRequest:
    """Ephemeral input for one generation call; never stored as-is."""

    document_type: DocumentType
    fact_summary: str
    parties: List[Party] = field(default_factory=list)
    requested_relief: Optional[str] = None
    documents: List[str] = field(default_factory=list)
    client_id: Optional[str] = None


@dataclass
class RefineStoredTopicRequest:
    piece_id: str
    topic_identifier: str
    new_content: Optional[str] = None
    content_type: Optional[MemoryType] = None
    memory_type: Optional[MemoryType] = None
    metadata: Dict[str, Any] = field(default_factory=dict)
    supplementary_research: Optional[str] = None
    client_id: Optional[str] = None
    parties: Optional[List[Party]] = None
    top_k: Optional[int] = None


@dataclass
class RefineTopicRequest:
    """Stateless rewrite of caller-supplied content for one block."""

    document_type: DocumentType
    block_title: str
    current_content: str
    new_information: Optional[str] = None
    supplementary_research: Optional[str] = None
    client_id: Optional[str] = None
    parties: List[Party] = field(default_factory=list)
    top_k: Optional[int] = None


@dataclass
class FreeformRewriteRequest:
    """Free text rewrite, optionally grounded in a client's or case's memory."""

    text: str
    instructions: Optional[str] = None
    client_id: Optional[str] = None
    process_id: Optional[str] = None
    memory_type: Optional[MemoryType] = None
    metadata: Dict[str, Any] = field(default_factory=dict)
    top_k: Optional[int] = None


# ---------------------------------------------------------------------------
# Derived values
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class ArticleCitation:
    """A statutory-article reference found in generated text."""

    article: str               # display form, e.g. "Art. 319 do CPC"
    key: str                   # dedup key, e.g. "art. 319 cpc"
    confirmed: bool = False
    reference: Optional[str] = None


@dataclass
class ResearchResult:
    title: Optional[str] = None
    snippet: Optional[str] = None
    url: Optional[str] = None
    published_at: Optional[str] = None

    def as_reference(self) -> str:
        """One-block textual rendering used in prompts and memory items."""
        parts = [p for p in (self.title, self.snippet, self.url) if p]
        return "\n".join(parts)


@dataclass
class MemoryItem:
    text: str
    type: MemoryType
    metadata: Dict[str, Any] = field(default_factory=dict)


@dataclass
class MemoryRecord:
    """A stored memory chunk as listed back from the store."""

    id: str
    text: str
    type: Optional[str] = None
    client_id: Optional[str] = None
    process_id: Optional[str] = None
    created_at: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)


# ---------------------------------------------------------------------------
# Stored piece
# ---------------------------------------------------------------------------

@dataclass
class Piece:
    id: str
    document_type: DocumentType
    text: str
    created_at: datetime
    citations: List[ArticleCitation] = field(default_factory=list)
    client_name: str = "desconhecido"
    client_id: Optional[str] = None
    parties: List[Party] = field(default_factory=list)
    updated_at: Optional[datetime] = None


# ---------------------------------------------------------------------------
# Pipeline outcomes
# ---------------------------------------------------------------------------

@dataclass
class GenerationOutcome:
    text: str
    citations: List[ArticleCitation] = field(default_factory=list)
    research_results: List[ResearchResult] = field(default_factory=list)


@dataclass
class RefinementOutcome:
    topic_text: str
    full_text: str
    related_memory: List[str] = field(default_factory=list)
    research_results: List[ResearchResult] = field(default_factory=list)
    citations: List[ArticleCitation] = field(default_factory=list)


@dataclass
class TopicRewriteOutcome:
    text: str
    related_memory: List[str] = field(default_factory=list)
    research_results: List[ResearchResult] = field(default_factory=list)
    citations: List[ArticleCitation] = field(default_factory=list)
