"""
Legal piece endpoints.

Route summary
-------------
GET    /api/pieces/types                              — template catalog
POST   /api/pieces/generate                           — generate and store a piece
POST   /api/pieces/refine-topic                       — stateless topic rewrite
POST   /api/pieces/rewrite-text                       — free-text rewrite
GET    /api/pieces/{piece_id}                         — stored piece
POST   /api/pieces/{piece_id}/topics/{topic_id}/refine — rewrite one topic of a piece
GET    /api/pieces/{piece_id}/export                  — DOCX download

Domain errors (unknown type, missing fields, piece/topic not found,
generation and export failures) are translated by the handlers in
``lexdraft.main``.
"""
import logging
from typing import List

from fastapi import APIRouter, Depends, HTTPException, Response, status

from lexdraft.dependencies.services import (
    get_assembly,
    get_container_builder,
    get_refinement,
    get_store,
)
from lexdraft.exceptions import PieceNotFound
from lexdraft.models.domain import (
    FreeformRewriteRequest,
    GenerationRequest,
    Party,
    RefineStoredTopicRequest,
    RefineTopicRequest,
)
from lexdraft.models.schemas import (
    CitationResponse,
    DocumentTypeResponse,
    GeneratePieceResponse,
    GenerateRequest,
    PartySchema,
    PieceResponse,
    RefineStoredTopicBody,
    RefineStoredTopicResponse,
    RefineTopicBody,
    ResearchResultResponse,
    RewriteTextBody,
    RewriteTextResponse,
    SectionResponse,
    TopicRewriteResponse,
)
from lexdraft.services.assembly import AssemblyPipeline
from lexdraft.services.container import DOCX_MEDIA_TYPE, ContainerBuilder
from lexdraft.services.piece_store import InMemoryPieceStore
from lexdraft.services.refinement import RefinementPipeline
from lexdraft.services.templates import (
    coerce_document_type,
    format_block_title,
    get_template,
    list_document_types,
)

logger = logging.getLogger(__name__)

router = APIRouter()


def _to_parties(parties: List[PartySchema]) -> List[Party]:
    return [Party(name=p.name, role=p.role, qualification=p.qualification) for p in parties]


# ---------------------------------------------------------------------------
# Catalog
# ---------------------------------------------------------------------------

@router.get("/types", response_model=List[DocumentTypeResponse])
async def list_types():
    """List every document type with its ordered blocks and mandatory fields."""
    catalog = []
    for document_type in list_document_types():
        template = get_template(document_type)
        catalog.append(
            DocumentTypeResponse(
                document_type=document_type,
                title=template.title,
                sections=[
                    SectionResponse(name=block, title=format_block_title(block))
                    for block in template.sections
                ],
                required_fields=sorted(template.required_fields),
            )
        )
    return catalog


# ---------------------------------------------------------------------------
# Generation
# ---------------------------------------------------------------------------

@router.post("/generate", response_model=GeneratePieceResponse)
async def generate_piece(
    body: GenerateRequest,
    assembly: AssemblyPipeline = Depends(get_assembly),
):
    """
    Generate a full piece, verify its article citations and store it.

    Returns 400 for an unknown document type, 422 with the missing field
    names when mandatory input is absent, 502 when the draft call fails.
    """
    request = GenerationRequest(
        document_type=coerce_document_type(body.document_type or ""),
        fact_summary=body.fact_summary or "",
        parties=_to_parties(body.parties),
        requested_relief=body.requested_relief,
        documents=list(body.documents),
        client_id=body.client_id,
    )
    piece, outcome = await assembly.generate_and_store(request)

    return GeneratePieceResponse(
        id=piece.id,
        document_type=piece.document_type,
        text=outcome.text,
        research_results=[ResearchResultResponse.model_validate(r) for r in outcome.research_results],
        citations=[CitationResponse.model_validate(c) for c in outcome.citations],
    )


# ---------------------------------------------------------------------------
# Stateless rewrites
# ---------------------------------------------------------------------------

@router.post("/refine-topic", response_model=TopicRewriteResponse)
async def refine_topic(
    body: RefineTopicBody,
    refinement: RefinementPipeline = Depends(get_refinement),
):
    """Rewrite caller-supplied content for one block of a document type."""
    document_type = coerce_document_type(body.document_type or "")
    if not body.topic:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="topic is required")
    if not body.current_content:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST, detail="current_content is required"
        )

    outcome = await refinement.refine_topic(
        RefineTopicRequest(
            document_type=document_type,
            block_title=body.topic,
            current_content=body.current_content,
            new_information=body.new_information,
            supplementary_research=body.supplementary_research,
            client_id=body.client_id,
            parties=_to_parties(body.parties),
            top_k=body.top_k,
        )
    )
    return TopicRewriteResponse(
        text=outcome.text,
        related_memory=outcome.related_memory,
        research_results=[ResearchResultResponse.model_validate(r) for r in outcome.research_results],
    )


@router.post("/rewrite-text", response_model=RewriteTextResponse)
async def rewrite_text(
    body: RewriteTextBody,
    refinement: RefinementPipeline = Depends(get_refinement),
):
    """
    Rewrite free text using related memory as context.

    Returns the rewritten text with verification markers, the memory
    passages used and the verified article citations.
    """
    if not body.text:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="text is required")

    outcome = await refinement.rewrite_text(
        FreeformRewriteRequest(
            text=body.text,
            instructions=body.instructions,
            client_id=body.client_id,
            process_id=body.process_id,
            memory_type=body.memory_type,
            metadata=dict(body.metadata),
            top_k=body.top_k,
        )
    )
    return RewriteTextResponse(
        text=outcome.text,
        related_memory=outcome.related_memory,
        citations=[CitationResponse.model_validate(c) for c in outcome.citations],
    )


# ---------------------------------------------------------------------------
# Stored pieces
# ---------------------------------------------------------------------------

@router.get("/{piece_id}", response_model=PieceResponse)
async def get_piece(piece_id: str, store: InMemoryPieceStore = Depends(get_store)):
    piece = store.get(piece_id)
    if piece is None:
        raise PieceNotFound(piece_id)
    return PieceResponse.model_validate(piece)


@router.post("/{piece_id}/topics/{topic_id}/refine", response_model=RefineStoredTopicResponse)
async def refine_stored_topic(
    piece_id: str,
    topic_id: str,
    body: RefineStoredTopicBody,
    refinement: RefinementPipeline = Depends(get_refinement),
):
    """
    Rewrite one topic of a stored piece and return the updated text.

    ``topic_id`` may be a block name (``dos_pedidos``) or the heading text
    (``Dos Pedidos``). Returns 404 when the piece or the topic is missing.
    """
    if not body.content:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="content is required")

    outcome = await refinement.refine_stored_topic(
        RefineStoredTopicRequest(
            piece_id=piece_id,
            topic_identifier=topic_id,
            new_content=body.content,
            content_type=body.content_type,
            memory_type=body.memory_type,
            metadata=dict(body.metadata),
            supplementary_research=body.supplementary_research,
            client_id=body.client_id,
            parties=_to_parties(body.parties) if body.parties else None,
            top_k=body.top_k,
        )
    )
    return RefineStoredTopicResponse(
        topic_text=outcome.topic_text,
        full_text=outcome.full_text,
        related_memory=outcome.related_memory,
        research_results=[ResearchResultResponse.model_validate(r) for r in outcome.research_results],
        citations=[CitationResponse.model_validate(c) for c in outcome.citations],
    )


@router.get("/{piece_id}/export")
async def export_piece(
    piece_id: str,
    store: InMemoryPieceStore = Depends(get_store),
    builder: ContainerBuilder = Depends(get_container_builder),
):
    """Download the stored piece as ``peca_{piece_id}.docx``."""
    piece = store.get(piece_id)
    if piece is None:
        raise PieceNotFound(piece_id)

    data = await builder.build(piece)
    return Response(
        content=data,
        media_type=DOCX_MEDIA_TYPE,
        headers={"Content-Disposition": f'attachment; filename="peca_{piece_id}.docx"'},
    )
