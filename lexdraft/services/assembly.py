"""
Full-document generation pipeline.

Flow
----
validate mandatory fields → draft the whole piece → re-draft every requests
block from the grounds already written → extract / verify / annotate
article citations → jurisprudence lookup → (generate_and_store) persist the
piece and fan the section contents out to memory.

Only validation errors and a failed primary draft reach the caller; every
other step degrades and logs.
"""
from __future__ import annotations

import logging
import re
import uuid
from datetime import datetime, timezone
from typing import List, Optional, Sequence, Tuple

from lexdraft.exceptions import MissingRequiredFields
from lexdraft.models.domain import (
    ArticleCitation,
    GenerationOutcome,
    GenerationRequest,
    MemoryItem,
    MemoryType,
    Party,
    PartyRole,
    Piece,
    ResearchResult,
)
from lexdraft.services.citations import process_citations, strip_markers
from lexdraft.services.research import JURISPRUDENCE_DOMAINS
from lexdraft.services.sections import (
    get_section_content,
    join_lines,
    parse_sections,
    replace_section_content,
)
from lexdraft.services.templates import (
    FACT_SUMMARY,
    PARTIES,
    REQUESTED_RELIEF,
    Template,
    get_template,
)

logger = logging.getLogger(__name__)

UNKNOWN_CLIENT = "desconhecido"

# Block names that hold the final requests, and those holding the legal grounds
REQUESTS_BLOCK_RE = re.compile(r"pedido|requer", re.IGNORECASE)
GROUNDS_BLOCK_RE = re.compile(r"fundament|tese", re.IGNORECASE)

JURISPRUDENCE_MAX_RESULTS = 8
RESULTS_RETURNED = 3


# ---------------------------------------------------------------------------
# Helpers shared with the refinement pipeline
# ---------------------------------------------------------------------------

def validate_required_fields(template: Template, request: GenerationRequest) -> List[str]:
    """Names of the template's mandatory fields missing from *request*."""
    missing: List[str] = []
    if PARTIES in template.required_fields and not request.parties:
        missing.append(PARTIES)
    if FACT_SUMMARY in template.required_fields and not (request.fact_summary or "").strip():
        missing.append(FACT_SUMMARY)
    if REQUESTED_RELIEF in template.required_fields and not (request.requested_relief or "").strip():
        missing.append(REQUESTED_RELIEF)
    return missing


def infer_client_name(parties: Sequence[Party], client_id: Optional[str] = None) -> str:
    """Explicit client id, else first claimant, else first named party."""
    if client_id and client_id.strip():
        return client_id.strip()
    for party in parties:
        if party.role == PartyRole.CLAIMANT and party.name.strip():
            return party.name.strip()
    for party in parties:
        if party.name.strip():
            return party.name.strip()
    return UNKNOWN_CLIENT


def build_memory_items(
    piece: Piece,
    template: Template,
    research_results: Sequence[ResearchResult],
    origin: str,
) -> List[MemoryItem]:
    """
    One memory item per non-empty block (markers stripped), per research
    result and per citation, all tagged with the piece's context.
    """
    base = {
        "origem": origin,
        "tipo_peca": piece.document_type.value,
        "cliente": piece.client_name,
        "cliente_id": piece.client_id,
        "piece_id": piece.id,
    }
    items: List[MemoryItem] = []

    parsed = parse_sections(strip_markers(piece.text), template)
    for block in template.sections:
        section = parsed.by_block.get(block)
        if section is None:
            continue
        content = get_section_content(parsed.lines, section)
        if content:
            items.append(MemoryItem(content, MemoryType.TOPIC, {**base, "topico": block}))

    for result in research_results:
        reference = result.as_reference()
        if reference:
            items.append(MemoryItem(reference, MemoryType.JURISPRUDENCE, {**base, "url": result.url}))

    for citation in piece.citations:
        items.append(
            MemoryItem(
                _citation_memory_text(citation),
                MemoryType.ARTICLE,
                {**base, "artigo": citation.article, "confirmado": citation.confirmed},
            )
        )
    return items


def _citation_memory_text(citation: ArticleCitation) -> str:
    status = "confirmado" if citation.confirmed else "não confirmado"
    text = f"{citation.article} ({status})"
    if citation.reference:
        text = f"{text}: {citation.reference}"
    return text


# ---------------------------------------------------------------------------
# Pipeline
# ---------------------------------------------------------------------------

class AssemblyPipeline:
    """Generates, verifies and stores complete pieces."""

    def __init__(self, llm, research, store, fanout) -> None:
        self.llm = llm
        self.research = research
        self.store = store
        self.fanout = fanout

    async def generate_document(self, request: GenerationRequest) -> GenerationOutcome:
        """
        Draft, complete and annotate a piece without storing it.

        Raises:
            UnknownDocumentType:   document type outside the closed set.
            MissingRequiredFields: any mandatory field absent; nothing is generated.
            GenerationError:       the primary draft call failed.
        """
        template = get_template(request.document_type)

        missing = validate_required_fields(template, request)
        if missing:
            raise MissingRequiredFields(missing)

        logger.info(
            "generate_document: drafting %s (%d blocks, %d parties)",
            template.document_type.value,
            len(template.sections),
            len(request.parties),
        )
        draft = await self.llm.generate_piece(
            template.title,
            template.sections,
            request.fact_summary,
            request.parties,
            request.requested_relief,
            request.documents,
        )

        text = await self._complete_requests(draft, template, request)
        annotated, citations = await process_citations(text, self.research)
        research_results = await self._search_jurisprudence(template, request.fact_summary)

        return GenerationOutcome(
            text=annotated,
            citations=citations,
            research_results=research_results[:RESULTS_RETURNED],
        )

    async def generate_and_store(self, request: GenerationRequest) -> Tuple[Piece, GenerationOutcome]:
        """Generate a piece, store it and schedule the memory fan-out."""
        outcome = await self.generate_document(request)
        template = get_template(request.document_type)

        piece = Piece(
            id=uuid.uuid4().hex,
            document_type=template.document_type,
            text=outcome.text,
            created_at=datetime.now(timezone.utc),
            citations=list(outcome.citations),
            client_name=infer_client_name(request.parties, request.client_id),
            client_id=request.client_id,
            parties=[Party(p.name, p.role, p.qualification) for p in request.parties],
        )
        self.store.put(piece)
        logger.info("generate_and_store: stored piece %s for %s", piece.id, piece.client_name)

        self.fanout.schedule(
            build_memory_items(piece, template, outcome.research_results, origin="geracao"),
            label=f"piece {piece.id}",
        )
        return piece, outcome

    # ------------------------------------------------------------------
    # Steps
    # ------------------------------------------------------------------

    async def _complete_requests(
        self,
        text: str,
        template: Template,
        request: GenerationRequest,
    ) -> str:
        """Re-draft each requests block from the grounds; failures keep the draft."""
        request_blocks = [b for b in template.sections if REQUESTS_BLOCK_RE.search(b)]
        if not request_blocks:
            return text

        parsed = parse_sections(text, template)
        grounds_parts = []
        for block, section in parsed.by_block.items():
            if GROUNDS_BLOCK_RE.search(block):
                content = get_section_content(parsed.lines, section)
                if content:
                    grounds_parts.append(content)
        grounds = "\n\n".join(grounds_parts)

        for block in request_blocks:
            # Offsets move after every splice, so parse again each time.
            parsed = parse_sections(text, template)
            section = parsed.by_block.get(block)
            if section is None:
                logger.warning("_complete_requests: block %r not found in draft", block)
                continue

            current = get_section_content(parsed.lines, section)
            try:
                completed = await self.llm.generate_requests(
                    template.title,
                    section.heading,
                    request.fact_summary,
                    grounds,
                    request.requested_relief,
                    current,
                )
            except Exception as exc:
                logger.warning(
                    "_complete_requests: keeping drafted %r after failure — %s", block, exc
                )
                continue

            if not completed or not completed.strip():
                continue
            text = join_lines(replace_section_content(parsed.lines, section, completed))

        return text

    async def _search_jurisprudence(self, template: Template, fact_summary: str) -> List[ResearchResult]:
        query = (
            f"jurisprudência sobre {template.title} relacionada a {(fact_summary or '')[:160]}"
        )
        try:
            return await self.research.search(
                query, list(JURISPRUDENCE_DOMAINS), JURISPRUDENCE_MAX_RESULTS
            )
        except Exception as exc:
            logger.warning("_search_jurisprudence: lookup failed — %s", exc)
            return []
