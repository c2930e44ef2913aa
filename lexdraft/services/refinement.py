"""
Topic refinement: rewrite one section of a piece and splice it back.

``refine_stored_topic`` works on a stored piece: it resolves the section,
grounds the rewrite in related memory and fresh research, splices the new
body in (every other line stays byte-identical), recomputes citations over
the whole text and overwrites the stored piece.

``refine_topic`` is the stateless variant: it rewrites caller-supplied
content for a block of a document type without touching the store.
``rewrite_text`` rewrites free text with the client or case memory as context
and verifies the articles it cites.
"""
from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from lexdraft.config import settings
from lexdraft.exceptions import GenerationError, PieceNotFound, TopicNotFound
from lexdraft.models.domain import (
    FreeformRewriteRequest,
    MemoryItem,
    MemoryType,
    Party,
    RefinementOutcome,
    RefineStoredTopicRequest,
    RefineTopicRequest,
    ResearchResult,
    TopicRewriteOutcome,
)
from lexdraft.services.assembly import build_memory_items, infer_client_name
from lexdraft.services.citations import annotate_citations, process_citations, strip_markers
from lexdraft.services.research import JURISPRUDENCE_DOMAINS, format_references
from lexdraft.services.sections import (
    get_section_content,
    join_lines,
    parse_sections,
    replace_section_content,
    resolve_section,
)
from lexdraft.services.templates import format_block_title, get_template
from lexdraft.utils.helpers import normalize_key

logger = logging.getLogger(__name__)

RESEARCH_MAX_RESULTS = 5
HINT_PREFIX_CHARS = 200


class RefinementPipeline:
    """Section-level rewrites grounded in memory and research."""

    def __init__(self, llm, research, memory, store, fanout) -> None:
        self.llm = llm
        self.research = research
        self.memory = memory
        self.store = store
        self.fanout = fanout

    # ------------------------------------------------------------------
    # Stored piece
    # ------------------------------------------------------------------

    async def refine_stored_topic(self, request: RefineStoredTopicRequest) -> RefinementOutcome:
        """
        Rewrite one topic of a stored piece.

        Raises:
            PieceNotFound:   no piece under ``request.piece_id``.
            TopicNotFound:   no section resolves for ``request.topic_identifier``.
            GenerationError: the rewrite call failed.
        """
        if self.store.get(request.piece_id) is None:
            raise PieceNotFound(request.piece_id)

        async with self.store.lock(request.piece_id):
            piece = self.store.get(request.piece_id)
            if piece is None:
                raise PieceNotFound(request.piece_id)

            template = get_template(piece.document_type)
            parsed = parse_sections(strip_markers(piece.text), template)
            section = resolve_section(parsed, request.topic_identifier)
            if section is None:
                raise TopicNotFound(piece.id, request.topic_identifier)

            topic = section.block_name or section.key
            current = get_section_content(parsed.lines, section)
            client_id = request.client_id or piece.client_id
            logger.info("refine_stored_topic: piece %s topic %r", piece.id, topic)

            if request.new_content:
                metadata: Dict[str, Any] = {
                    **request.metadata,
                    "origem": "refinamento",
                    "piece_id": piece.id,
                    "topico": topic,
                    "tipo_peca": piece.document_type.value,
                    "cliente": piece.client_name,
                    "cliente_id": client_id,
                }
                await self.fanout.write_now(
                    [MemoryItem(request.new_content, request.content_type or MemoryType.INSIGHT, metadata)],
                    label=f"piece {piece.id} new content",
                )

            related = await self._related_memory(
                current or section.heading,
                request.top_k,
                request.memory_type,
                client_id,
            )
            research_results = await self._search(
                section.heading,
                template.title,
                request.supplementary_research or current[:HINT_PREFIX_CHARS],
            )

            rewritten = await self._rewrite(
                template.title,
                section.heading,
                current,
                related,
                request.new_content,
                research_results,
            )
            topic_text = rewritten.strip() or current

            spliced = join_lines(replace_section_content(parsed.lines, section, topic_text))
            annotated, citations = await process_citations(spliced, self.research)

            parties = request.parties if request.parties is not None else piece.parties
            piece.text = annotated
            piece.citations = citations
            piece.parties = [Party(p.name, p.role, p.qualification) for p in parties]
            piece.client_id = client_id
            piece.client_name = infer_client_name(piece.parties, client_id)
            piece.updated_at = datetime.now(timezone.utc)
            self.store.put(piece)

            self.fanout.schedule(
                build_memory_items(piece, template, research_results, origin="refinamento"),
                label=f"piece {piece.id} refinement",
            )

        return RefinementOutcome(
            topic_text=annotate_citations(topic_text, citations),
            full_text=annotated,
            related_memory=related,
            research_results=research_results,
            citations=citations,
        )

    # ------------------------------------------------------------------
    # Stateless
    # ------------------------------------------------------------------

    async def refine_topic(self, request: RefineTopicRequest) -> TopicRewriteOutcome:
        """Rewrite caller-supplied content for one block; memorizes the result."""
        template = get_template(request.document_type)

        wanted = normalize_key(request.block_title)
        block = next((b for b in template.sections if normalize_key(b) == wanted), None)
        block_title = format_block_title(block) if block else request.block_title.strip()

        related = await self._related_memory(
            request.current_content, request.top_k, MemoryType.TOPIC, request.client_id
        )
        research_results = await self._search(
            block_title,
            template.title,
            request.supplementary_research or request.current_content[:HINT_PREFIX_CHARS],
        )
        rewritten = await self._rewrite(
            template.title,
            block_title,
            request.current_content,
            related,
            request.new_information,
            research_results,
        )
        text = rewritten.strip() or request.current_content

        self.fanout.schedule(
            [
                MemoryItem(
                    text,
                    MemoryType.TOPIC,
                    {
                        "origem": "refinamento_publico",
                        "tipo_peca": template.document_type.value,
                        "topico": block or wanted,
                        "cliente": infer_client_name(request.parties, request.client_id),
                        "cliente_id": request.client_id,
                    },
                )
            ],
            label=f"topic {block_title}",
        )
        return TopicRewriteOutcome(text=text, related_memory=related, research_results=research_results)

    async def rewrite_text(self, request: FreeformRewriteRequest) -> TopicRewriteOutcome:
        """
        Rewrite free text grounded in the related memory of a client or case.

        Memory is filtered by ``cliente_id`` / ``processo_id`` and the optional
        memory type; caller metadata is passed to the generator as context.
        Articles cited in the rewritten text are verified and annotated.
        """
        related = await self._related_memory(
            request.text,
            request.top_k,
            request.memory_type,
            request.client_id,
            request.process_id,
        )
        context = list(related)
        if request.metadata:
            context.append(
                "Metadados do caso: "
                + "; ".join(f"{key}: {value}" for key, value in request.metadata.items())
            )

        try:
            text = await self.llm.rewrite_freeform(request.text, context, request.instructions)
        except GenerationError:
            raise
        except Exception as exc:
            logger.error("rewrite_text: generation failed — %s", exc)
            raise GenerationError(str(exc)) from exc

        annotated, citations = await process_citations(text.strip() or request.text, self.research)
        return TopicRewriteOutcome(text=annotated, related_memory=related, citations=citations)

    # ------------------------------------------------------------------
    # Side channels
    # ------------------------------------------------------------------

    async def _related_memory(
        self,
        text: str,
        top_k: Optional[int],
        memory_type: Optional[MemoryType],
        client_id: Optional[str],
        process_id: Optional[str] = None,
    ) -> List[str]:
        owner_filters = {
            key: value
            for key, value in (("cliente_id", client_id), ("processo_id", process_id))
            if value
        }
        try:
            return await self.memory.query(
                text,
                top_k=top_k or settings.MEMORY_TOP_K,
                type=memory_type,
                owner_filters=owner_filters or None,
            )
        except Exception as exc:
            logger.warning("_related_memory: lookup failed — %s", exc)
            return []

    async def _search(self, heading: str, document_title: str, hint: str) -> List[ResearchResult]:
        query = " ".join(part for part in (heading, document_title, hint.strip()) if part)
        try:
            return await self.research.search(query, list(JURISPRUDENCE_DOMAINS), RESEARCH_MAX_RESULTS)
        except Exception as exc:
            logger.warning("_search: research failed — %s", exc)
            return []

    async def _rewrite(
        self,
        document_title: str,
        block_title: str,
        current: str,
        related: List[str],
        new_information: Optional[str],
        research_results: List[ResearchResult],
    ) -> str:
        try:
            return await self.llm.rewrite_topic(
                document_title,
                block_title,
                current,
                related,
                new_information,
                format_references(research_results),
            )
        except GenerationError:
            raise
        except Exception as exc:
            logger.error("_rewrite: generation failed for %r — %s", block_title, exc)
            raise GenerationError(str(exc)) from exc
