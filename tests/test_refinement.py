"""Tests for topic refinement of stored pieces and the stateless rewrites."""
import asyncio
from datetime import datetime, timezone

import pytest

from lexdraft.exceptions import GenerationError, PieceNotFound, TopicNotFound
from lexdraft.models.domain import (
    DocumentType,
    FreeformRewriteRequest,
    MemoryType,
    Party,
    PartyRole,
    Piece,
    RefineStoredTopicRequest,
    RefineTopicRequest,
)
from lexdraft.services.citations import VERIFIED_MARKER
from tests.conftest import PETITION_DRAFT, REWRITTEN_TOPIC


def _store_piece(store, text: str = PETITION_DRAFT, piece_id: str = "p-1") -> Piece:
    piece = Piece(
        id=piece_id,
        document_type=DocumentType.PETITION,
        text=text,
        created_at=datetime(2024, 3, 1, 10, 30, tzinfo=timezone.utc),
        client_name="Maria Souza",
        parties=[Party("Maria Souza", PartyRole.CLAIMANT)],
    )
    store.put(piece)
    return piece


def _request(topic: str = "dos_pedidos", **overrides) -> RefineStoredTopicRequest:
    fields = dict(
        piece_id="p-1",
        topic_identifier=topic,
        new_content="A ré ofereceu acordo extrajudicial recusado.",
    )
    fields.update(overrides)
    return RefineStoredTopicRequest(**fields)


def _lines_outside(text: str, heading: str, next_heading: str):
    lines = text.split("\n")
    start = lines.index(heading)
    end = lines.index(next_heading)
    return lines[: start + 1], lines[end:]


# ---------------------------------------------------------------------------
# Lookup errors
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_unknown_piece_raises_without_gateway_calls(refinement, llm, research, memory):
    with pytest.raises(PieceNotFound):
        await refinement.refine_stored_topic(_request(piece_id="abc-123"))

    assert llm.calls == []
    assert research.queries == []
    assert memory.queries == []
    assert memory.written == []


@pytest.mark.asyncio
async def test_unknown_topic_raises(refinement, store, llm):
    _store_piece(store)
    with pytest.raises(TopicNotFound):
        await refinement.refine_stored_topic(_request(topic="da_reconvencao"))
    assert llm.calls == []


# ---------------------------------------------------------------------------
# Splicing
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
@pytest.mark.parametrize("topic", ["dos_pedidos", "Dos Pedidos", "DOS PEDIDOS"])
async def test_topic_resolves_by_block_name_or_heading(refinement, store, topic):
    _store_piece(store)
    outcome = await refinement.refine_stored_topic(_request(topic=topic))
    assert "### Dos Pedidos\n\n" + REWRITTEN_TOPIC + "\n\n### Valor da Causa" in outcome.full_text


@pytest.mark.asyncio
async def test_refinement_leaves_other_lines_untouched(refinement, store, research):
    research.results = []
    plain = PETITION_DRAFT.replace("Art. 18 do CDC", "a lei consumerista").replace(
        "art. 319 do CPC", "a lei processual"
    )
    _store_piece(store, text=plain)

    outcome = await refinement.refine_stored_topic(_request())

    before_old, after_old = _lines_outside(plain, "### Dos Pedidos", "### Valor da Causa")
    before_new, after_new = _lines_outside(outcome.full_text, "### Dos Pedidos", "### Valor da Causa")
    assert before_new == before_old
    assert after_new == after_old


@pytest.mark.asyncio
async def test_refinement_reannotates_whole_text_without_stacking_markers(refinement, store):
    piece = _store_piece(store)

    first = await refinement.refine_stored_topic(_request())
    second = await refinement.refine_stored_topic(_request())

    assert first.full_text.count(VERIFIED_MARKER) == 2
    assert second.full_text == first.full_text
    assert [c.article for c in store.get(piece.id).citations] == [
        "Art. 18 do CDC",
        "Art. 319 do CPC",
    ]


@pytest.mark.asyncio
async def test_refinement_updates_stored_piece(refinement, store):
    _store_piece(store)
    outcome = await refinement.refine_stored_topic(
        _request(
            client_id="cli-9",
            parties=[Party("João Lima", PartyRole.CLAIMANT)],
        )
    )

    stored = store.get("p-1")
    assert stored.text == outcome.full_text
    assert stored.client_id == "cli-9"
    assert stored.client_name == "cli-9"
    assert [p.name for p in stored.parties] == ["João Lima"]
    assert stored.updated_at is not None
    assert outcome.topic_text == REWRITTEN_TOPIC


@pytest.mark.asyncio
async def test_empty_rewrite_keeps_current_content(refinement, store, llm):
    llm.rewrite_text = "   "
    _store_piece(store)
    outcome = await refinement.refine_stored_topic(_request())
    assert outcome.topic_text == "Pedidos a definir."


@pytest.mark.asyncio
async def test_rewrite_failure_propagates_and_keeps_piece(refinement, store, llm):
    llm.fail_rewrite = True
    _store_piece(store)
    with pytest.raises(GenerationError):
        await refinement.refine_stored_topic(_request())
    assert store.get("p-1").text == PETITION_DRAFT


# ---------------------------------------------------------------------------
# Grounding and memory
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_rewrite_is_grounded_in_memory_and_research(refinement, store, llm, research, memory):
    _store_piece(store)
    await refinement.refine_stored_topic(
        _request(client_id="cli-9", memory_type=MemoryType.THESIS, top_k=3)
    )

    assert memory.queries[0]["owner_filters"] == {"cliente_id": "cli-9"}
    assert memory.queries[0]["type"] == MemoryType.THESIS
    assert memory.queries[0]["top_k"] == 3

    query, domains, max_results = research.queries[0]
    assert query.startswith("Dos Pedidos Petição Inicial")
    assert max_results == 5

    rewrite = next(c for c in llm.calls if c[0] == "rewrite_topic")
    _, block_title, current, related, new_information, references = rewrite
    assert block_title == "Dos Pedidos"
    assert current == "Pedidos a definir."
    assert related == ["Precedente anterior do mesmo cliente."]
    assert new_information == "A ré ofereceu acordo extrajudicial recusado."
    assert references[0].startswith("Acórdão 1")


@pytest.mark.asyncio
async def test_supplementary_research_steers_the_search(refinement, store, research):
    _store_piece(store)
    await refinement.refine_stored_topic(_request(supplementary_research="dano moral in re ipsa"))
    assert research.queries[0][0].endswith("dano moral in re ipsa")


@pytest.mark.asyncio
async def test_new_content_is_memorized_before_rewrite(refinement, store, memory, fanout):
    _store_piece(store)
    await refinement.refine_stored_topic(
        _request(metadata={"fonte": "reunião"}, content_type=MemoryType.DOCTRINE)
    )
    first = memory.written[0]
    assert first.text == "A ré ofereceu acordo extrajudicial recusado."
    assert first.type == MemoryType.DOCTRINE
    assert first.metadata["fonte"] == "reunião"
    assert first.metadata["origem"] == "refinamento"
    assert first.metadata["topico"] == "dos_pedidos"

    await fanout.drain()
    topics = [i for i in memory.written[1:] if i.type == MemoryType.TOPIC]
    assert topics and all(i.metadata["origem"] == "refinamento" for i in topics)


@pytest.mark.asyncio
async def test_new_content_defaults_to_insight(refinement, store, memory):
    _store_piece(store)
    await refinement.refine_stored_topic(_request())
    assert memory.written[0].type == MemoryType.INSIGHT


# ---------------------------------------------------------------------------
# Concurrency
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_concurrent_refinements_of_one_piece_are_serialized(refinement, store, llm):
    llm.rewrites_by_block = {
        "Dos Fatos": "Fatos reescritos.",
        "Dos Pedidos": "Pedidos reescritos.",
    }
    _store_piece(store)

    await asyncio.gather(
        refinement.refine_stored_topic(_request(topic="dos_fatos")),
        refinement.refine_stored_topic(_request(topic="dos_pedidos")),
    )

    text = store.get("p-1").text
    assert "### Dos Fatos\n\nFatos reescritos.\n\n### Fundamentação Jurídica" in text
    assert "### Dos Pedidos\n\nPedidos reescritos.\n\n### Valor da Causa" in text


# ---------------------------------------------------------------------------
# Stateless variants
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_refine_topic_without_stored_piece(refinement, store, llm, memory, fanout):
    outcome = await refinement.refine_topic(
        RefineTopicRequest(
            document_type=DocumentType.ANSWER,
            block_title="Preliminares",
            current_content="Ilegitimidade passiva da ré.",
            new_information="A ré não integrou a cadeia de fornecimento.",
            client_id="cli-3",
        )
    )

    assert outcome.text == REWRITTEN_TOPIC
    assert outcome.related_memory == ["Precedente anterior do mesmo cliente."]
    assert len(outcome.research_results) == 5
    assert memory.queries[0]["type"] == MemoryType.TOPIC
    assert len(store) == 0

    await fanout.drain()
    item = memory.written[-1]
    assert item.type == MemoryType.TOPIC
    assert item.metadata["origem"] == "refinamento_publico"
    assert item.metadata["topico"] == "preliminares"
    assert item.metadata["tipo_peca"] == "answer"


@pytest.mark.asyncio
async def test_rewrite_text_uses_client_memory(refinement, llm, memory):
    outcome = await refinement.rewrite_text(
        FreeformRewriteRequest(text="Texto original.", instructions="Seja conciso.", client_id="c-1")
    )
    assert outcome.text == "Versão aprimorada: Texto original."
    assert memory.queries[0]["owner_filters"] == {"cliente_id": "c-1"}
    call = llm.calls[0]
    assert call == (
        "rewrite_freeform",
        "Texto original.",
        ["Precedente anterior do mesmo cliente."],
        "Seja conciso.",
    )


@pytest.mark.asyncio
async def test_rewrite_text_by_process_verifies_cited_articles(refinement, llm, memory, research):
    outcome = await refinement.rewrite_text(
        FreeformRewriteRequest(
            text="Aplica-se o art. 6º do CDC.",
            process_id="proc-9",
            memory_type=MemoryType.THESIS,
            top_k=3,
        )
    )

    assert memory.queries[0]["owner_filters"] == {"processo_id": "proc-9"}
    assert memory.queries[0]["type"] is MemoryType.THESIS
    assert memory.queries[0]["top_k"] == 3
    assert [c.key for c in outcome.citations] == ["art. 6 cdc"]
    assert outcome.citations[0].confirmed is True
    assert outcome.text.endswith(f"art. 6º do CDC {VERIFIED_MARKER}.")
    assert llm.calls[0][2] == ["Precedente anterior do mesmo cliente."]
