"""Tests for the /api/pieces routes."""
import io

import docx
import pytest
from httpx import AsyncClient

from lexdraft.services.citations import VERIFIED_MARKER

GENERATE_BODY = {
    "document_type": "petition",
    "fact_summary": "Compra de refrigerador com defeito.",
    "parties": [
        {"name": "Maria Souza", "role": "claimant", "qualification": "professora"},
        {"nome": "Loja Eletro Ltda.", "papel": "réu"},
        {"name": "Sem papel"},
    ],
    "requested_relief": "Restituição do valor pago",
    "documents": "nota fiscal, protocolo\nfotos",
    "client_id": "  cli-77 ",
}


async def _generate(client: AsyncClient) -> dict:
    resp = await client.post("/api/pieces/generate", json=GENERATE_BODY)
    assert resp.status_code == 200, resp.text
    return resp.json()


# ---------------------------------------------------------------------------
# Catalog
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_list_types(client: AsyncClient):
    resp = await client.get("/api/pieces/types")
    assert resp.status_code == 200
    data = resp.json()
    assert len(data) == 12
    petition = data[0]
    assert petition["document_type"] == "petition"
    assert petition["title"] == "Petição Inicial"
    assert petition["sections"][4] == {"name": "dos_pedidos", "title": "Dos Pedidos"}
    assert petition["required_fields"] == ["fact_summary", "parties"]


# ---------------------------------------------------------------------------
# Generation
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_generate_returns_and_stores_piece(client: AsyncClient, llm, store):
    data = await _generate(client)

    assert data["document_type"] == "petition"
    assert VERIFIED_MARKER in data["text"]
    assert len(data["research_results"]) == 3
    assert data["research_results"][0] == {
        "title": "Acórdão 1",
        "snippet": "Ementa do acórdão 1.",
        "url": "https://stj.jus.br/acordao/1",
        "published_at": "2023-05-10",
    }
    assert data["citations"][0] == {
        "article": "Art. 18 do CDC",
        "confirmed": True,
        "reference": "https://stj.jus.br/acordao/1",
    }

    piece = store.get(data["id"])
    assert piece.client_id == "cli-77"
    assert [(p.name, p.role.value) for p in piece.parties] == [
        ("Maria Souza", "claimant"),
        ("Loja Eletro Ltda.", "respondent"),
    ]


@pytest.mark.asyncio
async def test_generate_unknown_type_is_400(client: AsyncClient, llm):
    resp = await client.post(
        "/api/pieces/generate", json={**GENERATE_BODY, "document_type": "habeas_corpus"}
    )
    assert resp.status_code == 400
    assert resp.json()["error"] == "invalid_document_type"
    assert llm.calls == []


@pytest.mark.asyncio
async def test_generate_missing_fields_is_422_with_field_names(client: AsyncClient, llm):
    resp = await client.post(
        "/api/pieces/generate",
        json={"document_type": "petition", "fact_summary": "  ", "parties": []},
    )
    assert resp.status_code == 422
    data = resp.json()
    assert data["error"] == "missing_required_fields"
    assert data["fields"] == ["parties", "fact_summary"]
    assert llm.calls == []


@pytest.mark.asyncio
async def test_generate_failure_is_502(client: AsyncClient, llm, store):
    llm.fail_piece = True
    resp = await client.post("/api/pieces/generate", json=GENERATE_BODY)
    assert resp.status_code == 502
    assert resp.json()["error"] == "generation_failed"
    assert len(store) == 0


# ---------------------------------------------------------------------------
# Stored pieces
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_get_piece(client: AsyncClient):
    created = await _generate(client)
    resp = await client.get(f"/api/pieces/{created['id']}")
    assert resp.status_code == 200
    data = resp.json()
    assert data["text"] == created["text"]
    assert data["client_name"] == "cli-77"
    assert data["parties"][0]["name"] == "Maria Souza"
    assert data["updated_at"] is None


@pytest.mark.asyncio
async def test_get_unknown_piece_is_404(client: AsyncClient):
    resp = await client.get("/api/pieces/abc-123")
    assert resp.status_code == 404
    assert resp.json()["error"] == "piece_not_found"


@pytest.mark.asyncio
async def test_refine_stored_topic(client: AsyncClient, llm, memory, fanout):
    created = await _generate(client)
    await fanout.drain()
    memory.written.clear()

    resp = await client.post(
        f"/api/pieces/{created['id']}/topics/Dos Pedidos/refine",
        json={
            "content": "Cliente aceita parcelamento.",
            "content_type": "Tese",
            "memory_type": "tópico",
            "top_k": 2,
            "metadata": {"fonte": "email", "anexos": ["a.pdf"], "urgente": True},
        },
    )
    assert resp.status_code == 200, resp.text
    data = resp.json()
    assert data["topic_text"] == llm.rewrite_text
    assert f"### Dos Pedidos\n\n{llm.rewrite_text}\n\n### Valor da Causa" in data["full_text"]
    assert data["related_memory"] == memory.passages

    insight = memory.written[0]
    assert insight.type.value == "tese"
    assert insight.metadata["fonte"] == "email"
    assert insight.metadata["urgente"] is True
    assert "anexos" not in insight.metadata
    assert memory.queries[0]["type"].value == "topico"
    assert memory.queries[0]["top_k"] == 2


@pytest.mark.asyncio
async def test_refine_requires_content(client: AsyncClient):
    created = await _generate(client)
    resp = await client.post(
        f"/api/pieces/{created['id']}/topics/dos_pedidos/refine", json={"content": "   "}
    )
    assert resp.status_code == 400


@pytest.mark.asyncio
async def test_refine_unknown_piece_is_404(client: AsyncClient, llm):
    resp = await client.post(
        "/api/pieces/abc-123/topics/dos_pedidos/refine", json={"content": "x"}
    )
    assert resp.status_code == 404
    assert llm.calls == []


@pytest.mark.asyncio
async def test_refine_unknown_topic_is_404(client: AsyncClient):
    created = await _generate(client)
    resp = await client.post(
        f"/api/pieces/{created['id']}/topics/da_reconvencao/refine", json={"content": "x"}
    )
    assert resp.status_code == 404
    assert resp.json()["error"] == "topic_not_found"


@pytest.mark.asyncio
async def test_export_piece_as_docx(client: AsyncClient):
    created = await _generate(client)
    resp = await client.get(f"/api/pieces/{created['id']}/export")

    assert resp.status_code == 200
    assert resp.headers["content-type"].startswith(
        "application/vnd.openxmlformats-officedocument.wordprocessingml.document"
    )
    assert resp.headers["content-disposition"] == (
        f'attachment; filename="peca_{created["id"]}.docx"'
    )
    document = docx.Document(io.BytesIO(resp.content))
    headings = [p.text for p in document.paragraphs if p.style.name == "Heading 2"]
    assert headings[:2] == ["Preâmbulo", "Dos Fatos"]


@pytest.mark.asyncio
async def test_export_unknown_piece_is_404(client: AsyncClient):
    resp = await client.get("/api/pieces/abc-123/export")
    assert resp.status_code == 404


# ---------------------------------------------------------------------------
# Stateless rewrites
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_refine_topic_endpoint(client: AsyncClient, llm):
    resp = await client.post(
        "/api/pieces/refine-topic",
        json={
            "document_type": "answer",
            "topic": "preliminares",
            "current_content": "Ilegitimidade passiva.",
            "new_information": "A ré não vendeu o produto.",
            "top_k": "muitos",
        },
    )
    assert resp.status_code == 200, resp.text
    data = resp.json()
    assert data["text"] == llm.rewrite_text
    assert len(data["research_results"]) == 5


@pytest.mark.asyncio
async def test_refine_topic_requires_current_content(client: AsyncClient):
    resp = await client.post(
        "/api/pieces/refine-topic", json={"document_type": "answer", "topic": "preliminares"}
    )
    assert resp.status_code == 400


@pytest.mark.asyncio
async def test_rewrite_text_endpoint(client: AsyncClient):
    resp = await client.post("/api/pieces/rewrite-text", json={"text": "Texto base."})
    assert resp.status_code == 200
    assert resp.json() == {
        "text": "Versão aprimorada: Texto base.",
        "related_memory": ["Precedente anterior do mesmo cliente."],
        "citations": [],
    }


@pytest.mark.asyncio
async def test_rewrite_text_failure_is_502(client: AsyncClient, llm):
    llm.fail_rewrite = True
    resp = await client.post("/api/pieces/rewrite-text", json={"text": "Texto base."})
    assert resp.status_code == 502


@pytest.mark.asyncio
async def test_rewrite_text_filters_memory_and_verifies_articles(client: AsyncClient, llm, memory):
    resp = await client.post(
        "/api/pieces/rewrite-text",
        json={
            "text": "Requer-se a tutela com base no art. 300 do CPC.",
            "client_id": "cli-77",
            "process_id": "0001234-56.2024.8.26.0100",
            "memory_type": "Jurisprudência",
            "metadata": {"vara": "2ª Vara Cível", "anexos": ["a.pdf"]},
        },
    )
    assert resp.status_code == 200, resp.text
    data = resp.json()
    assert VERIFIED_MARKER in data["text"]
    assert data["citations"] == [
        {"article": "Art. 300 do CPC", "confirmed": True, "reference": "https://stj.jus.br/acordao/1"}
    ]

    query = memory.queries[0]
    assert query["owner_filters"] == {
        "cliente_id": "cli-77",
        "processo_id": "0001234-56.2024.8.26.0100",
    }
    assert query["type"].value == "jurisprudencia"
    context = llm.calls[0][2]
    assert context[-1] == "Metadados do caso: vara: 2ª Vara Cível"
