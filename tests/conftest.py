"""
Shared fixtures for LexDraft tests.

The three external gateways (content generation, research, memory) are
replaced by in-process fakes that record every call. Route tests get an
httpx AsyncClient wired to the FastAPI app with the service dependencies
overridden, so no network access is needed.
"""
from __future__ import annotations

from typing import AsyncGenerator, Dict, List, Optional

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from lexdraft.dependencies.services import (
    get_embedder,
    get_fanout,
    get_llm,
    get_memory,
    get_research,
    get_store,
)
from lexdraft.exceptions import GenerationError
from lexdraft.main import app
from lexdraft.models.domain import MemoryItem, MemoryRecord, ResearchResult
from lexdraft.services.assembly import AssemblyPipeline
from lexdraft.services.memory import MemoryFanout
from lexdraft.services.piece_store import InMemoryPieceStore
from lexdraft.services.refinement import RefinementPipeline

# ---------------------------------------------------------------------------
# Sample texts
# ---------------------------------------------------------------------------

PETITION_DRAFT = """# Petição Inicial

### Preâmbulo
Excelentíssimo Senhor Doutor Juiz de Direito da Vara Cível.

### Dos Fatos
A autora adquiriu um refrigerador que apresentou defeito em sete dias.

### Fundamentação Jurídica
Nos termos do Art. 18 do CDC, o fornecedor responde pelo vício do produto.
A petição observa o art. 319 do CPC.

### Jurisprudência
O STJ reconhece a responsabilidade solidária da cadeia de fornecimento.

### Dos Pedidos
Pedidos a definir.

### Valor da Causa
Dá-se à causa o valor de R$ 5.000,00."""

REQUESTS_TEXT = (
    "1. A condenação da ré à restituição do valor pago, nos termos do art. 18 do CDC;\n"
    "2. A citação da ré para, querendo, contestar."
)

REWRITTEN_TOPIC = "Texto do tópico reescrito com base na memória."


# ---------------------------------------------------------------------------
# Fake gateways
# ---------------------------------------------------------------------------

class FakeLLM:
    """Records calls; returns canned text or raises when told to."""

    is_configured = True

    def __init__(self) -> None:
        self.draft = PETITION_DRAFT
        self.requests_text = REQUESTS_TEXT
        self.rewrite_text = REWRITTEN_TOPIC
        self.rewrites_by_block: Dict[str, str] = {}
        self.fail_piece = False
        self.fail_requests = False
        self.fail_rewrite = False
        self.calls: List[tuple] = []

    async def generate_piece(self, document_title, sections, fact_summary, parties,
                             requested_relief=None, documents=None):
        self.calls.append(("generate_piece", document_title, tuple(sections)))
        if self.fail_piece:
            raise GenerationError("upstream down")
        return self.draft

    async def generate_requests(self, document_title, block_title, fact_summary, grounds,
                                guidance=None, current_content=None):
        self.calls.append(("generate_requests", block_title, grounds, current_content))
        if self.fail_requests:
            raise GenerationError("requests failed")
        return self.requests_text

    async def rewrite_topic(self, document_title, block_title, current_content,
                            related_memory=None, new_information=None, references=None):
        self.calls.append(
            ("rewrite_topic", block_title, current_content, list(related_memory or []),
             new_information, list(references or []))
        )
        if self.fail_rewrite:
            raise GenerationError("rewrite failed")
        return self.rewrites_by_block.get(block_title, self.rewrite_text)

    async def rewrite_freeform(self, text, context=None, instructions=None):
        self.calls.append(("rewrite_freeform", text, list(context or []), instructions))
        if self.fail_rewrite:
            raise GenerationError("rewrite failed")
        return f"Versão aprimorada: {text}"


class FakeResearch:
    """Returns the same result list for every query unless ``fail`` is set."""

    is_configured = True

    def __init__(self, results: Optional[List[ResearchResult]] = None) -> None:
        self.results = results if results is not None else []
        self.fail = False
        self.queries: List[tuple] = []

    async def search(self, query, domains=None, max_results=5):
        self.queries.append((query, tuple(domains or ()), max_results))
        if self.fail:
            raise RuntimeError("search unavailable")
        return list(self.results[:max_results])


class FakeMemory:
    """Stores written items in a list; ``query`` and ``list_records`` return canned data."""

    is_configured = True

    def __init__(self) -> None:
        self.passages: List[str] = ["Precedente anterior do mesmo cliente."]
        self.written: List[MemoryItem] = []
        self.queries: List[dict] = []
        self.fail_writes = False
        self.records: List[MemoryRecord] = [
            MemoryRecord(
                id="mem-1",
                text="Tese sobre vício do produto.",
                type="tese",
                client_id="cli-77",
                metadata={"tipo": "tese", "cliente_id": "cli-77"},
            )
        ]
        self.list_calls: List[dict] = []

    async def write(self, items):
        if self.fail_writes:
            raise RuntimeError("memory offline")
        self.written.extend(items)

    async def query(self, text, top_k=5, type=None, owner_filters=None):
        self.queries.append(
            {"text": text, "top_k": top_k, "type": type, "owner_filters": owner_filters}
        )
        return list(self.passages)

    async def list_records(self, owner_filters=None, type=None, limit=20):
        self.list_calls.append({"owner_filters": owner_filters, "type": type, "limit": limit})
        return list(self.records)


class FakeEmbedder:
    def __init__(self, healthy: bool = True) -> None:
        self.healthy = healthy

    async def check_ollama_health(self) -> bool:
        return self.healthy


def make_results(count: int) -> List[ResearchResult]:
    return [
        ResearchResult(
            title=f"Acórdão {i}",
            snippet=f"Ementa do acórdão {i}.",
            url=f"https://stj.jus.br/acordao/{i}",
            published_at="2023-05-10",
        )
        for i in range(1, count + 1)
    ]


# ---------------------------------------------------------------------------
# Per-test fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
def llm() -> FakeLLM:
    return FakeLLM()


@pytest.fixture
def research() -> FakeResearch:
    return FakeResearch(make_results(5))


@pytest.fixture
def memory() -> FakeMemory:
    return FakeMemory()


@pytest.fixture
def store() -> InMemoryPieceStore:
    return InMemoryPieceStore()


@pytest_asyncio.fixture
async def fanout(memory: FakeMemory) -> AsyncGenerator[MemoryFanout, None]:
    fanout = MemoryFanout(memory)
    yield fanout
    await fanout.drain()


@pytest.fixture
def assembly(llm, research, store, fanout) -> AssemblyPipeline:
    return AssemblyPipeline(llm, research, store, fanout)


@pytest.fixture
def refinement(llm, research, memory, store, fanout) -> RefinementPipeline:
    return RefinementPipeline(llm, research, memory, store, fanout)


@pytest_asyncio.fixture
async def client(llm, research, memory, store, fanout) -> AsyncGenerator[AsyncClient, None]:
    """
    httpx AsyncClient wired to the FastAPI app with every gateway, the store
    and the fan-out overridden by the per-test fakes.
    """
    app.dependency_overrides[get_llm] = lambda: llm
    app.dependency_overrides[get_research] = lambda: research
    app.dependency_overrides[get_memory] = lambda: memory
    app.dependency_overrides[get_store] = lambda: store
    app.dependency_overrides[get_fanout] = lambda: fanout
    app.dependency_overrides[get_embedder] = lambda: FakeEmbedder()

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()
