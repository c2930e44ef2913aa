"""
Service dependencies for FastAPI routes.

Gateways, the piece store and the memory fan-out are process-wide
singletons; the pipelines are cheap wrappers assembled per request so tests
can swap any gateway through ``app.dependency_overrides``.
"""
from __future__ import annotations

from fastapi import Depends

from lexdraft.config import settings
from lexdraft.services.assembly import AssemblyPipeline
from lexdraft.services.container import ContainerBuilder
from lexdraft.services.embedding import OllamaEmbeddingService
from lexdraft.services.llm_client import OpenAIChatClient
from lexdraft.services.memory import ChromaMemoryGateway, MemoryFanout
from lexdraft.services.piece_store import InMemoryPieceStore
from lexdraft.services.refinement import RefinementPipeline
from lexdraft.services.research import TavilyResearchClient

_embedder = OllamaEmbeddingService()
_llm = OpenAIChatClient()
_research = TavilyResearchClient()
_memory = ChromaMemoryGateway(embedder=_embedder)
_fanout = MemoryFanout(_memory)
_store = InMemoryPieceStore(ttl_seconds=settings.PIECE_TTL_SECONDS)


def get_embedder() -> OllamaEmbeddingService:
    return _embedder


def get_llm() -> OpenAIChatClient:
    return _llm


def get_research() -> TavilyResearchClient:
    return _research


def get_memory() -> ChromaMemoryGateway:
    return _memory


def get_fanout() -> MemoryFanout:
    return _fanout


def get_store() -> InMemoryPieceStore:
    return _store


def get_container_builder() -> ContainerBuilder:
    return ContainerBuilder()


def get_assembly(
    llm=Depends(get_llm),
    research=Depends(get_research),
    store=Depends(get_store),
    fanout=Depends(get_fanout),
) -> AssemblyPipeline:
    return AssemblyPipeline(llm, research, store, fanout)


def get_refinement(
    llm=Depends(get_llm),
    research=Depends(get_research),
    memory=Depends(get_memory),
    store=Depends(get_store),
    fanout=Depends(get_fanout),
) -> RefinementPipeline:
    return RefinementPipeline(llm, research, memory, store, fanout)
