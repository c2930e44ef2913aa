"""
Content generation gateway for legal pieces.

Talks to an OpenAI-compatible ``/chat/completions`` endpoint (configured via
LLM_API_URL / LLM_API_KEY / LLM_MODEL). All prompts are module-level
constants so they can be tuned without touching logic code.

Public API
----------
OpenAIChatClient.generate_piece(...)      -> str   full draft
OpenAIChatClient.generate_requests(...)   -> str   body of a requests block
OpenAIChatClient.rewrite_topic(...)       -> str   rewritten block body
OpenAIChatClient.rewrite_freeform(...)    -> str   free text rewrite

Every method raises GenerationError when no key is configured, the
upstream call fails, or the response carries no text.
"""
from __future__ import annotations

import logging
from typing import List, Optional, Sequence

import httpx

from lexdraft.config import settings
from lexdraft.exceptions import GenerationError
from lexdraft.models.domain import Party
from lexdraft.services.templates import format_block_title

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Prompt templates: edit these to tune output without touching logic
# ---------------------------------------------------------------------------

_PIECE_SYSTEM = "Você é um advogado especialista na redação de peças judiciais brasileiras."

_PIECE_PROMPT = """\
Elabore uma peça processual do tipo {document_title}, com linguagem jurídica técnica, clara e objetiva.

Considere o seguinte caso fático:
{fact_summary}

Partes envolvidas:
{parties}

{documents}
{relief}

Estruture a peça obedecendo aos blocos indicados abaixo, usando exatamente estes títulos \
como cabeçalhos "###", com linguagem precisa e citações legais quando cabíveis:

{blocks}

Inclua fundamentações jurídicas, artigos de lei e jurisprudências reais sempre que possível.
No bloco destinado aos pedidos, produza requerimentos finais claros, coesos e juridicamente \
fundamentados, conectando-os aos fatos e à fundamentação desenvolvida.
A resposta deve trazer um texto base estruturado para validação humana.\
"""

_REQUESTS_SYSTEM = (
    "Você é um advogado especialista na redação de pedidos finais em peças judiciais brasileiras."
)

_REQUESTS_PROMPT = """\
Você é um advogado brasileiro elaborando requerimentos finais para uma peça processual do tipo {document_title}.
Resumo fático relevante:
{fact_summary}

Principais fundamentos jurídicos já redigidos:
{grounds}

{guidance}
{current}\
Redija a seção "{block_title}" com pedidos finais claros, numerados ou em tópicos, mantendo estilo \
jurídico técnico, coeso e alinhado aos fundamentos expostos.
Conecte cada pedido aos fatos narrados e à fundamentação apresentada, evitando repetições desnecessárias.
Retorne apenas o conteúdo da seção, sem repetir o título.\
"""

_REWRITE_SYSTEM = "Você é um advogado especialista em revisão de peças judiciais brasileiras."

_REWRITE_PROMPT = """\
Você é um advogado brasileiro revisando o tópico "{block_title}" de uma peça processual do tipo {document_title}.

Conteúdo atual do tópico:
{current_content}

{memory}{new_information}{references}\
Reescreva o tópico de forma técnica, coerente e aprimorada, mantendo alinhamento com o caso narrado. \
Atualize fundamentações e pedidos implícitos conforme as referências apresentadas quando fizer sentido. \
Entregue apenas o texto reescrito do tópico, sem incluir títulos adicionais.\
"""

_FREEFORM_SYSTEM = (
    "Você é um advogado brasileiro especializado em revisão e aprimoramento de peças processuais."
)

_FREEFORM_DEFAULT_INSTRUCTIONS = (
    "Reescreva o texto aprimorando clareza, coesão, técnica jurídica e correção gramatical, "
    "mantendo o sentido essencial."
)

_NO_GROUNDS = (
    "(A fundamentação jurídica ainda não está detalhada. Utilize os fatos para sustentar os pedidos.)"
)

_ROLE_LABELS = {
    "claimant": "AUTOR",
    "respondent": "RÉU",
    "third_party": "TERCEIRO",
}


# ---------------------------------------------------------------------------
# Prompt builders
# ---------------------------------------------------------------------------

def format_parties(parties: Sequence[Party]) -> str:
    lines = []
    for party in parties:
        qualification = f" ({party.qualification})" if party.qualification else ""
        lines.append(f"{_ROLE_LABELS.get(party.role.value, party.role.value.upper())}: {party.name}{qualification}")
    return "\n".join(lines) or "Partes não informadas."


def build_piece_prompt(
    document_title: str,
    sections: Sequence[str],
    fact_summary: str,
    parties: Sequence[Party],
    requested_relief: Optional[str] = None,
    documents: Optional[Sequence[str]] = None,
) -> str:
    documents_text = (
        f"Documentos relevantes: {', '.join(documents)}."
        if documents
        else "Sem documentos anexados informados."
    )
    relief_text = (
        f"Orientações do cliente sobre pedidos: {requested_relief}."
        if requested_relief
        else "Pedidos específicos não foram informados; gere requerimentos finais coerentes "
             "com a narrativa e a fundamentação."
    )
    blocks = "\n\n".join(
        f"### {format_block_title(block)}\n(Desenvolva este tópico conforme aplicável ao tipo da peça.)"
        for block in sections
    )
    return _PIECE_PROMPT.format(
        document_title=document_title,
        fact_summary=fact_summary,
        parties=format_parties(parties),
        documents=documents_text,
        relief=relief_text,
        blocks=blocks,
    )


def build_requests_prompt(
    document_title: str,
    block_title: str,
    fact_summary: str,
    grounds: str,
    guidance: Optional[str] = None,
    current_content: Optional[str] = None,
) -> str:
    guidance_text = (
        f"Orientações adicionais do cliente: {guidance}."
        if guidance
        else "Nenhuma orientação adicional específica foi fornecida."
    )
    current = (
        f"Conteúdo anteriormente sugerido para a seção:\n{current_content.strip()}\n\n"
        if current_content and current_content.strip()
        else ""
    )
    return _REQUESTS_PROMPT.format(
        document_title=document_title,
        fact_summary=fact_summary,
        grounds=grounds.strip() or _NO_GROUNDS,
        guidance=guidance_text,
        current=current,
        block_title=block_title,
    )


def build_rewrite_prompt(
    document_title: str,
    block_title: str,
    current_content: str,
    related_memory: Optional[Sequence[str]] = None,
    new_information: Optional[str] = None,
    references: Optional[Sequence[str]] = None,
) -> str:
    memory = (
        "Memória jurídica relacionada:\n" + "\n\n".join(related_memory) + "\n\n"
        if related_memory
        else ""
    )
    new_info = (
        f"Novas informações fornecidas:\n{new_information.strip()}\n\n"
        if new_information and new_information.strip()
        else ""
    )
    refs = (
        "Jurisprudências e doutrinas relevantes:\n" + "\n\n".join(references) + "\n\n"
        if references
        else ""
    )
    return _REWRITE_PROMPT.format(
        block_title=block_title,
        document_title=document_title,
        current_content=current_content,
        memory=memory,
        new_information=new_info,
        references=refs,
    )


def build_freeform_prompt(
    text: str,
    context: Optional[Sequence[str]] = None,
    instructions: Optional[str] = None,
) -> str:
    context_text = (
        "Contexto adicional relevante:\n" + "\n\n---\n\n".join(context) + "\n\n"
        if context
        else "Contexto adicional relevante: não há registros disponíveis.\n\n"
    )
    directive = instructions.strip() if instructions and instructions.strip() else _FREEFORM_DEFAULT_INSTRUCTIONS
    return (
        f"{directive}\n\n{context_text}Texto atual:\n{text}\n\n"
        "Retorne somente o texto reescrito, sem comentários adicionais."
    )


# ---------------------------------------------------------------------------
# Client
# ---------------------------------------------------------------------------

class OpenAIChatClient:
    """Chat-completions client with one fixed timeout budget per call."""

    def __init__(
        self,
        api_key: Optional[str] = None,
        api_url: Optional[str] = None,
        model: Optional[str] = None,
    ) -> None:
        self.api_key = api_key if api_key is not None else settings.LLM_API_KEY
        self.api_url = api_url or settings.LLM_API_URL
        self.model = model or settings.LLM_MODEL
        self.timeout = httpx.Timeout(float(settings.LLM_TIMEOUT), connect=10.0)

    @property
    def is_configured(self) -> bool:
        return bool(self.api_key)

    async def generate_piece(
        self,
        document_title: str,
        sections: Sequence[str],
        fact_summary: str,
        parties: Sequence[Party],
        requested_relief: Optional[str] = None,
        documents: Optional[Sequence[str]] = None,
    ) -> str:
        prompt = build_piece_prompt(
            document_title, sections, fact_summary, parties, requested_relief, documents
        )
        return await self._complete(_PIECE_SYSTEM, prompt, temperature=0.4, purpose="piece")

    async def generate_requests(
        self,
        document_title: str,
        block_title: str,
        fact_summary: str,
        grounds: str,
        guidance: Optional[str] = None,
        current_content: Optional[str] = None,
    ) -> str:
        prompt = build_requests_prompt(
            document_title, block_title, fact_summary, grounds, guidance, current_content
        )
        return await self._complete(_REQUESTS_SYSTEM, prompt, temperature=0.2, purpose="requests")

    async def rewrite_topic(
        self,
        document_title: str,
        block_title: str,
        current_content: str,
        related_memory: Optional[Sequence[str]] = None,
        new_information: Optional[str] = None,
        references: Optional[Sequence[str]] = None,
    ) -> str:
        prompt = build_rewrite_prompt(
            document_title, block_title, current_content, related_memory, new_information, references
        )
        return await self._complete(_REWRITE_SYSTEM, prompt, temperature=0.3, purpose="topic rewrite")

    async def rewrite_freeform(
        self,
        text: str,
        context: Optional[List[str]] = None,
        instructions: Optional[str] = None,
    ) -> str:
        prompt = build_freeform_prompt(text, context, instructions)
        return await self._complete(_FREEFORM_SYSTEM, prompt, temperature=0.3, purpose="freeform rewrite")

    async def _complete(self, system: str, prompt: str, temperature: float, purpose: str) -> str:
        """POST one chat completion and return the stripped message text."""
        if not self.api_key:
            raise GenerationError("LLM_API_KEY is not configured")

        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                resp = await client.post(
                    self.api_url,
                    headers={"Authorization": f"Bearer {self.api_key}"},
                    json={
                        "model": self.model,
                        "messages": [
                            {"role": "system", "content": system},
                            {"role": "user", "content": prompt},
                        ],
                        "temperature": temperature,
                    },
                )
        except httpx.TimeoutException as exc:
            logger.error("_complete(%s): request timed out — %s", purpose, exc)
            raise GenerationError(f"LLM request timed out ({purpose})") from exc
        except httpx.HTTPError as exc:
            logger.error("_complete(%s): transport error — %s", purpose, exc)
            raise GenerationError(f"LLM request failed ({purpose}): {exc}") from exc

        if resp.status_code != 200:
            logger.error(
                "_complete(%s): upstream returned HTTP %d: %s",
                purpose,
                resp.status_code,
                resp.text[:300],
            )
            raise GenerationError(f"LLM upstream returned HTTP {resp.status_code} ({purpose})")

        try:
            content = resp.json()["choices"][0]["message"]["content"]
        except (ValueError, KeyError, IndexError, TypeError) as exc:
            raise GenerationError(f"Invalid LLM response ({purpose})") from exc

        if not isinstance(content, str) or not content.strip():
            raise GenerationError(f"Invalid LLM response ({purpose})")
        return content.strip()
