"""
Static catalog of document-type templates.

Each DocumentType maps to exactly one Template: the ordered block names the
generated piece must follow and the input fields that are mandatory for it.
The registry is built once at import and never mutated.
"""
from __future__ import annotations

import re
from dataclasses import dataclass
from types import MappingProxyType
from typing import FrozenSet, Mapping, Tuple, Union

from lexdraft.exceptions import UnknownDocumentType
from lexdraft.models.domain import DocumentType

# Mandatory input field names
PARTIES = "parties"
FACT_SUMMARY = "fact_summary"
REQUESTED_RELIEF = "requested_relief"


@dataclass(frozen=True)
class Template:
    document_type: DocumentType
    title: str                          # display title, e.g. "Petição Inicial"
    sections: Tuple[str, ...]
    required_fields: FrozenSet[str]


def _template(
    document_type: DocumentType,
    title: str,
    sections: Tuple[str, ...],
    required: Tuple[str, ...],
) -> Template:
    if len(set(sections)) != len(sections):
        raise ValueError(f"Duplicate section names in template {document_type.value}")
    return Template(document_type, title, sections, frozenset(required))


_TEMPLATES = (
    _template(
        DocumentType.PETITION,
        "Petição Inicial",
        ("preambulo", "dos_fatos", "fundamentacao_juridica", "jurisprudencia",
         "dos_pedidos", "valor_da_causa"),
        (PARTIES, FACT_SUMMARY),
    ),
    _template(
        DocumentType.ANSWER,
        "Contestação",
        ("preambulo", "preliminares", "impugnacao_aos_fatos", "fundamentacao_juridica",
         "provas", "pedidos_finais"),
        (PARTIES, FACT_SUMMARY),
    ),
    _template(
        DocumentType.REPLY,
        "Réplica",
        ("preambulo", "impugnacao_aos_argumentos", "reforco_das_teses", "jurisprudencia",
         "pedidos"),
        (PARTIES, FACT_SUMMARY),
    ),
    _template(
        DocumentType.URGENT_RELIEF,
        "Tutela de Urgência",
        ("preambulo", "fumus_boni_iuris", "periculum_in_mora", "fundamentacao_juridica",
         "pedidos_antecipatorios"),
        (PARTIES, FACT_SUMMARY),
    ),
    _template(
        DocumentType.INTERLOCUTORY_APPEAL,
        "Agravo de Instrumento",
        ("preambulo", "exposicao_dos_fatos", "fundamentacao_juridica", "requerimentos",
         "documentos_obrigatorios"),
        (PARTIES, FACT_SUMMARY),
    ),
    _template(
        DocumentType.CASE_MANAGEMENT_REQUEST,
        "Pedido de Saneamento",
        ("preambulo", "pontos_controvertidos", "medidas_propostas", "fundamentacao",
         "pedidos"),
        (PARTIES, FACT_SUMMARY),
    ),
    _template(
        DocumentType.EVIDENCE_PRODUCTION,
        "Produção de Provas",
        ("preambulo", "justificativa", "tipos_provas", "fundamentacao", "pedidos"),
        (FACT_SUMMARY,),
    ),
    _template(
        DocumentType.INTERLOCUTORY_MOTION,
        "Petição Interlocutória",
        ("preambulo", "fundamentacao", "pedido"),
        (FACT_SUMMARY,),
    ),
    _template(
        DocumentType.STATEMENT,
        "Manifestação",
        ("preambulo", "resposta_argumentos", "fundamentacao", "conclusao"),
        (FACT_SUMMARY,),
    ),
    _template(
        DocumentType.EXPERT_QUESTIONS,
        "Quesitos",
        ("introducao", "perguntas", "fundamento_tecnico"),
        (FACT_SUMMARY,),
    ),
    _template(
        DocumentType.CLOSING_BRIEFS,
        "Memoriais",
        ("preambulo", "resumo_dos_fatos", "teses_defendidas", "jurisprudencia_aplicavel",
         "conclusao"),
        (FACT_SUMMARY,),
    ),
    _template(
        DocumentType.APPEAL,
        "Apelação",
        ("preambulo", "resumo_da_decisao", "fundamentacao", "reforma_pleiteada", "pedidos"),
        (FACT_SUMMARY,),
    ),
)

TEMPLATES: Mapping[DocumentType, Template] = MappingProxyType(
    {template.document_type: template for template in _TEMPLATES}
)


def coerce_document_type(value: Union[DocumentType, str]) -> DocumentType:
    """Return the DocumentType for *value* or raise UnknownDocumentType."""
    if isinstance(value, DocumentType):
        return value
    try:
        return DocumentType(str(value).strip())
    except ValueError:
        raise UnknownDocumentType(value) from None


def get_template(document_type: Union[DocumentType, str]) -> Template:
    template = TEMPLATES.get(coerce_document_type(document_type))
    if template is None:
        raise UnknownDocumentType(document_type)
    return template


def list_document_types() -> Tuple[DocumentType, ...]:
    """All document types, in declaration order."""
    return tuple(TEMPLATES)


def format_block_title(block: str) -> str:
    """Render a block key as a heading: ``dos_pedidos`` -> ``Dos Pedidos``."""
    return " ".join(part[:1].upper() + part[1:] for part in re.split(r"[_\s]+", block) if part)
