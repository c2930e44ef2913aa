"""
Lenient coercion of loosely-typed request payload values.

Clients send parties, document lists and metadata in several shapes; these
helpers reduce them to the domain types before the Pydantic schemas see them.
"""
from __future__ import annotations

import re
from typing import Any, Dict, List, Optional

from lexdraft.models.domain import MemoryType, Party, PartyRole
from lexdraft.utils.helpers import strip_accents

_ROLE_ALIASES = {
    "claimant": PartyRole.CLAIMANT,
    "autor": PartyRole.CLAIMANT,
    "autora": PartyRole.CLAIMANT,
    "respondent": PartyRole.RESPONDENT,
    "reu": PartyRole.RESPONDENT,
    "re": PartyRole.RESPONDENT,
    "third_party": PartyRole.THIRD_PARTY,
    "terceiro": PartyRole.THIRD_PARTY,
    "terceira": PartyRole.THIRD_PARTY,
}

_LIST_SEPARATOR_RE = re.compile(r"\r?\n|,")


def sanitize_text(value: Any) -> Optional[str]:
    """Trimmed string, or None for non-strings and blank strings."""
    if not isinstance(value, str):
        return None
    trimmed = value.strip()
    return trimmed or None


def parse_role(value: Any) -> Optional[PartyRole]:
    if isinstance(value, PartyRole):
        return value
    text = sanitize_text(value)
    if text is None:
        return None
    return _ROLE_ALIASES.get(strip_accents(text).lower())


def parse_parties(raw: Any) -> List[Party]:
    """
    Keep only well-formed party entries.

    Each entry must be a mapping with a non-blank ``name`` (or ``nome``) and a
    known ``role`` (or ``papel``); anything else is dropped silently.
    """
    if not isinstance(raw, list):
        return []

    parties: List[Party] = []
    for item in raw:
        if not isinstance(item, dict):
            continue
        name = sanitize_text(item.get("name", item.get("nome")))
        role = parse_role(item.get("role", item.get("papel")))
        if not name or role is None:
            continue
        qualification = sanitize_text(item.get("qualification", item.get("qualificacao")))
        parties.append(Party(name=name, role=role, qualification=qualification))
    return parties


def normalize_document_list(raw: Any) -> List[str]:
    """Accept a list of strings or a comma/newline separated string."""
    if not raw:
        return []
    if isinstance(raw, list):
        return [text for text in (sanitize_text(item) for item in raw) if text]
    if isinstance(raw, str):
        return [part.strip() for part in _LIST_SEPARATOR_RE.split(raw) if part.strip()]
    return []


def normalize_memory_type(value: Any) -> Optional[MemoryType]:
    """Map ``"Tópico"``, ``"peça"``, ``"insight"`` ... onto MemoryType; None if unknown."""
    if isinstance(value, MemoryType):
        return value
    text = sanitize_text(value)
    if text is None:
        return None
    try:
        return MemoryType(strip_accents(text).lower())
    except ValueError:
        return None


def parse_metadata(raw: Any) -> Dict[str, Any]:
    """Keep only scalar (str / int / float / bool) values of a mapping."""
    if not isinstance(raw, dict):
        return {}
    return {
        str(key): value
        for key, value in raw.items()
        if isinstance(value, (str, int, float, bool))
    }
