"""
Statutory-article citations: extraction, verification and inline annotation.

Citations are always recomputed from the whole text. Verification markers
written by ``annotate_citations`` are stripped before any extraction, so
running the pass again over an already annotated piece gives the same
citation set and never stacks markers.
"""
from __future__ import annotations

import logging
import re
from typing import Dict, List, Optional, Tuple

from lexdraft.models.domain import ArticleCitation
from lexdraft.utils.helpers import strip_accents

logger = logging.getLogger(__name__)

VERIFICATION_PHRASE = "texto vigente legislação brasileira"
LEGAL_VERIFICATION_DOMAINS: Tuple[str, ...] = (
    "planalto.gov.br",
    "stf.jus.br",
    "stj.jus.br",
    "jusbrasil.com.br",
    "conjur.com.br",
)
VERIFICATION_MAX_RESULTS = 3

VERIFIED_MARKER = "[✓ artigo verificado]"
UNVERIFIED_MARKER = "[⚠ artigo não verificado]"

_MARKER_RE = re.compile(
    r" ?\[(?:" + re.escape(VERIFIED_MARKER[1:-1]) + "|" + re.escape(UNVERIFIED_MARKER[1:-1]) + r")\]"
)

_STATUTES: Dict[str, str] = {
    "cpc": "CPC",
    "codigo de processo civil": "CPC",
    "cc": "CC",
    "codigo civil": "CC",
    "cf": "CF",
    "constituicao federal": "CF",
    "clt": "CLT",
    "cdc": "CDC",
    "codigo de defesa do consumidor": "CDC",
    "cp": "CP",
    "codigo penal": "CP",
    "cpp": "CPP",
    "codigo de processo penal": "CPP",
    "ctn": "CTN",
    "eca": "ECA",
}

_ACCENT_CLASSES = {
    "a": "[aáâã]",
    "c": "[cç]",
    "e": "[eéê]",
    "i": "[ií]",
    "o": "[oóôõ]",
    "u": "[uú]",
    " ": r"\s+",
}


def _accent_tolerant(name: str) -> str:
    return "".join(_ACCENT_CLASSES.get(ch, re.escape(ch)) for ch in name)


_STATUTE_ALTERNATION = "|".join(
    _accent_tolerant(name) for name in sorted(_STATUTES, key=len, reverse=True)
)

ARTICLE_RE = re.compile(
    r"\b(?:art(?:igo)?s?)\s*\.?\s*"
    r"(?P<number>\d{1,3}(?:\.\d{3})+|\d+)(?!\d)"
    r"(?P<suffix>-[A-Z]\b)?"
    r"(?:\s?[º°ª](?P<ordinal_suffix>-[A-Z]\b)?)?"
    r"(?:,?\s+d[oa]s?\s+(?P<statute>" + _STATUTE_ALTERNATION + r")\b)?",
    re.IGNORECASE,
)


def strip_markers(text: str) -> str:
    """Remove every verification marker previously added by annotation."""
    return _MARKER_RE.sub("", text)


def _statute_abbreviation(raw: Optional[str]) -> Optional[str]:
    if not raw:
        return None
    return _STATUTES.get(" ".join(strip_accents(raw).lower().split()))


def _citation_parts(match: "re.Match[str]") -> Tuple[str, str]:
    """Return ``(display, key)`` for an ARTICLE_RE match."""
    number = match.group("number").replace(".", "")
    suffix = (match.group("suffix") or match.group("ordinal_suffix") or "").upper()
    statute = _statute_abbreviation(match.group("statute"))

    display = f"Art. {match.group('number')}{suffix}"
    key = f"art. {number}{suffix.lower()}"
    if statute:
        display = f"{display} do {statute}"
        key = f"{key} {statute.lower()}"
    return display, key


def extract_citations(text: str) -> List[ArticleCitation]:
    """
    Find article references in *text*.

    Case-insensitive, deduplicated by normalized key, first-seen order.
    ``Art. 5`` and ``art.5`` share the key ``art. 5``.
    """
    seen: Dict[str, ArticleCitation] = {}
    for match in ARTICLE_RE.finditer(strip_markers(text)):
        display, key = _citation_parts(match)
        if key not in seen:
            seen[key] = ArticleCitation(article=display, key=key)
    return list(seen.values())


async def verify_citations(citations: List[ArticleCitation], research) -> List[ArticleCitation]:
    """
    Check each citation against the research gateway, one query at a time.

    A citation is confirmed when the trusted-domain search returns anything;
    the first hit's URL becomes its reference. Gateway errors degrade to an
    unconfirmed citation.
    """
    verified: List[ArticleCitation] = []
    for citation in citations:
        query = f"{citation.article} {VERIFICATION_PHRASE}"
        try:
            results = await research.search(
                query, list(LEGAL_VERIFICATION_DOMAINS), VERIFICATION_MAX_RESULTS
            )
        except Exception as exc:
            logger.warning("verify_citations: lookup failed for %s — %s", citation.article, exc)
            results = []

        reference = results[0].url if results else None
        verified.append(
            ArticleCitation(
                article=citation.article,
                key=citation.key,
                confirmed=bool(results),
                reference=reference,
            )
        )

    logger.info(
        "verify_citations: %d/%d citations confirmed",
        sum(1 for c in verified if c.confirmed),
        len(verified),
    )
    return verified


def annotate_citations(text: str, citations: List[ArticleCitation]) -> str:
    """Append a confirmed/unconfirmed marker right after every citation occurrence."""
    status = {citation.key: citation.confirmed for citation in citations}

    def _mark(match: "re.Match[str]") -> str:
        _display, key = _citation_parts(match)
        if key not in status:
            return match.group(0)
        marker = VERIFIED_MARKER if status[key] else UNVERIFIED_MARKER
        return f"{match.group(0)} {marker}"

    return ARTICLE_RE.sub(_mark, strip_markers(text))


async def process_citations(text: str, research) -> Tuple[str, List[ArticleCitation]]:
    """Extract, verify and annotate in one pass; returns ``(annotated, citations)``."""
    citations = await verify_citations(extract_citations(text), research)
    return annotate_citations(text, citations), citations
