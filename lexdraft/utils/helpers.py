"""
Text helpers shared by the section parser, citation matcher and memory chunker.
"""
from typing import List
import re
import unicodedata

_ENUMERATOR_RE = re.compile(
    r"^(?:\d+(?:\.\d+)*\.?|[ivxlcdm]+\s*[.)\-–—:]|[a-z]\))\s*[.)\-–—:]?\s+"
)
_NON_ALNUM_RE = re.compile(r"[^a-z0-9]+")


def strip_accents(text: str) -> str:
    """Remove combining marks after NFKD decomposition."""
    decomposed = unicodedata.normalize("NFKD", text)
    return "".join(ch for ch in decomposed if not unicodedata.combining(ch))


def normalize_key(text: str) -> str:
    """
    Normalize a heading or block name into a comparable key.

    Accents are stripped, case is folded, a leading enumerator such as
    ``1.``, ``IV -`` or ``a)`` is dropped and every run of non-alphanumerics
    collapses to a single underscore.

    Args:
        text: Raw heading, block name or caller-supplied topic identifier

    Returns:
        Key such as ``dos_pedidos``
    """
    folded = strip_accents(text).casefold().strip()
    folded = _ENUMERATOR_RE.sub("", folded, count=1)
    return _NON_ALNUM_RE.sub("_", folded).strip("_")


def split_text_into_chunks(text: str, chunk_size: int = 512, overlap: int = 64) -> List[str]:
    """
    Split text into overlapping character windows.

    Window ends are pulled back to the last newline or space inside the
    window when one exists past the overlap, so words are not cut in half.

    Args:
        text: Text to chunk
        chunk_size: Maximum chunk length in characters
        overlap: Characters shared between consecutive chunks

    Returns:
        List of non-empty, stripped chunks
    """
    sanitized = text.replace("\r\n", "\n").strip() if isinstance(text, str) else ""
    if not sanitized:
        return []

    chunks: List[str] = []
    start = 0
    length = len(sanitized)

    while start < length:
        end = min(start + chunk_size, length)
        if end < length:
            candidate = max(sanitized.rfind("\n", 0, end), sanitized.rfind(" ", 0, end))
            if start + overlap < candidate < end:
                end = candidate

        chunk = sanitized[start:end].strip()
        if chunk:
            chunks.append(chunk)

        if end >= length:
            break
        start = max(end - overlap, start + 1)

    return chunks
