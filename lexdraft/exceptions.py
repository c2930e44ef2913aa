"""
Error taxonomy for piece generation, refinement and export.

Lookup and validation errors are raised straight to the caller; the routers
translate them into HTTP responses (see ``lexdraft.main``).
"""
from __future__ import annotations

from typing import List, Optional


class LexDraftError(Exception):
    """Base class for every error surfaced by the engine."""


class MissingRequiredFields(LexDraftError):
    """One or more mandatory input fields are absent or blank."""

    def __init__(self, fields: List[str]) -> None:
        self.fields = list(fields)
        super().__init__(f"Missing required fields: {', '.join(self.fields)}")


class UnknownDocumentType(LexDraftError):
    def __init__(self, value: object) -> None:
        self.value = value
        super().__init__(f"Unknown document type: {value!r}")


class PieceNotFound(LexDraftError):
    def __init__(self, piece_id: str) -> None:
        self.piece_id = piece_id
        super().__init__(f"Piece {piece_id!r} not found")


class TopicNotFound(LexDraftError):
    def __init__(self, piece_id: Optional[str], topic: str) -> None:
        self.piece_id = piece_id
        self.topic = topic
        super().__init__(f"Topic {topic!r} not found in piece {piece_id!r}")


class ContainerBuildFailed(LexDraftError):
    """Filesystem or archiving failure while writing the DOCX container."""


class GenerationError(LexDraftError):
    """The content generation gateway failed or returned unusable output."""
