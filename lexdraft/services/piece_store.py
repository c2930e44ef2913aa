"""
In-memory store for generated pieces, keyed by piece id.

Pieces live for the process lifetime unless PIECE_TTL_SECONDS is set, in
which case entries untouched for longer than the TTL are evicted lazily on
access. Each id also owns an ``asyncio.Lock`` so refinements of the same
piece run one after another.
"""
from __future__ import annotations

import asyncio
import logging
import time
from typing import Dict, Optional, Tuple

from lexdraft.models.domain import Piece

logger = logging.getLogger(__name__)


class InMemoryPieceStore:
    """Process-wide piece map with per-key locks and optional TTL eviction."""

    def __init__(self, ttl_seconds: int = 0) -> None:
        self.ttl_seconds = ttl_seconds
        self._entries: Dict[str, Tuple[Piece, float]] = {}
        self._locks: Dict[str, asyncio.Lock] = {}

    def __len__(self) -> int:
        self._evict_expired()
        return len(self._entries)

    def __contains__(self, piece_id: str) -> bool:
        return self.get(piece_id) is not None

    def get(self, piece_id: str) -> Optional[Piece]:
        self._evict_expired()
        entry = self._entries.get(piece_id)
        return entry[0] if entry else None

    def put(self, piece: Piece) -> None:
        self._entries[piece.id] = (piece, time.monotonic())
        logger.debug("Stored piece %s (%d total)", piece.id, len(self._entries))

    def lock(self, piece_id: str) -> asyncio.Lock:
        """Lock serializing writers of *piece_id*; created on first use."""
        lock = self._locks.get(piece_id)
        if lock is None:
            lock = self._locks[piece_id] = asyncio.Lock()
        return lock

    def clear(self) -> None:
        self._entries.clear()
        self._locks.clear()

    def _evict_expired(self) -> None:
        if self.ttl_seconds <= 0:
            return
        cutoff = time.monotonic() - self.ttl_seconds
        expired = [pid for pid, (_piece, stamp) in self._entries.items() if stamp < cutoff]
        for piece_id in expired:
            self._entries.pop(piece_id, None)
            lock = self._locks.get(piece_id)
            if lock is not None and not lock.locked():
                self._locks.pop(piece_id, None)
        if expired:
            logger.info("Evicted %d expired pieces", len(expired))
