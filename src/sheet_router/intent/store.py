"""Embedding similarity store backing the intent cache."""

import asyncio
import time
import uuid
from datetime import datetime
from typing import Any, Dict, List, Optional, Protocol, runtime_checkable

import numpy as np
from sklearn.metrics.pairwise import cosine_similarity

from ..models.base import CachedIntent, CacheLookup, Classification
from ..utils.logging import get_logger


@runtime_checkable
class SimilarityStore(Protocol):
    """Persistent store of command embeddings and their classifications."""

    async def find_similar(self, embedding: List[float], threshold: float) -> CacheLookup:
        ...

    async def upsert(
        self,
        canonical_command: str,
        embedding: List[float],
        classification: Classification,
        is_seed: bool = False,
        category: Optional[str] = None,
    ) -> str:
        ...

    async def record_hit(self, entry_id: str) -> None:
        ...

    async def record_outcome(
        self,
        canonical_command: str,
        embedding: List[float],
        success: bool,
        error_message: Optional[str] = None,
    ) -> bool:
        ...

    async def stats(self) -> Dict[str, Any]:
        ...


class InMemorySimilarityStore:
    """Process-local similarity store using numpy and sklearn cosine similarity.

    Entries are keyed by canonical command, so promoting the same command
    twice updates the existing entry instead of appending a duplicate.
    """

    def __init__(self, outcome_match_threshold: float = 0.85):
        self.outcome_match_threshold = outcome_match_threshold
        self._entries: Dict[str, CachedIntent] = {}
        self._by_command: Dict[str, str] = {}
        self._ids: List[str] = []
        self._matrix: Optional[np.ndarray] = None
        self._lock = asyncio.Lock()
        self.hits = 0
        self.misses = 0
        self.logger = get_logger("intent.store")

    def __len__(self) -> int:
        return len(self._entries)

    def _rebuild_matrix(self) -> None:
        self._ids = list(self._entries)
        if not self._ids:
            self._matrix = None
            return
        self._matrix = np.array([self._entries[i].embedding for i in self._ids], dtype=float)

    def _nearest(self, embedding: List[float]):
        if self._matrix is None:
            return None, 0.0
        query = np.asarray(embedding, dtype=float).reshape(1, -1)
        similarities = cosine_similarity(query, self._matrix).flatten()
        index = int(np.argmax(similarities))
        return self._entries[self._ids[index]], float(similarities[index])

    async def find_similar(self, embedding: List[float], threshold: float) -> CacheLookup:
        start = time.perf_counter()
        entry, similarity = self._nearest(embedding)
        elapsed = int((time.perf_counter() - start) * 1000)

        if entry is not None and similarity >= threshold:
            self.hits += 1
            return CacheLookup(hit=True, cached_intent=entry, similarity=similarity, lookup_time_ms=elapsed)

        self.misses += 1
        return CacheLookup(hit=False, similarity=similarity, lookup_time_ms=elapsed)

    async def upsert(
        self,
        canonical_command: str,
        embedding: List[float],
        classification: Classification,
        is_seed: bool = False,
        category: Optional[str] = None,
    ) -> str:
        async with self._lock:
            entry_id = self._by_command.get(canonical_command)
            if entry_id is not None:
                existing = self._entries[entry_id]
                self._entries[entry_id] = existing.model_copy(update={
                    "embedding": list(embedding),
                    "classification": classification,
                    "category": category or existing.category,
                    "is_seed": existing.is_seed or is_seed,
                })
                self.logger.debug(f"Updated cached intent '{canonical_command}'")
            else:
                entry_id = uuid.uuid4().hex
                self._entries[entry_id] = CachedIntent(
                    id=entry_id,
                    canonical_command=canonical_command,
                    embedding=list(embedding),
                    classification=classification,
                    category=category,
                    is_seed=is_seed,
                )
                self._by_command[canonical_command] = entry_id
                self.logger.debug(f"Cached new intent '{canonical_command}'")
            self._rebuild_matrix()
            return entry_id

    async def record_hit(self, entry_id: str) -> None:
        async with self._lock:
            entry = self._entries.get(entry_id)
            if entry is None:
                return
            self._entries[entry_id] = entry.model_copy(update={
                "hit_count": entry.hit_count + 1,
                "last_used_at": datetime.now(),
            })

    async def record_outcome(
        self,
        canonical_command: str,
        embedding: List[float],
        success: bool,
        error_message: Optional[str] = None,
    ) -> bool:
        """Update the success rate of the entry matching the command.

        Returns False when no entry is close enough to attribute the outcome to.
        """
        async with self._lock:
            entry_id = self._by_command.get(canonical_command)
            if entry_id is None:
                entry, similarity = self._nearest(embedding)
                if entry is None or similarity < self.outcome_match_threshold:
                    return False
                entry_id = entry.id

            entry = self._entries[entry_id]
            outcome_count = entry.outcome_count + 1
            success_count = entry.success_count + (1 if success else 0)
            self._entries[entry_id] = entry.model_copy(update={
                "outcome_count": outcome_count,
                "success_count": success_count,
                "success_rate": success_count / outcome_count,
            })
            if not success:
                self.logger.info(f"Recorded failure for '{entry.canonical_command}': {error_message}")
            return True

    def get(self, entry_id: str) -> Optional[CachedIntent]:
        return self._entries.get(entry_id)

    def find_by_command(self, canonical_command: str) -> Optional[CachedIntent]:
        entry_id = self._by_command.get(canonical_command)
        return self._entries.get(entry_id) if entry_id else None

    async def stats(self) -> Dict[str, Any]:
        entries = list(self._entries.values())
        seeds = sum(1 for e in entries if e.is_seed)
        avg = float(np.mean([e.success_rate for e in entries])) if entries else 0.0
        return {
            "total_entries": len(entries),
            "seed_entries": seeds,
            "learned_entries": len(entries) - seeds,
            "avg_success_rate": round(avg, 4),
            "hits": self.hits,
            "misses": self.misses,
        }
