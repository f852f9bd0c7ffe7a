from typing import Dict, List, Optional
from collections import Counter
from datetime import date, timedelta
import asyncio

import structlog

from ensemble_router.domain.collaborators import MemoryStore
from ensemble_router.domain.deadline import Deadline
from ensemble_router.domain.errors import EmbeddingDimensionMismatch
from ensemble_router.domain.models.memory import Memory

logger = structlog.get_logger(__name__)


class InMemoryMemoryStore(MemoryStore):
    """Append-only vector memory store keyed by user"""

    def __init__(self, dimension: int):
        self.dimension = dimension
        self.memories: Dict[str, List[Memory]] = {}
        self._lock = asyncio.Lock()

    async def append(self, memory: Memory) -> None:
        """Append a memory, rejecting embeddings of the wrong dimension"""

        if memory.dimension != self.dimension:
            raise EmbeddingDimensionMismatch(self.dimension, memory.dimension, memory.id)

        async with self._lock:
            self.memories.setdefault(memory.user_id, []).append(memory)

        logger.debug("Memory appended", user_id=memory.user_id, memory_id=memory.id)

    async def list_by_user(self, user_id: str, deadline: Optional[Deadline] = None) -> List[Memory]:
        """Return a snapshot of a user's memories; appends never mutate a snapshot"""
        return list(self.memories.get(user_id, []))

    async def recent_memories(
        self,
        user_id: str,
        days: int = 14,
        limit: int = 10,
        today: Optional[date] = None
    ) -> List[Memory]:
        """Memories from the last `days` days, newest first"""

        today = today or date.today()
        cutoff = today - timedelta(days=days)
        memories = [m for m in await self.list_by_user(user_id) if m.occurred_on >= cutoff]
        memories.sort(key=lambda m: (m.occurred_on, m.created_at), reverse=True)
        return memories[:limit]

    async def recurring_patterns(self, user_id: str, min_count: int = 2, limit: int = 10) -> List[str]:
        """Patterns mentioned at least `min_count` times across the whole history"""

        counts = Counter(
            pattern
            for memory in await self.list_by_user(user_id)
            for pattern in memory.patterns_mentioned
        )
        # Counter.most_common keeps first-seen order for equal counts
        return [pattern for pattern, count in counts.most_common() if count >= min_count][:limit]

    async def breakthrough_moments(self, user_id: str, limit: int = 5) -> List[Memory]:
        """Memories carrying breakthrough indicators, most important first"""

        moments = [m for m in await self.list_by_user(user_id) if m.breakthrough_indicators]
        moments.sort(key=lambda m: m.importance, reverse=True)
        return moments[:limit]

    async def get_stats(self) -> Dict[str, int]:
        """Get store statistics"""

        return {
            "users": len(self.memories),
            "memories": sum(len(items) for items in self.memories.values()),
        }
