from typing import List, Optional
from datetime import date, timedelta

import structlog

from ensemble_router.domain.collaborators import MemoryStore
from ensemble_router.domain.context.context_ranker import MemoryRanker
from ensemble_router.domain.context.memory.cache_memory_store import TTLCache
from ensemble_router.domain.context.memory.embedding import SafeEmbeddingProvider
from ensemble_router.domain.deadline import Deadline, ensure_deadline
from ensemble_router.domain.errors import ConfigurationFault
from ensemble_router.domain.models.memory import Memory, RetrievalResult
from ensemble_router.infrastructure.observability.logging import engine_logger

logger = structlog.get_logger(__name__)

SNIPPET_LENGTH = 60
MAX_PATTERNS = 5


def _plural(count: int, unit: str) -> str:
    return f"{count} {unit}" if count == 1 else f"{count} {unit}s"


def time_reference(occurred_on: date, today: date) -> str:
    """Human-readable distance between a statement date and today"""

    days = max(0, (today - occurred_on).days)
    if days == 0:
        return "earlier today"
    if days == 1:
        return "yesterday"
    if days < 7:
        return f"{_plural(days, 'day')} ago"
    if days < 30:
        return f"{_plural(days // 7, 'week')} ago"
    return f"{_plural(days // 30, 'month')} ago"


def memory_reference(memory: Memory, today: date) -> str:
    content = memory.content
    snippet = content[:SNIPPET_LENGTH] + "..." if len(content) > SNIPPET_LENGTH else content
    return f'{time_reference(memory.occurred_on, today)} you mentioned: "{snippet}"'


def _first_seen(values: List[str]) -> List[str]:
    return list(dict.fromkeys(values))


def extract_patterns(memories: List[Memory]) -> List[str]:
    """Deduplicated patterns across memories in first-appearance order"""
    return _first_seen([p for m in memories for p in m.patterns_mentioned])[:MAX_PATTERNS]


def build_context_summary(memories: List[Memory], patterns: List[str]) -> str:
    """Summary of themes, patterns and insights handed to experts as context"""

    if not memories:
        return ""

    themes = _first_seen([tag for m in memories for tag in m.context_tags])[:3]
    insights = [b for m in memories for b in m.breakthrough_indicators][:2]

    summary = f"Recent conversation themes: {', '.join(themes)}."
    if patterns:
        summary += f" Recurring patterns: {', '.join(patterns)}."
    if insights:
        summary += f" Recent insights: {', '.join(insights)}."
    return summary


class MemoryRetriever:
    """Retrieves the prior statements most relevant to a query"""

    def __init__(
        self,
        store: MemoryStore,
        embedder: SafeEmbeddingProvider,
        ranker: Optional[MemoryRanker] = None,
        cache: Optional[TTLCache] = None,
        max_results: int = 5,
        recency_window_days: int = 7,
        recency_bonus: float = 0.2,
        store_timeout: Optional[float] = None
    ):
        self.store = store
        self.embedder = embedder
        self.ranker = ranker or MemoryRanker()
        self.cache = cache
        self.max_results = max_results
        self.recency_window_days = recency_window_days
        self.recency_bonus = recency_bonus
        self.store_timeout = store_timeout

    async def retrieve(
        self,
        user_id: str,
        query_text: str,
        max_results: Optional[int] = None,
        deadline: Optional[Deadline] = None,
        today: Optional[date] = None
    ) -> RetrievalResult:
        """Rank a user's memories against the query and return the top results"""

        deadline = ensure_deadline(deadline)
        today = today or date.today()
        limit = self.max_results if max_results is None else max(0, max_results)

        memories = await self._load_memories(user_id, deadline)
        if memories is None:
            engine_logger.log_retrieval(user_id, 0, 0, 0.0, degraded=True)
            return RetrievalResult.empty()
        if not memories:
            engine_logger.log_retrieval(user_id, 0, 0, 0.0)
            return RetrievalResult.empty()

        query_embedding = await self._embed_query(query_text, deadline)
        ranked = self.ranker.rank(query_embedding, memories)[:limit]
        selected = [scored.memory for scored in ranked]

        patterns = extract_patterns(selected)
        result = RetrievalResult(
            memories=selected,
            references=[memory_reference(m, today) for m in selected],
            patterns=patterns,
            context_summary=build_context_summary(selected, patterns),
            confidence=self.retrieval_confidence(selected, today),
        )

        engine_logger.log_retrieval(
            user_id,
            returned=len(selected),
            considered=len(memories),
            confidence=result.confidence,
            degraded=not any(query_embedding)
        )
        return result

    def retrieval_confidence(self, memories: List[Memory], today: date) -> float:
        """Mean importance plus a recency bonus, capped at 1.0"""

        if not memories:
            return 0.0

        confidence = sum(m.importance for m in memories) / len(memories)
        cutoff = today - timedelta(days=self.recency_window_days)
        if any(m.occurred_on >= cutoff for m in memories):
            confidence += self.recency_bonus

        return min(confidence, 1.0)

    async def _load_memories(self, user_id: str, deadline: Deadline) -> Optional[List[Memory]]:
        """Read the user's memories; None when the store is unavailable"""

        scope = deadline.child(self.store_timeout)
        try:
            return await scope.run(self.store.list_by_user(user_id, deadline=scope), "memory_store")
        except ConfigurationFault:
            raise
        except Exception as e:
            logger.warning(
                "Memory store read failed, returning empty retrieval",
                user_id=user_id,
                error=str(e),
                error_type=type(e).__name__
            )
            return None

    async def _embed_query(self, query_text: str, deadline: Deadline) -> List[float]:
        """Embed the query, reusing a cached vector for identical text"""

        if self.cache is None:
            return await self.embedder.embed(query_text, deadline)

        key = TTLCache.content_key("query_embedding", self.embedder.dimension, query_text)
        # Degraded zero vectors are not cached so the next call retries the provider
        return await self.cache.get_or_set(
            key,
            lambda: self.embedder.embed(query_text, deadline),
            should_cache=any
        )
