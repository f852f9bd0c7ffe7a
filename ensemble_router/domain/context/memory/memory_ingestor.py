from typing import Optional
from datetime import date

import structlog

from ensemble_router.domain.collaborators import MemoryStore
from ensemble_router.domain.context.memory.embedding import SafeEmbeddingProvider
from ensemble_router.domain.context.state.lexicon import detect_breakthrough_indicators
from ensemble_router.domain.models.memory import Memory, MemoryAnalysis

logger = structlog.get_logger(__name__)


class MemoryIngestor:
    """Reference ingestion path: analyse once, embed, append"""

    def __init__(self, store: MemoryStore, embedder: SafeEmbeddingProvider):
        self.store = store
        self.embedder = embedder

    async def ingest(
        self,
        user_id: str,
        content: str,
        occurred_on: date,
        analysis: Optional[MemoryAnalysis] = None
    ) -> Memory:
        """Create and append a memory for one user statement"""

        analysis = analysis or MemoryAnalysis()
        embedding = await self.embedder.embed(content)

        # Fall back to the canonical lexicon when the analysis found no breakthroughs
        breakthroughs = analysis.breakthroughs or detect_breakthrough_indicators(content)

        memory = Memory(
            user_id=user_id,
            content=content,
            occurred_on=occurred_on,
            embedding=embedding,
            emotional_resonance=analysis.emotional_resonance,
            depth_score=analysis.depth_score,
            patterns_mentioned=analysis.patterns,
            breakthrough_indicators=breakthroughs,
            context_tags=analysis.context_tags,
            importance=analysis.importance,
        )

        await self.store.append(memory)

        logger.info(
            "Memory ingested",
            user_id=user_id,
            memory_id=memory.id,
            importance=memory.importance,
            breakthroughs=len(memory.breakthrough_indicators)
        )
        return memory
