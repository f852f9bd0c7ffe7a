from typing import List, Sequence, Set
import math
import re

import numpy as np

from ensemble_router.domain.errors import EmbeddingDimensionMismatch
from ensemble_router.domain.models.memory import Memory, ScoredMemory


_WORD_RE = re.compile(r"\w+")


def cosine_similarity(vec_a: Sequence[float], vec_b: Sequence[float]) -> float:
    """Cosine similarity of two vectors; 0.0 when either is empty or all-zero"""

    if len(vec_a) == 0 or len(vec_b) == 0:
        return 0.0
    if len(vec_a) != len(vec_b):
        raise EmbeddingDimensionMismatch(len(vec_a), len(vec_b))

    a = np.asarray(vec_a, dtype=np.float64)
    b = np.asarray(vec_b, dtype=np.float64)

    norm_product = float(np.dot(a, a)) * float(np.dot(b, b))
    if norm_product == 0.0:
        return 0.0

    similarity = float(np.dot(a, b)) / math.sqrt(norm_product)
    return max(-1.0, min(1.0, similarity))


def tokenize(text: str) -> List[str]:
    return _WORD_RE.findall((text or "").lower())


def content_words(text: str) -> Set[str]:
    return set(tokenize(text))


def jaccard_similarity(words_a: Set[str], words_b: Set[str]) -> float:
    union = words_a | words_b
    if not union:
        return 0.0
    return len(words_a & words_b) / len(union)


def keyword_overlap(query: str, content: str) -> float:
    """Keyword overlap relevance of content to query"""

    query_words = content_words(query)
    if not query_words:
        return 0.0

    overlap = len(query_words.intersection(content_words(content)))
    score = overlap / len(query_words)

    # Boost score if query appears as substring
    if query.lower() in (content or "").lower():
        score += 0.3

    return min(score, 1.0)


class MemoryRanker:
    """Ranks memories by a blend of semantic similarity and importance"""

    def __init__(self, similarity_weight: float = 0.7, importance_weight: float = 0.3):
        self.similarity_weight = similarity_weight
        self.importance_weight = importance_weight

    def score(self, query_embedding: Sequence[float], memory: Memory) -> ScoredMemory:
        """Score one memory against the query embedding"""

        try:
            similarity = cosine_similarity(query_embedding, memory.embedding)
        except EmbeddingDimensionMismatch as e:
            raise EmbeddingDimensionMismatch(e.expected, e.actual, memory.id) from None

        blended = self.similarity_weight * similarity + self.importance_weight * memory.importance
        return ScoredMemory(memory=memory, similarity=similarity, score=blended)

    def rank(self, query_embedding: Sequence[float], memories: List[Memory]) -> List[ScoredMemory]:
        """Rank memories, most relevant first

        Ties on score go to the most recent statement, then the most recently
        ingested one, then the identifier, so the order is total.
        """

        scored = [self.score(query_embedding, memory) for memory in memories]
        scored.sort(key=lambda s: (
            -s.score,
            -s.memory.occurred_on.toordinal(),
            -s.memory.created_at.timestamp(),
            s.memory.id,
        ))
        return scored
