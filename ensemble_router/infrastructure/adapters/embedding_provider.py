from typing import List
import hashlib

import numpy as np

from ensemble_router.domain.collaborators import EmbeddingProvider
from ensemble_router.domain.context.context_ranker import tokenize


class HashingEmbeddingProvider(EmbeddingProvider):
    """Deterministic bag-of-words hashing embedding, L2-normalised"""

    def __init__(self, dimension: int = 384):
        self._dimension = dimension

    @property
    def dimension(self) -> int:
        return self._dimension

    async def embed(self, text: str) -> List[float]:
        vector = np.zeros(self._dimension, dtype=np.float64)

        for token in tokenize(text):
            digest = hashlib.sha256(token.encode("utf-8")).digest()
            index = int.from_bytes(digest[:4], "big") % self._dimension
            sign = 1.0 if digest[4] & 1 else -1.0
            vector[index] += sign

        norm = float(np.linalg.norm(vector))
        if norm == 0.0:
            return vector.tolist()
        return (vector / norm).tolist()
