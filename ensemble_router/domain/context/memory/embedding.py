from typing import List, Optional

import structlog

from ensemble_router.domain.collaborators import EmbeddingProvider
from ensemble_router.domain.deadline import Deadline, ensure_deadline
from ensemble_router.domain.errors import ConfigurationFault, EmbeddingDimensionMismatch

logger = structlog.get_logger(__name__)


class SafeEmbeddingProvider:
    """Embedding provider wrapper that degrades to a zero vector instead of failing"""

    def __init__(self, provider: EmbeddingProvider, dimension: int, timeout: Optional[float] = None):
        self.provider = provider
        self.dimension = dimension
        self.timeout = timeout

    def zero_vector(self) -> List[float]:
        return [0.0] * self.dimension

    async def embed(self, text: str, deadline: Optional[Deadline] = None) -> List[float]:
        """Embed text; transient failures return the zero vector"""

        if not text or not text.strip():
            logger.warning("Empty text provided for embedding")
            return self.zero_vector()

        scope = ensure_deadline(deadline).child(self.timeout)
        try:
            vector = await scope.run(self.provider.embed(text), "embedding")
        except ConfigurationFault:
            raise
        except Exception as e:
            logger.warning("Embedding failed, using zero vector", error=str(e), error_type=type(e).__name__)
            return self.zero_vector()

        if len(vector) != self.dimension:
            raise EmbeddingDimensionMismatch(self.dimension, len(vector))

        return [float(v) for v in vector]
