from typing import List, Optional

from ensemble_router.domain.collaborators import Synthesizer
from ensemble_router.domain.deadline import Deadline
from ensemble_router.domain.models.ensemble import CandidateResponse
from ensemble_router.domain.models.routing import ExpertId, RouterContext


class ConcatenatingSynthesizer(Synthesizer):
    """Joins candidate contents in the order given"""

    def __init__(self, separator: str = "\n\n"):
        self.separator = separator

    async def synthesize(
        self,
        candidates: List[CandidateResponse],
        context: RouterContext,
        deadline: Optional[Deadline] = None
    ) -> CandidateResponse:
        return CandidateResponse(
            content=self.separator.join(c.content for c in candidates if c.content),
            expert_id=ExpertId.ENSEMBLE_SYNTHESIZED,
            confidence=max((c.confidence for c in candidates), default=0.5),
        )
