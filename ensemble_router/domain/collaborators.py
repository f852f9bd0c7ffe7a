"""
Interfaces of the external collaborators the core consumes.

Every call that may suspend on the network or on storage accepts a Deadline so
cancellation composes across the whole request.
"""

from abc import ABC, abstractmethod
from typing import List, Optional

from .deadline import Deadline
from .models.memory import Memory
from .models.routing import (
    EffectivenessUpdate, RouterContext, RoutingDecision, RoutingFeedback, RoutingOutcome
)
from .models.ensemble import AgreementAnalysis, CandidateResponse, ValidationCriteria


class EmbeddingProvider(ABC):
    """Turns text into a fixed-dimension vector"""

    @property
    @abstractmethod
    def dimension(self) -> int:
        """Dimensionality of every vector this provider returns"""
        pass

    @abstractmethod
    async def embed(self, text: str) -> List[float]:
        """Embed a single text"""
        pass


class MemoryStore(ABC):
    """Append-only store of user memories"""

    @abstractmethod
    async def list_by_user(self, user_id: str, deadline: Optional[Deadline] = None) -> List[Memory]:
        """Return every memory of a user"""
        pass

    @abstractmethod
    async def append(self, memory: Memory) -> None:
        """Append a memory (ingestion path only)"""
        pass


class Validator(ABC):
    """Scores a candidate against the five validation criteria"""

    @abstractmethod
    async def score(
        self,
        candidate: CandidateResponse,
        context: RouterContext,
        deadline: Optional[Deadline] = None
    ) -> ValidationCriteria:
        pass


class AgreementAnalyzer(ABC):
    """Measures agreement between candidates"""

    @abstractmethod
    async def compare(
        self,
        candidates: List[CandidateResponse],
        deadline: Optional[Deadline] = None
    ) -> AgreementAnalysis:
        pass


class Synthesizer(ABC):
    """Merges several candidates into one new response"""

    @abstractmethod
    async def synthesize(
        self,
        candidates: List[CandidateResponse],
        context: RouterContext,
        deadline: Optional[Deadline] = None
    ) -> CandidateResponse:
        pass


class PreferenceLearner(ABC):
    """Write path for routing outcomes"""

    @abstractmethod
    async def record_outcome(
        self,
        decision: RoutingDecision,
        feedback: RoutingFeedback,
        outcome: RoutingOutcome
    ) -> EffectivenessUpdate:
        pass
