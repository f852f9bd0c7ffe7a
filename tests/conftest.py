from datetime import date, datetime, timezone
from typing import Dict, List, Optional
import asyncio

import pytest

from ensemble_router.domain.collaborators import (
    AgreementAnalyzer,
    EmbeddingProvider,
    MemoryStore,
    Synthesizer,
    Validator,
)
from ensemble_router.domain.models.ensemble import (
    AgreementAnalysis,
    CandidateResponse,
    ValidationCriteria,
)
from ensemble_router.domain.models.memory import Memory
from ensemble_router.domain.models.routing import (
    ConversationContext,
    ExpertId,
    PreferenceHints,
    ReadinessState,
    RouterContext,
)
from ensemble_router.domain.orchestration.expert.base_expert import BaseExpert

TODAY = date(2024, 6, 15)
DIMENSION = 4


class FakeEmbeddingProvider(EmbeddingProvider):
    """Returns fixed vectors per text; unknown text maps to a default vector"""

    def __init__(self, vectors: Optional[Dict[str, List[float]]] = None, default=None,
                 dimension: int = DIMENSION, error: Optional[Exception] = None, delay: float = 0.0):
        self.vectors = vectors or {}
        self.default = default if default is not None else [1.0] + [0.0] * (dimension - 1)
        self._dimension = dimension
        self.error = error
        self.delay = delay
        self.calls = 0

    @property
    def dimension(self) -> int:
        return self._dimension

    async def embed(self, text: str) -> List[float]:
        self.calls += 1
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return list(self.vectors.get(text, self.default))


class FailingStore(MemoryStore):
    async def list_by_user(self, user_id, deadline=None):
        raise ConnectionError("store offline")

    async def append(self, memory):
        raise ConnectionError("store offline")


class FakeExpert(BaseExpert):
    """Expert returning a fixed candidate, optionally after a delay or with an error"""

    def __init__(self, expert_id: ExpertId, content: str = "", confidence: float = 0.8,
                 delay: float = 0.0, error: Optional[Exception] = None, **annotations):
        super().__init__(expert_id, f"fake {expert_id.value}")
        self.content = content or f"response from {expert_id.value}"
        self.confidence = confidence
        self.delay = delay
        self.error = error
        self.annotations = annotations
        self.calls = 0

    async def generate(self, utterance, context, guidance=None):
        self.calls += 1
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return CandidateResponse(
            content=self.content,
            expert_id=self.expert_id,
            confidence=self.confidence,
            **self.annotations
        )


class FakeValidator(Validator):
    def __init__(self, criteria: Optional[ValidationCriteria] = None, error: Optional[Exception] = None):
        self.criteria = criteria or ValidationCriteria()
        self.error = error

    async def score(self, candidate, context, deadline=None):
        if self.error is not None:
            raise self.error
        return self.criteria


class FakeAgreementAnalyzer(AgreementAnalyzer):
    def __init__(self, analysis: Optional[AgreementAnalysis] = None, error: Optional[Exception] = None):
        self.analysis = analysis or AgreementAnalysis(agreement_level=0.5)
        self.error = error

    async def compare(self, candidates, deadline=None):
        if self.error is not None:
            raise self.error
        return self.analysis


class FakeSynthesizer(Synthesizer):
    def __init__(self, content: str = "merged response", error: Optional[Exception] = None):
        self.content = content
        self.error = error
        self.calls = 0

    async def synthesize(self, candidates, context, deadline=None):
        self.calls += 1
        if self.error is not None:
            raise self.error
        # Deliberately wrong attribution and confidence; the arbiter must fix both
        return CandidateResponse(content=self.content, expert_id=ExpertId.SOCRATIC_QUESTIONER, confidence=0.1)


@pytest.fixture
def memory_factory():
    counter = {"n": 0}

    def make(content: str = "statement", user_id: str = "user-1", occurred_on: date = TODAY,
             embedding: Optional[List[float]] = None, importance: float = 0.5, **fields) -> Memory:
        counter["n"] += 1
        fields.setdefault("created_at", datetime(2024, 6, 15, 12, 0, counter["n"] % 60, tzinfo=timezone.utc))
        return Memory(
            id=fields.pop("id", f"mem_{counter['n']:04d}"),
            user_id=user_id,
            content=content,
            occurred_on=occurred_on,
            embedding=embedding if embedding is not None else [0.0, 1.0, 0.0, 0.0],
            importance=importance,
            **fields
        )

    return make


@pytest.fixture
def context_factory():
    def make(stage: int = 1, readiness_state: ReadinessState = ReadinessState.CURIOUS,
             engagement_depth: float = 3.0, preferences: Optional[PreferenceHints] = None,
             **fields) -> RouterContext:
        return RouterContext(
            user_id=fields.pop("user_id", "user-1"),
            stage=stage,
            readiness_state=readiness_state,
            engagement_depth=engagement_depth,
            preferences=preferences or PreferenceHints(),
            conversation=fields.pop("conversation", ConversationContext()),
            **fields
        )

    return make
