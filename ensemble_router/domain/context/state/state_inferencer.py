from abc import ABC, abstractmethod
from typing import List, Optional
import re

import structlog

from ensemble_router.domain.models.routing import (
    NeedsClassification,
    NeedType,
    ReadinessState,
    RouterContext,
)
from .lexicon import (
    ANALYSIS_INDICATORS,
    CHALLENGE_INDICATORS,
    CRISIS_INDICATORS,
    DEFAULT_READINESS_STATE,
    DESIGN_INDICATORS,
    LIFE_AREAS,
    READINESS_TRIGGERS,
    SUPPORT_INDICATORS,
    contains_any,
    find_triggers,
)

logger = structlog.get_logger(__name__)

NEUTRAL_LEVEL = 5.0
CRISIS_URGENCY = 9.0

_CLAUSE_RE = re.compile(r"[,;:]|\band\b|\bbut\b|\bbecause\b")


class StateInferencer(ABC):
    """Infers the user's readiness state from an utterance"""

    @abstractmethod
    def infer_readiness_state(self, text: str) -> ReadinessState:
        """Return the readiness state; must always return a value"""
        pass


class LexicalStateInferencer(StateInferencer):
    """Rule-table readiness inference: first matching state in priority order wins"""

    def __init__(self, rules=READINESS_TRIGGERS, default: ReadinessState = DEFAULT_READINESS_STATE):
        self.rules = rules
        self.default = default

    def infer_readiness_state(self, text: str) -> ReadinessState:
        for state, triggers in self.rules:
            matched = find_triggers(text, triggers)
            if matched:
                logger.debug("Readiness state inferred", state=state.value, triggers=matched)
                return state
        return self.default


class NeedsClassifier(ABC):
    """Classifies what an utterance asks of the system"""

    @abstractmethod
    async def classify(self, text: str, context: Optional[RouterContext] = None) -> NeedsClassification:
        pass


class LexicalNeedsClassifier(NeedsClassifier):
    """Keyword heuristics over the shared lexicon; neutral level 5 when nothing matches"""

    async def classify(self, text: str, context: Optional[RouterContext] = None) -> NeedsClassification:
        support_hits = find_triggers(text, SUPPORT_INDICATORS)

        return NeedsClassification(
            primary_need=self._primary_need(text, support_hits),
            urgency=CRISIS_URGENCY if contains_any(text, CRISIS_INDICATORS) else NEUTRAL_LEVEL,
            complexity=self._complexity(text),
            support_required=NEUTRAL_LEVEL + 1 + 2 * len(support_hits) if support_hits else NEUTRAL_LEVEL,
            deep_work_readiness=self._deep_work_readiness(context),
            focus_areas=find_triggers(text, LIFE_AREAS) or ["general"],
        )

    def _primary_need(self, text: str, support_hits: List[str]) -> NeedType:
        if support_hits:
            return NeedType.SUPPORT
        if contains_any(text, DESIGN_INDICATORS):
            return NeedType.DESIGN
        if contains_any(text, ANALYSIS_INDICATORS):
            return NeedType.ANALYSIS
        if contains_any(text, CHALLENGE_INDICATORS):
            return NeedType.CHALLENGE
        return NeedType.QUESTION

    def _complexity(self, text: str) -> float:
        """Long or multi-clause utterances are more complex"""

        words = len((text or "").split())
        clauses = len(_CLAUSE_RE.findall((text or "").lower()))

        complexity = NEUTRAL_LEVEL
        if words > 40:
            complexity += (words - 40) // 20 + 1
        if clauses > 3:
            complexity += clauses - 3
        return complexity

    def _deep_work_readiness(self, context: Optional[RouterContext]) -> float:
        if context is None:
            return NEUTRAL_LEVEL

        state = context.readiness_state
        if state in (ReadinessState.READY, ReadinessState.BREAKTHROUGH):
            return 8.0
        if state in (ReadinessState.RESISTANT, ReadinessState.OVERWHELMED):
            return 3.0
        return NEUTRAL_LEVEL
