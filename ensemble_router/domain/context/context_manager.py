from typing import List, Optional, Sequence
from datetime import date

import structlog
from langchain_core.messages import BaseMessage

from ensemble_router.domain.models.routing import (
    ConversationContext,
    EnergyLevel,
    PreferenceHints,
    ProgressSnapshot,
    ReadinessState,
    RouterContext,
    UserIntention,
)
from .state.lexicon import INTENTION_KEYWORDS, LIFE_AREAS, contains_any, find_triggers

logger = structlog.get_logger(__name__)

DEFAULT_ENGAGEMENT_DEPTH = 3.0
BREAKTHROUGH_DEPTH_JUMP = 2.0


def engagement_depth(recent_depths: Sequence[float]) -> float:
    """Rolling average reflection depth"""

    if not recent_depths:
        return DEFAULT_ENGAGEMENT_DEPTH
    return sum(recent_depths) / len(recent_depths)


def stage_progress(engagement: float, days_in_program: int) -> float:
    return max(0.0, min(1.0, (engagement / 10) * (days_in_program / 30)))


def has_recent_breakthrough(recent_depths: Sequence[float]) -> bool:
    """Newest three reflections run markedly deeper than the three before them"""

    recent = list(recent_depths[:3])
    earlier = list(recent_depths[3:6])
    if not recent or not earlier:
        return False

    return sum(recent) / len(recent) - sum(earlier) / len(earlier) > BREAKTHROUGH_DEPTH_JUMP


def detect_topic(text: str) -> str:
    topics = find_triggers(text, LIFE_AREAS)
    return topics[0] if topics else "general"


def detect_intention(text: str) -> UserIntention:
    for intention, keywords in INTENTION_KEYWORDS:
        if contains_any(text, keywords):
            return intention
    return UserIntention.EXPLORATION


def energy_for_turn(turn_depth: int) -> EnergyLevel:
    if turn_depth < 3:
        return EnergyLevel.HIGH
    if turn_depth < 6:
        return EnergyLevel.MEDIUM
    return EnergyLevel.LOW


class ContextBuilder:
    """Assembles a fresh RouterContext for every request"""

    def build(
        self,
        user_id: str,
        utterance: str,
        progress: ProgressSnapshot,
        readiness_state: ReadinessState,
        history: Optional[List[BaseMessage]] = None,
        preferences: Optional[PreferenceHints] = None,
        today: Optional[date] = None
    ) -> RouterContext:
        """Build the routing context from progress, inferred state and conversation"""

        today = today or date.today()
        days = max(0, (today - progress.program_start).days)
        engagement = engagement_depth(progress.recent_depths)
        turn_depth = max(1, len(history or []))

        context = RouterContext(
            user_id=user_id,
            stage=progress.stage,
            stage_progress=stage_progress(engagement, days),
            days_in_program=days,
            engagement_depth=engagement,
            recent_breakthrough=has_recent_breakthrough(progress.recent_depths),
            readiness_state=readiness_state,
            conversation=ConversationContext(
                turn_depth=turn_depth,
                topic=detect_topic(utterance),
                intention=detect_intention(utterance),
                energy_level=energy_for_turn(turn_depth),
            ),
            preferences=preferences or PreferenceHints(),
        )

        logger.debug(
            "Router context built",
            user_id=user_id,
            stage=context.stage,
            readiness_state=readiness_state.value,
            engagement_depth=round(engagement, 2),
            turn_depth=turn_depth
        )
        return context
