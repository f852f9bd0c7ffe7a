from typing import Optional

from ensemble_router.domain.collaborators import Validator
from ensemble_router.domain.context.context_ranker import keyword_overlap
from ensemble_router.domain.context.state.lexicon import find_triggers
from ensemble_router.domain.deadline import Deadline
from ensemble_router.domain.models.ensemble import CandidateResponse, ValidationCriteria
from ensemble_router.domain.models.memory import NEUTRAL_SCALE_SCORE
from ensemble_router.domain.models.routing import ReadinessState, RouterContext
from ensemble_router.domain.routing.stage_tables import stage_profile

ACTION_WORDS = (
    "try", "start", "write", "schedule", "commit", "practice", "plan",
    "notice", "track", "step",
)
GENTLE_WORDS = ("feel", "understand", "okay", "gentle", "notice", "together")


class HeuristicValidator(Validator):
    """Lexical validation: a neutral baseline moved by cues in the candidate"""

    async def score(
        self,
        candidate: CandidateResponse,
        context: RouterContext,
        deadline: Optional[Deadline] = None
    ) -> ValidationCriteria:
        content = candidate.content.lower()
        profile = stage_profile(context.stage)

        stage_appropriateness = NEUTRAL_SCALE_SCORE
        if candidate.expert_id == profile.primary_expert or candidate.expert_id in profile.supporting_experts:
            stage_appropriateness += 2
        if context.conversation.topic != "general":
            stage_appropriateness += 2 * keyword_overlap(context.conversation.topic, content)

        emotional_sensitivity = NEUTRAL_SCALE_SCORE + min(3, content.count("?"))
        if context.readiness_state in (ReadinessState.OVERWHELMED, ReadinessState.RESISTANT):
            emotional_sensitivity += min(2, len(find_triggers(content, GENTLE_WORDS)))

        systems = len(candidate.system_connections) + len(candidate.patterns_identified)
        actions = len(find_triggers(content, ACTION_WORDS)) + len(candidate.suggested_follow_ups)
        breakthrough = len(candidate.leverage_points) + (1 if context.recent_breakthrough else 0)

        return ValidationCriteria(
            stage_appropriateness=stage_appropriateness,
            emotional_sensitivity=emotional_sensitivity,
            systems_thinking_level=NEUTRAL_SCALE_SCORE + min(4, systems),
            actionability=NEUTRAL_SCALE_SCORE + min(4, actions),
            breakthrough_potential=NEUTRAL_SCALE_SCORE + min(4, breakthrough),
        )
