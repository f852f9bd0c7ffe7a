from typing import Dict, List, Set
import asyncio

import structlog

from ensemble_router.domain.collaborators import PreferenceLearner
from ensemble_router.domain.models.routing import (
    EffectivenessUpdate,
    RoutingDecision,
    RoutingFeedback,
    RoutingOutcome,
)

logger = structlog.get_logger(__name__)

BASE_EFFECTIVENESS = 0.5
REINFORCE_ABOVE = 0.8
AVOID_BELOW = 0.4


def calculate_effectiveness(
    decision: RoutingDecision,
    feedback: RoutingFeedback,
    outcome: RoutingOutcome
) -> EffectivenessUpdate:
    """Score how well a routing decision worked and derive preference updates"""

    score = BASE_EFFECTIVENESS
    if feedback.helpful:
        score += 0.3
    if feedback.appropriate_depth:
        score += 0.2
    if outcome.breakthrough_achieved:
        score += 0.3
    if outcome.user_engaged:
        score += 0.2
    score = min(1.0, score)

    expert = decision.primary_expert.value
    style = decision.interaction_style.value

    updates: Dict[str, List[str]] = {}
    if score > REINFORCE_ABOVE:
        updates["preferred_experts"] = [expert]
        updates["effective_styles"] = [style]
    elif score < AVOID_BELOW:
        updates["avoid_experts"] = [expert]
        updates["avoid_styles"] = [style]

    return EffectivenessUpdate(
        effectiveness_score=score,
        expert=decision.primary_expert,
        style=decision.interaction_style,
        preference_updates=updates,
        pattern_insights=[
            f"Routing effectiveness: {score * 100:.0f}%",
            f"Expert used: {expert}",
            f"Interaction style: {style}",
        ],
    )


class RoutingFeedbackRecorder:
    """Fire-and-forget write path from routing outcomes to the preference learner"""

    def __init__(self, learner: PreferenceLearner):
        self.learner = learner
        self._pending: Set[asyncio.Task] = set()

    async def record_outcome(
        self,
        decision: RoutingDecision,
        feedback: RoutingFeedback,
        outcome: RoutingOutcome
    ) -> EffectivenessUpdate:
        """Compute the effectiveness update and hand the outcome to the learner in the background"""

        update = calculate_effectiveness(decision, feedback, outcome)

        task = asyncio.create_task(self._deliver(decision, feedback, outcome))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

        return update

    async def drain(self) -> None:
        """Wait for every in-flight delivery"""

        if self._pending:
            await asyncio.gather(*list(self._pending))

    async def _deliver(
        self,
        decision: RoutingDecision,
        feedback: RoutingFeedback,
        outcome: RoutingOutcome
    ) -> None:
        try:
            await self.learner.record_outcome(decision, feedback, outcome)
        except Exception as e:
            logger.warning(
                "Preference learner failed",
                expert=decision.primary_expert.value,
                error=str(e),
                error_type=type(e).__name__
            )
