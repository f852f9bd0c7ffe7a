import structlog

from ensemble_router.domain.collaborators import PreferenceLearner
from ensemble_router.domain.models.routing import (
    EffectivenessUpdate,
    RoutingDecision,
    RoutingFeedback,
    RoutingOutcome,
)
from ensemble_router.domain.routing.preference_learning import calculate_effectiveness

logger = structlog.get_logger(__name__)


class LoggingPreferenceLearner(PreferenceLearner):
    """Scores the outcome and logs the update instead of persisting it"""

    async def record_outcome(
        self,
        decision: RoutingDecision,
        feedback: RoutingFeedback,
        outcome: RoutingOutcome
    ) -> EffectivenessUpdate:
        update = calculate_effectiveness(decision, feedback, outcome)
        logger.info(
            "Routing outcome recorded",
            expert=update.expert.value,
            style=update.style.value,
            effectiveness=round(update.effectiveness_score, 2),
            preference_updates=update.preference_updates
        )
        return update
