from typing import Any, Dict, List, Optional

import structlog

from ensemble_router.domain.deadline import Deadline, ensure_deadline
from ensemble_router.domain.errors import ConfigurationFault, ExpertNotRegistered
from ensemble_router.domain.models.ensemble import CandidateResponse, ExpertGuidance
from ensemble_router.domain.models.routing import ExpertId, RouterContext
from .base_expert import BaseExpert

logger = structlog.get_logger(__name__)


class ExpertRegistry:
    """Registry of expert implementations; the Expert collaborator of the dispatcher"""

    def __init__(self):
        self.experts: Dict[ExpertId, BaseExpert] = {}

    def register_expert(self, expert: BaseExpert):
        """Register an expert implementation"""

        if expert.expert_id == ExpertId.ENSEMBLE_SYNTHESIZED:
            raise ConfigurationFault("ensemble_synthesized is reserved for synthesized candidates")

        self.experts[expert.expert_id] = expert
        logger.debug("Expert registered", expert_id=expert.expert_id.value)

    def get_expert(self, expert_id: ExpertId) -> Optional[BaseExpert]:
        return self.experts.get(expert_id)

    def available_experts(self) -> List[ExpertId]:
        return list(self.experts)

    def get_experts_info(self) -> List[Dict[str, Any]]:
        """Get information about every registered expert"""
        return [expert.get_info() for expert in self.experts.values()]

    async def generate(
        self,
        expert_id: ExpertId,
        utterance: str,
        context: RouterContext,
        deadline: Optional[Deadline] = None,
        guidance: Optional[ExpertGuidance] = None
    ) -> CandidateResponse:
        """Invoke one expert under the caller's deadline"""

        expert = self.experts.get(expert_id)
        if expert is None:
            raise ExpertNotRegistered(expert_id.value)

        expert.update_activity()
        candidate = await ensure_deadline(deadline).run(
            expert.generate(utterance, context, guidance),
            f"expert:{expert_id.value}"
        )

        # The candidate is attributed to the expert that was asked
        if candidate.expert_id != expert_id:
            candidate = candidate.model_copy(update={"expert_id": expert_id})
        return candidate
