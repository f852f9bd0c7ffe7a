from abc import ABC, abstractmethod
from typing import Any, Dict, Optional
from datetime import datetime, timezone

from ensemble_router.domain.models.ensemble import CandidateResponse, ExpertGuidance
from ensemble_router.domain.models.routing import ExpertId, RouterContext


class BaseExpert(ABC):
    """Base class for specialised response generators"""

    def __init__(self, expert_id: ExpertId, description: str):
        self.expert_id = expert_id
        self.description = description
        self.created_at = datetime.now(timezone.utc)
        self.last_active = self.created_at

    @abstractmethod
    async def generate(
        self,
        utterance: str,
        context: RouterContext,
        guidance: Optional[ExpertGuidance] = None
    ) -> CandidateResponse:
        """Produce a candidate response for the utterance"""
        pass

    def update_activity(self):
        """Update last activity timestamp"""
        self.last_active = datetime.now(timezone.utc)

    def get_info(self) -> Dict[str, Any]:
        """Get expert information"""
        return {
            "expert_id": self.expert_id.value,
            "description": self.description,
            "created_at": self.created_at.isoformat(),
            "last_active": self.last_active.isoformat()
        }
