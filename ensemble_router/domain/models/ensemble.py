from typing import Any, Dict, List, Optional
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, field_validator

from .memory import NEUTRAL_SCALE_SCORE, coerce_score
from .routing import ExpertId, InteractionStyle


class ResolutionMethod(str, Enum):
    """How the arbiter settled on the final response"""
    CONSENSUS = "consensus"
    WEIGHTED_VOTE = "weighted_vote"
    EXPERT_OVERRIDE = "expert_override"
    USER_CHOICE = "user_choice"


class RecommendationStrength(str, Enum):
    STRONG = "strong"
    MODERATE = "moderate"
    WEAK = "weak"
    REQUIRES_USER_INPUT = "requires_user_input"


class CandidateResponse(BaseModel):
    """Typed result of one expert invocation"""
    model_config = ConfigDict(frozen=True)

    content: str
    expert_id: ExpertId
    confidence: float = Field(default=0.5, ge=0.0, le=1.0)
    patterns_identified: List[str] = Field(default_factory=list)
    leverage_points: List[str] = Field(default_factory=list)
    system_connections: List[str] = Field(default_factory=list)
    suggested_follow_ups: List[str] = Field(default_factory=list)

    @field_validator("confidence", mode="before")
    @classmethod
    def clamp_confidence(cls, value: Any) -> float:
        return coerce_score(value, 0.5, 0.0, 1.0)


class ValidationCriteria(BaseModel):
    """Five 0-10 quality criteria scored per candidate"""
    model_config = ConfigDict(frozen=True)

    stage_appropriateness: float = NEUTRAL_SCALE_SCORE
    emotional_sensitivity: float = NEUTRAL_SCALE_SCORE
    systems_thinking_level: float = NEUTRAL_SCALE_SCORE
    actionability: float = NEUTRAL_SCALE_SCORE
    breakthrough_potential: float = NEUTRAL_SCALE_SCORE

    @field_validator("*", mode="before")
    @classmethod
    def clamp_scores(cls, value: Any) -> float:
        return coerce_score(value, NEUTRAL_SCALE_SCORE, 0.0, 10.0)

    @classmethod
    def neutral(cls) -> "ValidationCriteria":
        return cls()

    def normalized_mean(self) -> float:
        """Average of the five criteria on a 0-1 scale"""
        values = [
            self.stage_appropriateness,
            self.emotional_sensitivity,
            self.systems_thinking_level,
            self.actionability,
            self.breakthrough_potential,
        ]
        return sum(values) / len(values) / 10.0


class AgreementAnalysis(BaseModel):
    """Inter-expert agreement over a candidate set"""
    agreement_level: float = Field(default=0.5, ge=0.0, le=1.0)
    consensus_points: List[str] = Field(default_factory=list)
    conflict_points: List[str] = Field(default_factory=list)
    dominant_perspective: str = "none"

    @field_validator("agreement_level", mode="before")
    @classmethod
    def clamp_agreement(cls, value: Any) -> float:
        return coerce_score(value, 0.5, 0.0, 1.0)

    @property
    def has_conflicts(self) -> bool:
        return len(self.conflict_points) > 0


class ConfidenceMetrics(BaseModel):
    overall_confidence: float = Field(ge=0.0, le=1.0)
    expert_agreement: float = Field(ge=0.0, le=1.0)
    response_coherence: float = Field(ge=0.0, le=1.0)
    contextual_relevance: float = Field(ge=0.0, le=1.0)
    stage_alignment: float = Field(ge=0.0, le=1.0)


class UnavailableExpert(BaseModel):
    expert_id: ExpertId
    reason: str


class DecisionProcess(BaseModel):
    """Record of how the final decision was reached"""
    experts_consulted: List[ExpertId] = Field(default_factory=list)
    consensus_achieved: bool = False
    conflicting_viewpoints: List[str] = Field(default_factory=list)
    unavailable_experts: List[UnavailableExpert] = Field(default_factory=list)
    resolution_method: ResolutionMethod


class EnsembleDecision(BaseModel):
    """Final arbitration output"""
    final_response: Optional[CandidateResponse] = Field(
        None, description="Selected or synthesized response; None when the user must choose"
    )
    confidence_metrics: ConfidenceMetrics
    decision_process: DecisionProcess
    alternative_options: List[CandidateResponse] = Field(default_factory=list)
    recommendation_strength: RecommendationStrength

    @property
    def requires_user_input(self) -> bool:
        return self.recommendation_strength == RecommendationStrength.REQUIRES_USER_INPUT

    def get_decision_summary(self) -> Dict[str, Any]:
        """Get a summary of the decision for logging"""
        return {
            "final_expert": self.final_response.expert_id.value if self.final_response else None,
            "resolution_method": self.decision_process.resolution_method.value,
            "recommendation_strength": self.recommendation_strength.value,
            "overall_confidence": round(self.confidence_metrics.overall_confidence, 3),
            "alternatives": len(self.alternative_options),
            "unavailable": [u.expert_id.value for u in self.decision_process.unavailable_experts],
        }


class ExpertGuidance(BaseModel):
    """Directives and memory context handed to every expert of the ensemble"""
    model_config = ConfigDict(frozen=True)

    interaction_style: InteractionStyle
    depth_level: int = Field(ge=1, le=10)
    memory_summary: str = ""
    memory_references: List[str] = Field(default_factory=list)


class DispatchResult(BaseModel):
    """Candidates collected from one fan-out, in completion order"""
    experts_consulted: List[ExpertId] = Field(default_factory=list)
    candidates: List[CandidateResponse] = Field(default_factory=list)
    unavailable: List[UnavailableExpert] = Field(default_factory=list)
