from typing import Any, Dict, List, Optional
from datetime import date
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, field_validator

from .memory import coerce_score


class ExpertId(str, Enum):
    """Specialised response generators the router can select"""
    SOCRATIC_QUESTIONER = "socratic_questioner"
    PATTERN_RECOGNIZER = "pattern_recognizer"
    LEVERAGE_ANALYZER = "leverage_analyzer"
    LIFE_ARCHITECTURE_MAPPER = "life_architecture_mapper"
    LIFE_DESIGN_GUIDE = "life_design_guide"
    VISION_ARCHITECT = "vision_architect"
    IMPLEMENTATION_GUIDE = "implementation_guide"
    INTEGRATION_SPECIALIST = "integration_specialist"
    MASTERY_GUIDE = "mastery_guide"
    EMPATHY_SPECIALIST = "empathy_specialist"
    # Identifies synthesized candidates, never routed to
    ENSEMBLE_SYNTHESIZED = "ensemble_synthesized"


class ReadinessState(str, Enum):
    """Short-term posture of the user toward deeper engagement"""
    RESISTANT = "resistant"
    CURIOUS = "curious"
    READY = "ready"
    OVERWHELMED = "overwhelmed"
    BREAKTHROUGH = "breakthrough"


class InteractionStyle(str, Enum):
    """Stylistic directive handed to the experts"""
    GENTLE = "gentle"
    DIRECT = "direct"
    CHALLENGING = "challenging"
    SUPPORTIVE = "supportive"
    ARCHITECTURAL = "architectural"


class TimingStrategy(str, Enum):
    """When the response should land"""
    IMMEDIATE = "immediate"
    PROGRESSIVE = "progressive"
    DELAYED = "delayed"
    CONDITIONAL = "conditional"


class NeedType(str, Enum):
    QUESTION = "question"
    ANALYSIS = "analysis"
    DESIGN = "design"
    SUPPORT = "support"
    CHALLENGE = "challenge"


class UserIntention(str, Enum):
    EXPLORATION = "exploration"
    PROBLEM_SOLVING = "problem_solving"
    UNDERSTANDING = "understanding"
    IMPLEMENTATION = "implementation"


class EnergyLevel(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class NeedsClassification(BaseModel):
    """What the utterance asks of the system, each level 1-10"""
    model_config = ConfigDict(frozen=True)

    primary_need: NeedType = NeedType.QUESTION
    urgency: float = 5.0
    complexity: float = 5.0
    support_required: float = 5.0
    deep_work_readiness: float = 5.0
    focus_areas: List[str] = Field(default_factory=lambda: ["general"])

    @field_validator("urgency", "complexity", "support_required", "deep_work_readiness", mode="before")
    @classmethod
    def clamp_level(cls, value: Any) -> float:
        return coerce_score(value, 5.0, 1.0, 10.0)


class PairEffectiveness(BaseModel):
    """Learned effectiveness of an expert/style combination"""
    model_config = ConfigDict(frozen=True)

    expert: ExpertId
    style: InteractionStyle
    effectiveness: float = Field(ge=0.0, le=1.0)


class PreferenceHints(BaseModel):
    """Learned routing preferences for one user"""
    model_config = ConfigDict(frozen=True)

    preferred_experts: List[ExpertId] = Field(default_factory=list)
    effective_styles: List[InteractionStyle] = Field(default_factory=list)
    breakthrough_triggers: List[str] = Field(default_factory=list)
    resistance_patterns: List[str] = Field(default_factory=list)
    pair_effectiveness: List[PairEffectiveness] = Field(default_factory=list)


class ConversationContext(BaseModel):
    """Metadata about the ongoing conversation"""
    model_config = ConfigDict(frozen=True)

    turn_depth: int = Field(default=1, ge=1)
    topic: str = "general"
    intention: UserIntention = UserIntention.EXPLORATION
    energy_level: EnergyLevel = EnergyLevel.HIGH


class ProgressSnapshot(BaseModel):
    """Program progress read from the external profile store"""
    stage: int = Field(default=1, ge=1, description="Ordinal progression stage")
    program_start: date
    recent_depths: List[float] = Field(default_factory=list, description="Depth levels of recent reflections, newest first")


class RouterContext(BaseModel):
    """Per-request routing context, assembled fresh for every call"""
    model_config = ConfigDict(frozen=True)

    user_id: str
    stage: int = Field(ge=1)
    stage_progress: float = Field(default=0.0, ge=0.0, le=1.0)
    days_in_program: int = Field(default=0, ge=0)
    engagement_depth: float = Field(default=3.0, description="Rolling average reflection depth")
    recent_breakthrough: bool = False
    readiness_state: ReadinessState = ReadinessState.CURIOUS
    conversation: ConversationContext = Field(default_factory=ConversationContext)
    preferences: PreferenceHints = Field(default_factory=PreferenceHints)


class RoutingDecision(BaseModel):
    """Structured routing output consumed by the ensemble dispatcher"""
    model_config = ConfigDict(frozen=True)

    primary_expert: ExpertId
    supporting_experts: List[ExpertId] = Field(default_factory=list)
    interaction_style: InteractionStyle
    depth_level: int = Field(ge=1, le=10)
    timing: TimingStrategy
    expected_outcomes: List[str] = Field(default_factory=list)
    confidence: float = Field(default=0.8, ge=0.0, le=1.0)
    rationale: str = ""

    @property
    def experts(self) -> List[ExpertId]:
        """Primary followed by supporting experts, in routing order"""
        return [self.primary_expert] + [e for e in self.supporting_experts if e != self.primary_expert]


class RoutingFeedback(BaseModel):
    """User feedback on a routed response"""
    helpful: bool = False
    appropriate_depth: bool = False
    comments: Optional[str] = None


class RoutingOutcome(BaseModel):
    """Observed outcome after a routed response"""
    breakthrough_achieved: bool = False
    user_engaged: bool = False


class EffectivenessUpdate(BaseModel):
    """Learning signal written back through the preference-learning collaborator"""
    effectiveness_score: float = Field(ge=0.0, le=1.0)
    expert: ExpertId
    style: InteractionStyle
    preference_updates: Dict[str, List[str]] = Field(default_factory=dict)
    pattern_insights: List[str] = Field(default_factory=list)
