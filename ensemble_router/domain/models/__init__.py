from .memory import Memory, MemoryAnalysis, RetrievalResult, ScoredMemory
from .routing import (
    ConversationContext,
    EffectivenessUpdate,
    EnergyLevel,
    ExpertId,
    InteractionStyle,
    NeedsClassification,
    NeedType,
    PairEffectiveness,
    PreferenceHints,
    ProgressSnapshot,
    ReadinessState,
    RouterContext,
    RoutingDecision,
    RoutingFeedback,
    RoutingOutcome,
    TimingStrategy,
    UserIntention,
)
from .ensemble import (
    AgreementAnalysis,
    CandidateResponse,
    ConfidenceMetrics,
    DecisionProcess,
    DispatchResult,
    EnsembleDecision,
    ExpertGuidance,
    RecommendationStrength,
    ResolutionMethod,
    UnavailableExpert,
    ValidationCriteria,
)
