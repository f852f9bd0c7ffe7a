"""
Static routing tables.

Stage profiles give the default experts, style and depth ceiling for each
progression stage; ceilings never decrease from one stage to the next. State
adjustments give the depth delta and overrides for each readiness state.
"""

from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from ensemble_router.domain.errors import ConfigurationFault
from ensemble_router.domain.models.routing import (
    ExpertId,
    InteractionStyle,
    ReadinessState,
    TimingStrategy,
)


class StageProfile(BaseModel):
    """Routing defaults for one progression stage"""
    model_config = ConfigDict(frozen=True)

    stage: int
    primary_expert: ExpertId
    supporting_experts: List[ExpertId]
    interaction_style: InteractionStyle
    depth_ceiling: int = Field(ge=1, le=10)
    expected_outcomes: List[str]


class StateAdjustment(BaseModel):
    """Routing adjustment applied for one readiness state"""
    model_config = ConfigDict(frozen=True)

    depth_delta: int
    interaction_style: InteractionStyle
    timing: Optional[TimingStrategy] = None
    preferred_expert: Optional[ExpertId] = None


STAGE_PROFILES: Dict[int, StageProfile] = {
    profile.stage: profile for profile in (
        StageProfile(
            stage=1,
            primary_expert=ExpertId.SOCRATIC_QUESTIONER,
            supporting_experts=[ExpertId.PATTERN_RECOGNIZER],
            interaction_style=InteractionStyle.GENTLE,
            depth_ceiling=6,
            expected_outcomes=["pattern_awareness", "recognition_of_two_types"],
        ),
        StageProfile(
            stage=2,
            primary_expert=ExpertId.LEVERAGE_ANALYZER,
            supporting_experts=[ExpertId.SOCRATIC_QUESTIONER],
            interaction_style=InteractionStyle.SUPPORTIVE,
            depth_ceiling=7,
            expected_outcomes=["leverage_understanding", "systems_vs_goals_clarity"],
        ),
        StageProfile(
            stage=3,
            primary_expert=ExpertId.LIFE_ARCHITECTURE_MAPPER,
            supporting_experts=[ExpertId.PATTERN_RECOGNIZER],
            interaction_style=InteractionStyle.DIRECT,
            depth_ceiling=8,
            expected_outcomes=["meta_thinking_development", "root_cause_focus"],
        ),
        StageProfile(
            stage=4,
            primary_expert=ExpertId.LIFE_DESIGN_GUIDE,
            supporting_experts=[ExpertId.LEVERAGE_ANALYZER],
            interaction_style=InteractionStyle.CHALLENGING,
            depth_ceiling=9,
            expected_outcomes=["system_design_skills", "architectural_thinking"],
        ),
        StageProfile(
            stage=5,
            primary_expert=ExpertId.VISION_ARCHITECT,
            supporting_experts=[ExpertId.LIFE_DESIGN_GUIDE],
            interaction_style=InteractionStyle.ARCHITECTURAL,
            depth_ceiling=9,
            expected_outcomes=["vision_clarity", "possibility_expansion"],
        ),
        StageProfile(
            stage=6,
            primary_expert=ExpertId.IMPLEMENTATION_GUIDE,
            supporting_experts=[ExpertId.LIFE_ARCHITECTURE_MAPPER],
            interaction_style=InteractionStyle.DIRECT,
            depth_ceiling=10,
            expected_outcomes=["implementation_mastery", "daily_architecture"],
        ),
        StageProfile(
            stage=7,
            primary_expert=ExpertId.INTEGRATION_SPECIALIST,
            supporting_experts=[ExpertId.MASTERY_GUIDE],
            interaction_style=InteractionStyle.ARCHITECTURAL,
            depth_ceiling=10,
            expected_outcomes=["integration_completion", "teaching_ability"],
        ),
    )
}

MIN_STAGE = min(STAGE_PROFILES)
MAX_STAGE = max(STAGE_PROFILES)

STATE_ADJUSTMENTS: Dict[ReadinessState, StateAdjustment] = {
    ReadinessState.RESISTANT: StateAdjustment(
        depth_delta=-2,
        interaction_style=InteractionStyle.GENTLE,
        timing=TimingStrategy.DELAYED,
        preferred_expert=ExpertId.SOCRATIC_QUESTIONER,
    ),
    ReadinessState.CURIOUS: StateAdjustment(
        depth_delta=1,
        interaction_style=InteractionStyle.SUPPORTIVE,
        timing=TimingStrategy.IMMEDIATE,
    ),
    ReadinessState.READY: StateAdjustment(
        depth_delta=2,
        interaction_style=InteractionStyle.DIRECT,
        timing=TimingStrategy.IMMEDIATE,
        preferred_expert=ExpertId.LIFE_DESIGN_GUIDE,
    ),
    ReadinessState.OVERWHELMED: StateAdjustment(
        depth_delta=-3,
        interaction_style=InteractionStyle.GENTLE,
        timing=TimingStrategy.PROGRESSIVE,
        preferred_expert=ExpertId.PATTERN_RECOGNIZER,
    ),
    ReadinessState.BREAKTHROUGH: StateAdjustment(
        depth_delta=3,
        interaction_style=InteractionStyle.CHALLENGING,
        timing=TimingStrategy.IMMEDIATE,
        preferred_expert=ExpertId.LEVERAGE_ANALYZER,
    ),
}


def validate_tables() -> None:
    """Check the tables are exhaustive over their enums and ceilings are monotonic"""

    missing = set(ReadinessState) - set(STATE_ADJUSTMENTS)
    if missing:
        raise ConfigurationFault(f"No state adjustment for: {sorted(s.value for s in missing)}")

    stages = sorted(STAGE_PROFILES)
    if stages != list(range(MIN_STAGE, MAX_STAGE + 1)):
        raise ConfigurationFault(f"Stage table has gaps: {stages}")

    ceilings = [STAGE_PROFILES[s].depth_ceiling for s in stages]
    if any(later < earlier for earlier, later in zip(ceilings, ceilings[1:])):
        raise ConfigurationFault(f"Stage depth ceilings must not decrease: {ceilings}")


validate_tables()


def stage_profile(stage: int) -> StageProfile:
    """Profile for a stage; out-of-range stages clamp to the nearest defined one"""
    return STAGE_PROFILES[max(MIN_STAGE, min(MAX_STAGE, stage))]


def stage_timing(stage: int, recent_breakthrough: bool) -> TimingStrategy:
    if stage <= 2:
        return TimingStrategy.PROGRESSIVE
    if stage <= 4:
        return TimingStrategy.IMMEDIATE
    if recent_breakthrough:
        return TimingStrategy.IMMEDIATE
    return TimingStrategy.CONDITIONAL
