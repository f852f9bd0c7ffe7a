from typing import Iterable, List, Optional, Tuple

import structlog

from ensemble_router.domain.context.state.lexicon import ADJUSTMENT_INDICATORS, contains_any
from ensemble_router.domain.models.routing import (
    ExpertId,
    InteractionStyle,
    NeedsClassification,
    PreferenceHints,
    RouterContext,
    RoutingDecision,
    TimingStrategy,
)
from ensemble_router.infrastructure.observability.logging import engine_logger
from .stage_tables import STATE_ADJUSTMENTS, stage_profile, stage_timing

logger = structlog.get_logger(__name__)

DEFAULT_CONFIDENCE = 0.8
LOW_EFFECTIVENESS = 0.6
DERIVED_EFFECTIVENESS = {2: 0.8, 1: 0.6, 0: 0.4}

URGENCY_THRESHOLD = 8
COMPLEXITY_THRESHOLD = 8
LOW_ENGAGEMENT = 7
SUPPORT_THRESHOLD = 7

URGENCY_EXPERT = ExpertId.LEVERAGE_ANALYZER
SUPPORT_EXPERT = ExpertId.EMPATHY_SPECIALIST
RETHINK_EXPERT = ExpertId.SOCRATIC_QUESTIONER


def clamp_depth(depth: int) -> int:
    return max(1, min(10, int(depth)))


def normalize_supporting(primary: ExpertId, supporting: Iterable[ExpertId]) -> List[ExpertId]:
    """Drop duplicates, the primary expert and non-routable identifiers"""

    result: List[ExpertId] = []
    for expert in supporting:
        if expert in (primary, ExpertId.ENSEMBLE_SYNTHESIZED) or expert in result:
            continue
        result.append(expert)
    return result


def pair_effectiveness(
    preferences: PreferenceHints,
    expert: ExpertId,
    style: InteractionStyle
) -> Optional[float]:
    """Known effectiveness of an expert/style pair, None when nothing is known"""

    for record in preferences.pair_effectiveness:
        if record.expert == expert and record.style == style:
            return record.effectiveness

    if preferences.preferred_experts and preferences.effective_styles:
        matches = int(expert in preferences.preferred_experts) + int(style in preferences.effective_styles)
        return DERIVED_EFFECTIVENESS[matches]

    return None


def best_known_pair(preferences: PreferenceHints) -> Optional[Tuple[ExpertId, InteractionStyle, float]]:
    """Highest-effectiveness pair on record, else the first preferred expert and style"""

    records = [
        r for r in preferences.pair_effectiveness
        if r.expert != ExpertId.ENSEMBLE_SYNTHESIZED
    ]
    if records:
        best = max(records, key=lambda r: r.effectiveness)
        return best.expert, best.style, best.effectiveness

    routable = [e for e in preferences.preferred_experts if e != ExpertId.ENSEMBLE_SYNTHESIZED]
    if routable and preferences.effective_styles:
        return (
            routable[0],
            preferences.effective_styles[0],
            DERIVED_EFFECTIVENESS[2],
        )

    return None


class RoutingEngine:
    """Deterministic routing: stage lookup, state, needs and history adjustments"""

    def decide(self, context: RouterContext, needs: NeedsClassification) -> RoutingDecision:
        """Combine stage, readiness state and needs into a routing decision"""

        # Stage lookup
        profile = stage_profile(context.stage)
        primary = profile.primary_expert
        supporting = list(profile.supporting_experts)
        style = profile.interaction_style
        depth = clamp_depth(min(profile.depth_ceiling, round(context.engagement_depth) + 2))
        timing = stage_timing(context.stage, context.recent_breakthrough)
        rationale = [f"stage {profile.stage} default {primary.value}"]

        # Readiness state
        adjustment = STATE_ADJUSTMENTS[context.readiness_state]
        depth = clamp_depth(depth + adjustment.depth_delta)
        style = adjustment.interaction_style
        # A state timing replaces the stage timing
        if adjustment.timing is not None:
            timing = adjustment.timing
        if adjustment.preferred_expert is not None:
            supporting.append(adjustment.preferred_expert)
        supporting = normalize_supporting(primary, supporting)
        rationale.append(f"{context.readiness_state.value} state ({adjustment.depth_delta:+d} depth, {style.value})")

        # Needs
        if needs.urgency > URGENCY_THRESHOLD:
            timing = TimingStrategy.IMMEDIATE
            if primary != URGENCY_EXPERT:
                supporting = normalize_supporting(URGENCY_EXPERT, [primary] + supporting)
                primary = URGENCY_EXPERT
            rationale.append("urgent need")

        if needs.complexity > COMPLEXITY_THRESHOLD and context.engagement_depth < LOW_ENGAGEMENT:
            depth = clamp_depth(depth - 2)
            style = InteractionStyle.GENTLE
            rationale.append("complexity reduced for low engagement")

        if needs.support_required > SUPPORT_THRESHOLD:
            supporting = normalize_supporting(primary, [SUPPORT_EXPERT] + supporting)
            rationale.append("emotional support added")

        # Historical preferences
        confidence = DEFAULT_CONFIDENCE
        known = pair_effectiveness(context.preferences, primary, style)
        if known is not None and known < LOW_EFFECTIVENESS:
            substitute = best_known_pair(context.preferences)
            if substitute is not None and substitute[2] > known:
                primary, style, confidence = substitute
                supporting = normalize_supporting(primary, supporting)
                rationale.append(
                    f"historical effectiveness adjustment ({known:.2f} -> {confidence:.2f})"
                )

        decision = RoutingDecision(
            primary_expert=primary,
            supporting_experts=supporting,
            interaction_style=style,
            depth_level=clamp_depth(depth),
            timing=timing,
            expected_outcomes=list(profile.expected_outcomes),
            confidence=confidence,
            rationale="; ".join(rationale),
        )

        engine_logger.log_routing_decision(
            user_id=context.user_id,
            stage=context.stage,
            readiness_state=context.readiness_state.value,
            decision=decision.model_dump(mode="json", exclude={"rationale", "expected_outcomes"})
        )
        return decision

    def adapt(self, decision: RoutingDecision, user_response: str) -> RoutingDecision:
        """Adjust a decision in real time from the user's reaction to a response"""

        issue = next(
            (name for name, indicators in ADJUSTMENT_INDICATORS.items() if contains_any(user_response, indicators)),
            None
        )
        if issue is None:
            return decision

        primary = decision.primary_expert
        style = decision.interaction_style
        depth = decision.depth_level

        if issue == "too_complex":
            depth, style = depth - 2, InteractionStyle.GENTLE
        elif issue == "too_simple":
            depth, style = depth + 2, InteractionStyle.CHALLENGING
        elif issue == "wrong_approach":
            primary = RETHINK_EXPERT
        elif issue == "emotional_mismatch":
            style = InteractionStyle.SUPPORTIVE

        logger.info("Routing adapted", issue=issue, primary_expert=primary.value, style=style.value)

        return decision.model_copy(update={
            "primary_expert": primary,
            "supporting_experts": normalize_supporting(primary, decision.supporting_experts),
            "interaction_style": style,
            "depth_level": clamp_depth(depth),
            "rationale": f"{decision.rationale}; real-time adjustment for {issue}",
        })
