from typing import Any, Dict, List, Optional, Tuple
import asyncio

import structlog

from ensemble_router.domain.collaborators import AgreementAnalyzer, Synthesizer, Validator
from ensemble_router.domain.deadline import Deadline, ensure_deadline
from ensemble_router.domain.errors import ConfigurationFault, NoCandidatesError
from ensemble_router.domain.models.ensemble import (
    AgreementAnalysis,
    CandidateResponse,
    ConfidenceMetrics,
    DecisionProcess,
    DispatchResult,
    EnsembleDecision,
    ExpertGuidance,
    RecommendationStrength,
    ResolutionMethod,
    ValidationCriteria,
)
from ensemble_router.domain.models.routing import ExpertId, RouterContext, RoutingDecision
from ensemble_router.infrastructure.observability.logging import MetricsCollector, engine_logger
from .dispatcher import EnsembleDispatcher

logger = structlog.get_logger(__name__)

CONSENSUS_AGREEMENT = 0.8
CONSENSUS_CONFIDENCE = 0.8
USER_CHOICE_CONFIDENCE = 0.6

ANNOTATION_FIELDS = (
    "patterns_identified",
    "leverage_points",
    "system_connections",
    "suggested_follow_ups",
)


def _mean(values: List[float]) -> float:
    return sum(values) / len(values) if values else 0.0


def recommendation_strength(
    overall_confidence: float,
    agreement_level: float,
    contextual_relevance: float
) -> RecommendationStrength:
    score = _mean([overall_confidence, agreement_level, contextual_relevance])
    if score > 0.85:
        return RecommendationStrength.STRONG
    if score > 0.7:
        return RecommendationStrength.MODERATE
    if score > 0.5:
        return RecommendationStrength.WEAK
    return RecommendationStrength.REQUIRES_USER_INPUT


def merge_annotations(candidates: List[CandidateResponse]) -> Dict[str, List[str]]:
    """Union of every annotation list, first appearance first"""

    merged: Dict[str, List[str]] = {}
    for field in ANNOTATION_FIELDS:
        values = [value for c in candidates for value in getattr(c, field)]
        merged[field] = list(dict.fromkeys(values))
    return merged


class EnsembleArbiter:
    """Reconciles expert candidates into a single decision with calibrated confidence"""

    def __init__(
        self,
        dispatcher: EnsembleDispatcher,
        validator: Validator,
        agreement_analyzer: AgreementAnalyzer,
        synthesizer: Synthesizer,
        metrics: Optional[MetricsCollector] = None,
        resolve_timeout: Optional[float] = None,
        validation_timeout: Optional[float] = None,
        agreement_timeout: Optional[float] = None,
        synthesis_timeout: Optional[float] = None
    ):
        self.dispatcher = dispatcher
        self.validator = validator
        self.agreement_analyzer = agreement_analyzer
        self.synthesizer = synthesizer
        self.metrics = metrics or dispatcher.metrics
        self.resolve_timeout = resolve_timeout
        self.validation_timeout = validation_timeout
        self.agreement_timeout = agreement_timeout
        self.synthesis_timeout = synthesis_timeout

    def request_deadline(self, deadline: Optional[Deadline] = None) -> Deadline:
        """Deadline bounding one whole resolve call"""
        return ensure_deadline(deadline).child(self.resolve_timeout)

    async def resolve(
        self,
        decision: RoutingDecision,
        utterance: str,
        context: RouterContext,
        deadline: Optional[Deadline] = None,
        guidance: Optional[ExpertGuidance] = None
    ) -> EnsembleDecision:
        """Dispatch the routing decision and arbitrate among the candidates"""

        scope = self.request_deadline(deadline)
        dispatched = await self.dispatcher.dispatch(decision, utterance, context, scope, guidance)
        return await self.arbitrate(decision, context, dispatched, scope)

    async def arbitrate(
        self,
        decision: RoutingDecision,
        context: RouterContext,
        dispatched: DispatchResult,
        deadline: Optional[Deadline] = None
    ) -> EnsembleDecision:
        """Score, compare and resolve the candidates of one dispatch"""

        candidates = dispatched.candidates
        if not candidates:
            raise NoCandidatesError(
                [e.value for e in dispatched.experts_consulted],
                [f"{u.expert_id.value}: {u.reason}" for u in dispatched.unavailable]
            )

        deadline = ensure_deadline(deadline)
        *criteria, agreement = await asyncio.gather(
            *[self._validate(candidate, context, deadline) for candidate in candidates],
            self._analyze_agreement(candidates, deadline)
        )

        metrics = self._confidence_metrics(candidates, criteria, agreement)
        method, final_response, alternatives = await self._select(
            decision, context, candidates, agreement, metrics, deadline
        )

        if method == ResolutionMethod.USER_CHOICE:
            strength = RecommendationStrength.REQUIRES_USER_INPUT
        else:
            strength = recommendation_strength(
                metrics.overall_confidence,
                metrics.expert_agreement,
                metrics.contextual_relevance
            )

        unavailable_notes = [f"{u.expert_id.value} unavailable: {u.reason}" for u in dispatched.unavailable]
        result = EnsembleDecision(
            final_response=final_response,
            confidence_metrics=metrics,
            decision_process=DecisionProcess(
                experts_consulted=dispatched.experts_consulted,
                consensus_achieved=method == ResolutionMethod.CONSENSUS,
                conflicting_viewpoints=list(agreement.conflict_points) + unavailable_notes,
                unavailable_experts=dispatched.unavailable,
                resolution_method=method,
            ),
            alternative_options=alternatives,
            recommendation_strength=strength,
        )

        self.metrics.increment_counter(f"resolution.{method.value}")
        self.metrics.set_gauge("ensemble.overall_confidence", metrics.overall_confidence)
        engine_logger.log_resolution(
            experts_consulted=[e.value for e in dispatched.experts_consulted],
            resolution_method=method.value,
            recommendation_strength=strength.value,
            summary=result.get_decision_summary()
        )
        return result

    def summarize_performance(self, decisions: List[EnsembleDecision]) -> Dict[str, Any]:
        """Aggregate confidence across a series of decisions"""

        if not decisions:
            return {"decisions": 0, "mean_overall_confidence": 0.0, "expert_confidence": {}, "resolution_methods": {}}

        per_expert: Dict[str, List[float]] = {}
        methods: Dict[str, int] = {}
        for item in decisions:
            method = item.decision_process.resolution_method.value
            methods[method] = methods.get(method, 0) + 1

            responses = list(item.alternative_options)
            if item.final_response is not None:
                responses.insert(0, item.final_response)
            for response in responses:
                per_expert.setdefault(response.expert_id.value, []).append(response.confidence)

        return {
            "decisions": len(decisions),
            "mean_overall_confidence": _mean([d.confidence_metrics.overall_confidence for d in decisions]),
            "expert_confidence": {expert: _mean(values) for expert, values in per_expert.items()},
            "resolution_methods": methods,
        }

    def _confidence_metrics(
        self,
        candidates: List[CandidateResponse],
        criteria: List[ValidationCriteria],
        agreement: AgreementAnalysis
    ) -> ConfidenceMetrics:
        ensemble_confidence = _mean([c.confidence for c in candidates])
        validation = _mean([c.normalized_mean() for c in criteria])
        stage_appropriateness = _mean([c.stage_appropriateness for c in criteria]) / 10.0
        emotional_sensitivity = _mean([c.emotional_sensitivity for c in criteria]) / 10.0
        agreement_level = agreement.agreement_level

        return ConfidenceMetrics(
            overall_confidence=_mean([ensemble_confidence, agreement_level, validation]),
            expert_agreement=agreement_level,
            response_coherence=agreement_level,
            contextual_relevance=_mean([stage_appropriateness, emotional_sensitivity]),
            stage_alignment=stage_appropriateness,
        )

    async def _select(
        self,
        decision: RoutingDecision,
        context: RouterContext,
        candidates: List[CandidateResponse],
        agreement: AgreementAnalysis,
        metrics: ConfidenceMetrics,
        deadline: Deadline
    ) -> Tuple[ResolutionMethod, Optional[CandidateResponse], List[CandidateResponse]]:
        """Resolution decision table, evaluated in order"""

        if (agreement.agreement_level > CONSENSUS_AGREEMENT
                and metrics.overall_confidence > CONSENSUS_CONFIDENCE):
            selected = self._primary_candidate(decision, candidates)
            return ResolutionMethod.CONSENSUS, selected, self._without(candidates, selected)

        if agreement.has_conflicts and metrics.overall_confidence < USER_CHOICE_CONFIDENCE:
            return ResolutionMethod.USER_CHOICE, None, list(candidates)

        if agreement.has_conflicts:
            selected = self._most_confident(decision, candidates)
            return ResolutionMethod.EXPERT_OVERRIDE, selected, self._without(candidates, selected)

        if len(candidates) > 1:
            synthesized = await self._synthesize(candidates, context, deadline)
            if synthesized is not None:
                return ResolutionMethod.WEIGHTED_VOTE, synthesized, list(candidates)
            selected = self._most_confident(decision, candidates)
            return ResolutionMethod.WEIGHTED_VOTE, selected, self._without(candidates, selected)

        return ResolutionMethod.WEIGHTED_VOTE, candidates[0], []

    def _routing_index(self, decision: RoutingDecision, expert_id: ExpertId) -> int:
        experts = decision.experts
        return experts.index(expert_id) if expert_id in experts else len(experts)

    def _primary_candidate(self, decision: RoutingDecision, candidates: List[CandidateResponse]) -> CandidateResponse:
        """Candidate of the primary expert, else the first survivor in routing order"""
        return min(candidates, key=lambda c: self._routing_index(decision, c.expert_id))

    def _most_confident(self, decision: RoutingDecision, candidates: List[CandidateResponse]) -> CandidateResponse:
        return min(candidates, key=lambda c: (-c.confidence, self._routing_index(decision, c.expert_id)))

    @staticmethod
    def _without(candidates: List[CandidateResponse], selected: CandidateResponse) -> List[CandidateResponse]:
        return [c for c in candidates if c is not selected]

    async def _validate(
        self,
        candidate: CandidateResponse,
        context: RouterContext,
        deadline: Deadline
    ) -> ValidationCriteria:
        """Score one candidate; a failing validator yields neutral scores"""

        scope = deadline.child(self.validation_timeout)
        try:
            return await scope.run(self.validator.score(candidate, context, deadline=scope), "validation")
        except ConfigurationFault:
            raise
        except Exception as e:
            logger.warning(
                "Validation failed, using neutral scores",
                expert_id=candidate.expert_id.value,
                error=str(e),
                error_type=type(e).__name__
            )
            return ValidationCriteria.neutral()

    async def _analyze_agreement(
        self,
        candidates: List[CandidateResponse],
        deadline: Deadline
    ) -> AgreementAnalysis:
        scope = deadline.child(self.agreement_timeout)
        try:
            return await scope.run(self.agreement_analyzer.compare(candidates, deadline=scope), "agreement")
        except ConfigurationFault:
            raise
        except Exception as e:
            logger.warning("Agreement analysis failed, assuming neutral agreement", error=str(e))
            return AgreementAnalysis()

    async def _synthesize(
        self,
        candidates: List[CandidateResponse],
        context: RouterContext,
        deadline: Deadline
    ) -> Optional[CandidateResponse]:
        """Merge candidates through the synthesizer; None when synthesis fails"""

        scope = deadline.child(self.synthesis_timeout)
        try:
            merged = await scope.run(self.synthesizer.synthesize(candidates, context, deadline=scope), "synthesis")
        except ConfigurationFault:
            raise
        except Exception as e:
            logger.warning(
                "Synthesis failed, falling back to the most confident candidate",
                error=str(e),
                error_type=type(e).__name__
            )
            return None

        return CandidateResponse(
            content=merged.content,
            expert_id=ExpertId.ENSEMBLE_SYNTHESIZED,
            confidence=max(c.confidence for c in candidates),
            **merge_annotations(candidates),
        )
