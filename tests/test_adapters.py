import asyncio
import math

import pytest

from ensemble_router.domain.models.ensemble import CandidateResponse, ExpertGuidance
from ensemble_router.domain.models.routing import (
    ConversationContext,
    ExpertId,
    InteractionStyle,
    ReadinessState,
)
from ensemble_router.infrastructure.adapters.agreement import KeywordAgreementAnalyzer
from ensemble_router.infrastructure.adapters.embedding_provider import HashingEmbeddingProvider
from ensemble_router.infrastructure.adapters.synthesis import ConcatenatingSynthesizer
from ensemble_router.infrastructure.adapters.template_expert import (
    CLOSING_QUESTIONS,
    TemplateExpert,
    build_default_experts,
)
from ensemble_router.infrastructure.adapters.validation import HeuristicValidator


def response(expert_id, content, confidence=0.7, **annotations):
    return CandidateResponse(content=content, expert_id=expert_id, confidence=confidence, **annotations)


def test_hashing_embedding_is_deterministic_and_normalised():
    provider = HashingEmbeddingProvider(dimension=64)

    first = asyncio.run(provider.embed("I keep putting off my workouts"))
    second = asyncio.run(provider.embed("I keep putting off my workouts"))
    other = asyncio.run(provider.embed("money worries at night"))

    assert first == second
    assert first != other
    assert len(first) == provider.dimension == 64
    assert math.sqrt(sum(v * v for v in first)) == pytest.approx(1.0)


def test_hashing_embedding_of_empty_text_is_zero():
    assert asyncio.run(HashingEmbeddingProvider(dimension=8).embed("")) == [0.0] * 8


def test_agreement_for_single_and_identical_candidates():
    analyzer = KeywordAgreementAnalyzer()
    single = asyncio.run(analyzer.compare([response(ExpertId.MASTERY_GUIDE, "anything")]))
    same = asyncio.run(analyzer.compare([
        response(ExpertId.SOCRATIC_QUESTIONER, "Sleep shapes your energy"),
        response(ExpertId.PATTERN_RECOGNIZER, "sleep shapes your energy!"),
    ]))

    assert single.agreement_level == 1.0
    assert single.dominant_perspective == "mastery_guide"
    assert same.agreement_level == 1.0
    assert not same.has_conflicts
    assert same.consensus_points == ["energy", "shapes", "sleep"]
    assert asyncio.run(analyzer.compare([])).agreement_level == 0.5


def test_agreement_flags_divergent_candidates():
    analyzer = KeywordAgreementAnalyzer()

    analysis = asyncio.run(analyzer.compare([
        response(ExpertId.SOCRATIC_QUESTIONER, "sleep routine matters"),
        response(ExpertId.PATTERN_RECOGNIZER, "sleep routine habits"),
        response(ExpertId.LEVERAGE_ANALYZER, "career money"),
    ]))

    assert analysis.agreement_level == pytest.approx(0.5 / 3)
    assert analysis.conflict_points == [
        "socratic_questioner and leverage_analyzer diverge (overlap 0.00)",
        "pattern_recognizer and leverage_analyzer diverge (overlap 0.00)",
    ]
    assert analysis.consensus_points == []
    assert analysis.dominant_perspective == "socratic_questioner"


def test_validator_scores_stage_fit_questions_and_actions(context_factory):
    context = context_factory(stage=1, conversation=ConversationContext(topic="health"))
    candidate = response(ExpertId.SOCRATIC_QUESTIONER, "How is your health? Try to track your sleep?")

    criteria = asyncio.run(HeuristicValidator().score(candidate, context))

    assert criteria.stage_appropriateness == 9.0
    assert criteria.emotional_sensitivity == 7.0
    assert criteria.systems_thinking_level == 5.0
    assert criteria.actionability == 7.0
    assert criteria.breakthrough_potential == 5.0


def test_validator_scores_stay_in_range(context_factory):
    context = context_factory(stage=1, readiness_state=ReadinessState.OVERWHELMED, recent_breakthrough=True,
                              conversation=ConversationContext(topic="health"))
    loaded = response(
        ExpertId.SOCRATIC_QUESTIONER,
        "health? " * 10 + "I understand how you feel, notice it together, try, start, plan, step, write",
        patterns_identified=["a", "b", "c"],
        system_connections=["d", "e"],
        leverage_points=["f", "g", "h", "i"],
        suggested_follow_ups=["j", "k"],
    )

    criteria = asyncio.run(HeuristicValidator().score(loaded, context))

    for value in criteria.model_dump().values():
        assert 0.0 <= value <= 10.0
    assert criteria.emotional_sensitivity == 10.0


def test_synthesizer_joins_contents(context_factory):
    merged = asyncio.run(ConcatenatingSynthesizer().synthesize([
        response(ExpertId.SOCRATIC_QUESTIONER, "first", confidence=0.4),
        response(ExpertId.PATTERN_RECOGNIZER, "", confidence=0.9),
        response(ExpertId.LEVERAGE_ANALYZER, "second", confidence=0.6),
    ], context_factory()))

    assert merged.content == "first\n\nsecond"
    assert merged.expert_id == ExpertId.ENSEMBLE_SYNTHESIZED
    assert merged.confidence == 0.9


def test_template_expert_follows_guidance(context_factory):
    expert = TemplateExpert(ExpertId.PATTERN_RECOGNIZER, "patterns", "There is a pattern here.", confidence=0.7)
    guidance = ExpertGuidance(
        interaction_style=InteractionStyle.CHALLENGING,
        depth_level=6,
        memory_references=['yesterday you mentioned: "skipping the gym"'],
    )
    context = context_factory(conversation=ConversationContext(topic="health"))

    candidate = asyncio.run(expert.generate("x" * 100, context, guidance))

    question = CLOSING_QUESTIONS[InteractionStyle.CHALLENGING]
    assert candidate.content == (
        f'There is a pattern here. You said: "{"x" * 80}...". '
        f'Also, yesterday you mentioned: "skipping the gym". {question}'
    )
    assert candidate.confidence == 0.7
    assert candidate.patterns_identified == ["health"]
    assert candidate.suggested_follow_ups == [question]


def test_default_experts_cover_every_routable_expert():
    experts = build_default_experts()

    assert {e.expert_id for e in experts} == set(ExpertId) - {ExpertId.ENSEMBLE_SYNTHESIZED}
