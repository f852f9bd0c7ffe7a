import asyncio
import time

import pytest

from conftest import FakeExpert
from ensemble_router.domain.deadline import Deadline
from ensemble_router.domain.errors import ConfigurationFault
from ensemble_router.domain.models.routing import (
    ExpertId,
    InteractionStyle,
    RoutingDecision,
    TimingStrategy,
)
from ensemble_router.domain.orchestration.core.dispatcher import EnsembleDispatcher
from ensemble_router.domain.orchestration.expert.expert_registry import ExpertRegistry
from ensemble_router.infrastructure.observability.logging import MetricsCollector

DECISION = RoutingDecision(
    primary_expert=ExpertId.SOCRATIC_QUESTIONER,
    supporting_experts=[ExpertId.PATTERN_RECOGNIZER, ExpertId.LEVERAGE_ANALYZER],
    interaction_style=InteractionStyle.GENTLE,
    depth_level=3,
    timing=TimingStrategy.DELAYED,
)


def make_registry(*experts):
    registry = ExpertRegistry()
    for expert in experts:
        registry.register_expert(expert)
    return registry


def reasons(result):
    return {u.expert_id: u.reason for u in result.unavailable}


def test_slow_expert_times_out_while_others_survive(context_factory):
    slow = FakeExpert(ExpertId.PATTERN_RECOGNIZER, delay=1.0)
    registry = make_registry(
        FakeExpert(ExpertId.SOCRATIC_QUESTIONER),
        slow,
        FakeExpert(ExpertId.LEVERAGE_ANALYZER),
    )
    metrics = MetricsCollector()
    dispatcher = EnsembleDispatcher(registry, metrics=metrics, expert_timeout=0.05)

    result = asyncio.run(dispatcher.dispatch(DECISION, "hello", context_factory()))

    assert {c.expert_id for c in result.candidates} == {ExpertId.SOCRATIC_QUESTIONER, ExpertId.LEVERAGE_ANALYZER}
    assert reasons(result) == {ExpertId.PATTERN_RECOGNIZER: "timeout"}
    assert result.experts_consulted == DECISION.experts
    assert metrics.metrics["ensemble.candidates"] == 2
    assert metrics.metrics["expert.unavailable"] == 1


def test_parent_deadline_cancels_running_experts(context_factory):
    experts = [FakeExpert(expert_id, delay=5.0) for expert_id in DECISION.experts]
    dispatcher = EnsembleDispatcher(make_registry(*experts))

    async def scenario():
        start = time.perf_counter()
        result = await dispatcher.dispatch(DECISION, "hello", context_factory(), deadline=Deadline.after(0.05))
        return result, time.perf_counter() - start

    result, elapsed = asyncio.run(scenario())

    assert result.candidates == []
    assert set(reasons(result).values()) == {"timeout"}
    assert len(result.unavailable) == 3
    assert elapsed < 1.0


def test_failing_and_unregistered_experts_are_recorded(context_factory):
    registry = make_registry(
        FakeExpert(ExpertId.SOCRATIC_QUESTIONER, content="a question"),
        FakeExpert(ExpertId.PATTERN_RECOGNIZER, error=RuntimeError("model crashed")),
    )

    result = asyncio.run(EnsembleDispatcher(registry).dispatch(DECISION, "hello", context_factory()))

    assert [c.content for c in result.candidates] == ["a question"]
    assert reasons(result) == {
        ExpertId.PATTERN_RECOGNIZER: "error: RuntimeError",
        ExpertId.LEVERAGE_ANALYZER: "error: ExpertNotRegistered",
    }


def test_registry_attributes_candidates_to_the_requested_expert(context_factory):
    impostor = FakeExpert(ExpertId.MASTERY_GUIDE)
    registry = ExpertRegistry()
    registry.experts[ExpertId.VISION_ARCHITECT] = impostor

    candidate = asyncio.run(registry.generate(ExpertId.VISION_ARCHITECT, "hello", context_factory()))

    assert candidate.expert_id == ExpertId.VISION_ARCHITECT
    assert impostor.calls == 1


def test_registry_rejects_the_synthesized_identifier():
    with pytest.raises(ConfigurationFault):
        ExpertRegistry().register_expert(FakeExpert(ExpertId.ENSEMBLE_SYNTHESIZED))


def test_registry_reports_experts():
    registry = make_registry(FakeExpert(ExpertId.SOCRATIC_QUESTIONER), FakeExpert(ExpertId.MASTERY_GUIDE))

    assert registry.available_experts() == [ExpertId.SOCRATIC_QUESTIONER, ExpertId.MASTERY_GUIDE]
    assert [info["expert_id"] for info in registry.get_experts_info()] == [
        "socratic_questioner", "mastery_guide"
    ]
