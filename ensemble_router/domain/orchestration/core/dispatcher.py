from typing import Dict, List, Optional, Tuple
import asyncio
import time

import structlog

from ensemble_router.domain.deadline import Deadline, ensure_deadline
from ensemble_router.domain.errors import DeadlineExceeded
from ensemble_router.domain.models.ensemble import (
    CandidateResponse,
    DispatchResult,
    ExpertGuidance,
    UnavailableExpert,
)
from ensemble_router.domain.models.routing import ExpertId, RouterContext, RoutingDecision
from ensemble_router.domain.orchestration.expert.expert_registry import ExpertRegistry
from ensemble_router.infrastructure.observability.logging import MetricsCollector, engine_logger

logger = structlog.get_logger(__name__)

TIMEOUT_REASON = "timeout"

Invocation = Tuple[Optional[CandidateResponse], Optional[str]]


class EnsembleDispatcher:
    """Fans a routing decision out to its experts concurrently"""

    def __init__(
        self,
        registry: ExpertRegistry,
        metrics: Optional[MetricsCollector] = None,
        expert_timeout: Optional[float] = None
    ):
        self.registry = registry
        self.metrics = metrics or MetricsCollector()
        self.expert_timeout = expert_timeout

    async def dispatch(
        self,
        decision: RoutingDecision,
        utterance: str,
        context: RouterContext,
        deadline: Optional[Deadline] = None,
        guidance: Optional[ExpertGuidance] = None
    ) -> DispatchResult:
        """Invoke every routed expert; collect survivors in completion order

        Each expert runs under its own deadline bounded by the parent one. When
        the parent deadline expires the experts still running are cancelled
        and recorded as timed out.
        """

        deadline = ensure_deadline(deadline)
        experts = decision.experts
        routing_order = {expert_id: index for index, expert_id in enumerate(experts)}

        tasks: Dict[asyncio.Task, ExpertId] = {}
        for expert_id in experts:
            scope = deadline.child(self.expert_timeout)
            task = asyncio.create_task(self._invoke(expert_id, utterance, context, scope, guidance))
            tasks[task] = expert_id

        candidates: List[CandidateResponse] = []
        unavailable: List[UnavailableExpert] = []
        pending = set(tasks)

        while pending:
            done, pending = await asyncio.wait(
                pending,
                timeout=deadline.remaining(),
                return_when=asyncio.FIRST_COMPLETED
            )
            if not done:
                break

            # Tasks finishing in the same tick are taken in routing order
            for task in sorted(done, key=lambda t: routing_order[tasks[t]]):
                candidate, reason = task.result()
                if candidate is not None:
                    candidates.append(candidate)
                else:
                    unavailable.append(self._unavailable(tasks[task], reason))

        if pending:
            logger.warning(
                "Parent deadline expired, cancelling experts",
                pending=[tasks[t].value for t in pending]
            )
            for task in pending:
                task.cancel()
            await asyncio.gather(*pending, return_exceptions=True)
            for task in sorted(pending, key=lambda t: routing_order[tasks[t]]):
                unavailable.append(self._unavailable(tasks[task], TIMEOUT_REASON))

        self.metrics.set_gauge("ensemble.candidates", len(candidates))
        return DispatchResult(
            experts_consulted=experts,
            candidates=candidates,
            unavailable=unavailable,
        )

    async def _invoke(
        self,
        expert_id: ExpertId,
        utterance: str,
        context: RouterContext,
        deadline: Deadline,
        guidance: Optional[ExpertGuidance]
    ) -> Invocation:
        """Run one expert; failures are returned as a reason, never raised"""

        start = time.perf_counter()
        try:
            candidate = await self.registry.generate(expert_id, utterance, context, deadline, guidance)
        except DeadlineExceeded:
            engine_logger.log_expert_invocation(expert_id.value, success=False, error=TIMEOUT_REASON)
            return None, TIMEOUT_REASON
        except Exception as e:
            reason = f"error: {type(e).__name__}"
            engine_logger.log_expert_invocation(expert_id.value, success=False, error=str(e))
            return None, reason

        duration_ms = (time.perf_counter() - start) * 1000
        self.metrics.record_latency(f"expert.{expert_id.value}", duration_ms)
        engine_logger.log_expert_invocation(expert_id.value, duration_ms=round(duration_ms, 2))
        return candidate, None

    def _unavailable(self, expert_id: ExpertId, reason: str) -> UnavailableExpert:
        self.metrics.increment_counter(
            "expert.unavailable",
            tags={"expert_id": expert_id.value, "reason": reason}
        )
        return UnavailableExpert(expert_id=expert_id, reason=reason)
