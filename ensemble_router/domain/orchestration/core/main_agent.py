from typing import TypedDict, Annotated, List, Dict, Any, Optional, Literal
from datetime import date
from uuid import uuid4
import asyncio
import operator
import time

from langgraph.graph import StateGraph, END
from langgraph.graph.message import add_messages
from langchain_core.messages import BaseMessage, HumanMessage, AIMessage
from pydantic import BaseModel, ConfigDict, Field
import structlog

from ensemble_router.domain.context.context_manager import ContextBuilder
from ensemble_router.domain.context.context_retriever import MemoryRetriever
from ensemble_router.domain.context.state.state_inferencer import NeedsClassifier, StateInferencer
from ensemble_router.domain.deadline import Deadline, ensure_deadline
from ensemble_router.domain.errors import NoCandidatesError
from ensemble_router.domain.models.ensemble import DispatchResult, EnsembleDecision, ExpertGuidance
from ensemble_router.domain.models.memory import RetrievalResult
from ensemble_router.domain.models.routing import (
    EffectivenessUpdate,
    NeedsClassification,
    PreferenceHints,
    ProgressSnapshot,
    ReadinessState,
    RouterContext,
    RoutingDecision,
    RoutingFeedback,
    RoutingOutcome,
)
from ensemble_router.domain.routing.preference_learning import RoutingFeedbackRecorder
from ensemble_router.domain.routing.routing_engine import RoutingEngine
from ensemble_router.infrastructure.observability.logging import (
    MetricsCollector,
    bind_request_context,
    clear_request_context,
)
from .ensemble_arbiter import EnsembleArbiter

logger = structlog.get_logger(__name__)


class TurnState(TypedDict):
    """State for the per-turn workflow graph"""
    messages: Annotated[List[BaseMessage], add_messages]
    user_id: str
    utterance: str
    progress: ProgressSnapshot
    history: List[BaseMessage]
    preferences: PreferenceHints
    deadline: Deadline
    today: date
    readiness_state: Optional[ReadinessState]
    needs: Optional[NeedsClassification]
    retrieval: Optional[RetrievalResult]
    router_context: Optional[RouterContext]
    routing_decision: Optional[RoutingDecision]
    resolve_deadline: Optional[Deadline]
    dispatch_result: Optional[DispatchResult]
    ensemble_decision: Optional[EnsembleDecision]
    node_trace: Annotated[List[str], operator.add]


class TurnResult(BaseModel):
    """Everything the engine produced for one user turn"""
    model_config = ConfigDict(arbitrary_types_allowed=True)

    retrieval: RetrievalResult
    router_context: RouterContext
    needs: NeedsClassification
    routing_decision: RoutingDecision
    ensemble_decision: EnsembleDecision
    messages: List[BaseMessage] = Field(default_factory=list)
    node_trace: List[str] = Field(default_factory=list)


class EnsembleEngine:
    """Per-turn orchestrator: analyse, route, dispatch and arbitrate using LangGraph"""

    def __init__(
        self,
        retriever: MemoryRetriever,
        state_inferencer: StateInferencer,
        needs_classifier: NeedsClassifier,
        context_builder: ContextBuilder,
        routing_engine: RoutingEngine,
        arbiter: EnsembleArbiter,
        feedback_recorder: Optional[RoutingFeedbackRecorder] = None,
        metrics: Optional[MetricsCollector] = None
    ):
        self.retriever = retriever
        self.state_inferencer = state_inferencer
        self.needs_classifier = needs_classifier
        self.context_builder = context_builder
        self.routing_engine = routing_engine
        self.arbiter = arbiter
        self.feedback_recorder = feedback_recorder
        self.metrics = metrics or arbiter.metrics
        self.workflow = self._create_workflow()

    def _create_workflow(self):
        """Create the per-turn workflow graph"""

        workflow = StateGraph(TurnState)

        workflow.add_node("analyze", self.analysis_node)
        workflow.add_node("route", self.routing_node)
        workflow.add_node("dispatch", self.dispatch_node)
        workflow.add_node("arbitrate", self.arbitration_node)
        workflow.add_node("no_candidates", self.no_candidates_node)

        workflow.set_entry_point("analyze")
        workflow.add_edge("analyze", "route")
        workflow.add_edge("route", "dispatch")

        workflow.add_conditional_edges(
            "dispatch",
            self.check_candidates,
            {
                "arbitrate": "arbitrate",
                "no_candidates": "no_candidates"
            }
        )

        workflow.add_edge("arbitrate", END)
        workflow.add_edge("no_candidates", END)

        return workflow.compile()

    async def analysis_node(self, state: TurnState) -> Dict[str, Any]:
        """Infer readiness, classify needs and retrieve memories"""
        logger.info("Analyzing utterance", user_id=state["user_id"])

        utterance = state["utterance"]
        readiness = self.state_inferencer.infer_readiness_state(utterance)
        context = self.context_builder.build(
            user_id=state["user_id"],
            utterance=utterance,
            progress=state["progress"],
            readiness_state=readiness,
            history=state["history"],
            preferences=state["preferences"],
            today=state["today"]
        )

        retrieval, needs = await asyncio.gather(
            self.retriever.retrieve(
                state["user_id"],
                utterance,
                deadline=state["deadline"],
                today=state["today"]
            ),
            self.needs_classifier.classify(utterance, context)
        )

        return {
            "readiness_state": readiness,
            "router_context": context,
            "retrieval": retrieval,
            "needs": needs,
            "node_trace": ["analyze"],
        }

    async def routing_node(self, state: TurnState) -> Dict[str, Any]:
        """Decide which experts answer and how"""
        logger.info("Routing turn", user_id=state["user_id"])

        decision = self.routing_engine.decide(state["router_context"], state["needs"])
        return {"routing_decision": decision, "node_trace": ["route"]}

    async def dispatch_node(self, state: TurnState) -> Dict[str, Any]:
        """Fan the decision out to the experts"""
        logger.info("Dispatching experts", user_id=state["user_id"])

        decision = state["routing_decision"]
        retrieval = state["retrieval"]
        guidance = ExpertGuidance(
            interaction_style=decision.interaction_style,
            depth_level=decision.depth_level,
            memory_summary=retrieval.context_summary,
            memory_references=retrieval.references,
        )

        resolve_deadline = self.arbiter.request_deadline(state["deadline"])
        dispatched = await self.arbiter.dispatcher.dispatch(
            decision,
            state["utterance"],
            state["router_context"],
            resolve_deadline,
            guidance
        )
        return {
            "resolve_deadline": resolve_deadline,
            "dispatch_result": dispatched,
            "node_trace": ["dispatch"],
        }

    async def arbitration_node(self, state: TurnState) -> Dict[str, Any]:
        """Resolve the candidates into the final decision"""
        logger.info("Arbitrating candidates", user_id=state["user_id"])

        decision = await self.arbiter.arbitrate(
            state["routing_decision"],
            state["router_context"],
            state["dispatch_result"],
            state["resolve_deadline"]
        )

        update: Dict[str, Any] = {"ensemble_decision": decision, "node_trace": ["arbitrate"]}
        if decision.final_response is not None:
            update["messages"] = [AIMessage(
                content=decision.final_response.content,
                name=decision.final_response.expert_id.value
            )]
        return update

    async def no_candidates_node(self, state: TurnState) -> Dict[str, Any]:
        """Record a turn where every expert failed"""

        dispatched = state["dispatch_result"]
        logger.error(
            "No expert produced a candidate",
            user_id=state["user_id"],
            unavailable=[f"{u.expert_id.value}: {u.reason}" for u in dispatched.unavailable]
        )
        self.metrics.increment_counter("ensemble.no_candidates")
        return {"node_trace": ["no_candidates"]}

    def check_candidates(self, state: TurnState) -> Literal["arbitrate", "no_candidates"]:
        """Route on whether the dispatch produced any candidate"""

        dispatched = state.get("dispatch_result")
        if dispatched is not None and dispatched.candidates:
            return "arbitrate"
        return "no_candidates"

    async def respond(
        self,
        user_id: str,
        utterance: str,
        progress: ProgressSnapshot,
        history: Optional[List[BaseMessage]] = None,
        hints: Optional[PreferenceHints] = None,
        deadline: Optional[Deadline] = None,
        today: Optional[date] = None
    ) -> TurnResult:
        """Run one user turn through the workflow"""

        history = list(history or [])
        bind_request_context(request_id=f"turn_{uuid4().hex[:12]}", user_id=user_id)
        start = time.perf_counter()

        initial_state: TurnState = {
            "messages": history + [HumanMessage(content=utterance)],
            "user_id": user_id,
            "utterance": utterance,
            "progress": progress,
            "history": history,
            "preferences": hints or PreferenceHints(),
            "deadline": ensure_deadline(deadline),
            "today": today or date.today(),
            "readiness_state": None,
            "needs": None,
            "retrieval": None,
            "router_context": None,
            "routing_decision": None,
            "resolve_deadline": None,
            "dispatch_result": None,
            "ensemble_decision": None,
            "node_trace": [],
        }

        try:
            final_state = await self.workflow.ainvoke(initial_state)
        finally:
            self.metrics.record_latency("turn", (time.perf_counter() - start) * 1000)
            clear_request_context()

        decision = final_state.get("ensemble_decision")
        if decision is None:
            dispatched = final_state["dispatch_result"]
            raise NoCandidatesError(
                [e.value for e in dispatched.experts_consulted],
                [f"{u.expert_id.value}: {u.reason}" for u in dispatched.unavailable]
            )

        return TurnResult(
            retrieval=final_state["retrieval"],
            router_context=final_state["router_context"],
            needs=final_state["needs"],
            routing_decision=final_state["routing_decision"],
            ensemble_decision=decision,
            messages=final_state["messages"],
            node_trace=final_state["node_trace"],
        )

    def adapt(self, decision: RoutingDecision, user_response: str) -> RoutingDecision:
        """Adjust a routing decision from the user's reaction"""
        return self.routing_engine.adapt(decision, user_response)

    async def record_outcome(
        self,
        decision: RoutingDecision,
        feedback: RoutingFeedback,
        outcome: RoutingOutcome
    ) -> Optional[EffectivenessUpdate]:
        """Hand a routing outcome to the preference learner"""

        if self.feedback_recorder is None:
            return None
        return await self.feedback_recorder.record_outcome(decision, feedback, outcome)
