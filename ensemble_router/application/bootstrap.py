from typing import Iterable, Optional

import structlog

from ensemble_router.domain.collaborators import (
    AgreementAnalyzer,
    EmbeddingProvider,
    MemoryStore,
    PreferenceLearner,
    Synthesizer,
    Validator,
)
from ensemble_router.domain.context.context_manager import ContextBuilder
from ensemble_router.domain.context.context_ranker import MemoryRanker
from ensemble_router.domain.context.context_retriever import MemoryRetriever
from ensemble_router.domain.context.memory.cache_memory_store import TTLCache
from ensemble_router.domain.context.memory.embedding import SafeEmbeddingProvider
from ensemble_router.domain.context.memory.memory_ingestor import MemoryIngestor
from ensemble_router.domain.context.memory.vector_memory_store import InMemoryMemoryStore
from ensemble_router.domain.context.state.state_inferencer import (
    LexicalNeedsClassifier,
    LexicalStateInferencer,
)
from ensemble_router.domain.orchestration.core.dispatcher import EnsembleDispatcher
from ensemble_router.domain.orchestration.core.ensemble_arbiter import EnsembleArbiter
from ensemble_router.domain.orchestration.core.main_agent import EnsembleEngine
from ensemble_router.domain.orchestration.expert.base_expert import BaseExpert
from ensemble_router.domain.orchestration.expert.expert_registry import ExpertRegistry
from ensemble_router.domain.routing.preference_learning import RoutingFeedbackRecorder
from ensemble_router.domain.routing.routing_engine import RoutingEngine
from ensemble_router.infrastructure.adapters.agreement import KeywordAgreementAnalyzer
from ensemble_router.infrastructure.adapters.embedding_provider import HashingEmbeddingProvider
from ensemble_router.infrastructure.adapters.preference_learner import LoggingPreferenceLearner
from ensemble_router.infrastructure.adapters.synthesis import ConcatenatingSynthesizer
from ensemble_router.infrastructure.adapters.template_expert import build_default_experts
from ensemble_router.infrastructure.adapters.validation import HeuristicValidator
from ensemble_router.infrastructure.config.settings import Settings, get_settings
from ensemble_router.infrastructure.observability.logging import MetricsCollector, setup_logging

logger = structlog.get_logger(__name__)


class EnsembleApplication:
    """A wired engine together with its store, ingestion path and metrics"""

    def __init__(
        self,
        settings: Settings,
        engine: EnsembleEngine,
        store: MemoryStore,
        ingestor: MemoryIngestor,
        registry: ExpertRegistry,
        metrics: MetricsCollector
    ):
        self.settings = settings
        self.engine = engine
        self.store = store
        self.ingestor = ingestor
        self.registry = registry
        self.metrics = metrics


def build_application(
    settings: Optional[Settings] = None,
    store: Optional[MemoryStore] = None,
    embedding_provider: Optional[EmbeddingProvider] = None,
    experts: Optional[Iterable[BaseExpert]] = None,
    validator: Optional[Validator] = None,
    agreement_analyzer: Optional[AgreementAnalyzer] = None,
    synthesizer: Optional[Synthesizer] = None,
    preference_learner: Optional[PreferenceLearner] = None,
    configure_logging: bool = True
) -> EnsembleApplication:
    """Wire settings, logging and collaborators into a ready engine

    Collaborators that are not supplied fall back to the reference adapters,
    so the engine runs end to end without a language model.
    """

    settings = settings or get_settings()
    if configure_logging:
        setup_logging(settings.LOG_LEVEL, settings.LOG_FORMAT, settings.SERVICE_NAME)

    metrics = MetricsCollector()
    store = store or InMemoryMemoryStore(settings.EMBEDDING_DIMENSION)
    embedder = SafeEmbeddingProvider(
        embedding_provider or HashingEmbeddingProvider(settings.EMBEDDING_DIMENSION),
        settings.EMBEDDING_DIMENSION,
        timeout=settings.EMBEDDING_TIMEOUT_SECONDS
    )

    retriever = MemoryRetriever(
        store=store,
        embedder=embedder,
        ranker=MemoryRanker(settings.SIMILARITY_WEIGHT, settings.IMPORTANCE_WEIGHT),
        cache=TTLCache(default_ttl=settings.EMBEDDING_CACHE_TTL_SECONDS),
        max_results=settings.RETRIEVAL_MAX_RESULTS,
        recency_window_days=settings.RECENCY_WINDOW_DAYS,
        recency_bonus=settings.RECENCY_BONUS,
        store_timeout=settings.MEMORY_STORE_TIMEOUT_SECONDS
    )

    registry = ExpertRegistry()
    for expert in (experts if experts is not None else build_default_experts()):
        registry.register_expert(expert)

    dispatcher = EnsembleDispatcher(registry, metrics, expert_timeout=settings.EXPERT_TIMEOUT_SECONDS)
    arbiter = EnsembleArbiter(
        dispatcher=dispatcher,
        validator=validator or HeuristicValidator(),
        agreement_analyzer=agreement_analyzer or KeywordAgreementAnalyzer(),
        synthesizer=synthesizer or ConcatenatingSynthesizer(),
        metrics=metrics,
        resolve_timeout=settings.RESOLVE_TIMEOUT_SECONDS,
        validation_timeout=settings.VALIDATION_TIMEOUT_SECONDS,
        agreement_timeout=settings.AGREEMENT_TIMEOUT_SECONDS,
        synthesis_timeout=settings.SYNTHESIS_TIMEOUT_SECONDS
    )

    engine = EnsembleEngine(
        retriever=retriever,
        state_inferencer=LexicalStateInferencer(),
        needs_classifier=LexicalNeedsClassifier(),
        context_builder=ContextBuilder(),
        routing_engine=RoutingEngine(),
        arbiter=arbiter,
        feedback_recorder=RoutingFeedbackRecorder(preference_learner or LoggingPreferenceLearner()),
        metrics=metrics
    )

    logger.info(
        "Ensemble engine ready",
        experts=[e.value for e in registry.available_experts()],
        embedding_dimension=settings.EMBEDDING_DIMENSION
    )

    return EnsembleApplication(
        settings=settings,
        engine=engine,
        store=store,
        ingestor=MemoryIngestor(store, embedder),
        registry=registry,
        metrics=metrics,
    )
