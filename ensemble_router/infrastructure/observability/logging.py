import structlog
import logging
import sys
from typing import Dict, Any, List, Optional

from pydantic import BaseModel

from ensemble_router import __version__

REQUEST_CONTEXT_KEYS = ("request_id", "user_id")


def _renderer(log_format: str):
    if log_format == "json":
        return structlog.processors.JSONRenderer()
    return structlog.dev.ConsoleRenderer()


def setup_logging(
    log_level: str = "INFO",
    log_format: str = "json",
    service_name: str = "ensemble-router"
) -> None:
    """Configure structlog over the standard library logger

    Every entry carries the service name and version, plus the request and
    user ids bound for the current turn.
    """

    level = getattr(logging, log_level.upper(), logging.INFO)
    logging.basicConfig(format="%(message)s", stream=sys.stdout, level=level)

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            add_request_context,
            _renderer(log_format),
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    structlog.contextvars.bind_contextvars(service=service_name, version=__version__)


def add_request_context(logger: logging.Logger, method_name: str, event_dict: Dict[str, Any]) -> Dict[str, Any]:
    """Copy the bound turn identifiers onto entries that do not set them"""

    bound = structlog.contextvars.get_contextvars()
    for key in REQUEST_CONTEXT_KEYS:
        if bound.get(key):
            event_dict.setdefault(key, bound[key])

    return event_dict


def bind_request_context(request_id: str, user_id: str) -> None:
    """Bind per-turn identifiers so every log line of the turn carries them"""
    structlog.contextvars.bind_contextvars(request_id=request_id, user_id=user_id)


def clear_request_context() -> None:
    structlog.contextvars.unbind_contextvars(*REQUEST_CONTEXT_KEYS)


class EngineLogger:
    """Specialized logger for routing and arbitration events"""

    def __init__(self, name: str):
        self.logger = structlog.get_logger(name)

    def log_retrieval(
        self,
        user_id: str,
        returned: int,
        considered: int,
        confidence: float,
        degraded: bool = False
    ):
        """Log a memory retrieval"""

        self.logger.info(
            "memory_retrieval",
            user_id=user_id,
            returned=returned,
            considered=considered,
            confidence=round(confidence, 3),
            degraded=degraded
        )

    def log_routing_decision(
        self,
        user_id: str,
        stage: int,
        readiness_state: str,
        decision: Dict[str, Any]
    ):
        """Log the routing decision for a turn"""

        self.logger.info(
            "routing_decision",
            user_id=user_id,
            stage=stage,
            readiness_state=readiness_state,
            decision=decision
        )

    def log_expert_invocation(
        self,
        expert_id: str,
        duration_ms: Optional[float] = None,
        success: bool = True,
        error: Optional[str] = None
    ):
        """Log a single expert invocation"""

        log = self.logger.info if success else self.logger.warning
        log(
            "expert_invocation",
            expert_id=expert_id,
            duration_ms=duration_ms,
            success=success,
            error=error
        )

    def log_resolution(
        self,
        experts_consulted: List[str],
        resolution_method: str,
        recommendation_strength: str,
        summary: Optional[Dict[str, Any]] = None
    ):
        """Log how the arbiter resolved the ensemble"""

        self.logger.info(
            "ensemble_resolution",
            experts_consulted=experts_consulted,
            resolution_method=resolution_method,
            recommendation_strength=recommendation_strength,
            summary=summary or {}
        )


# Global logger instance
engine_logger = EngineLogger("ensemble_router")


class LatencyStats(BaseModel):
    """Running latency aggregate for one operation"""
    count: int = 0
    total_ms: float = 0.0
    min_ms: Optional[float] = None
    max_ms: float = 0.0

    def observe(self, duration_ms: float) -> None:
        self.count += 1
        self.total_ms += duration_ms
        self.min_ms = duration_ms if self.min_ms is None else min(self.min_ms, duration_ms)
        self.max_ms = max(self.max_ms, duration_ms)

    def summary(self) -> Dict[str, float]:
        return {
            "count": self.count,
            "avg": self.total_ms / self.count if self.count else 0.0,
            "min": self.min_ms or 0.0,
            "max": self.max_ms,
        }


class MetricsCollector:
    """In-process latency, counter and gauge metrics; each sample is also logged

    Keys are flat: `latency.<operation>` for latencies, the metric name for
    counters and gauges.
    """

    def __init__(self):
        self.metrics: Dict[str, Any] = {}

    def record_latency(self, operation: str, duration_ms: float, tags: Optional[Dict[str, str]] = None):
        stats = self.metrics.setdefault(f"latency.{operation}", LatencyStats())
        stats.observe(duration_ms)
        self._emit("latency", operation, duration_ms, tags)

    def increment_counter(self, name: str, value: int = 1, tags: Optional[Dict[str, str]] = None):
        self.metrics[name] = self.metrics.get(name, 0) + value
        self._emit("counter", name, value, tags)

    def set_gauge(self, name: str, value: float, tags: Optional[Dict[str, str]] = None):
        self.metrics[name] = value
        self._emit("gauge", name, value, tags)

    def get_metrics_summary(self) -> Dict[str, Any]:
        """Snapshot of every metric, latencies reduced to count/avg/min/max"""
        return {
            key: value.summary() if isinstance(value, LatencyStats) else value
            for key, value in self.metrics.items()
        }

    def _emit(self, metric_type: str, name: str, value: float, tags: Optional[Dict[str, str]]):
        engine_logger.logger.debug("metric", metric_type=metric_type, name=name, value=value, tags=tags or {})
