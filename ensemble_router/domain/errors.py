"""
Error taxonomy for the routing and arbitration core.

Transient failures are isolated and recorded by the component that hits them.
Configuration faults abort immediately. Empty results are values, not errors.
"""

from typing import List, Optional


class EnsembleRouterError(Exception):
    """Base exception for the routing engine"""
    pass


class TransientExternalFailure(EnsembleRouterError):
    """An external collaborator (embedding, store, expert, validation) failed or timed out"""

    def __init__(self, collaborator: str, message: str):
        self.collaborator = collaborator
        super().__init__(f"{collaborator}: {message}")


class DeadlineExceeded(TransientExternalFailure):
    """A collaborator call ran past its deadline"""

    def __init__(self, collaborator: str, timeout: Optional[float] = None):
        self.timeout = timeout
        detail = f"timed out after {timeout:.2f}s" if timeout is not None else "deadline already expired"
        super().__init__(collaborator, detail)


class ConfigurationFault(EnsembleRouterError):
    """Corrupted data or deployment misconfiguration; never degraded silently"""
    pass


class EmbeddingDimensionMismatch(ConfigurationFault):
    """An embedding does not have the deployment's fixed dimensionality"""

    def __init__(self, expected: int, actual: int, memory_id: Optional[str] = None):
        self.expected = expected
        self.actual = actual
        self.memory_id = memory_id
        location = f" (memory {memory_id})" if memory_id else ""
        super().__init__(f"Embedding dimension mismatch{location}: expected {expected}, got {actual}")


class EnsembleError(EnsembleRouterError):
    """Failure of the ensemble dispatch/arbitration step"""
    pass


class ExpertNotRegistered(EnsembleError):
    """The routing decision names an expert with no registered implementation"""

    def __init__(self, expert_id: str):
        self.expert_id = expert_id
        super().__init__(f"Expert not registered: {expert_id}")


class NoCandidatesError(EnsembleError):
    """Every expert in the ensemble failed or timed out"""

    def __init__(self, experts_consulted: List[str], reasons: Optional[List[str]] = None):
        self.experts_consulted = experts_consulted
        self.reasons = reasons or []
        super().__init__(
            f"No candidates produced by experts: {', '.join(experts_consulted) or 'none'}"
        )
