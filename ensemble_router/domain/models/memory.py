from typing import Any, Dict, List, Optional
from datetime import date, datetime, timezone
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field, field_validator


NEUTRAL_SCALE_SCORE = 5.0
NEUTRAL_IMPORTANCE = 0.5


def clamp(value: float, lower: float, upper: float) -> float:
    """Clamp a value into [lower, upper]"""
    return max(lower, min(upper, value))


def coerce_score(value: Any, default: float, lower: float, upper: float) -> float:
    """Coerce a producer-supplied score, falling back to the neutral default"""

    if value is None or isinstance(value, bool):
        return default
    try:
        number = float(value)
    except (TypeError, ValueError):
        return default
    if number != number:  # NaN
        return default
    return clamp(number, lower, upper)


def _unique(values: Optional[List[str]]) -> List[str]:
    seen = set()
    result = []
    for value in values or []:
        if value and value not in seen:
            seen.add(value)
            result.append(value)
    return result


class Memory(BaseModel):
    """One analysed user statement; immutable once created"""
    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=lambda: f"mem_{uuid4().hex}", description="Opaque identifier")
    user_id: str = Field(description="Owner of the statement")
    content: str = Field(description="Statement text")
    occurred_on: date = Field(description="Date the statement was made")
    embedding: List[float] = Field(default_factory=list, description="Fixed-length embedding vector")
    emotional_resonance: float = Field(default=NEUTRAL_SCALE_SCORE, description="0-10 emotional engagement")
    depth_score: float = Field(default=NEUTRAL_SCALE_SCORE, description="0-10 depth of insight")
    patterns_mentioned: List[str] = Field(default_factory=list)
    breakthrough_indicators: List[str] = Field(default_factory=list)
    context_tags: List[str] = Field(default_factory=list)
    importance: float = Field(default=NEUTRAL_IMPORTANCE, description="0-1 importance for growth")
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    @field_validator("emotional_resonance", "depth_score", mode="before")
    @classmethod
    def clamp_scale_score(cls, value: Any) -> float:
        return coerce_score(value, NEUTRAL_SCALE_SCORE, 0.0, 10.0)

    @field_validator("importance", mode="before")
    @classmethod
    def clamp_importance(cls, value: Any) -> float:
        return coerce_score(value, NEUTRAL_IMPORTANCE, 0.0, 1.0)

    @field_validator("patterns_mentioned", "breakthrough_indicators", "context_tags", mode="before")
    @classmethod
    def deduplicate(cls, value: Any) -> List[str]:
        return _unique(value)

    @property
    def dimension(self) -> int:
        return len(self.embedding)


class MemoryAnalysis(BaseModel):
    """Analysis of a statement produced by the ingestion path; any field may be missing"""
    emotional_resonance: Optional[float] = None
    depth_score: Optional[float] = None
    patterns: List[str] = Field(default_factory=list)
    breakthroughs: List[str] = Field(default_factory=list)
    context_tags: List[str] = Field(default_factory=list)
    importance: Optional[float] = None


class ScoredMemory(BaseModel):
    """Memory paired with its blended retrieval score"""
    memory: Memory
    similarity: float
    score: float


class RetrievalResult(BaseModel):
    """Read-only projection of the most relevant prior statements"""
    memories: List[Memory] = Field(default_factory=list, description="Most to least relevant")
    references: List[str] = Field(default_factory=list, description="One natural-language reference per memory")
    patterns: List[str] = Field(default_factory=list, description="Deduplicated recurring patterns")
    context_summary: str = ""
    confidence: float = Field(default=0.0, ge=0.0, le=1.0)

    @classmethod
    def empty(cls) -> "RetrievalResult":
        return cls()

    @property
    def is_empty(self) -> bool:
        return not self.memories

    def get_summary(self) -> Dict[str, Any]:
        """Get a compact summary for logging"""
        return {
            "memory_ids": [m.id for m in self.memories],
            "patterns": self.patterns,
            "confidence": round(self.confidence, 3),
        }
