"""
Single source of the lexical vocabularies used for inference.

Breakthrough detection uses one canonical list; readiness inference, memory
ingestion and context building all read it from here.
"""

from typing import Dict, Iterable, List, Tuple

from ensemble_router.domain.models.routing import ReadinessState, UserIntention


BREAKTHROUGH_TRIGGERS: Tuple[str, ...] = (
    "realize",
    "realise",
    "understand now",
    "makes sense",
    "see the connection",
    "see now",
    "aha",
    "breakthrough",
    "clarity",
    "insight",
)

# Evaluated in this order; the first state with a matching trigger wins
READINESS_TRIGGERS: Tuple[Tuple[ReadinessState, Tuple[str, ...]], ...] = (
    (ReadinessState.OVERWHELMED, (
        "too much", "confused", "don't understand", "do not understand",
        "complicated", "stressed", "overwhelm",
    )),
    (ReadinessState.RESISTANT, (
        "not sure", "doubt", "skeptical", "won't work", "tried before",
    )),
    (ReadinessState.BREAKTHROUGH, BREAKTHROUGH_TRIGGERS),
    (ReadinessState.READY, (
        "let's do", "ready", "want to start", "how do i", "implement",
    )),
    (ReadinessState.CURIOUS, (
        "interesting", "tell me more", "how", "why", "what if",
    )),
)

DEFAULT_READINESS_STATE = ReadinessState.CURIOUS

CRISIS_INDICATORS: Tuple[str, ...] = (
    "urgent", "crisis", "emergency", "stuck", "desperate", "failing",
    "can't continue", "giving up", "not working", "breaking down",
)

SUPPORT_INDICATORS: Tuple[str, ...] = (
    "lonely", "alone", "sad", "anxious", "afraid", "scared", "hurt",
    "exhausted", "stressed", "overwhelm", "too much", "hopeless",
)

DESIGN_INDICATORS: Tuple[str, ...] = ("design", "build", "plan", "system", "structure")
ANALYSIS_INDICATORS: Tuple[str, ...] = ("analyze", "analyse", "pattern", "why do i", "figure out")
CHALLENGE_INDICATORS: Tuple[str, ...] = ("challenge", "push me", "hold me accountable", "be honest")

LIFE_AREAS: Tuple[str, ...] = (
    "health", "wealth", "relationships", "growth", "purpose", "environment",
)

INTENTION_KEYWORDS: Tuple[Tuple[UserIntention, Tuple[str, ...]], ...] = (
    (UserIntention.EXPLORATION, ("explore", "understand", "learn about", "what is")),
    (UserIntention.PROBLEM_SOLVING, ("problem", "issue", "stuck", "help with", "fix")),
    (UserIntention.UNDERSTANDING, ("why", "how", "explain", "meaning", "concept")),
    (UserIntention.IMPLEMENTATION, ("do", "implement", "start", "action", "steps")),
)

# Reactions to a routed response that call for a real-time adjustment
ADJUSTMENT_INDICATORS: Dict[str, Tuple[str, ...]] = {
    "too_complex": ("confused", "don't understand", "too complicated"),
    "too_simple": ("already know", "obvious", "tell me more"),
    "wrong_approach": ("not helpful", "different approach", "not what i need"),
    "emotional_mismatch": ("too pushy", "too gentle", "not supportive enough"),
}


def find_triggers(text: str, vocabulary: Iterable[str]) -> List[str]:
    """Return every vocabulary entry found in text (case-insensitive substring match)"""

    lowered = (text or "").lower()
    return [term for term in vocabulary if term in lowered]


def contains_any(text: str, vocabulary: Iterable[str]) -> bool:
    lowered = (text or "").lower()
    return any(term in lowered for term in vocabulary)


def detect_breakthrough_indicators(text: str) -> List[str]:
    """Canonical breakthrough detection"""
    return find_triggers(text, BREAKTHROUGH_TRIGGERS)
