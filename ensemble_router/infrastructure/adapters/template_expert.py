from typing import Dict, List, Optional, Tuple

from ensemble_router.domain.models.ensemble import CandidateResponse, ExpertGuidance
from ensemble_router.domain.models.routing import ExpertId, InteractionStyle, RouterContext
from ensemble_router.domain.orchestration.expert.base_expert import BaseExpert

SNIPPET_LENGTH = 80

# Expert descriptions and opening lines; the real prompt text lives with the
# language-model backed experts that replace these
EXPERT_TEMPLATES: Dict[ExpertId, Tuple[str, str]] = {
    ExpertId.SOCRATIC_QUESTIONER: (
        "Asks questions that surface the assumptions behind a statement",
        "Let's slow down and look at what sits underneath this.",
    ),
    ExpertId.PATTERN_RECOGNIZER: (
        "Connects the statement to recurring patterns in the user's history",
        "There is a pattern worth noticing here.",
    ),
    ExpertId.LEVERAGE_ANALYZER: (
        "Finds the smallest change with the largest effect",
        "Let's find the one change that moves everything else.",
    ),
    ExpertId.LIFE_ARCHITECTURE_MAPPER: (
        "Maps how the areas of a life system feed each other",
        "Let's map how this connects to the rest of your life system.",
    ),
    ExpertId.LIFE_DESIGN_GUIDE: (
        "Turns insight into a deliberate system design",
        "Let's design a system around this instead of relying on willpower.",
    ),
    ExpertId.VISION_ARCHITECT: (
        "Expands the picture of what is possible",
        "Step back and picture where this leads if it works.",
    ),
    ExpertId.IMPLEMENTATION_GUIDE: (
        "Breaks a design into daily practice",
        "Let's turn this into something you can do tomorrow.",
    ),
    ExpertId.INTEGRATION_SPECIALIST: (
        "Integrates what has been learned across the program",
        "Let's bring together what you have built so far.",
    ),
    ExpertId.MASTERY_GUIDE: (
        "Helps the user teach and sustain what they have mastered",
        "Think about how you would explain this to someone starting out.",
    ),
    ExpertId.EMPATHY_SPECIALIST: (
        "Acknowledges feelings before any analysis",
        "That sounds like a lot to carry right now.",
    ),
}

CLOSING_QUESTIONS: Dict[InteractionStyle, str] = {
    InteractionStyle.GENTLE: "What feels most important to you about this right now?",
    InteractionStyle.SUPPORTIVE: "What would help you feel supported as you explore this?",
    InteractionStyle.DIRECT: "What is the root cause you keep coming back to?",
    InteractionStyle.CHALLENGING: "What would change if you stopped accepting that assumption?",
    InteractionStyle.ARCHITECTURAL: "How would you design the system so this happens by default?",
}


class TemplateExpert(BaseExpert):
    """Deterministic expert that fills a template; runs without a language model"""

    def __init__(self, expert_id: ExpertId, description: str, opening: str, confidence: float = 0.75):
        super().__init__(expert_id, description)
        self.opening = opening
        self.confidence = confidence

    async def generate(
        self,
        utterance: str,
        context: RouterContext,
        guidance: Optional[ExpertGuidance] = None
    ) -> CandidateResponse:
        style = guidance.interaction_style if guidance else InteractionStyle.SUPPORTIVE
        snippet = utterance.strip()
        if len(snippet) > SNIPPET_LENGTH:
            snippet = snippet[:SNIPPET_LENGTH] + "..."

        parts = [self.opening, f'You said: "{snippet}".']
        if guidance and guidance.memory_references:
            parts.append(f"Also, {guidance.memory_references[0]}.")
        question = CLOSING_QUESTIONS[style]
        parts.append(question)

        patterns: List[str] = []
        if context.conversation.topic != "general":
            patterns.append(context.conversation.topic)

        return CandidateResponse(
            content=" ".join(parts),
            expert_id=self.expert_id,
            confidence=self.confidence,
            patterns_identified=patterns,
            suggested_follow_ups=[question],
        )


def build_default_experts(confidence: float = 0.75) -> List[TemplateExpert]:
    """One template expert per routable expert id"""
    return [
        TemplateExpert(expert_id, description, opening, confidence)
        for expert_id, (description, opening) in EXPERT_TEMPLATES.items()
    ]
