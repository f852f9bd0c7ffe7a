from typing import Dict, List, Optional, Set

from ensemble_router.domain.collaborators import AgreementAnalyzer
from ensemble_router.domain.context.context_ranker import content_words, jaccard_similarity
from ensemble_router.domain.deadline import Deadline
from ensemble_router.domain.models.ensemble import AgreementAnalysis, CandidateResponse

CONFLICT_BELOW = 0.2
MAX_CONSENSUS_POINTS = 10

STOPWORDS: Set[str] = {
    "a", "an", "and", "are", "as", "at", "be", "but", "by", "do", "for", "from",
    "has", "have", "i", "in", "is", "it", "its", "me", "my", "of", "on", "or",
    "so", "that", "the", "this", "to", "was", "we", "what", "with", "you", "your",
}


def _meaningful_words(text: str) -> Set[str]:
    return content_words(text) - STOPWORDS


class KeywordAgreementAnalyzer(AgreementAnalyzer):
    """Pairwise Jaccard overlap of the candidates' content words"""

    async def compare(
        self,
        candidates: List[CandidateResponse],
        deadline: Optional[Deadline] = None
    ) -> AgreementAnalysis:
        if not candidates:
            return AgreementAnalysis()
        if len(candidates) == 1:
            return AgreementAnalysis(
                agreement_level=1.0,
                dominant_perspective=candidates[0].expert_id.value
            )

        words = [_meaningful_words(c.content) for c in candidates]
        overlaps: Dict[int, List[float]] = {i: [] for i in range(len(candidates))}
        pair_scores: List[float] = []
        conflicts: List[str] = []

        for i in range(len(candidates)):
            for j in range(i + 1, len(candidates)):
                overlap = jaccard_similarity(words[i], words[j])
                pair_scores.append(overlap)
                overlaps[i].append(overlap)
                overlaps[j].append(overlap)
                if overlap < CONFLICT_BELOW:
                    conflicts.append(
                        f"{candidates[i].expert_id.value} and {candidates[j].expert_id.value} "
                        f"diverge (overlap {overlap:.2f})"
                    )

        shared = set.intersection(*words)
        mean_overlap = {i: sum(v) / len(v) for i, v in overlaps.items()}
        dominant = max(range(len(candidates)), key=lambda i: (mean_overlap[i], -i))

        return AgreementAnalysis(
            agreement_level=sum(pair_scores) / len(pair_scores),
            consensus_points=sorted(shared)[:MAX_CONSENSUS_POINTS],
            conflict_points=conflicts,
            dominant_perspective=candidates[dominant].expert_id.value,
        )
