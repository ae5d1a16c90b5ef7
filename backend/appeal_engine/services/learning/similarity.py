"""
Similarity Retriever

Finds successful precedents for a new case within its ticket category.

score = 0.4 * evidence overlap + 0.6 * word-set Jaccard of circumstances
"""
from dataclasses import dataclass, field
from typing import List, Sequence, Set

from ...models.learning import TrainingCase
from ..prediction.rule_based import classify_evidence


SIMILARITY_THRESHOLD = 0.7
EVIDENCE_WEIGHT = 0.4
TEXT_WEIGHT = 0.6
DEFAULT_K = 3


@dataclass(frozen=True)
class CaseQuery:
    """The parts of a new case that similarity looks at."""
    ticket_type: str
    circumstances: str
    evidence: List[str] = field(default_factory=list)
    id: str = ""

    @classmethod
    def from_case(cls, case: TrainingCase) -> "CaseQuery":
        return cls(
            ticket_type=case.ticket_type,
            circumstances=case.circumstances,
            evidence=list(case.evidence_provided),
            id=case.id,
        )


def _words(text: str) -> Set[str]:
    return set((text or "").lower().split())


def _evidence_set(evidence: Sequence[str]) -> Set[str]:
    # Raw descriptors and stored type tags both reduce to evidence types
    return classify_evidence(list(evidence))


def text_jaccard(a: str, b: str) -> float:
    words_a, words_b = _words(a), _words(b)
    union = words_a | words_b
    if not union:
        return 0.0
    return len(words_a & words_b) / len(union)


def evidence_overlap(new_evidence: Sequence[str], candidate_evidence: Sequence[str]) -> float:
    """
    Fraction of the new case's evidence types present in the candidate.

    With no evidence on the new case, candidates without evidence match
    fully and candidates with evidence do not match at all.
    """
    wanted = _evidence_set(new_evidence)
    have = _evidence_set(candidate_evidence)
    if not wanted:
        return 1.0 if not have else 0.0
    return len(wanted & have) / len(wanted)


def similarity_score(query: CaseQuery, candidate: TrainingCase) -> float:
    return (
        EVIDENCE_WEIGHT * evidence_overlap(query.evidence, candidate.evidence_provided)
        + TEXT_WEIGHT * text_jaccard(query.circumstances, candidate.circumstances)
    )


class SimilarityRetriever:
    """
    Usage:
        retriever = SimilarityRetriever()
        precedents = retriever.find_similar(case, corpus, k=3)
    """

    def find_similar(
        self,
        new_case,
        corpus: Sequence[TrainingCase],
        k: int = DEFAULT_K,
    ) -> List[TrainingCase]:
        """
        Top-k successful same-category cases scoring above the threshold.

        Args:
            new_case: TrainingCase or CaseQuery
            corpus: Candidate cases (any categories and outcomes)
            k: Maximum number of results

        Returns:
            Up to k cases, best first. Empty when nothing is similar enough.
        """
        if k <= 0:
            return []

        query = new_case if isinstance(new_case, CaseQuery) else CaseQuery.from_case(new_case)

        scored = []
        for candidate in corpus:
            if candidate.ticket_type != query.ticket_type or not candidate.is_successful:
                continue
            if query.id and candidate.id == query.id:
                continue
            score = similarity_score(query, candidate)
            if score > SIMILARITY_THRESHOLD:
                scored.append((score, candidate))

        scored.sort(key=lambda pair: (-pair[0], pair[1].id))
        return [candidate for _, candidate in scored[:k]]
