"""
Template Evolver

Rewrites a ticket category's letter template from a newly successful case.

Text synthesis is delegated to the generative service. On synthesis
failure the previous template is kept untouched. On success the category
row is replaced wholesale with the next integer version and a fresh
success-rate snapshot.

Evolution is idempotent per case: a template already evolved from a case
records that case id, and evolving from it again is a no-op.
"""
import logging
from dataclasses import dataclass
from enum import Enum
from typing import List, Optional, Sequence

from ...models.learning import AppealTemplate, TrainingCase
from .corpus_store import TrainingCorpusStore
from .generative_client import GenerativeClient
from .locking import CategoryLockManager

logger = logging.getLogger(__name__)


SYSTEM_PROMPT = (
    "You are an expert in analysing and improving UK traffic penalty appeal "
    "templates. Extract the transferable persuasive structure of a successful "
    "appeal: the order of arguments, the legal grounds relied on and the "
    "framing that made it effective. Produce a reusable template with "
    "[PLACEHOLDERS] for case-specific details. Do not copy personal details."
)


class EvolutionStatus(str, Enum):
    EVOLVED = "evolved"
    ALREADY_APPLIED = "already_applied"
    SYNTHESIS_FAILED = "synthesis_failed"


@dataclass
class EvolutionOutcome:
    """What happened to a category's template."""
    status: EvolutionStatus
    template: Optional[AppealTemplate]
    reason: Optional[str] = None

    @property
    def settled(self) -> bool:
        """True when no retry is needed."""
        return self.status != EvolutionStatus.SYNTHESIS_FAILED

    def to_dict(self):
        return {
            "status": self.status.value,
            "version": self.template.version if self.template else None,
            "reason": self.reason,
        }


def build_prompt(category: str, case: TrainingCase, similar: Sequence[TrainingCase]) -> str:
    factors = "\n".join(f"- {f}" for f in (case.success_factors or [])) or "- (none recorded)"
    arguments = "\n".join(f"- {a}" for a in case.key_arguments) or "- (none recorded)"

    prompt = (
        f"Ticket category: {category}\n\n"
        f"Successful appeal letter:\n{case.appeal_letter}\n\n"
        f"Recorded success factors:\n{factors}\n\n"
        f"Key arguments:\n{arguments}\n"
    )
    if similar:
        precedents = "\n\n---\n\n".join(c.appeal_letter for c in similar)
        prompt += f"\nOther successful letters in this category:\n{precedents}\n"
    prompt += (
        "\nCreate an improved template that keeps what made these appeals "
        "succeed while staying adaptable to similar cases."
    )
    return prompt


class TemplateEvolver:
    """
    Usage:
        evolver = TemplateEvolver(store, generative_client, locks)
        template = evolver.evolve("pcn", case, similar_cases)

    Commits its own transaction: evolution runs outside the request that
    recorded the outcome.
    """

    def __init__(
        self,
        store: TrainingCorpusStore,
        client: GenerativeClient,
        locks: CategoryLockManager,
    ):
        self.store = store
        self.client = client
        self.locks = locks

    def evolve(
        self,
        category: str,
        successful_case: TrainingCase,
        similar_cases: Optional[List[TrainingCase]] = None,
    ) -> Optional[AppealTemplate]:
        """
        Evolve and return the category's current template.

        Returns the previous template (or None if the category never had one)
        when synthesis fails.
        """
        return self.apply(category, successful_case, similar_cases or []).template

    def apply(
        self,
        category: str,
        successful_case: TrainingCase,
        similar_cases: Sequence[TrainingCase],
    ) -> EvolutionOutcome:
        """Evolve and report whether the template changed."""
        previous = self.store.get_template(category)
        if previous is not None and previous.source_case_id == successful_case.id:
            return EvolutionOutcome(EvolutionStatus.ALREADY_APPLIED, previous)

        result = self.client.complete(SYSTEM_PROMPT, build_prompt(category, successful_case, similar_cases))
        if not result.ok:
            logger.warning(
                f"Template synthesis failed for {category} (case {successful_case.id}): {result.reason}"
            )
            return EvolutionOutcome(EvolutionStatus.SYNTHESIS_FAILED, previous, result.reason)

        with self.locks.lock(category):
            # Re-read under the lock: another worker may have written meanwhile
            current = self.store.get_template(category)
            if current is not None and current.source_case_id == successful_case.id:
                return EvolutionOutcome(EvolutionStatus.ALREADY_APPLIED, current)

            template = self.store.replace_template(AppealTemplate(
                ticket_type=category,
                template=result.value,
                success_rate=self.store.category_success_rate(category),
                version=(current.version + 1) if current is not None else 1,
                source_case_id=successful_case.id,
                last_used=current.last_used if current is not None else None,
            ))
            self.store.db.commit()

        logger.info(f"Evolved {category} template to version {template.version} from case {successful_case.id}")
        return EvolutionOutcome(EvolutionStatus.EVOLVED, template)
