"""
Learning Orchestrator

The single writer for the training corpus.

record_outcome runs one unit of work under the case's category lock:
1. Reject non-terminal outcomes
2. Append the case
3. Enqueue template evolution for successful cases
4. Under the global metrics lock, recompute metrics over the full corpus,
   persist them and commit

Commits of any category happen only under the metrics lock, so the last
committer always recomputes over every committed case.

Any failure rolls the whole unit back. Template evolution itself runs
later, outside this transaction.
"""
import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ...models.learning import ModelMetrics, Outcome, TrainingCase
from ..errors import AppealEngineError, CorpusStoreError, OutcomeValidationError
from .corpus_store import TrainingCorpusStore
from .evolution_scheduler import enqueue_evolution
from .locking import METRICS_LOCK, CategoryLockManager
from .metrics_aggregator import MetricsAggregator

logger = logging.getLogger(__name__)


@dataclass
class OutcomeReceipt:
    """Acknowledgement of a recorded outcome."""
    case_id: str
    ticket_type: str
    outcome: Outcome
    metrics: ModelMetrics
    evolution_task_id: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "case_id": self.case_id,
            "ticket_type": self.ticket_type,
            "outcome": self.outcome.value,
            "evolution_queued": self.evolution_task_id is not None,
            "evolution_task_id": self.evolution_task_id,
            "metrics": self.metrics.to_dict(),
        }


class LearningOrchestrator:
    """
    Usage:
        orchestrator = LearningOrchestrator(db, aggregator, locks)
        receipt = orchestrator.record_outcome(case)

    Pending changes already in the session (for example the appeal row
    the outcome was reported on) are committed with the case.
    """

    def __init__(
        self,
        db: Session,
        aggregator: MetricsAggregator,
        locks: CategoryLockManager,
    ):
        self.db = db
        self.store = TrainingCorpusStore(db)
        self.aggregator = aggregator
        self.locks = locks

    def record_outcome(self, case: TrainingCase) -> OutcomeReceipt:
        """
        Record a resolved case.

        Raises:
            OutcomeValidationError: Outcome is pending
            DuplicateCaseError: Case id already recorded
            CorpusStoreError: Store unavailable (nothing is committed)
        """
        if not case.outcome.is_terminal:
            raise OutcomeValidationError(
                "Outcome is still pending - resolve the appeal before recording it"
            )

        with self.locks.lock(case.ticket_type):
            try:
                self.store.append_case(case)

                task_id = None
                if case.is_successful:
                    task_id = enqueue_evolution(self.db, case).id

                with self.locks.lock(METRICS_LOCK):
                    metrics = self.aggregator.recompute(self.store.get_all_cases())
                    self.store.save_metrics(metrics)
                    self.db.commit()
            except AppealEngineError:
                self.db.rollback()
                raise
            except SQLAlchemyError as e:
                self.db.rollback()
                logger.error(f"Failed to record outcome for case {case.id}: {type(e).__name__}")
                raise CorpusStoreError("Training corpus unavailable") from e

        logger.info(
            f"Recorded {case.outcome.value} case {case.id} ({case.ticket_type}); "
            f"corpus now {metrics.total_cases} cases, success rate {metrics.success_rate:.2f}"
        )

        return OutcomeReceipt(
            case_id=case.id,
            ticket_type=case.ticket_type,
            outcome=case.outcome,
            metrics=metrics,
            evolution_task_id=task_id,
        )
