"""
Training Corpus Store

Durable store for the learning pipeline:
- appeal_training: append-only, outcome-labeled cases
- appeal_templates: one row per ticket category, replaced wholesale
- model_metrics: singleton "current" row

This is the only component that maps ORM rows to domain records. It never
commits: the caller owns the transaction so that an append and the metrics
recompute that follows it land together or not at all.
"""
import logging
from datetime import datetime
from typing import List, Optional

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from ...models.db_models import AppealTemplateDB, ModelMetricsDB, TrainingCaseDB
from ...models.learning import (
    METRICS_ID,
    AppealTemplate,
    ModelMetrics,
    Outcome,
    TrainingCase,
)
from ..errors import CaseNotFoundError, CorpusStoreError, DuplicateCaseError

logger = logging.getLogger(__name__)


# =============================================================================
# ROW MAPPING
# =============================================================================

def _case_from_row(row: TrainingCaseDB) -> TrainingCase:
    return TrainingCase(
        id=row.id,
        ticket_type=row.ticket_type,
        circumstances=row.circumstances,
        appeal_letter=row.appeal_letter,
        outcome=Outcome.parse(row.outcome),
        evidence_provided=list(row.evidence or []),
        key_arguments=list(row.key_arguments or []),
        success_factors=row.success_factors,
        legal_references=row.legal_references,
        processing_time=row.processing_time,
        fine_amount=row.fine_amount or 0.0,
        fine_reduction=row.fine_reduction,
        date_submitted=row.date_submitted,
        date_resolved=row.date_resolved,
        appeal_id=row.appeal_id,
    )


def _template_from_row(row: AppealTemplateDB) -> AppealTemplate:
    return AppealTemplate(
        ticket_type=row.ticket_type,
        template=row.template,
        success_rate=row.success_rate or 0.0,
        version=row.version,
        source_case_id=row.source_case_id,
        last_used=row.last_used,
    )


def _metrics_from_row(row: ModelMetricsDB) -> ModelMetrics:
    return ModelMetrics(
        id=row.id,
        total_cases=row.total_cases,
        successful_cases=row.successful_cases,
        success_rate=row.success_rate,
        most_successful_arguments=list(row.most_successful_arguments or []),
        least_successful_arguments=list(row.least_successful_arguments or []),
        average_fine_reduction=row.average_fine_reduction,
        average_processing_time=row.average_processing_time,
        confidence_score=row.confidence_score,
        computed_at=row.computed_at,
    )


class TrainingCorpusStore:
    """
    SQLAlchemy-backed corpus, template and metrics store.

    Usage:
        store = TrainingCorpusStore(db)
        store.append_case(case)
        cases = store.get_all_cases()
        db.commit()
    """

    def __init__(self, db: Session):
        self.db = db

    # =========================================================================
    # CASES
    # =========================================================================

    def append_case(self, case: TrainingCase) -> None:
        """
        Append a resolved case. The only mutation entry point for cases.

        Raises:
            DuplicateCaseError: If the case id already exists
            CorpusStoreError: If the store cannot be written
        """
        if self._query(lambda: self.db.get(TrainingCaseDB, case.id)) is not None:
            raise DuplicateCaseError(f"Training case {case.id} already recorded")

        row = TrainingCaseDB(
            id=case.id,
            ticket_type=case.ticket_type,
            circumstances=case.circumstances,
            evidence=list(case.evidence_provided),
            appeal_letter=case.appeal_letter,
            outcome=case.outcome.value,
            success_factors=case.success_factors,
            key_arguments=list(case.key_arguments),
            legal_references=case.legal_references,
            processing_time=case.processing_time,
            fine_amount=case.fine_amount,
            fine_reduction=case.fine_reduction,
            date_submitted=case.date_submitted,
            date_resolved=case.date_resolved,
            appeal_id=case.appeal_id,
            active=True,
        )
        try:
            self.db.add(row)
            self.db.flush()
        except IntegrityError as e:
            raise DuplicateCaseError(f"Training case {case.id} already recorded") from e
        except SQLAlchemyError as e:
            logger.error(f"Failed to append training case {case.id}: {type(e).__name__}")
            raise CorpusStoreError("Training corpus unavailable") from e

    def get_case(self, case_id: str) -> TrainingCase:
        """
        Raises:
            CaseNotFoundError: If the case does not exist or is inactive
        """
        row = self._query(
            lambda: self.db.query(TrainingCaseDB).filter(
                TrainingCaseDB.id == case_id,
                TrainingCaseDB.active.is_(True),
            ).first()
        )
        if row is None:
            raise CaseNotFoundError(f"Training case {case_id} not found")
        return _case_from_row(row)

    def get_cases_by_category(self, ticket_type: str) -> List[TrainingCase]:
        """Active cases for a category, oldest first. Empty list if none."""
        rows = self._query(
            lambda: self.db.query(TrainingCaseDB).filter(
                TrainingCaseDB.ticket_type == ticket_type,
                TrainingCaseDB.active.is_(True),
            ).order_by(TrainingCaseDB.created_at, TrainingCaseDB.id).all()
        )
        return [_case_from_row(r) for r in rows]

    def get_all_cases(self) -> List[TrainingCase]:
        """The full active corpus, oldest first."""
        rows = self._query(
            lambda: self.db.query(TrainingCaseDB).filter(
                TrainingCaseDB.active.is_(True),
            ).order_by(TrainingCaseDB.created_at, TrainingCaseDB.id).all()
        )
        return [_case_from_row(r) for r in rows]

    def deactivate_case(self, case_id: str) -> None:
        """
        Exclude a case from all reads. Rows are never deleted.

        Raises:
            CaseNotFoundError: If the case does not exist or is already inactive
        """
        row = self._query(
            lambda: self.db.query(TrainingCaseDB).filter(
                TrainingCaseDB.id == case_id,
                TrainingCaseDB.active.is_(True),
            ).first()
        )
        if row is None:
            raise CaseNotFoundError(f"Training case {case_id} not found")
        row.active = False
        self._flush()

    def category_success_rate(self, ticket_type: str) -> float:
        """Share of active cases in the category that succeeded (0 if none)."""
        cases = self.get_cases_by_category(ticket_type)
        if not cases:
            return 0.0
        return sum(1 for c in cases if c.is_successful) / len(cases)

    # =========================================================================
    # TEMPLATES
    # =========================================================================

    def get_template(self, ticket_type: str) -> Optional[AppealTemplate]:
        """Current template for a category, or None if never evolved."""
        row = self._query(lambda: self.db.get(AppealTemplateDB, ticket_type))
        return _template_from_row(row) if row is not None else None

    def replace_template(self, template: AppealTemplate) -> AppealTemplate:
        """Write a category's template wholesale (upsert by category)."""
        row = self._query(lambda: self.db.get(AppealTemplateDB, template.ticket_type))
        if row is None:
            row = AppealTemplateDB(ticket_type=template.ticket_type)
            self.db.add(row)

        row.template = template.template
        row.success_rate = template.success_rate
        row.version = template.version
        row.source_case_id = template.source_case_id
        row.last_used = template.last_used
        row.updated_at = datetime.utcnow()
        self._flush()
        return _template_from_row(row)

    def touch_template(self, ticket_type: str) -> None:
        """Record that a category's template was used for a letter."""
        row = self._query(lambda: self.db.get(AppealTemplateDB, ticket_type))
        if row is None:
            return
        row.last_used = datetime.utcnow()
        self._flush()

    # =========================================================================
    # METRICS
    # =========================================================================

    def get_metrics(self) -> ModelMetrics:
        """Current metrics. An empty record if nothing was aggregated yet."""
        row = self._query(lambda: self.db.get(ModelMetricsDB, METRICS_ID))
        if row is None:
            return ModelMetrics()
        return _metrics_from_row(row)

    def save_metrics(self, metrics: ModelMetrics) -> None:
        """Overwrite the singleton metrics row."""
        row = self._query(lambda: self.db.get(ModelMetricsDB, METRICS_ID))
        if row is None:
            row = ModelMetricsDB(id=METRICS_ID)
            self.db.add(row)

        row.total_cases = metrics.total_cases
        row.successful_cases = metrics.successful_cases
        row.success_rate = metrics.success_rate
        row.most_successful_arguments = list(metrics.most_successful_arguments)
        row.least_successful_arguments = list(metrics.least_successful_arguments)
        row.average_fine_reduction = metrics.average_fine_reduction
        row.average_processing_time = metrics.average_processing_time
        row.confidence_score = metrics.confidence_score
        row.computed_at = metrics.computed_at or datetime.utcnow()
        self._flush()

    # =========================================================================
    # INTERNALS
    # =========================================================================

    def _query(self, fn):
        try:
            return fn()
        except SQLAlchemyError as e:
            logger.error(f"Training corpus read failed: {type(e).__name__}")
            raise CorpusStoreError("Training corpus unavailable") from e

    def _flush(self) -> None:
        try:
            self.db.flush()
        except SQLAlchemyError as e:
            logger.error(f"Training corpus write failed: {type(e).__name__}")
            raise CorpusStoreError("Training corpus unavailable") from e
