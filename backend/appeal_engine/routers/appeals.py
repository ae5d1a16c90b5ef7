"""
Appeal Engine - Appeals API Router

Submitted appeals and their user-reported outcomes.

A reported terminal outcome turns the appeal into a training case and is
recorded through the learning orchestrator in the same transaction as the
appeal's status change.
"""
from datetime import datetime
from typing import List, Optional
from uuid import uuid4

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from ..database import get_db
from ..dependencies import (
    Services,
    get_orchestrator,
    get_registry,
    get_services,
    run_template_evolution,
    to_http_exception,
)
from ..models.db_models import AppealDB, AppealStatus
from ..models.learning import Outcome, TrainingCase
from ..services.classification import TicketCategoryRegistry
from ..services.errors import AppealEngineError, AppealNotFoundError
from ..services.learning import LearningOrchestrator
from ..services.prediction import classify_evidence


router = APIRouter(prefix="/appeals", tags=["appeals"])


OUTCOME_STATUS = {
    Outcome.SUCCESSFUL: AppealStatus.APPROVED,
    Outcome.UNSUCCESSFUL: AppealStatus.REJECTED,
}


# =============================================================================
# PYDANTIC MODELS
# =============================================================================

class AppealCreateRequest(BaseModel):
    """Request model for registering a submitted appeal."""
    circumstances: str = Field(min_length=1)
    ticket_number: Optional[str] = None
    ticket_type: Optional[str] = None
    reason: Optional[str] = None
    evidence: List[str] = Field(default_factory=list)
    location: Optional[str] = None
    contravention_code: Optional[str] = None
    appeal_letter: Optional[str] = None
    key_arguments: List[str] = Field(default_factory=list)
    fine_amount: float = 0.0


class OutcomeReportRequest(BaseModel):
    """User-reported outcome for a submitted appeal."""
    outcome: str
    notes: Optional[str] = None
    fine_reduction: Optional[float] = None
    success_factors: List[str] = Field(default_factory=list)


class AppealResponse(BaseModel):
    """Response model for a submitted appeal."""
    id: str
    ticket_number: Optional[str]
    ticket_type: str
    status: str
    fine_amount: float
    submitted_at: str
    user_reported_outcome: Optional[str]
    user_reported_at: Optional[str]
    outcome_notes: Optional[str]


class AppealsList(BaseModel):
    """List of submitted appeals."""
    appeals: List[AppealResponse]
    total: int


def _to_response(appeal: AppealDB) -> AppealResponse:
    return AppealResponse(
        id=appeal.id,
        ticket_number=appeal.ticket_number,
        ticket_type=appeal.ticket_type,
        status=appeal.status.value,
        fine_amount=appeal.fine_amount or 0.0,
        submitted_at=appeal.submitted_at.isoformat(),
        user_reported_outcome=appeal.user_reported_outcome,
        user_reported_at=appeal.user_reported_at.isoformat() if appeal.user_reported_at else None,
        outcome_notes=appeal.outcome_notes,
    )


def training_case_from_appeal(
    appeal: AppealDB,
    outcome: Outcome,
    resolved_at: datetime,
    fine_reduction: Optional[float] = None,
    success_factors: Optional[List[str]] = None,
) -> TrainingCase:
    """Snapshot a resolved appeal as a training case (case id = appeal id)."""
    processing_days = (resolved_at - appeal.submitted_at).total_seconds() / 86400
    return TrainingCase(
        id=appeal.id,
        appeal_id=appeal.id,
        ticket_type=appeal.ticket_type,
        circumstances=appeal.circumstances,
        appeal_letter=appeal.appeal_letter or "",
        outcome=outcome,
        evidence_provided=sorted(classify_evidence(appeal.evidence or [])),
        key_arguments=list(appeal.key_arguments or []),
        success_factors=success_factors or None,
        processing_time=max(processing_days, 0.0),
        fine_amount=appeal.fine_amount or 0.0,
        fine_reduction=fine_reduction,
        date_submitted=appeal.submitted_at,
        date_resolved=resolved_at,
    )


# =============================================================================
# API ENDPOINTS
# =============================================================================

@router.post("", response_model=AppealResponse)
def submit_appeal(
    request: AppealCreateRequest,
    db: Session = Depends(get_db),
    registry: TicketCategoryRegistry = Depends(get_registry),
):
    """
    Register a submitted appeal.

    The ticket category is taken from ticket_type when it names a known
    category, otherwise detected from the ticket number.
    """
    category = registry.get(request.ticket_type) or registry.classify(request.ticket_number)

    appeal = AppealDB(
        id=str(uuid4()),
        ticket_number=request.ticket_number,
        ticket_type=category.id,
        reason=request.reason,
        circumstances=request.circumstances,
        evidence=request.evidence,
        location=request.location,
        contravention_code=request.contravention_code,
        appeal_letter=request.appeal_letter,
        key_arguments=request.key_arguments,
        fine_amount=request.fine_amount,
        status=AppealStatus.SUBMITTED,
        submitted_at=datetime.utcnow(),
    )
    db.add(appeal)
    db.commit()

    return _to_response(appeal)


@router.get("", response_model=AppealsList)
def list_appeals(
    limit: int = 50,
    db: Session = Depends(get_db),
):
    """List submitted appeals, most recent first."""
    appeals = (
        db.query(AppealDB)
        .order_by(AppealDB.submitted_at.desc())
        .limit(limit)
        .all()
    )
    return AppealsList(
        appeals=[_to_response(a) for a in appeals],
        total=len(appeals),
    )


@router.post("/{appeal_id}/outcome", response_model=dict)
def report_outcome(
    appeal_id: str,
    request: OutcomeReportRequest,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    orchestrator: LearningOrchestrator = Depends(get_orchestrator),
    services: Services = Depends(get_services),
):
    """
    Record the real-world outcome of a submitted appeal.

    pending is rejected: resolve the appeal first. Reporting twice for the
    same appeal is a conflict.
    """
    try:
        outcome = Outcome.parse(request.outcome)
    except ValueError:
        valid = [o.value for o in Outcome]
        raise HTTPException(
            status_code=400,
            detail=f"Invalid outcome. Must be one of: {valid}",
        )

    try:
        appeal = db.get(AppealDB, appeal_id)
        if appeal is None:
            raise AppealNotFoundError(f"Appeal {appeal_id} not found")

        resolved_at = datetime.utcnow()
        case = training_case_from_appeal(
            appeal,
            outcome,
            resolved_at,
            fine_reduction=request.fine_reduction,
            success_factors=request.success_factors,
        )

        if outcome.is_terminal:
            appeal.user_reported_outcome = outcome.value
            appeal.user_reported_at = resolved_at
            appeal.outcome_notes = request.notes
            appeal.status = OUTCOME_STATUS[outcome]

        # Commits the appeal update together with the case
        receipt = orchestrator.record_outcome(case)
    except AppealEngineError as e:
        db.rollback()
        raise to_http_exception(e)

    if receipt.evolution_task_id:
        background_tasks.add_task(run_template_evolution, services)

    return {
        "success": True,
        "message": "Appeal outcome recorded",
        "appeal_id": appeal_id,
        "status": OUTCOME_STATUS[outcome].value,
        **receipt.to_dict(),
    }
