"""
Appeal Engine - Learning API Router

Corpus ingestion, aggregate metrics, category templates and
template-backed letter generation.
"""
from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException
from pydantic import BaseModel, Field, field_validator
from sqlalchemy.orm import Session

from ..database import get_db
from ..dependencies import (
    Services,
    get_corpus_store,
    get_letter_generator,
    get_orchestrator,
    get_services,
    run_template_evolution,
    to_http_exception,
)
from ..models.learning import Outcome, TrainingCase
from ..services.errors import AppealEngineError
from ..services.learning import (
    AppealLetterGenerator,
    LearningOrchestrator,
    LetterRequest,
    TrainingCorpusStore,
)
from ..services.prediction import classify_evidence


router = APIRouter(prefix="/ai", tags=["learning"])


DEFAULT_PROCESSING_DAYS = 28


# =============================================================================
# PYDANTIC MODELS
# =============================================================================

class TrainAppealRequest(BaseModel):
    """A resolved appeal to add to the training corpus."""
    ticket_type: str = Field(min_length=1)
    circumstances: str = Field(min_length=1)
    appeal_letter: str = Field(min_length=1)
    outcome: str
    evidence_provided: List[str] = Field(default_factory=list)
    success_factors: List[str] = Field(default_factory=list)
    key_arguments: List[str] = Field(default_factory=list)
    legal_references: List[str] = Field(default_factory=list)
    processing_time: float = DEFAULT_PROCESSING_DAYS
    fine_amount: float = 0.0
    fine_reduction: Optional[float] = None
    date_submitted: Optional[datetime] = None
    date_resolved: Optional[datetime] = None

    @field_validator("outcome")
    @classmethod
    def outcome_is_known(cls, value: str) -> str:
        try:
            return Outcome.parse(value).value
        except ValueError:
            valid = [o.value for o in Outcome]
            raise ValueError(f"Invalid outcome. Must be one of: {valid}")


class GenerateAppealRequest(BaseModel):
    """Details for a template-backed appeal letter."""
    ticket_type: str = Field(min_length=1)
    circumstances: str = Field(min_length=1)
    evidence: List[str] = Field(default_factory=list)
    reason: Optional[str] = None
    location: Optional[str] = None
    date: Optional[str] = None
    time: Optional[str] = None
    ticket_number: Optional[str] = None
    vehicle_reg: Optional[str] = None
    sender_name: Optional[str] = None


# =============================================================================
# API ENDPOINTS
# =============================================================================

@router.post("/train-appeal", response_model=dict)
def train_appeal(
    request: TrainAppealRequest,
    background_tasks: BackgroundTasks,
    orchestrator: LearningOrchestrator = Depends(get_orchestrator),
    services: Services = Depends(get_services),
):
    """
    Add a resolved appeal to the corpus.

    Pending outcomes are rejected with 422. A successful case queues
    template evolution, which runs after the response is sent.
    """
    now = datetime.utcnow()
    case = TrainingCase(
        ticket_type=request.ticket_type.strip().lower(),
        circumstances=request.circumstances,
        appeal_letter=request.appeal_letter,
        outcome=Outcome.parse(request.outcome),
        evidence_provided=sorted(classify_evidence(request.evidence_provided)),
        key_arguments=request.key_arguments,
        success_factors=request.success_factors,
        legal_references=request.legal_references,
        processing_time=request.processing_time,
        fine_amount=request.fine_amount,
        fine_reduction=request.fine_reduction,
        date_submitted=request.date_submitted or now,
        date_resolved=request.date_resolved or now,
    )

    try:
        receipt = orchestrator.record_outcome(case)
    except AppealEngineError as e:
        raise to_http_exception(e)

    if receipt.evolution_task_id:
        background_tasks.add_task(run_template_evolution, services)

    return {"success": True, "id": receipt.case_id, **receipt.to_dict()}


@router.get("/metrics", response_model=dict)
def get_metrics(store: TrainingCorpusStore = Depends(get_corpus_store)):
    """Current aggregate metrics (empty record before the first outcome)."""
    try:
        return store.get_metrics().to_dict()
    except AppealEngineError as e:
        raise to_http_exception(e)


@router.get("/templates/{ticket_type}", response_model=dict)
def get_template(
    ticket_type: str,
    store: TrainingCorpusStore = Depends(get_corpus_store),
):
    """Current letter template for a ticket category."""
    try:
        template = store.get_template(ticket_type.strip().lower())
    except AppealEngineError as e:
        raise to_http_exception(e)

    if template is None:
        raise HTTPException(status_code=404, detail=f"No template for ticket type '{ticket_type}'")

    return template.to_dict()


@router.post("/generate-appeal", response_model=dict)
def generate_appeal(
    request: GenerateAppealRequest,
    generator: AppealLetterGenerator = Depends(get_letter_generator),
    db: Session = Depends(get_db),
):
    """
    Generate a personalised appeal letter.

    Falls back to the category template, or a generic skeleton, when the
    generative service is unavailable.
    """
    try:
        letter = generator.generate(LetterRequest(
            ticket_type=request.ticket_type.strip().lower(),
            circumstances=request.circumstances,
            evidence=request.evidence,
            reason=request.reason,
            location=request.location,
            date=request.date,
            time=request.time,
            ticket_number=request.ticket_number,
            vehicle_reg=request.vehicle_reg,
            sender_name=request.sender_name,
        ))
        db.commit()
    except AppealEngineError as e:
        db.rollback()
        raise to_http_exception(e)

    return {
        "success": True,
        **letter.to_dict(),
        "generated_at": datetime.utcnow().isoformat(),
    }
