"""
Appeal Engine - Prediction API Router

Appeal success prediction. Always answers: when the external predictive
service is unavailable the rule-based predictor is used instead.
"""
from typing import Any, List, Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field

from ..dependencies import get_gateway
from ..models.prediction import CaseSignals
from ..services.prediction import PredictionGateway


router = APIRouter(prefix="/ai", tags=["predictions"])


# =============================================================================
# PYDANTIC MODELS
# =============================================================================

class PredictAppealRequest(BaseModel):
    """Request model for an appeal success prediction."""
    reason: Optional[str] = None
    description: Optional[str] = None
    pcn_number: Optional[str] = None
    ticket_type: Optional[str] = None
    vehicle_reg: Optional[str] = None
    fine_amount: Optional[float] = None
    evidence: List[Any] = Field(default_factory=list)
    location: Optional[str] = None
    contravention_code: Optional[str] = None

    def to_signals(self) -> CaseSignals:
        return CaseSignals(
            reason=self.reason or "",
            description=self.description or "",
            ticket_type=self.ticket_type,
            location=self.location,
            evidence=list(self.evidence),
            contravention_code=self.contravention_code,
            ticket_number=self.pcn_number,
            vehicle_reg=self.vehicle_reg,
            fine_amount=self.fine_amount,
        )


# =============================================================================
# API ENDPOINTS
# =============================================================================

@router.post("/predict-appeal", response_model=dict)
def predict_appeal(
    request: PredictAppealRequest,
    gateway: PredictionGateway = Depends(get_gateway),
):
    """
    Predict the likelihood that an appeal succeeds.

    Sync route: FastAPI runs it in its threadpool, so the gateway's bounded
    wait on the external service does not block the event loop.
    """
    if not (request.reason or "").strip() and not (request.description or "").strip():
        raise HTTPException(status_code=400, detail="Appeal reason or description is required")

    prediction = gateway.get_prediction(request.to_signals())

    return {
        "prediction": prediction.to_dict(),
        "strategy": prediction.strategy(),
    }
