"""
External Predictive Service Client

HTTP client for the external appeal prediction service.

The response is validated at the boundary into a PredictionResult and
returned as a tagged result. Nothing downstream ever reads a raw payload.
"""
from __future__ import annotations

import logging
import os
from typing import Any, Dict, List, Optional

import requests
from pydantic import BaseModel, Field, ValidationError

from ...models.prediction import (
    CaseSignals,
    ConfidenceTier,
    Err,
    Ok,
    PredictionResult,
    PredictionSource,
    ServiceResult,
)
from .rule_based import recommendation_for

logger = logging.getLogger(__name__)


PREDICTION_SERVICE_URL = os.getenv("PREDICTION_SERVICE_URL", "http://localhost:8000")
PREDICTION_TIMEOUT_SECONDS = float(os.getenv("PREDICTION_TIMEOUT_SECONDS", "10"))


# =============================================================================
# WIRE SCHEMA
# =============================================================================

class _ProbabilityBlock(BaseModel):
    success_probability: float = Field(ge=0.0, le=1.0)


class ExternalPredictionPayload(BaseModel):
    """Accepted response shape from the predictive service."""
    checklist: List[str]
    recommended_evidence: List[str]
    success_probability: Optional[float] = Field(default=None, ge=0.0, le=1.0)
    prediction: Optional[_ProbabilityBlock] = None
    confidence_level: Optional[ConfidenceTier] = None
    recommendation: Optional[str] = None
    key_factors: List[str] = Field(default_factory=list)
    legal_grounds: List[str] = Field(default_factory=list)
    risk_flags: List[str] = Field(default_factory=list)
    appeal_category: Optional[str] = None
    evidence_strength: Optional[str] = None
    estimated_processing_time: Optional[str] = None
    model_version: Optional[str] = None

    def probability(self) -> Optional[float]:
        if self.success_probability is not None:
            return self.success_probability
        if self.prediction is not None:
            return self.prediction.success_probability
        return None


def parse_prediction_payload(payload: Any, ticket_type: Optional[str] = None) -> ServiceResult:
    """
    Validate a raw service response into a PredictionResult.

    Args:
        payload: Decoded JSON body
        ticket_type: Ticket category id to stamp on the result

    Returns:
        Ok(PredictionResult) or Err(reason)
    """
    if not isinstance(payload, dict):
        return Err("response body is not a JSON object")

    try:
        parsed = ExternalPredictionPayload.model_validate(payload)
    except ValidationError as e:
        return Err(f"malformed response: {e.error_count()} validation error(s)")

    probability = parsed.probability()
    if probability is None:
        return Err("malformed response: no success probability")

    result = PredictionResult(
        success_probability=probability,
        confidence=parsed.confidence_level or ConfidenceTier.from_score(probability),
        recommendation=parsed.recommendation or recommendation_for(probability),
        source=PredictionSource.EXTERNAL_SERVICE,
        key_factors=parsed.key_factors,
        legal_grounds=parsed.legal_grounds,
        risk_flags=parsed.risk_flags,
        recommended_evidence=parsed.recommended_evidence,
        checklist=parsed.checklist,
        appeal_category=parsed.appeal_category or "general_appeal",
        ticket_type=ticket_type,
        evidence_strength=parsed.evidence_strength or "unsupported",
        estimated_processing_time=parsed.estimated_processing_time or "28-56 days for informal appeal",
        model_version=parsed.model_version or "2.0",
    )
    return Ok(result)


# =============================================================================
# CLIENT
# =============================================================================

class PredictiveServiceClient:
    """
    Calls POST {base_url}/predict-appeal.

    Usage:
        client = PredictiveServiceClient()
        result = client.predict(signals)
        if result.ok:
            prediction = result.value
    """

    ENDPOINT = "/predict-appeal"

    def __init__(
        self,
        base_url: str = PREDICTION_SERVICE_URL,
        timeout: float = PREDICTION_TIMEOUT_SECONDS,
        session: Optional[requests.Session] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._session = session or requests.Session()

    def predict(self, signals: CaseSignals) -> ServiceResult:
        url = f"{self.base_url}{self.ENDPOINT}"
        payload: Dict[str, Any] = signals.to_payload()

        try:
            response = self._session.post(url, json=payload, timeout=self.timeout)
        except requests.Timeout:
            return Err("timeout")
        except requests.RequestException as e:
            return Err(f"network error: {type(e).__name__}")

        if not 200 <= response.status_code < 300:
            return Err(f"status {response.status_code}")

        try:
            body = response.json()
        except ValueError:
            return Err("response body is not JSON")

        return parse_prediction_payload(body, ticket_type=signals.ticket_type)
