"""
Appeal Engine - Prediction Data Models

CaseSignals is what the caller knows about a new appeal.
PredictionResult is the single response shape produced by both the
external predictive service and the rule-based fallback.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Generic, List, Optional, TypeVar, Union


class ConfidenceTier(str, Enum):
    """Coarse bucketing of a success probability."""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"

    @classmethod
    def from_score(cls, score: float) -> "ConfidenceTier":
        if score >= 0.75:
            return cls.HIGH
        if score >= 0.5:
            return cls.MEDIUM
        return cls.LOW


class PredictionSource(str, Enum):
    """Which path produced a prediction."""
    EXTERNAL_SERVICE = "external_service"
    RULE_BASED_FALLBACK = "rule_based_fallback"


@dataclass(frozen=True)
class CaseSignals:
    """Free-text and structured signals for a new appeal."""
    reason: str = ""
    description: str = ""
    ticket_type: Optional[str] = None
    location: Optional[str] = None
    evidence: List[Any] = field(default_factory=list)
    contravention_code: Optional[str] = None
    ticket_number: Optional[str] = None
    vehicle_reg: Optional[str] = None
    fine_amount: Optional[float] = None

    def to_payload(self) -> Dict[str, Any]:
        """Wire payload for the external predictive service."""
        return {
            "reason": self.reason,
            "description": self.description,
            "pcn_number": self.ticket_number,
            "vehicle_reg": self.vehicle_reg,
            "fine_amount": self.fine_amount,
            "evidence": [str(e) for e in self.evidence],
            "location": self.location,
            "contravention_code": self.contravention_code,
            "ticket_type": self.ticket_type,
        }


@dataclass(frozen=True)
class PredictionResult:
    """Ephemeral prediction. Never persisted."""
    success_probability: float
    confidence: ConfidenceTier
    recommendation: str
    source: PredictionSource
    key_factors: List[str] = field(default_factory=list)
    legal_grounds: List[str] = field(default_factory=list)
    risk_flags: List[str] = field(default_factory=list)
    recommended_evidence: List[str] = field(default_factory=list)
    checklist: List[str] = field(default_factory=list)
    appeal_category: str = "general_appeal"
    ticket_type: Optional[str] = None
    evidence_strength: str = "unsupported"
    estimated_processing_time: str = "28-56 days for informal appeal"
    model_version: str = "2.0"
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success_probability": round(self.success_probability, 4),
            "confidence_level": self.confidence.value,
            "recommendation": self.recommendation,
            "key_factors": list(self.key_factors),
            "legal_grounds": list(self.legal_grounds),
            "risk_flags": list(self.risk_flags),
            "recommended_evidence": list(self.recommended_evidence),
            "checklist": list(self.checklist),
            "appeal_category": self.appeal_category,
            "ticket_type": self.ticket_type,
            "evidence_strength": self.evidence_strength,
            "estimated_processing_time": self.estimated_processing_time,
            "source": self.source.value,
            "model_version": self.model_version,
            "timestamp": self.timestamp.isoformat(),
        }

    def strategy(self) -> Dict[str, List[str]]:
        """Fixed-shape strategy block for presentation layers."""
        return {
            "checklist": list(self.checklist),
            "recommended_evidence": list(self.recommended_evidence),
        }


# =============================================================================
# TAGGED RESULTS FOR EXTERNAL CALLS
# =============================================================================

T = TypeVar("T")


@dataclass(frozen=True)
class Ok(Generic[T]):
    """External call succeeded and its payload passed validation."""
    value: T
    ok: bool = True


@dataclass(frozen=True)
class Err:
    """External call failed: transport, status, timeout or shape."""
    reason: str
    ok: bool = False


ServiceResult = Union[Ok[T], Err]
