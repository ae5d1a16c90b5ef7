"""
Appeal Engine - Learning Pipeline Data Models

Domain objects for the training corpus:
- TrainingCase: resolved, outcome-labeled appeal
- AppealTemplate: per-category letter template
- ModelMetrics: aggregate performance snapshot (singleton "current")

These are plain immutable records. The corpus store is the only component
that maps them to and from the database.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional
from uuid import uuid4


METRICS_ID = "current"


class Outcome(str, Enum):
    """Real-world outcome of an appeal."""
    SUCCESSFUL = "successful"
    UNSUCCESSFUL = "unsuccessful"
    PENDING = "pending"

    @property
    def is_terminal(self) -> bool:
        return self is not Outcome.PENDING

    @classmethod
    def parse(cls, value: Any) -> "Outcome":
        """Case-insensitive parse ("Successful" and "successful" are equal)."""
        if isinstance(value, Outcome):
            return value
        return cls(str(value).strip().lower())


@dataclass(frozen=True)
class TrainingCase:
    """A resolved appeal. Append-only once aggregated."""
    ticket_type: str
    circumstances: str
    appeal_letter: str
    outcome: Outcome
    evidence_provided: List[str] = field(default_factory=list)
    key_arguments: List[str] = field(default_factory=list)
    success_factors: Optional[List[str]] = None
    legal_references: Optional[List[str]] = None
    processing_time: Optional[float] = None  # Days
    fine_amount: float = 0.0
    fine_reduction: Optional[float] = None
    date_submitted: Optional[datetime] = None
    date_resolved: Optional[datetime] = None
    appeal_id: Optional[str] = None
    id: str = field(default_factory=lambda: str(uuid4()))

    @property
    def is_successful(self) -> bool:
        return self.outcome is Outcome.SUCCESSFUL

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "ticket_type": self.ticket_type,
            "circumstances": self.circumstances,
            "evidence_provided": list(self.evidence_provided),
            "appeal_letter": self.appeal_letter,
            "outcome": self.outcome.value,
            "success_factors": self.success_factors,
            "key_arguments": list(self.key_arguments),
            "legal_references": self.legal_references,
            "processing_time": self.processing_time,
            "fine_amount": self.fine_amount,
            "fine_reduction": self.fine_reduction,
            "date_submitted": self.date_submitted.isoformat() if self.date_submitted else None,
            "date_resolved": self.date_resolved.isoformat() if self.date_resolved else None,
            "appeal_id": self.appeal_id,
        }


@dataclass(frozen=True)
class AppealTemplate:
    """Per-category letter skeleton evolved from successful cases."""
    ticket_type: str
    template: str
    success_rate: float
    version: int
    source_case_id: Optional[str] = None
    last_used: Optional[datetime] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "ticket_type": self.ticket_type,
            "template": self.template,
            "success_rate": round(self.success_rate, 3),
            "version": self.version,
            "source_case_id": self.source_case_id,
            "last_used": self.last_used.isoformat() if self.last_used else None,
        }


@dataclass(frozen=True)
class ModelMetrics:
    """
    Aggregate corpus metrics.

    Always recomputed in full from the corpus, never patched.
    """
    total_cases: int = 0
    successful_cases: int = 0
    success_rate: float = 0.0
    most_successful_arguments: List[str] = field(default_factory=list)
    least_successful_arguments: List[str] = field(default_factory=list)
    average_fine_reduction: float = 0.0
    average_processing_time: float = 0.0
    confidence_score: float = 0.0
    computed_at: Optional[datetime] = None
    id: str = METRICS_ID

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "total_cases": self.total_cases,
            "successful_cases": self.successful_cases,
            "success_rate": round(self.success_rate, 3),
            "most_successful_arguments": list(self.most_successful_arguments),
            "least_successful_arguments": list(self.least_successful_arguments),
            "average_fine_reduction": round(self.average_fine_reduction, 2),
            "average_processing_time": round(self.average_processing_time, 1),
            "confidence_score": round(self.confidence_score, 3),
            "computed_at": self.computed_at.isoformat() if self.computed_at else None,
        }
