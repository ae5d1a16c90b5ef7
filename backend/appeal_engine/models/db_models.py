"""
Appeal Engine - SQLAlchemy ORM Models
PostgreSQL database models for persistent storage
"""
from datetime import datetime
from enum import Enum
from sqlalchemy import Column, String, Integer, Float, DateTime, Text, JSON, Boolean, Enum as SQLEnum
from ..database import Base


# =============================================================================
# ENUMS
# =============================================================================

class AppealStatus(str, Enum):
    """Lifecycle status of a submitted appeal."""
    SUBMITTED = "SUBMITTED"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"


class TaskStatus(str, Enum):
    """Status of a queued scheduler task."""
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


# =============================================================================
# APPEALS
# =============================================================================

class AppealDB(Base):
    """
    A submitted appeal.

    The prior case reference for user-reported outcomes. Becomes a
    training case once the user reports a terminal outcome.
    """
    __tablename__ = "appeals"

    id = Column(String(36), primary_key=True)  # UUID
    ticket_number = Column(String(50), nullable=True, index=True)
    ticket_type = Column(String(50), nullable=False, default="unknown")

    reason = Column(Text, nullable=True)
    circumstances = Column(Text, nullable=False)
    evidence = Column(JSON, nullable=True, default=list)  # List of evidence-type tags
    location = Column(String(255), nullable=True)
    contravention_code = Column(String(10), nullable=True)
    appeal_letter = Column(Text, nullable=True)
    key_arguments = Column(JSON, nullable=True, default=list)
    fine_amount = Column(Float, nullable=False, default=0.0)

    status = Column(SQLEnum(AppealStatus), nullable=False, default=AppealStatus.SUBMITTED)
    submitted_at = Column(DateTime, nullable=False, default=datetime.utcnow)

    # User-reported outcome
    user_reported_outcome = Column(String(20), nullable=True)  # successful, unsuccessful, pending
    user_reported_at = Column(DateTime, nullable=True)
    outcome_notes = Column(Text, nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)


# =============================================================================
# TRAINING CORPUS
# =============================================================================
# Append-only. A resolved case is never edited once it has been aggregated
# into metrics; corrections are new cases. Cases are soft-deactivated only.
# =============================================================================

class TrainingCaseDB(Base):
    """Resolved, outcome-labeled appeal used for learning and retrieval."""
    __tablename__ = "appeal_training"

    id = Column(String(36), primary_key=True)
    ticket_type = Column(String(50), nullable=False, index=True)
    circumstances = Column(Text, nullable=False)
    evidence = Column(JSON, nullable=False, default=list)
    appeal_letter = Column(Text, nullable=False)
    outcome = Column(String(20), nullable=False, index=True)  # successful, unsuccessful
    success_factors = Column(JSON, nullable=True)
    key_arguments = Column(JSON, nullable=False, default=list)
    legal_references = Column(JSON, nullable=True)
    processing_time = Column(Float, nullable=True)  # Days
    fine_amount = Column(Float, nullable=False, default=0.0)
    fine_reduction = Column(Float, nullable=True)
    date_submitted = Column(DateTime, nullable=True)
    date_resolved = Column(DateTime, nullable=True)
    appeal_id = Column(String(36), nullable=True, index=True)  # Source appeal, if any

    active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime, default=datetime.utcnow)


class AppealTemplateDB(Base):
    """
    One letter template per ticket category.

    Replaced wholesale by the template evolver; never edited in part
    and never deleted.
    """
    __tablename__ = "appeal_templates"

    ticket_type = Column(String(50), primary_key=True)
    template = Column(Text, nullable=False)
    success_rate = Column(Float, nullable=False, default=0.0)
    version = Column(Integer, nullable=False, default=1)
    source_case_id = Column(String(36), nullable=True)  # Case the current version was evolved from
    last_used = Column(DateTime, nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)


class ModelMetricsDB(Base):
    """
    Singleton aggregate metrics row (id = "current").

    Fully recomputed from the corpus on every recorded outcome.
    """
    __tablename__ = "model_metrics"

    id = Column(String(20), primary_key=True)
    total_cases = Column(Integer, nullable=False, default=0)
    successful_cases = Column(Integer, nullable=False, default=0)
    success_rate = Column(Float, nullable=False, default=0.0)
    most_successful_arguments = Column(JSON, nullable=False, default=list)
    least_successful_arguments = Column(JSON, nullable=False, default=list)
    average_fine_reduction = Column(Float, nullable=False, default=0.0)
    average_processing_time = Column(Float, nullable=False, default=0.0)
    confidence_score = Column(Float, nullable=False, default=0.0)

    computed_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)


class SchedulerTaskDB(Base):
    """
    Queued background tasks.
    Template evolution after a successful outcome.
    """
    __tablename__ = "scheduler_tasks"

    id = Column(String(36), primary_key=True)  # UUID

    # Task Details
    task_type = Column(String(50), nullable=False, index=True)  # template_evolution
    case_id = Column(String(36), nullable=True, index=True)
    ticket_type = Column(String(50), nullable=True)

    # Scheduling
    scheduled_for = Column(DateTime, nullable=False, default=datetime.utcnow)
    started_at = Column(DateTime, nullable=True)  # Lease start while running
    executed_at = Column(DateTime, nullable=True)

    # Status
    status = Column(String(20), default=TaskStatus.PENDING.value)
    attempts = Column(Integer, nullable=False, default=0)
    result = Column(JSON, nullable=True)
    error_message = Column(Text, nullable=True)

    # Timestamps
    created_at = Column(DateTime, default=datetime.utcnow)
