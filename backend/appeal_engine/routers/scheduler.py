"""
Scheduler API Routes

Internal endpoints for system-automatic tasks.
Template evolution runs and task monitoring.
"""
import os
from typing import Optional

from fastapi import APIRouter, Depends, Header, HTTPException
from sqlalchemy.orm import Session

from ..database import get_db
from ..dependencies import Services, get_services, run_template_evolution
from ..models.db_models import SchedulerTaskDB
from ..services.learning.evolution_scheduler import TEMPLATE_EVOLUTION_TASK


router = APIRouter(prefix="/internal", tags=["scheduler"])


# =============================================================================
# INTERNAL API KEY VALIDATION
# =============================================================================

INTERNAL_API_KEY = os.getenv("INTERNAL_API_KEY", "scheduler-internal-key-change-in-production")


async def verify_internal_key(x_internal_key: str = Header(...)):
    """Verify internal API key for scheduler endpoints."""
    if x_internal_key != INTERNAL_API_KEY:
        raise HTTPException(status_code=403, detail="Invalid internal API key")
    return True


# =============================================================================
# SCHEDULER ENDPOINTS (SYSTEM-ONLY)
# =============================================================================

@router.post("/template-evolution", response_model=dict)
def run_template_evolution_batch(
    limit: int = 20,
    services: Services = Depends(get_services),
    _: bool = Depends(verify_internal_key),
):
    """
    Process queued template evolutions.

    System-automatic - retries failed tasks until their attempts run out.
    """
    return run_template_evolution(services, limit)


# =============================================================================
# SCHEDULER STATUS ENDPOINTS (READ-ONLY)
# =============================================================================

@router.get("/template-evolution/tasks", response_model=dict)
def list_template_evolution_tasks(
    status: Optional[str] = None,
    limit: int = 50,
    db: Session = Depends(get_db),
    _: bool = Depends(verify_internal_key),
):
    """
    Queued and processed evolution tasks for monitoring.
    """
    query = db.query(SchedulerTaskDB).filter(SchedulerTaskDB.task_type == TEMPLATE_EVOLUTION_TASK)
    if status:
        query = query.filter(SchedulerTaskDB.status == status)
    tasks = query.order_by(SchedulerTaskDB.created_at.desc()).limit(limit).all()

    return {
        "count": len(tasks),
        "tasks": [
            {
                "id": t.id,
                "case_id": t.case_id,
                "ticket_type": t.ticket_type,
                "status": t.status,
                "attempts": t.attempts,
                "started_at": t.started_at.isoformat() if t.started_at else None,
                "executed_at": t.executed_at.isoformat() if t.executed_at else None,
                "error_message": t.error_message,
            }
            for t in tasks
        ],
    }
