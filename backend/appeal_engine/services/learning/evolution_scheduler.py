"""
Template Evolution Scheduler

Outbox processing for template evolution.

A successful outcome enqueues a "template_evolution" task in the same
transaction as the corpus append. This scheduler picks up pending tasks,
and failed ones that still have attempts left, and runs the evolver.
A task left running past its lease (the worker died mid-run) is picked
up again; template replacement is idempotent per source case.
A task is completed only once the evolver has written a template or found
the case already applied; synthesis failures stay failed for the next run.
"""
import logging
import os
from datetime import datetime, timedelta
from typing import Any, Dict, List
from uuid import uuid4

from sqlalchemy import or_, and_
from sqlalchemy.orm import Session

from ...models.db_models import SchedulerTaskDB, TaskStatus
from ...models.learning import TrainingCase
from ..errors import CaseNotFoundError
from .corpus_store import TrainingCorpusStore
from .generative_client import GenerativeClient
from .locking import CategoryLockManager
from .similarity import SimilarityRetriever
from .template_evolver import TemplateEvolver

logger = logging.getLogger(__name__)


TEMPLATE_EVOLUTION_TASK = "template_evolution"
MAX_ATTEMPTS = 5
RUNNING_LEASE_SECONDS = int(os.getenv("EVOLUTION_LEASE_SECONDS", "600"))
DEFAULT_BATCH_SIZE = 20


def enqueue_evolution(db: Session, case: TrainingCase) -> SchedulerTaskDB:
    """Add an evolution task to the caller's transaction (not committed)."""
    task = SchedulerTaskDB(
        id=str(uuid4()),
        task_type=TEMPLATE_EVOLUTION_TASK,
        case_id=case.id,
        ticket_type=case.ticket_type,
        scheduled_for=datetime.utcnow(),
        status=TaskStatus.PENDING.value,
        attempts=0,
    )
    db.add(task)
    db.flush()
    return task


class TemplateEvolutionScheduler:
    """
    Runs queued template evolutions.

    AUTHORITY: SYSTEM - triggered after each successful outcome and by the
    internal scheduler endpoint.
    """

    def __init__(
        self,
        db_session: Session,
        client: GenerativeClient,
        locks: CategoryLockManager,
        retriever: SimilarityRetriever,
    ):
        self.db = db_session
        self.store = TrainingCorpusStore(db_session)
        self.retriever = retriever
        self.evolver = TemplateEvolver(self.store, client, locks)

    def due_tasks(self, limit: int = DEFAULT_BATCH_SIZE) -> List[SchedulerTaskDB]:
        now = datetime.utcnow()
        lease_expired = now - timedelta(seconds=RUNNING_LEASE_SECONDS)
        return self.db.query(SchedulerTaskDB).filter(
            SchedulerTaskDB.task_type == TEMPLATE_EVOLUTION_TASK,
            SchedulerTaskDB.scheduled_for <= now,
            or_(
                SchedulerTaskDB.status == TaskStatus.PENDING.value,
                and_(
                    SchedulerTaskDB.status == TaskStatus.FAILED.value,
                    SchedulerTaskDB.attempts < MAX_ATTEMPTS,
                ),
                and_(
                    SchedulerTaskDB.status == TaskStatus.RUNNING.value,
                    or_(
                        SchedulerTaskDB.started_at.is_(None),
                        SchedulerTaskDB.started_at <= lease_expired,
                    ),
                    SchedulerTaskDB.attempts < MAX_ATTEMPTS,
                ),
            ),
        ).order_by(SchedulerTaskDB.created_at, SchedulerTaskDB.id).limit(limit).all()

    def run_pending(self, limit: int = DEFAULT_BATCH_SIZE) -> Dict[str, Any]:
        """
        Process up to `limit` due evolution tasks.

        Returns:
            Run summary with per-task details
        """
        completed = []
        failed = []

        for task_id in [t.id for t in self.due_tasks(limit)]:
            task = self.db.get(SchedulerTaskDB, task_id)
            task.status = TaskStatus.RUNNING.value
            task.attempts = (task.attempts or 0) + 1
            task.started_at = datetime.utcnow()
            self.db.commit()

            try:
                result = self._run_task(task)
            except Exception as e:
                self.db.rollback()
                task = self.db.get(SchedulerTaskDB, task_id)
                task.status = TaskStatus.FAILED.value
                task.error_message = f"{type(e).__name__}: {e}"
                task.executed_at = datetime.utcnow()
                self.db.commit()
                logger.error(f"Template evolution task {task_id} errored: {type(e).__name__}")
                failed.append({"task_id": task_id, "error": task.error_message})
                continue

            task = self.db.get(SchedulerTaskDB, task_id)
            task.executed_at = datetime.utcnow()
            task.result = result
            if result["status"] == "synthesis_failed":
                task.status = TaskStatus.FAILED.value
                task.error_message = result.get("reason")
                failed.append({"task_id": task_id, "error": task.error_message})
            else:
                task.status = TaskStatus.COMPLETED.value
                task.error_message = None
                completed.append({"task_id": task_id, **result})
            self.db.commit()

        if completed or failed:
            logger.info(f"Template evolution run: {len(completed)} completed, {len(failed)} failed")

        return {
            "task": TEMPLATE_EVOLUTION_TASK,
            "run_date": datetime.utcnow().isoformat(),
            "processed": len(completed) + len(failed),
            "completed": len(completed),
            "failed": len(failed),
            "details": {
                "completed": completed,
                "failed": failed,
            },
        }

    def _run_task(self, task: SchedulerTaskDB) -> Dict[str, Any]:
        try:
            case = self.store.get_case(task.case_id)
        except CaseNotFoundError:
            # Deactivated since it was queued
            return {"status": "skipped", "version": None, "reason": "case inactive"}

        corpus = self.store.get_cases_by_category(case.ticket_type)
        similar = self.retriever.find_similar(case, corpus)
        outcome = self.evolver.apply(case.ticket_type, case, similar)
        return outcome.to_dict()
