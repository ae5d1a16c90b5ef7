"""
Tests for the learning pipeline against an in-memory database.

Test Coverage:
1. TrainingCorpusStore - append, reads, soft deactivation, templates, metrics
2. LearningOrchestrator - pending rejected, single append + recompute, rollback,
   concurrent writers
3. TemplateEvolver - version round-trip, failure keeps previous, idempotency
4. TemplateEvolutionScheduler - outbox processing, retries, lease reclaim
5. AppealLetterGenerator - generative path and fallbacks
6. CategoryLockManager - serialisation, independence and timeouts
"""
import threading
import time
from datetime import datetime, timedelta
from unittest.mock import MagicMock, patch

import pytest
from sqlalchemy.exc import OperationalError

from appeal_engine.models.db_models import SchedulerTaskDB, TaskStatus
from appeal_engine.models.learning import AppealTemplate, Outcome
from appeal_engine.models.prediction import Err, Ok
from appeal_engine.services.errors import (
    CaseNotFoundError,
    CorpusStoreError,
    DuplicateCaseError,
    OutcomeValidationError,
)
from appeal_engine.services.learning import (
    AppealLetterGenerator,
    CategoryLockManager,
    EvolutionStatus,
    LearningOrchestrator,
    LetterRequest,
    LetterSource,
    MAX_ATTEMPTS,
    MetricsAggregator,
    SimilarityRetriever,
    TemplateEvolutionScheduler,
    TemplateEvolver,
    TrainingCorpusStore,
)
from appeal_engine.services.learning.evolution_scheduler import RUNNING_LEASE_SECONDS


@pytest.fixture
def store(db_session):
    return TrainingCorpusStore(db_session)


@pytest.fixture
def locks():
    return CategoryLockManager(timeout=5)


@pytest.fixture
def orchestrator(db_session, locks):
    return LearningOrchestrator(db_session, MetricsAggregator(), locks)


class StagedCorpus:
    """Shared corpus whose writes become visible to other writers only on commit."""

    def __init__(self):
        self.committed = []
        self.metrics = None
        self.guard = threading.Lock()


class StagedStore:
    """Per-writer view of a StagedCorpus, standing in for one session's store."""

    def __init__(self, corpus: StagedCorpus):
        self.corpus = corpus
        self.pending = []
        self.pending_metrics = None

    def append_case(self, case):
        self.pending.append(case)
        return case

    def get_all_cases(self):
        with self.corpus.guard:
            snapshot = list(self.corpus.committed)
        # Widen the gap between reading the corpus and committing
        time.sleep(0.05)
        return snapshot + self.pending

    def save_metrics(self, metrics):
        self.pending_metrics = metrics

    def commit(self):
        with self.corpus.guard:
            self.corpus.committed.extend(self.pending)
            if self.pending_metrics is not None:
                self.corpus.metrics = self.pending_metrics
        self.pending = []
        self.pending_metrics = None


def hold_lock(locks: CategoryLockManager, category: str):
    """Hold a category lock on another thread until the returned event is set."""
    acquired = threading.Event()
    release = threading.Event()

    def worker():
        with locks.lock(category):
            acquired.set()
            release.wait(5)

    holder = threading.Thread(target=worker)
    holder.start()
    assert acquired.wait(5)
    return release, holder


def staged_orchestrator(corpus: StagedCorpus, locks: CategoryLockManager) -> LearningOrchestrator:
    store = StagedStore(corpus)
    db = MagicMock()
    db.commit.side_effect = store.commit
    orchestrator = LearningOrchestrator(db, MetricsAggregator(), locks)
    orchestrator.store = store
    return orchestrator


# =============================================================================
# TEST: CORPUS STORE
# =============================================================================

class TestTrainingCorpusStore:
    """Tests for TrainingCorpusStore."""

    def test_empty_reads(self, store):
        assert store.get_cases_by_category("pcn") == []
        assert store.get_template("pcn") is None
        assert store.get_metrics().total_cases == 0
        assert store.category_success_rate("pcn") == 0.0

    def test_append_and_read_back(self, store, db_session, case_factory):
        case = case_factory(success_factors=["clear photos"], fine_reduction=65.0)
        store.append_case(case)
        db_session.commit()

        loaded = store.get_case(case.id)
        assert loaded == case

    def test_duplicate_append_rejected(self, store, case_factory):
        case = case_factory()
        store.append_case(case)
        with pytest.raises(DuplicateCaseError):
            store.append_case(case)

    def test_category_filter(self, store, case_factory):
        store.append_case(case_factory(ticket_type="pcn"))
        store.append_case(case_factory(ticket_type="bus_lane"))
        assert [c.ticket_type for c in store.get_cases_by_category("pcn")] == ["pcn"]
        assert len(store.get_all_cases()) == 2

    def test_deactivated_case_excluded(self, store, case_factory):
        case = case_factory()
        store.append_case(case)
        store.deactivate_case(case.id)

        assert store.get_all_cases() == []
        with pytest.raises(CaseNotFoundError):
            store.get_case(case.id)
        with pytest.raises(CaseNotFoundError):
            store.deactivate_case(case.id)

    def test_replace_template_is_wholesale(self, store):
        store.replace_template(AppealTemplate("pcn", "v1 text", 0.5, 1, source_case_id="a"))
        store.replace_template(AppealTemplate("pcn", "v2 text", 0.6, 2))

        template = store.get_template("pcn")
        assert template.template == "v2 text"
        assert template.version == 2
        assert template.source_case_id is None

    def test_touch_template(self, store):
        store.replace_template(AppealTemplate("pcn", "text", 0.5, 1))
        store.touch_template("pcn")
        store.touch_template("bus_lane")  # no template: no-op
        assert store.get_template("pcn").last_used is not None

    def test_store_failure_is_wrapped(self, store):
        with patch.object(store.db, "query", side_effect=OperationalError("SELECT", {}, Exception("down"))):
            with pytest.raises(CorpusStoreError):
                store.get_all_cases()


# =============================================================================
# TEST: LEARNING ORCHESTRATOR
# =============================================================================

class TestLearningOrchestrator:
    """Tests for LearningOrchestrator.record_outcome."""

    def test_pending_is_rejected(self, orchestrator, store, case_factory):
        with pytest.raises(OutcomeValidationError):
            orchestrator.record_outcome(case_factory(outcome=Outcome.PENDING))
        assert store.get_all_cases() == []

    @pytest.mark.parametrize("outcome", [Outcome.SUCCESSFUL, Outcome.UNSUCCESSFUL])
    def test_terminal_outcome_appends_once_and_recomputes_once(self, db_session, locks, case_factory, outcome):
        aggregator = MagicMock(wraps=MetricsAggregator())
        orchestrator = LearningOrchestrator(db_session, aggregator, locks)

        receipt = orchestrator.record_outcome(case_factory(outcome=outcome))

        store = TrainingCorpusStore(db_session)
        assert len(store.get_all_cases()) == 1
        assert aggregator.recompute.call_count == 1
        assert store.get_metrics().total_cases == 1
        assert receipt.metrics.total_cases == 1

    def test_successful_outcome_enqueues_evolution(self, orchestrator, db_session, case_factory):
        receipt = orchestrator.record_outcome(case_factory(outcome=Outcome.SUCCESSFUL))

        task = db_session.get(SchedulerTaskDB, receipt.evolution_task_id)
        assert task.case_id == receipt.case_id
        assert task.status == TaskStatus.PENDING.value

    def test_unsuccessful_outcome_enqueues_nothing(self, orchestrator, db_session, case_factory):
        receipt = orchestrator.record_outcome(case_factory(outcome=Outcome.UNSUCCESSFUL))
        assert receipt.evolution_task_id is None
        assert db_session.query(SchedulerTaskDB).count() == 0

    def test_metrics_cover_whole_corpus(self, orchestrator, store, case_factory):
        orchestrator.record_outcome(case_factory(ticket_type="pcn", outcome=Outcome.SUCCESSFUL))
        orchestrator.record_outcome(case_factory(ticket_type="bus_lane", outcome=Outcome.UNSUCCESSFUL))

        metrics = store.get_metrics()
        assert metrics.total_cases == 2
        assert metrics.success_rate == 0.5

    def test_failure_rolls_back_append(self, db_session, locks, case_factory):
        aggregator = MagicMock()
        aggregator.recompute.side_effect = OperationalError("SELECT", {}, Exception("down"))
        orchestrator = LearningOrchestrator(db_session, aggregator, locks)

        with pytest.raises(CorpusStoreError):
            orchestrator.record_outcome(case_factory())

        assert TrainingCorpusStore(db_session).get_all_cases() == []

    def test_duplicate_case_is_rejected(self, orchestrator, case_factory):
        case = case_factory()
        orchestrator.record_outcome(case)
        with pytest.raises(DuplicateCaseError):
            orchestrator.record_outcome(case)

    @pytest.mark.parametrize("categories", [("pcn", "pcn"), ("pcn", "bus_lane")])
    def test_concurrent_outcomes_all_reach_metrics(self, locks, case_factory, categories):
        """Each writer's recompute must see every case committed before it."""
        corpus = StagedCorpus()
        start = threading.Barrier(len(categories))
        errors = []

        def record(ticket_type):
            orchestrator = staged_orchestrator(corpus, locks)
            start.wait()
            try:
                orchestrator.record_outcome(case_factory(ticket_type=ticket_type, outcome=Outcome.UNSUCCESSFUL))
            except Exception as e:
                errors.append(e)

        threads = [threading.Thread(target=record, args=(c,)) for c in categories]
        for t in threads:
            t.start()
        for t in threads:
            t.join(timeout=10)

        assert errors == []
        assert len(corpus.committed) == 2
        assert corpus.metrics.total_cases == 2

    def test_busy_category_surfaces_store_error(self, case_factory):
        locks = CategoryLockManager(timeout=0.05)
        orchestrator = staged_orchestrator(StagedCorpus(), locks)
        release, holder = hold_lock(locks, "pcn")
        try:
            with pytest.raises(CorpusStoreError):
                orchestrator.record_outcome(case_factory(ticket_type="pcn"))
        finally:
            release.set()
            holder.join()

        assert orchestrator.store.corpus.committed == []


# =============================================================================
# TEST: TEMPLATE EVOLVER
# =============================================================================

class TestTemplateEvolver:
    """Tests for TemplateEvolver."""

    def test_first_evolution_creates_version_one(self, store, locks, generative_ok, case_factory):
        case = case_factory()
        store.append_case(case)

        template = TemplateEvolver(store, generative_ok, locks).evolve("pcn", case, [])

        assert template.version == 1
        assert template.source_case_id == case.id
        assert template.success_rate == 1.0
        assert store.get_template("pcn") == template

    def test_round_trip_version_is_strictly_newer(self, store, locks, generative_ok, case_factory):
        evolver = TemplateEvolver(store, generative_ok, locks)
        first, second = case_factory(), case_factory()

        v1 = evolver.evolve("pcn", first, [])
        evolver.evolve("pcn", second, [first])

        assert store.get_template("pcn").version > v1.version

    def test_synthesis_failure_keeps_previous(self, store, locks, generative_down, case_factory):
        previous = store.replace_template(AppealTemplate("pcn", "keep me", 0.4, 3, source_case_id="old"))

        evolver = TemplateEvolver(store, generative_down, locks)
        outcome = evolver.apply("pcn", case_factory(), [])

        assert outcome.status == EvolutionStatus.SYNTHESIS_FAILED
        assert not outcome.settled
        assert store.get_template("pcn") == previous

    def test_synthesis_failure_without_previous_writes_nothing(self, store, locks, generative_down, case_factory):
        assert TemplateEvolver(store, generative_down, locks).evolve("pcn", case_factory(), []) is None
        assert store.get_template("pcn") is None

    def test_same_case_twice_is_noop(self, store, locks, generative_ok, case_factory):
        evolver = TemplateEvolver(store, generative_ok, locks)
        case = case_factory()

        evolver.evolve("pcn", case, [])
        outcome = evolver.apply("pcn", case, [])

        assert outcome.status == EvolutionStatus.ALREADY_APPLIED
        assert store.get_template("pcn").version == 1
        assert generative_ok.complete.call_count == 1

    def test_prompt_carries_letter_and_factors(self, store, locks, generative_ok, case_factory):
        case = case_factory(appeal_letter="MY LETTER", success_factors=["clear photos"])
        TemplateEvolver(store, generative_ok, locks).evolve("pcn", case, [])

        system_prompt, user_prompt = generative_ok.complete.call_args[0]
        assert "transferable persuasive structure" in system_prompt
        assert "MY LETTER" in user_prompt
        assert "clear photos" in user_prompt


# =============================================================================
# TEST: EVOLUTION SCHEDULER
# =============================================================================

class TestTemplateEvolutionScheduler:
    """Tests for outbox processing."""

    def _record(self, orchestrator, case_factory):
        return orchestrator.record_outcome(case_factory(outcome=Outcome.SUCCESSFUL))

    def test_pending_task_completes(self, db_session, orchestrator, locks, generative_ok, case_factory):
        receipt = self._record(orchestrator, case_factory)

        scheduler = TemplateEvolutionScheduler(db_session, generative_ok, locks, SimilarityRetriever())
        summary = scheduler.run_pending()

        assert summary["completed"] == 1
        task = db_session.get(SchedulerTaskDB, receipt.evolution_task_id)
        assert task.status == TaskStatus.COMPLETED.value
        assert task.attempts == 1
        assert TrainingCorpusStore(db_session).get_template("pcn").source_case_id == receipt.case_id

    def test_failed_synthesis_is_retried_later(self, db_session, orchestrator, locks, generative_down, case_factory):
        receipt = self._record(orchestrator, case_factory)

        scheduler = TemplateEvolutionScheduler(db_session, generative_down, locks, SimilarityRetriever())
        assert scheduler.run_pending()["failed"] == 1

        task = db_session.get(SchedulerTaskDB, receipt.evolution_task_id)
        assert task.status == TaskStatus.FAILED.value

        generative_down.complete.return_value = Ok("recovered template")
        assert scheduler.run_pending()["completed"] == 1
        assert db_session.get(SchedulerTaskDB, receipt.evolution_task_id).attempts == 2

    def test_gives_up_after_max_attempts(self, db_session, orchestrator, locks, generative_down, case_factory):
        self._record(orchestrator, case_factory)
        scheduler = TemplateEvolutionScheduler(db_session, generative_down, locks, SimilarityRetriever())

        for _ in range(MAX_ATTEMPTS):
            scheduler.run_pending()

        assert scheduler.run_pending()["processed"] == 0

    def test_deactivated_case_is_skipped(self, db_session, orchestrator, locks, generative_ok, case_factory):
        receipt = self._record(orchestrator, case_factory)
        TrainingCorpusStore(db_session).deactivate_case(receipt.case_id)
        db_session.commit()

        scheduler = TemplateEvolutionScheduler(db_session, generative_ok, locks, SimilarityRetriever())
        summary = scheduler.run_pending()

        assert summary["completed"] == 1
        assert generative_ok.complete.call_count == 0

    @pytest.mark.parametrize("started_at", [
        None,
        datetime.utcnow() - timedelta(seconds=RUNNING_LEASE_SECONDS + 60),
    ])
    def test_abandoned_running_task_is_reclaimed(self, db_session, orchestrator, locks, generative_ok,
                                                 case_factory, started_at):
        receipt = self._record(orchestrator, case_factory)

        # Worker died after claiming the task
        task = db_session.get(SchedulerTaskDB, receipt.evolution_task_id)
        task.status = TaskStatus.RUNNING.value
        task.attempts = 1
        task.started_at = started_at
        db_session.commit()

        scheduler = TemplateEvolutionScheduler(db_session, generative_ok, locks, SimilarityRetriever())
        summary = scheduler.run_pending()

        assert summary["completed"] == 1
        task = db_session.get(SchedulerTaskDB, receipt.evolution_task_id)
        assert task.status == TaskStatus.COMPLETED.value
        assert task.attempts == 2
        assert TrainingCorpusStore(db_session).get_template("pcn").source_case_id == receipt.case_id

    def test_running_task_within_lease_is_left_alone(self, db_session, orchestrator, locks, generative_ok,
                                                     case_factory):
        receipt = self._record(orchestrator, case_factory)

        task = db_session.get(SchedulerTaskDB, receipt.evolution_task_id)
        task.status = TaskStatus.RUNNING.value
        task.attempts = 1
        task.started_at = datetime.utcnow()
        db_session.commit()

        scheduler = TemplateEvolutionScheduler(db_session, generative_ok, locks, SimilarityRetriever())

        assert scheduler.run_pending()["processed"] == 0
        assert generative_ok.complete.call_count == 0

    def test_abandoned_task_out_of_attempts_is_not_reclaimed(self, db_session, orchestrator, locks,
                                                             generative_ok, case_factory):
        receipt = self._record(orchestrator, case_factory)

        task = db_session.get(SchedulerTaskDB, receipt.evolution_task_id)
        task.status = TaskStatus.RUNNING.value
        task.attempts = MAX_ATTEMPTS
        task.started_at = None
        db_session.commit()

        scheduler = TemplateEvolutionScheduler(db_session, generative_ok, locks, SimilarityRetriever())

        assert scheduler.run_pending()["processed"] == 0

    def test_claim_records_lease_start(self, db_session, orchestrator, locks, generative_down, case_factory):
        receipt = self._record(orchestrator, case_factory)

        TemplateEvolutionScheduler(db_session, generative_down, locks, SimilarityRetriever()).run_pending()

        assert db_session.get(SchedulerTaskDB, receipt.evolution_task_id).started_at is not None


# =============================================================================
# TEST: LETTER GENERATOR
# =============================================================================

class TestAppealLetterGenerator:
    """Tests for AppealLetterGenerator."""

    REQUEST = LetterRequest(
        ticket_type="pcn",
        circumstances="the sign was obscured by overgrown trees near the bay",
        evidence=["photo"],
        ticket_number="PCN123456789",
    )

    def test_generative_letter(self, store, generative_ok):
        store.replace_template(AppealTemplate("pcn", "template", 0.5, 2))

        letter = AppealLetterGenerator(store, generative_ok, SimilarityRetriever()).generate(self.REQUEST)

        assert letter.source == LetterSource.GENERATIVE
        assert letter.template_version == 2
        assert store.get_template("pcn").last_used is not None

    def test_precedents_included(self, store, generative_ok, case_factory):
        store.append_case(case_factory(appeal_letter="PRECEDENT LETTER"))

        letter = AppealLetterGenerator(store, generative_ok, SimilarityRetriever()).generate(self.REQUEST)

        assert letter.precedents_used == 1
        assert "PRECEDENT LETTER" in generative_ok.complete.call_args[0][1]

    def test_raw_evidence_matches_stored_evidence_types(self, store, generative_ok, case_factory):
        store.append_case(case_factory(evidence=("photo",)))
        request = LetterRequest(
            ticket_type="pcn",
            circumstances="the sign was obscured by overgrown trees near the bay",
            evidence=["sign.jpg"],
        )

        letter = AppealLetterGenerator(store, generative_ok, SimilarityRetriever()).generate(request)

        assert letter.precedents_used == 1

    def test_fallback_to_template_text(self, store, generative_down):
        store.replace_template(AppealTemplate("pcn", "stored template", 0.5, 1))

        letter = AppealLetterGenerator(store, generative_down, SimilarityRetriever()).generate(self.REQUEST)

        assert letter.source == LetterSource.TEMPLATE_FALLBACK
        assert letter.letter == "stored template"

    def test_fallback_to_skeleton(self, store, generative_down):
        letter = AppealLetterGenerator(store, generative_down, SimilarityRetriever()).generate(self.REQUEST)

        assert letter.source == LetterSource.TEMPLATE_FALLBACK
        assert "PCN123456789" in letter.letter
        assert "Yours faithfully" in letter.letter


# =============================================================================
# TEST: CATEGORY LOCKS
# =============================================================================

class TestCategoryLockManager:
    """Tests for CategoryLockManager."""

    def test_busy_category_times_out(self):
        locks = CategoryLockManager(timeout=0.05)
        release, holder = hold_lock(locks, "pcn")
        try:
            with pytest.raises(CorpusStoreError):
                with locks.lock("pcn"):
                    pass
        finally:
            release.set()
            holder.join()

    def test_other_category_is_not_blocked(self):
        locks = CategoryLockManager(timeout=0.05)
        release, holder = hold_lock(locks, "pcn")
        entered = False
        try:
            with locks.lock("bus_lane"):
                entered = True
        finally:
            release.set()
            holder.join()

        assert entered

    def test_released_after_error(self):
        locks = CategoryLockManager(timeout=0.05)

        with pytest.raises(ValueError):
            with locks.lock("pcn"):
                raise ValueError("boom")

        with locks.lock("pcn"):
            pass

    def test_not_reentrant(self):
        locks = CategoryLockManager(timeout=0.05)
        with locks.lock("pcn"):
            with pytest.raises(CorpusStoreError):
                with locks.lock("pcn"):
                    pass

    def test_serialises_one_category(self):
        locks = CategoryLockManager(timeout=5)
        guard = threading.Lock()
        state = {"active": 0, "peak": 0}

        def worker():
            with locks.lock("pcn"):
                with guard:
                    state["active"] += 1
                    state["peak"] = max(state["peak"], state["active"])
                time.sleep(0.02)
                with guard:
                    state["active"] -= 1

        threads = [threading.Thread(target=worker) for _ in range(4)]
        for t in threads:
            t.start()
        for t in threads:
            t.join(timeout=10)

        assert state["peak"] == 1
