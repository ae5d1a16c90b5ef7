"""
Appeal Engine - Service Wiring

Long-lived collaborators are built once at startup by build_services(),
stored on app.state.services and handed to routes through Depends
providers. Per-request collaborators are built from the request's
database session.
"""
import logging
from dataclasses import dataclass
from typing import Callable, Optional

from fastapi import Depends, HTTPException, Request
from sqlalchemy.orm import Session

from .database import SessionLocal, get_db
from .services.classification import TicketCategoryRegistry
from .services.errors import (
    AppealEngineError,
    AppealNotFoundError,
    CaseNotFoundError,
    CorpusStoreError,
    DuplicateCaseError,
    OutcomeValidationError,
)
from .services.learning import (
    AppealLetterGenerator,
    CategoryLockManager,
    GenerativeClient,
    LearningOrchestrator,
    MetricsAggregator,
    SimilarityRetriever,
    TemplateEvolutionScheduler,
    TrainingCorpusStore,
)
from .services.prediction import (
    PredictionGateway,
    PredictiveServiceClient,
    RuleBasedPredictor,
)

logger = logging.getLogger(__name__)


@dataclass
class Services:
    """Process-wide collaborators."""
    registry: TicketCategoryRegistry
    predictor: RuleBasedPredictor
    gateway: PredictionGateway
    aggregator: MetricsAggregator
    retriever: SimilarityRetriever
    generative: GenerativeClient
    locks: CategoryLockManager
    session_factory: Callable[[], Session]

    def shutdown(self) -> None:
        self.gateway.shutdown()


def build_services(
    session_factory: Callable[[], Session] = SessionLocal,
    prediction_client: Optional[PredictiveServiceClient] = None,
    generative: Optional[GenerativeClient] = None,
    prediction_timeout: Optional[float] = None,
) -> Services:
    """Construct every long-lived collaborator once."""
    registry = TicketCategoryRegistry()
    predictor = RuleBasedPredictor()

    gateway_kwargs = {}
    if prediction_timeout is not None:
        gateway_kwargs["timeout"] = prediction_timeout
    gateway = PredictionGateway(
        prediction_client or PredictiveServiceClient(),
        predictor,
        registry,
        **gateway_kwargs,
    )

    generative = generative or GenerativeClient()
    if not generative.configured:
        logger.warning("GENERATIVE_SERVICE_API_KEY not set - templates will not evolve and letters use fallbacks")

    return Services(
        registry=registry,
        predictor=predictor,
        gateway=gateway,
        aggregator=MetricsAggregator(),
        retriever=SimilarityRetriever(),
        generative=generative,
        locks=CategoryLockManager(),
        session_factory=session_factory,
    )


# =============================================================================
# PROVIDERS
# =============================================================================

def get_services(request: Request) -> Services:
    return request.app.state.services


def get_registry(services: Services = Depends(get_services)) -> TicketCategoryRegistry:
    return services.registry


def get_gateway(services: Services = Depends(get_services)) -> PredictionGateway:
    return services.gateway


def get_corpus_store(db: Session = Depends(get_db)) -> TrainingCorpusStore:
    return TrainingCorpusStore(db)


def get_orchestrator(
    db: Session = Depends(get_db),
    services: Services = Depends(get_services),
) -> LearningOrchestrator:
    return LearningOrchestrator(db, services.aggregator, services.locks)


def get_letter_generator(
    store: TrainingCorpusStore = Depends(get_corpus_store),
    services: Services = Depends(get_services),
) -> AppealLetterGenerator:
    return AppealLetterGenerator(store, services.generative, services.retriever)


def run_template_evolution(services: Services, limit: int = 20) -> dict:
    """
    Process queued template evolutions in a fresh session.

    Used as a FastAPI background task, where the request session is
    already closed, and by the internal scheduler endpoint.
    """
    db = services.session_factory()
    try:
        scheduler = TemplateEvolutionScheduler(db, services.generative, services.locks, services.retriever)
        return scheduler.run_pending(limit)
    finally:
        db.close()


# =============================================================================
# ERROR TRANSLATION
# =============================================================================

def to_http_exception(error: AppealEngineError) -> HTTPException:
    """Map a service-layer error to its HTTP status."""
    if isinstance(error, OutcomeValidationError):
        return HTTPException(status_code=422, detail=str(error))
    if isinstance(error, DuplicateCaseError):
        return HTTPException(status_code=409, detail=str(error))
    if isinstance(error, (CaseNotFoundError, AppealNotFoundError)):
        return HTTPException(status_code=404, detail=str(error))
    if isinstance(error, CorpusStoreError):
        return HTTPException(status_code=503, detail=str(error))
    return HTTPException(status_code=500, detail="Internal error")
