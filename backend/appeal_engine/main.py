"""
Appeal Engine - FastAPI Application

Main entry point for the Appeal Engine backend.

Architecture:
- Ticket number → TicketCategoryRegistry → ticket category
- Case signals → PredictionGateway → PredictionResult
  (external predictive service, rule-based fallback)
- Resolved case → LearningOrchestrator → corpus + metrics (+ evolution task)
- Evolution task → TemplateEvolutionScheduler → category template
"""
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .database import init_db
from .dependencies import build_services
from .routers import (
    appeals_router,
    intelligence_router,
    predictions_router,
    scheduler_router,
    tickets_router,
)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Initialize database and services on startup."""
    init_db()
    app.state.services = build_services()
    logger.info("Appeal Engine services ready")
    yield
    app.state.services.shutdown()

# Create FastAPI app
app = FastAPI(
    lifespan=lifespan,
    title="Appeal Engine",
    description="""
    Appeal Engine - UK Traffic Ticket Appeal Prediction and Learning

    Predicts how likely a traffic-ticket appeal is to succeed and learns
    from real outcomes to improve its letter templates.

    ## Pipeline
    1. **Classification**: Ticket number → ticket category and appeal route
    2. **Prediction**: Case signals → success probability (external service, rule-based fallback)
    3. **Learning**: Reported outcome → training corpus → aggregate metrics
    4. **Template Evolution**: Successful case → improved category template

    ## Key Principles
    - A prediction is always returned, even when the predictive service is down
    - The training corpus is append-only
    - Metrics are always recomputed in full
    - Template evolution never blocks outcome recording
    """,
    version="2.0.0",
    docs_url="/docs",
    redoc_url="/redoc"
)

# Configure CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # Configure appropriately for production
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(predictions_router)
app.include_router(intelligence_router)
app.include_router(appeals_router)
app.include_router(tickets_router)
app.include_router(scheduler_router)


@app.get("/")
async def root():
    """Root endpoint - API information."""
    return {
        "name": "Appeal Engine",
        "version": "2.0.0",
        "description": "Traffic Ticket Appeal Prediction and Learning",
        "docs": "/docs",
    }


@app.get("/health")
async def health_check():
    """Health check endpoint."""
    return {"status": "healthy", "version": "2.0.0"}


# For running with: python -m appeal_engine.main
if __name__ == "__main__":
    import uvicorn
    logging.basicConfig(level=logging.INFO)
    uvicorn.run(app, host="0.0.0.0", port=8001)
