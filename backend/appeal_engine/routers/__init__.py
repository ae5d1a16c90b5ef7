"""Appeal Engine - API Routers"""
from .predictions import router as predictions_router
from .intelligence import router as intelligence_router
from .appeals import router as appeals_router
from .tickets import router as tickets_router
from .scheduler import router as scheduler_router

__all__ = [
    "predictions_router",
    "intelligence_router",
    "appeals_router",
    "tickets_router",
    "scheduler_router",
]
