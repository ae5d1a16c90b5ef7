"""Appeal Engine - Data Models"""
from .learning import (
    Outcome, TrainingCase, AppealTemplate, ModelMetrics, METRICS_ID,
)
from .prediction import (
    ConfidenceTier, PredictionSource, CaseSignals, PredictionResult,
    Ok, Err, ServiceResult,
)

__all__ = [
    "Outcome", "TrainingCase", "AppealTemplate", "ModelMetrics", "METRICS_ID",
    "ConfidenceTier", "PredictionSource", "CaseSignals", "PredictionResult",
    "Ok", "Err", "ServiceResult",
]
