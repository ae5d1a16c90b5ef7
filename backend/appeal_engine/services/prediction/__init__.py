"""
Appeal Prediction

External predictive service with a deterministic rule-based fallback.
"""

from .rule_based import RuleBasedPredictor, classify_evidence, recommendation_for
from .service_client import PredictiveServiceClient, parse_prediction_payload
from .gateway import PredictionGateway

__all__ = [
    "RuleBasedPredictor",
    "classify_evidence",
    "recommendation_for",
    "PredictiveServiceClient",
    "parse_prediction_payload",
    "PredictionGateway",
]
