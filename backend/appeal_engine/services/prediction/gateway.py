"""
Prediction Gateway

Orchestrates prediction:
1. External predictive service, bounded by a hard timeout
2. RuleBasedPredictor on any failure

A PredictionResult is always returned. Logging the fallback is the only
side effect.
"""
from __future__ import annotations

import logging
import os
from concurrent.futures import ThreadPoolExecutor, TimeoutError as FutureTimeout
from dataclasses import replace
from typing import Optional

from ...models.prediction import CaseSignals, Err, PredictionResult, ServiceResult
from ..classification import TicketCategoryRegistry
from .rule_based import RuleBasedPredictor
from .service_client import PREDICTION_TIMEOUT_SECONDS, PredictiveServiceClient

logger = logging.getLogger(__name__)


PREDICTION_WORKERS = int(os.getenv("PREDICTION_WORKERS", "8"))


class PredictionGateway:
    """
    Single entry point for appeal success prediction.

    The external call runs on a worker thread. If it has not finished
    within the timeout it is abandoned and the rule-based path runs
    immediately.

    Usage:
        gateway = PredictionGateway(client, predictor, registry)
        result = gateway.get_prediction(signals)
    """

    def __init__(
        self,
        client: Optional[PredictiveServiceClient],
        predictor: RuleBasedPredictor,
        registry: TicketCategoryRegistry,
        timeout: float = PREDICTION_TIMEOUT_SECONDS,
        max_workers: int = PREDICTION_WORKERS,
    ):
        self.client = client
        self.predictor = predictor
        self.registry = registry
        self.timeout = timeout
        self._executor = ThreadPoolExecutor(
            max_workers=max_workers, thread_name_prefix="prediction"
        )

    def get_prediction(self, signals: CaseSignals) -> PredictionResult:
        """
        Predict appeal success.

        Args:
            signals: Case signals from the caller

        Returns:
            PredictionResult tagged external_service or rule_based_fallback
        """
        signals = self._with_ticket_type(signals)

        if self.client is not None:
            outcome = self._call_external(signals)
            if outcome.ok:
                return outcome.value
            logger.warning(f"Predictive service unavailable, using rule-based fallback: {outcome.reason}")

        return self.predictor.predict(signals)

    def shutdown(self) -> None:
        self._executor.shutdown(wait=False, cancel_futures=True)

    def _call_external(self, signals: CaseSignals) -> ServiceResult:
        try:
            future = self._executor.submit(self.client.predict, signals)
        except RuntimeError as e:
            return Err(f"executor unavailable: {e}")

        try:
            return future.result(timeout=self.timeout)
        except FutureTimeout:
            future.cancel()
            return Err(f"timeout after {self.timeout:.1f}s")
        except Exception as e:
            # The client is expected to return Err itself; anything escaping is a bug there
            return Err(f"client error: {type(e).__name__}")

    def _with_ticket_type(self, signals: CaseSignals) -> CaseSignals:
        """Resolve the ticket category from the ticket number when not given."""
        known = self.registry.get(signals.ticket_type) if isinstance(signals.ticket_type, str) else None
        if known is not None:
            return replace(signals, ticket_type=known.id)

        if isinstance(signals.ticket_number, str) and signals.ticket_number.strip():
            return replace(signals, ticket_type=self.registry.classify(signals.ticket_number).id)

        return replace(signals, ticket_type=None)
