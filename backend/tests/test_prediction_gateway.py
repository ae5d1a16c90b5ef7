"""
Tests for the prediction gateway and the predictive service client.

Test Coverage:
1. External result passed through when the service answers
2. Silent fallback on error, exception and timeout
3. Timeout bound: the call returns within timeout + margin
4. Ticket category resolution from the ticket number
5. Boundary validation of service payloads
"""
import threading
import time
from unittest.mock import MagicMock

import pytest
import requests

from appeal_engine.models.prediction import (
    CaseSignals,
    ConfidenceTier,
    Err,
    Ok,
    PredictionResult,
    PredictionSource,
)
from appeal_engine.services.classification import TicketCategoryRegistry
from appeal_engine.services.prediction import (
    PredictionGateway,
    PredictiveServiceClient,
    RuleBasedPredictor,
    parse_prediction_payload,
)


TIMEOUT_MARGIN = 1.0


def external_result(probability=0.9):
    return PredictionResult(
        success_probability=probability,
        confidence=ConfidenceTier.from_score(probability),
        recommendation="Strong grounds",
        source=PredictionSource.EXTERNAL_SERVICE,
        checklist=["Request CEO notes"],
        recommended_evidence=["Photos"],
    )


def make_gateway(client, timeout=0.5):
    return PredictionGateway(client, RuleBasedPredictor(), TicketCategoryRegistry(), timeout=timeout, max_workers=2)


SIGNALS = CaseSignals(reason="the sign was obscured", ticket_number="PCN123456789")


# =============================================================================
# TEST: GATEWAY
# =============================================================================

class TestPredictionGateway:
    """Tests for PredictionGateway.get_prediction."""

    def test_external_result_is_returned(self):
        client = MagicMock()
        client.predict.return_value = Ok(external_result(0.9))
        gateway = make_gateway(client)

        result = gateway.get_prediction(SIGNALS)

        assert result.source == PredictionSource.EXTERNAL_SERVICE
        assert result.success_probability == 0.9
        gateway.shutdown()

    def test_err_falls_back_to_rules(self, caplog):
        client = MagicMock()
        client.predict.return_value = Err("status 500")
        gateway = make_gateway(client)

        with caplog.at_level("WARNING"):
            result = gateway.get_prediction(SIGNALS)

        assert result.source == PredictionSource.RULE_BASED_FALLBACK
        assert "status 500" in caplog.text
        gateway.shutdown()

    def test_client_exception_falls_back(self):
        client = MagicMock()
        client.predict.side_effect = RuntimeError("boom")
        gateway = make_gateway(client)

        result = gateway.get_prediction(SIGNALS)

        assert result.source == PredictionSource.RULE_BASED_FALLBACK
        gateway.shutdown()

    def test_timeout_falls_back_within_bound(self):
        release = threading.Event()

        def slow_predict(signals):
            release.wait(10)
            return Ok(external_result())

        client = MagicMock()
        client.predict.side_effect = slow_predict
        gateway = make_gateway(client, timeout=0.2)

        started = time.monotonic()
        result = gateway.get_prediction(SIGNALS)
        elapsed = time.monotonic() - started

        release.set()
        gateway.shutdown()

        assert result.source == PredictionSource.RULE_BASED_FALLBACK
        assert elapsed < 0.2 + TIMEOUT_MARGIN

    def test_no_client_uses_rules(self):
        gateway = make_gateway(None)
        result = gateway.get_prediction(SIGNALS)
        assert result.source == PredictionSource.RULE_BASED_FALLBACK
        gateway.shutdown()

    def test_ticket_type_resolved_from_number(self):
        gateway = make_gateway(None)
        result = gateway.get_prediction(CaseSignals(reason="x", ticket_number="NIP123456789"))
        assert result.ticket_type == "speed_camera"
        gateway.shutdown()

    def test_explicit_ticket_type_wins(self):
        client = MagicMock()
        client.predict.return_value = Err("down")
        gateway = make_gateway(client)

        gateway.get_prediction(CaseSignals(reason="x", ticket_type="BUS_LANE", ticket_number="PCN123456789"))

        sent = client.predict.call_args[0][0]
        assert sent.ticket_type == "bus_lane"
        gateway.shutdown()


# =============================================================================
# TEST: PAYLOAD VALIDATION
# =============================================================================

class TestParsePredictionPayload:
    """Tests for parse_prediction_payload."""

    def test_top_level_probability(self):
        result = parse_prediction_payload({
            "success_probability": 0.8,
            "checklist": ["a"],
            "recommended_evidence": ["b"],
        }, ticket_type="pcn")
        assert result.ok
        assert result.value.success_probability == 0.8
        assert result.value.confidence == ConfidenceTier.HIGH
        assert result.value.ticket_type == "pcn"
        assert result.value.source == PredictionSource.EXTERNAL_SERVICE

    def test_nested_probability(self):
        result = parse_prediction_payload({
            "prediction": {"success_probability": 0.4},
            "checklist": [],
            "recommended_evidence": [],
        })
        assert result.ok
        assert result.value.success_probability == 0.4

    @pytest.mark.parametrize("payload", [
        None,
        [],
        "ok",
        {"success_probability": 0.5},
        {"checklist": [], "recommended_evidence": []},
        {"success_probability": 1.5, "checklist": [], "recommended_evidence": []},
        {"success_probability": 0.5, "checklist": "not a list", "recommended_evidence": []},
    ])
    def test_malformed_payload_is_err(self, payload):
        assert not parse_prediction_payload(payload).ok


# =============================================================================
# TEST: SERVICE CLIENT
# =============================================================================

class TestPredictiveServiceClient:
    """Tests for PredictiveServiceClient with a mocked session."""

    def _client(self, session):
        return PredictiveServiceClient(base_url="http://predictor.test/", timeout=1, session=session)

    def test_posts_signals_and_parses(self):
        session = MagicMock()
        session.post.return_value.status_code = 200
        session.post.return_value.json.return_value = {
            "success_probability": 0.7,
            "checklist": ["a"],
            "recommended_evidence": [],
        }

        result = self._client(session).predict(SIGNALS)

        assert result.ok
        url = session.post.call_args[0][0]
        assert url == "http://predictor.test/predict-appeal"
        assert session.post.call_args[1]["json"]["pcn_number"] == "PCN123456789"
        assert session.post.call_args[1]["timeout"] == 1

    def test_non_2xx_is_err(self):
        session = MagicMock()
        session.post.return_value.status_code = 502
        assert self._client(session).predict(SIGNALS).reason == "status 502"

    def test_timeout_is_err(self):
        session = MagicMock()
        session.post.side_effect = requests.Timeout()
        assert self._client(session).predict(SIGNALS).reason == "timeout"

    def test_connection_error_is_err(self):
        session = MagicMock()
        session.post.side_effect = requests.ConnectionError()
        assert not self._client(session).predict(SIGNALS).ok

    def test_non_json_body_is_err(self):
        session = MagicMock()
        session.post.return_value.status_code = 200
        session.post.return_value.json.side_effect = ValueError("no json")
        assert not self._client(session).predict(SIGNALS).ok
