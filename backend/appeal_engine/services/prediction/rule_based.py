"""
Rule-Based Predictor

Deterministic weighted heuristic scorer for appeal success.

Used standalone or as the fallback when the external predictive service
is unavailable. Pure function of its input: no I/O, never raises on
malformed optional fields (they are treated as absent).

Scoring (additive, clamped to [0, 1]):
1. Base score
2. Contravention code adjustment
3. Keyword clusters (independent, may stack)
4. Location context
5. Grace/observation period
6. Evidence types (capped)
7. Narrative detail
8. Legal terminology
9. Weak mitigation penalty
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, List, Optional, Set

from ...models.prediction import (
    CaseSignals,
    ConfidenceTier,
    PredictionResult,
    PredictionSource,
)
from . import rules

logger = logging.getLogger(__name__)


@dataclass
class _ScoreSheet:
    """Accumulator for a single prediction."""
    score: float = rules.BASE_SCORE
    key_factors: List[str] = field(default_factory=list)
    legal_grounds: List[str] = field(default_factory=list)
    risk_flags: List[str] = field(default_factory=list)
    recommended_evidence: List[str] = field(default_factory=list)

    def add_ground(self, ground: str) -> None:
        if ground not in self.legal_grounds:
            self.legal_grounds.append(ground)


def _text(value: Any) -> str:
    return value if isinstance(value, str) else ""


def evidence_descriptor(item: Any) -> Optional[str]:
    """Reduce an evidence item (filename string or upload dict) to text."""
    if isinstance(item, str):
        return item.strip() or None
    if isinstance(item, dict):
        parts = [
            str(item[k]) for k in ("name", "filename", "type", "description")
            if isinstance(item.get(k), str)
        ]
        return " ".join(parts) or None
    return None


def classify_evidence(evidence: Any) -> Set[str]:
    """Evidence types present among the descriptors (photo, video, document, witness)."""
    if not isinstance(evidence, (list, tuple)):
        return set()

    found = set()
    for item in evidence:
        descriptor = evidence_descriptor(item)
        if descriptor is None:
            continue
        for rule in rules.EVIDENCE_RULES:
            if rule.pattern.search(descriptor):
                found.add(rule.evidence_type)
    return found


def evidence_bonus(evidence_types: Set[str]) -> float:
    """Sum of per-type bonuses, capped."""
    total = sum(r.bonus for r in rules.EVIDENCE_RULES if r.evidence_type in evidence_types)
    return min(total, rules.EVIDENCE_BONUS_CAP)


def categorize_appeal(text: str) -> str:
    for label, pattern in rules.APPEAL_CATEGORY_RULES:
        if pattern.search(text):
            return label
    return rules.GENERAL_APPEAL_CATEGORY


def recommendation_for(score: float) -> str:
    for threshold, recommendation in rules.RECOMMENDATION_BANDS:
        if score >= threshold:
            return recommendation
    return rules.RECOMMENDATION_BANDS[-1][1]


class RuleBasedPredictor:
    """
    Weighted heuristic scorer.

    Usage:
        predictor = RuleBasedPredictor()
        result = predictor.predict(CaseSignals(reason="...", description="..."))
    """

    MODEL_VERSION = "2.0-fallback"

    def predict(self, signals: CaseSignals) -> PredictionResult:
        """
        Score an appeal from its signals.

        Args:
            signals: Reason/description text plus optional structured fields

        Returns:
            PredictionResult tagged rule_based_fallback
        """
        reason = _text(signals.reason).lower()
        description = _text(signals.description).lower()
        combined = f"{reason} {description}"

        sheet = _ScoreSheet()

        self._apply_contravention(sheet, signals.contravention_code)
        self._apply_keyword_clusters(sheet, combined)
        self._apply_location(sheet, _text(signals.location).lower())
        self._apply_grace_period(sheet, combined)
        self._apply_evidence(sheet, signals.evidence)
        self._apply_detail(sheet, combined)
        self._apply_legal_terminology(sheet, combined)
        self._apply_weak_mitigation(sheet, combined)

        score = max(0.0, min(1.0, sheet.score))

        if not sheet.legal_grounds:
            sheet.legal_grounds.append(rules.GENERIC_LEGAL_GROUND)

        evidence_items = signals.evidence if isinstance(signals.evidence, (list, tuple)) else []

        return PredictionResult(
            success_probability=score,
            confidence=ConfidenceTier.from_score(score),
            recommendation=recommendation_for(score),
            source=PredictionSource.RULE_BASED_FALLBACK,
            key_factors=sheet.key_factors,
            legal_grounds=sheet.legal_grounds,
            risk_flags=sheet.risk_flags,
            recommended_evidence=list(dict.fromkeys(sheet.recommended_evidence)),
            checklist=list(rules.PROCEDURAL_CHECKLIST),
            appeal_category=categorize_appeal(combined),
            ticket_type=signals.ticket_type if isinstance(signals.ticket_type, str) else None,
            evidence_strength="supported" if evidence_items else "unsupported",
            estimated_processing_time=rules.ESTIMATED_PROCESSING_TIME,
            model_version=self.MODEL_VERSION,
        )

    # =========================================================================
    # SCORING STEPS
    # =========================================================================

    def _apply_contravention(self, sheet: _ScoreSheet, code: Any) -> None:
        if not isinstance(code, (str, int)):
            return
        code = str(code).strip()
        weight = rules.CONTRAVENTION_WEIGHTS.get(code)
        if weight is None:
            return
        sheet.score += weight
        sheet.key_factors.append(f"Contravention code {code} weighting applied")

    def _apply_keyword_clusters(self, sheet: _ScoreSheet, text: str) -> None:
        for cluster in rules.KEYWORD_CLUSTERS:
            if cluster.pattern.search(text):
                sheet.score += cluster.weight
                sheet.key_factors.append(cluster.key_factor)
                sheet.add_ground(cluster.legal_ground)

    def _apply_location(self, sheet: _ScoreSheet, location: str) -> None:
        if not location:
            return
        if rules.MEDICAL_LOCATION_PATTERN.search(location):
            sheet.score += rules.MEDICAL_LOCATION_BONUS
            sheet.key_factors.append("Hospital/medical location context")
        if rules.SCHOOL_LOCATION_PATTERN.search(location):
            sheet.score += rules.SCHOOL_LOCATION_BONUS
            sheet.key_factors.append("School area - potential loading/child drop-off grace")

    def _apply_grace_period(self, sheet: _ScoreSheet, text: str) -> None:
        match = rules.MINUTES_PATTERN.search(text)
        if not match:
            return
        minutes = int(match.group(1))
        if minutes <= rules.GRACE_PERIOD_MAX_MINUTES and rules.GRACE_CONTEXT_PATTERN.search(text):
            sheet.score += rules.GRACE_PERIOD_BONUS
            sheet.key_factors.append("Possible 10-minute grace/observation period")
            sheet.add_ground(rules.GRACE_PERIOD_LEGAL_GROUND)

    def _apply_evidence(self, sheet: _ScoreSheet, evidence: Any) -> None:
        evidence_types = classify_evidence(evidence)
        for rule in rules.EVIDENCE_RULES:
            if rule.evidence_type in evidence_types:
                sheet.recommended_evidence.append(rule.recommendation)

        bonus = evidence_bonus(evidence_types)
        if bonus > 0:
            sheet.score += bonus
            sheet.key_factors.append(f"Evidence strength boost (+{bonus * 100:.0f}%)")

    def _apply_detail(self, sheet: _ScoreSheet, text: str) -> None:
        length = len(text)
        if length > rules.DETAIL_LONG_THRESHOLD:
            sheet.score += rules.DETAIL_LONG_BONUS
            sheet.key_factors.append("Detailed account provided")
        elif length > rules.DETAIL_SHORT_THRESHOLD:
            sheet.score += rules.DETAIL_SHORT_BONUS
            sheet.key_factors.append("Some detail provided")

    def _apply_legal_terminology(self, sheet: _ScoreSheet, text: str) -> None:
        if rules.LEGAL_TERMINOLOGY_PATTERN.search(text):
            sheet.score += rules.LEGAL_TERMINOLOGY_BONUS
            sheet.key_factors.append("Legal terminology awareness")

    def _apply_weak_mitigation(self, sheet: _ScoreSheet, text: str) -> None:
        if rules.WEAK_MITIGATION_PATTERN.search(text):
            sheet.score -= rules.WEAK_MITIGATION_PENALTY
            sheet.risk_flags.append("Weak mitigation language detected")
