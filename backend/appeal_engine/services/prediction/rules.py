"""
Rule Tables for the Rule-Based Predictor

Declarative, data-driven weights. Loaded once at import; the predictor
only walks these tables.

The numeric weights are hand-tuned heuristics kept for behavioural
parity. They are not a calibrated model.
"""

from dataclasses import dataclass
from typing import Dict, List, Pattern, Tuple
import re


def _term_pattern(terms: Tuple[str, ...]) -> Pattern:
    """Whole-word / whole-phrase alternation, case-insensitive."""
    alternation = "|".join(re.escape(t) for t in terms)
    return re.compile(rf"\b(?:{alternation})\b", re.IGNORECASE)


# =============================================================================
# SCORING CONSTANTS
# =============================================================================

BASE_SCORE = 0.25

MEDICAL_LOCATION_BONUS = 0.05
SCHOOL_LOCATION_BONUS = 0.03

GRACE_PERIOD_MAX_MINUTES = 10
GRACE_PERIOD_BONUS = 0.08

EVIDENCE_BONUS_CAP = 0.18

DETAIL_LONG_THRESHOLD = 200
DETAIL_LONG_BONUS = 0.06
DETAIL_SHORT_THRESHOLD = 100
DETAIL_SHORT_BONUS = 0.03

LEGAL_TERMINOLOGY_BONUS = 0.10
WEAK_MITIGATION_PENALTY = 0.12

HIGH_CONFIDENCE_THRESHOLD = 0.75
MEDIUM_CONFIDENCE_THRESHOLD = 0.5


# =============================================================================
# CONTRAVENTION CODE WEIGHTS (typical UK PCN codes - indicative only)
# =============================================================================

CONTRAVENTION_WEIGHTS: Dict[str, float] = {
    # On-street
    "01": -0.05,  # Restricted street during prescribed hours
    "02": -0.03,  # Loading/unloading restrictions
    "12": -0.07,  # Residents or shared use bay without permit
    "19": -0.02,  # Invalid/expired permit displayed
    "20": -0.05,  # Parked in part of bay
    "21": -0.04,  # Suspended bay
    "30": -0.03,  # Parked longer than permitted
    "40": -0.06,  # Bus lane
    # Off-street
    "73": -0.03,  # Parked without payment of the parking charge
    "80": -0.04,  # Parked for longer than permitted
    "83": -0.02,  # Disabled bay without badge
}


# =============================================================================
# KEYWORD CLUSTERS
# =============================================================================

@dataclass(frozen=True)
class KeywordCluster:
    """A group of terms that, if any is present, adds a fixed weight."""
    name: str
    terms: Tuple[str, ...]
    weight: float
    key_factor: str
    legal_ground: str

    @property
    def pattern(self) -> Pattern:
        return _COMPILED_CLUSTERS[self.name]


KEYWORD_CLUSTERS: List[KeywordCluster] = [
    KeywordCluster(
        name="signage",
        terms=("sign", "signs", "signage", "signpost", "obscured", "unclear",
               "missing", "covered", "blocked"),
        weight=0.35,
        key_factor="Signage visibility issues detected",
        legal_ground="Statutory signage requirements under Traffic Management Act 2004",
    ),
    KeywordCluster(
        name="emergency",
        terms=("emergency", "medical", "hospital", "ambulance", "urgent", "health"),
        weight=0.30,
        key_factor="Emergency/medical circumstances identified",
        legal_ground="Exceptional circumstances exemption",
    ),
    KeywordCluster(
        name="breakdown",
        terms=("breakdown", "broke down", "broken down", "mechanical", "fault",
               "malfunction", "engine", "aa", "rac"),
        weight=0.25,
        key_factor="Vehicle breakdown circumstances",
        legal_ground="Unavoidable mechanical failure defence",
    ),
    KeywordCluster(
        name="payment_failure",
        terms=("payment", "machine", "fault", "out of order", "not working",
               "error", "broken"),
        weight=0.25,
        key_factor="Payment system failure identified",
        legal_ground="Payment facility defect under PCN regulations",
    ),
    KeywordCluster(
        name="valid_permit",
        terms=("permit", "valid", "displayed", "ticket shown", "pass visible"),
        weight=0.25,
        key_factor="Valid permit/ticket display issue",
        legal_ground="Valid authorisation wrongly penalised",
    ),
    KeywordCluster(
        name="loading",
        terms=("loading", "unloading", "delivery", "commercial", "goods", "business"),
        weight=0.20,
        key_factor="Loading/commercial activity circumstances",
        legal_ground="Permitted commercial activity exemption",
    ),
    KeywordCluster(
        name="administrative_error",
        terms=("wrong registration", "incorrect", "incorrect vrn", "plate mismatch",
               "error", "mistake", "duplicate"),
        weight=0.25,
        key_factor="Administrative error detected",
        legal_ground="Factual inaccuracy in PCN details",
    ),
]

_COMPILED_CLUSTERS: Dict[str, Pattern] = {
    c.name: _term_pattern(c.terms) for c in KEYWORD_CLUSTERS
}


# =============================================================================
# LOCATION, GRACE PERIOD, TERMINOLOGY
# =============================================================================

MEDICAL_LOCATION_PATTERN = _term_pattern(("hospital", "gp", "clinic", "surgery"))
SCHOOL_LOCATION_PATTERN = _term_pattern(("school", "nursery"))

MINUTES_PATTERN = re.compile(r"\b(\d{1,2})\s*(?:min|mins|minute|minutes)\b", re.IGNORECASE)
GRACE_CONTEXT_PATTERN = _term_pattern(("grace", "observation", "waiting", "loading"))

LEGAL_TERMINOLOGY_PATTERN = _term_pattern((
    "statutory", "statute", "regulation", "regulations", "act", "legal",
    "contravention", "enforcement", "tribunal", "tmo", "tro", "traffic order",
))

WEAK_MITIGATION_PATTERN = _term_pattern((
    "only briefly", "few minutes", "in a hurry", "running late",
))


# =============================================================================
# EVIDENCE TYPES
# =============================================================================

@dataclass(frozen=True)
class EvidenceRule:
    """Classifies an evidence descriptor and rewards its presence."""
    evidence_type: str
    pattern: Pattern
    bonus: float
    recommendation: str


EVIDENCE_RULES: List[EvidenceRule] = [
    EvidenceRule(
        evidence_type="photo",
        pattern=re.compile(r"\.jpe?g$|\.png$|\.heic$|photo|image", re.IGNORECASE),
        bonus=0.07,
        recommendation="Clear timestamped photos of signs, bay markings, machine screens",
    ),
    EvidenceRule(
        evidence_type="video",
        pattern=re.compile(r"\.mp4$|\.mov$|video", re.IGNORECASE),
        bonus=0.07,
        recommendation="Short video showing signage visibility/route/obstruction",
    ),
    EvidenceRule(
        evidence_type="document",
        pattern=re.compile(r"\.pdf$|document|letter|receipt", re.IGNORECASE),
        bonus=0.05,
        recommendation="Receipts, permits, council correspondence",
    ),
    EvidenceRule(
        evidence_type="witness",
        pattern=re.compile(r"witness|statement", re.IGNORECASE),
        bonus=0.04,
        recommendation="Witness statement with contact details",
    ),
]


# =============================================================================
# APPEAL CATEGORY LABELS (first match wins)
# =============================================================================

APPEAL_CATEGORY_RULES: List[Tuple[str, Pattern]] = [
    ("signage_issues", _term_pattern(("sign", "signs", "signage"))),
    ("emergency_circumstances", _term_pattern(("emergency", "medical"))),
    ("vehicle_breakdown", _term_pattern(("breakdown", "mechanical"))),
    ("payment_issues", _term_pattern(("payment", "machine"))),
    ("permit_issues", _term_pattern(("permit", "ticket"))),
    ("commercial_activity", _term_pattern(("loading", "delivery"))),
    ("administrative_error", _term_pattern(("error", "mistake", "vrn"))),
]

GENERAL_APPEAL_CATEGORY = "general_appeal"


# =============================================================================
# OUTPUT TEXT
# =============================================================================

RECOMMENDATION_BANDS: List[Tuple[float, str]] = [
    (0.75, "Strong grounds - proceed to formal representation with evidence pack"),
    (0.5, "Reasonable grounds - proceed and bolster with additional evidence"),
    (0.3, "Weak grounds - consider paying discounted rate unless new evidence emerges"),
    (0.0, "Very weak grounds - paying discounted rate may be pragmatic"),
]

PROCEDURAL_CHECKLIST: Tuple[str, ...] = (
    "Request CEO notes and photos from the council",
    "Request TRO/TMO and bay suspension order (if applicable)",
    "Photograph all nearby signs and bay markings (diagram 1028/1032/1033 compliance)",
    "Obtain machine audit/logs if payment machine fault claimed",
    "Include proof of permit/ticket validity (if applicable)",
    "Provide timeline with timestamps; cite any grace/observation period",
    "Redact personal info; keep file names descriptive",
)

GENERIC_LEGAL_GROUND = "General appeal under Civil Enforcement regulations"
GRACE_PERIOD_LEGAL_GROUND = "Statutory 10-minute grace period (where applicable)"

ESTIMATED_PROCESSING_TIME = "28-56 days for informal appeal"
