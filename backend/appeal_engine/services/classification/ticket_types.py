"""
UK Ticket Category Table

Declarative table of recognised penalty-notice categories and their
identifier formats. Order matters: categories are tested in declaration
order and, within a category, patterns in declaration order. Patterns are
literal prefix + digit-run forms so no identifier can match two categories.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Dict, List, Pattern, Tuple
import re


class LegalCategory(str, Enum):
    """Legal nature of the notice - governs appeal route."""
    CIVIL = "civil"
    CRIMINAL = "criminal"
    PRIVATE = "private"


class AppealRoute(str, Enum):
    """Body that hears a formal appeal."""
    TRIBUNAL = "tribunal"
    COURT = "court"
    COMPANY = "company"


@dataclass(frozen=True)
class TicketCategory:
    """Immutable descriptor of a ticket category."""
    id: str
    name: str
    legal_category: LegalCategory
    appeal_route: AppealRoute
    forms: Tuple[str, ...]
    time_limit: str
    description: str
    patterns: Tuple[Pattern, ...]
    examples: Tuple[str, ...]
    fine_range: Tuple[int, int]
    authority: str

    def matches(self, clean_identifier: str) -> bool:
        return any(p.match(clean_identifier) for p in self.patterns)

    def to_dict(self) -> Dict:
        return {
            "id": self.id,
            "name": self.name,
            "category": self.legal_category.value,
            "appeal_route": self.appeal_route.value,
            "forms": list(self.forms),
            "time_limit": self.time_limit,
            "description": self.description,
            "examples": list(self.examples),
            "fine_range": {"min": self.fine_range[0], "max": self.fine_range[1]},
            "authority": self.authority,
        }


def _patterns(*sources: str) -> Tuple[Pattern, ...]:
    return tuple(re.compile(s) for s in sources)


UNKNOWN_CATEGORY_ID = "unknown"


# =============================================================================
# CATEGORY TABLE
# =============================================================================

TICKET_CATEGORIES: List[TicketCategory] = [
    # Penalty Charge Notices (Civil Parking)
    TicketCategory(
        id="pcn",
        name="Penalty Charge Notice (PCN)",
        legal_category=LegalCategory.CIVIL,
        appeal_route=AppealRoute.TRIBUNAL,
        forms=("Online Appeal", "Informal Challenge"),
        time_limit="28 days from Notice to Owner",
        description="Civil parking penalties issued by local authorities",
        patterns=_patterns(
            r"^PCN[0-9]{6,10}$",
            r"^LB[0-9]{6,10}$",
            r"^TK[0-9]{6,10}$",
            r"^BH[0-9]{6,10}$",
        ),
        examples=("PCN123456789", "LB12345678", "TK987654321"),
        fine_range=(25, 130),
        authority="Local Authority",
    ),
    # Fixed Penalty Notices (Criminal)
    TicketCategory(
        id="fpn",
        name="Fixed Penalty Notice (FPN)",
        legal_category=LegalCategory.CRIMINAL,
        appeal_route=AppealRoute.COURT,
        forms=("Court Plea", "Legal Representation"),
        time_limit="28 days from issue",
        description="Criminal traffic offences issued by police",
        patterns=_patterns(
            r"^FPN[0-9]{6,9}$",
            r"^HO[0-9]{6,8}$",
            r"^MP[0-9]{6,8}$",
        ),
        examples=("FPN123456789", "HO1234567", "MP12345678"),
        fine_range=(100, 1000),
        authority="Police Force",
    ),
    # Traffic Enforcement Centre
    TicketCategory(
        id="tec",
        name="Traffic Enforcement Centre Notice",
        legal_category=LegalCategory.CRIMINAL,
        appeal_route=AppealRoute.COURT,
        forms=("TE7 Appeal", "TE9 Statutory Declaration", "Witness Statement"),
        time_limit="21 days for TE9, varies for TE7",
        description="Unpaid penalties escalated to the Traffic Enforcement Centre",
        patterns=_patterns(
            r"^TEC[0-9]{8,10}$",
            r"^TE[0-9]{8,10}$",
            r"^24[0-9]{8,10}$",
        ),
        examples=("TEC1234567890", "TE9876543210", "241234567890"),
        fine_range=(150, 2000),
        authority="Traffic Enforcement Centre",
    ),
    # Speed Camera Notices
    TicketCategory(
        id="speed_camera",
        name="Speed Camera Notice (NIP)",
        legal_category=LegalCategory.CRIMINAL,
        appeal_route=AppealRoute.COURT,
        forms=("Court Defence", "Special Reasons", "Section 1 Request"),
        time_limit="28 days from NIP",
        description="Notice of Intended Prosecution for speeding",
        patterns=_patterns(
            r"^NIP[0-9]{6,10}$",
            r"^NOIP[0-9]{6,10}$",
            r"^SC[0-9]{6,9}$",
            r"^CAM[0-9]{6,10}$",
            r"^SP[0-9]{6,10}$",
        ),
        examples=("NIP123456789", "SC12345678", "CAM987654321"),
        fine_range=(100, 2500),
        authority="Police / Camera Partnership",
    ),
    # Bus Lane Violations
    TicketCategory(
        id="bus_lane",
        name="Bus Lane Violation Notice",
        legal_category=LegalCategory.CIVIL,
        appeal_route=AppealRoute.TRIBUNAL,
        forms=("Online Appeal", "Informal Challenge"),
        time_limit="28 days from Notice to Owner",
        description="Civil penalty for unauthorised bus lane use",
        patterns=_patterns(
            r"^BL[0-9]{6,10}$",
            r"^TFL[0-9]{6,10}$",
            r"^BUS[0-9]{6,10}$",
        ),
        examples=("BL123456789", "TFL987654321", "BUS12345678"),
        fine_range=(80, 160),
        authority="Local Authority / TfL",
    ),
    # Red Light Camera
    TicketCategory(
        id="red_light",
        name="Red Light Camera Notice",
        legal_category=LegalCategory.CRIMINAL,
        appeal_route=AppealRoute.COURT,
        forms=("Court Defence", "Technical Challenge"),
        time_limit="28 days from notice",
        description="Traffic light violation penalty",
        patterns=_patterns(
            r"^RLC[0-9]{6,10}$",
            r"^TL[0-9]{6,10}$",
            r"^RL[0-9]{6,10}$",
            r"^TS[0-9]{6,10}$",
        ),
        examples=("RLC123456789", "TL12345678", "RL987654321"),
        fine_range=(100, 1000),
        authority="Police / Local Authority",
    ),
    # Congestion Charge (TFL-prefixed notices route to bus_lane above)
    TicketCategory(
        id="congestion_charge",
        name="Congestion Charge Notice",
        legal_category=LegalCategory.CIVIL,
        appeal_route=AppealRoute.TRIBUNAL,
        forms=("Online Appeal", "Representations"),
        time_limit="28 days from Notice to Owner",
        description="London Congestion Charge penalty",
        patterns=_patterns(
            r"^CC[0-9]{6,10}$",
            r"^CCN[0-9]{6,10}$",
        ),
        examples=("CC123456789", "CCN12345678"),
        fine_range=(80, 240),
        authority="Transport for London",
    ),
    # ULEZ/LEZ
    TicketCategory(
        id="ulez",
        name="ULEZ/LEZ Penalty Notice",
        legal_category=LegalCategory.CIVIL,
        appeal_route=AppealRoute.TRIBUNAL,
        forms=("Online Appeal", "Representations"),
        time_limit="28 days from Notice to Owner",
        description="Ultra Low/Low Emission Zone penalty",
        patterns=_patterns(
            r"^ULEZ[0-9]{6,10}$",
            r"^ULZ[0-9]{6,10}$",
            r"^LEZ[0-9]{6,10}$",
        ),
        examples=("ULEZ123456789", "LEZ12345678", "ULZ987654321"),
        fine_range=(80, 1000),
        authority="Transport for London",
    ),
    # School Street
    TicketCategory(
        id="school_street",
        name="School Street Violation",
        legal_category=LegalCategory.CIVIL,
        appeal_route=AppealRoute.TRIBUNAL,
        forms=("Online Appeal", "Informal Challenge"),
        time_limit="28 days from Notice to Owner",
        description="School zone traffic restriction penalty",
        patterns=_patterns(
            r"^SS[0-9]{6,10}$",
            r"^SZ[0-9]{6,10}$",
            r"^SCH[0-9]{6,10}$",
        ),
        examples=("SS123456789", "SZ12345678", "SCH987654321"),
        fine_range=(65, 130),
        authority="Local Authority",
    ),
    # Private Parking
    TicketCategory(
        id="private_parking",
        name="Private Parking Notice",
        legal_category=LegalCategory.PRIVATE,
        appeal_route=AppealRoute.COMPANY,
        forms=("POPLA Appeal", "IAS Appeal", "Company Appeal"),
        time_limit="14 days from Notice to Keeper",
        description="Private land parking charge (not a penalty)",
        patterns=_patterns(
            r"^PPC[0-9]{6,10}$",
            r"^PKG[0-9]{6,10}$",
            r"^CP[0-9]{6,10}$",
            r"^PP[0-9]{6,10}$",
        ),
        examples=("PPC123456789", "PKG12345678", "CP987654321"),
        fine_range=(60, 100),
        authority="Private Parking Company",
    ),
]


UNKNOWN_CATEGORY = TicketCategory(
    id=UNKNOWN_CATEGORY_ID,
    name="Unknown Ticket Type",
    legal_category=LegalCategory.CIVIL,
    appeal_route=AppealRoute.COURT,
    forms=("General Appeal", "Legal Advice Required"),
    time_limit="Check notice for specific deadline",
    description="Unrecognised ticket format - requires manual review",
    patterns=(),
    examples=("ABC123456", "XYZ987654321"),
    fine_range=(25, 2500),
    authority="Various",
)


# =============================================================================
# GUIDANCE PER LEGAL CATEGORY
# =============================================================================

CATEGORY_GUIDANCE: Dict[LegalCategory, Dict] = {
    LegalCategory.CIVIL: {
        "next_steps": [
            "Make informal challenge within 14 days",
            "If rejected, formal appeal to Traffic Penalty Tribunal within 28 days",
            "Gather evidence (photos, receipts, witness statements)",
            "Submit appeal online with supporting documents",
        ],
        "cost_implications": "Free to appeal. No risk of increased penalty.",
    },
    LegalCategory.CRIMINAL: {
        "next_steps": [
            "Decide between paying fixed penalty or court hearing",
            "If challenging: enter not guilty plea within time limit",
            "Gather evidence and consider legal representation",
            "Prepare defence based on law and procedure",
        ],
        "cost_implications": "Risk of higher penalty and costs if unsuccessful at court.",
    },
    LegalCategory.PRIVATE: {
        "next_steps": [
            "Check if company is BPA or IPC member",
            "Appeal to POPLA (BPA) or IAS (IPC) within 14 days",
            "Challenge contract formation and proportionality",
            "Ignore if not a member of recognised scheme",
        ],
        "cost_implications": "Free initial appeal. Unenforceable if not scheme member.",
    },
}
