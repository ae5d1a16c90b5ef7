"""
Ticket Classification

Pattern-based mapping from ticket identifiers to ticket categories.
"""

from .ticket_types import (
    TicketCategory,
    LegalCategory,
    AppealRoute,
    TICKET_CATEGORIES,
    UNKNOWN_CATEGORY,
    UNKNOWN_CATEGORY_ID,
)
from .classifier import (
    TicketCategoryRegistry,
    TicketValidation,
    AppealGuidance,
    clean_identifier,
)

__all__ = [
    "TicketCategory",
    "LegalCategory",
    "AppealRoute",
    "TICKET_CATEGORIES",
    "UNKNOWN_CATEGORY",
    "UNKNOWN_CATEGORY_ID",
    "TicketCategoryRegistry",
    "TicketValidation",
    "AppealGuidance",
    "clean_identifier",
]
