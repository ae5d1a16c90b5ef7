"""
Ticket Classifier

Maps a raw ticket identifier to a TicketCategory.

The registry is constructed once at startup from the declarative category
table and passed to every component that needs it. A classification miss
is not an error: it resolves to the "unknown" sentinel.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional

from .ticket_types import (
    CATEGORY_GUIDANCE,
    TICKET_CATEGORIES,
    UNKNOWN_CATEGORY,
    UNKNOWN_CATEGORY_ID,
    TicketCategory,
)


MIN_IDENTIFIER_LENGTH = 6


@dataclass
class TicketValidation:
    """Result of validating a ticket identifier."""
    is_valid: bool
    detected: TicketCategory
    suggestions: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict:
        return {
            "is_valid": self.is_valid,
            "detected_type": self.detected.to_dict(),
            "suggestions": self.suggestions or None,
        }


@dataclass
class AppealGuidance:
    """Procedural guidance for a ticket category."""
    next_steps: List[str]
    forms_required: List[str]
    time_limit: str
    appeal_route: str
    cost_implications: str

    def to_dict(self) -> Dict:
        return {
            "next_steps": self.next_steps,
            "forms_required": self.forms_required,
            "time_limit": self.time_limit,
            "appeal_route": self.appeal_route,
            "cost_implications": self.cost_implications,
        }


def clean_identifier(identifier: Optional[str]) -> str:
    """Trim and case-fold. Internal whitespace is kept to preserve structure."""
    return (identifier or "").strip().upper()


class TicketCategoryRegistry:
    """
    Ordered, immutable registry of ticket categories.

    Usage:
        registry = TicketCategoryRegistry()
        category = registry.classify("PCN123456789")
    """

    def __init__(self, categories: Optional[Iterable[TicketCategory]] = None):
        self._categories = tuple(categories if categories is not None else TICKET_CATEGORIES)
        self._by_id = {c.id: c for c in self._categories}
        self._by_id[UNKNOWN_CATEGORY_ID] = UNKNOWN_CATEGORY

    @property
    def unknown(self) -> TicketCategory:
        return UNKNOWN_CATEGORY

    def categories(self) -> List[TicketCategory]:
        """All known categories in match order (sentinel excluded)."""
        return list(self._categories)

    def get(self, category_id: Optional[str]) -> Optional[TicketCategory]:
        if not category_id:
            return None
        return self._by_id.get(category_id.strip().lower())

    def classify(self, identifier: Optional[str]) -> TicketCategory:
        """
        Classify an identifier. First category with a matching pattern wins.

        Args:
            identifier: Any string (None is treated as empty)

        Returns:
            Matching TicketCategory, or the unknown sentinel
        """
        clean = clean_identifier(identifier)
        if not clean:
            return UNKNOWN_CATEGORY

        for category in self._categories:
            if category.matches(clean):
                return category

        return UNKNOWN_CATEGORY

    def matching_categories(self, identifier: Optional[str]) -> List[TicketCategory]:
        """Every category whose patterns accept the identifier."""
        clean = clean_identifier(identifier)
        return [c for c in self._categories if c.matches(clean)]

    def validate(self, identifier: Optional[str]) -> TicketValidation:
        """Validate an identifier's format and detect its category."""
        clean = clean_identifier(identifier)
        if len(clean) < MIN_IDENTIFIER_LENGTH:
            return TicketValidation(
                is_valid=False,
                detected=UNKNOWN_CATEGORY,
                suggestions=["Ticket numbers are usually 6-12 characters long"],
            )

        detected = self.classify(clean)
        if detected.id == UNKNOWN_CATEGORY_ID:
            return TicketValidation(
                is_valid=False,
                detected=detected,
                suggestions=[
                    "Check the ticket number format",
                    "Look for prefixes like PCN, FPN, TEC, NIP",
                ],
            )

        return TicketValidation(is_valid=True, detected=detected)

    def validate_for_category(self, identifier: Optional[str], category_id: str) -> bool:
        """True if the identifier is in one of the given category's formats."""
        clean = clean_identifier(identifier)
        if len(clean) < MIN_IDENTIFIER_LENGTH:
            return False

        category = self.get(category_id)
        if category is None:
            return False

        return category.matches(clean)

    def guidance(self, category: TicketCategory) -> AppealGuidance:
        """Next steps and cost implications for a category."""
        category_guidance = CATEGORY_GUIDANCE[category.legal_category]
        return AppealGuidance(
            next_steps=list(category_guidance["next_steps"]),
            forms_required=list(category.forms),
            time_limit=category.time_limit,
            appeal_route=f"{category.appeal_route.value} ({category.authority})",
            cost_implications=category_guidance["cost_implications"],
        )
