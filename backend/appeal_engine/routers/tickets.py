"""
Appeal Engine - Ticket API Router

Ticket identifier classification and validation.
"""
from fastapi import APIRouter, Depends

from ..dependencies import get_registry
from ..services.classification import TicketCategoryRegistry


router = APIRouter(prefix="/tickets", tags=["tickets"])


@router.get("/types", response_model=dict)
def list_ticket_types(registry: TicketCategoryRegistry = Depends(get_registry)):
    """All recognised ticket categories in match order."""
    categories = registry.categories()
    return {
        "count": len(categories),
        "types": [c.to_dict() for c in categories],
    }


@router.get("/classify/{identifier}", response_model=dict)
def classify_ticket(
    identifier: str,
    registry: TicketCategoryRegistry = Depends(get_registry),
):
    """Detect the category of a ticket and the appeal route that follows."""
    category = registry.classify(identifier)
    return {
        "identifier": identifier.strip().upper(),
        "ticket_type": category.to_dict(),
        "guidance": registry.guidance(category).to_dict(),
    }


@router.get("/validate/{identifier}", response_model=dict)
def validate_ticket(
    identifier: str,
    registry: TicketCategoryRegistry = Depends(get_registry),
):
    """Check the identifier format and suggest corrections."""
    return registry.validate(identifier).to_dict()
