"""
Appeal Letter Generator

Personalised appeal letters from the category template and up to three
similar successful precedents. Falls back to the stored template text,
or a built-in skeleton, when the generative service cannot be used.
"""
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional

from ...models.learning import AppealTemplate, TrainingCase
from ..prediction.rule_based import classify_evidence
from .corpus_store import TrainingCorpusStore
from .generative_client import GenerativeClient
from .similarity import CaseQuery, SimilarityRetriever

logger = logging.getLogger(__name__)


SYSTEM_PROMPT = (
    "You are an expert UK traffic penalty appeal writer. Write a compelling, "
    "personalised appeal letter using the proven template and the successful "
    "cases provided as reference. Keep every fact specific to the current case."
)

SKELETON = """Dear Sir/Madam,

I am writing to formally appeal the penalty notice referenced below.

Case Details:
- Ticket Number: {ticket_number}
- Date of Issue: {date}
- Location: {location}
- Vehicle: {vehicle_reg}

Grounds for Appeal:
{grounds}

I respectfully request that you cancel this penalty based on the circumstances outlined above.

Thank you for your consideration.

Yours faithfully,
{sender_name}"""


class LetterSource(str, Enum):
    GENERATIVE = "generative"
    TEMPLATE_FALLBACK = "template_fallback"


@dataclass
class LetterRequest:
    """Details of the appeal a letter is written for."""
    ticket_type: str
    circumstances: str
    evidence: List[str] = field(default_factory=list)
    reason: Optional[str] = None
    location: Optional[str] = None
    date: Optional[str] = None
    time: Optional[str] = None
    ticket_number: Optional[str] = None
    vehicle_reg: Optional[str] = None
    sender_name: Optional[str] = None


@dataclass
class GeneratedLetter:
    letter: str
    source: LetterSource
    ticket_type: str
    template_version: Optional[int] = None
    precedents_used: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "letter": self.letter,
            "source": self.source.value,
            "ticket_type": self.ticket_type,
            "template_version": self.template_version,
            "precedents_used": self.precedents_used,
        }


def _or(value: Optional[str], default: str = "Not provided") -> str:
    return value if value else default


def render_skeleton(request: LetterRequest) -> str:
    return SKELETON.format(
        ticket_number=_or(request.ticket_number),
        date=_or(request.date),
        location=_or(request.location),
        vehicle_reg=_or(request.vehicle_reg),
        grounds=request.circumstances or request.reason or "I believe this penalty was issued in error.",
        sender_name=_or(request.sender_name, "Appeal Submitter"),
    )


def build_prompt(
    request: LetterRequest,
    template: Optional[AppealTemplate],
    precedents: List[TrainingCase],
) -> str:
    sections = []
    if template is not None:
        sections.append(f"Template:\n{template.template}")
    if precedents:
        letters = "\n\n".join(c.appeal_letter for c in precedents)
        sections.append(f"Similar Successful Cases:\n{letters}")

    sections.append(
        "Current Appeal Details:\n"
        f"Ticket Type: {request.ticket_type}\n"
        f"Circumstances: {request.circumstances}\n"
        f"Evidence Available: {', '.join(request.evidence) or 'None'}\n"
        f"Location: {_or(request.location)}\n"
        f"Date: {_or(request.date)}\n"
        f"Time: {_or(request.time)}"
    )
    sections.append(
        "Generate a persuasive appeal letter incorporating successful elements "
        "from similar cases while staying authentic and specific to this case."
    )
    return "\n\n".join(sections)


class AppealLetterGenerator:
    """
    Usage:
        generator = AppealLetterGenerator(store, client, retriever)
        letter = generator.generate(LetterRequest(ticket_type="pcn", circumstances="..."))
    """

    def __init__(
        self,
        store: TrainingCorpusStore,
        client: GenerativeClient,
        retriever: SimilarityRetriever,
    ):
        self.store = store
        self.client = client
        self.retriever = retriever

    def generate(self, request: LetterRequest) -> GeneratedLetter:
        """Never fails for generative-service problems; the caller commits."""
        template = self.store.get_template(request.ticket_type)
        precedents = self.retriever.find_similar(
            CaseQuery(
                ticket_type=request.ticket_type,
                circumstances=request.circumstances,
                evidence=sorted(classify_evidence(list(request.evidence))),
            ),
            self.store.get_cases_by_category(request.ticket_type),
        )

        if template is not None:
            self.store.touch_template(request.ticket_type)

        result = self.client.complete(SYSTEM_PROMPT, build_prompt(request, template, precedents))
        if result.ok:
            return GeneratedLetter(
                letter=result.value,
                source=LetterSource.GENERATIVE,
                ticket_type=request.ticket_type,
                template_version=template.version if template else None,
                precedents_used=len(precedents),
            )

        logger.warning(f"Letter generation for {request.ticket_type} fell back to template: {result.reason}")
        return GeneratedLetter(
            letter=template.template if template is not None else render_skeleton(request),
            source=LetterSource.TEMPLATE_FALLBACK,
            ticket_type=request.ticket_type,
            template_version=template.version if template else None,
            precedents_used=0,
        )
