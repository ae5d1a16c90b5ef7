"""
Learning Pipeline

Outcome recording, corpus aggregation, similarity retrieval and
template evolution.
"""

from .locking import CategoryLockManager
from .corpus_store import TrainingCorpusStore
from .metrics_aggregator import MetricsAggregator
from .similarity import SimilarityRetriever, CaseQuery
from .generative_client import GenerativeClient
from .template_evolver import TemplateEvolver, EvolutionOutcome, EvolutionStatus
from .evolution_scheduler import TemplateEvolutionScheduler, enqueue_evolution, MAX_ATTEMPTS
from .orchestrator import LearningOrchestrator, OutcomeReceipt
from .letter_generator import (
    AppealLetterGenerator,
    GeneratedLetter,
    LetterRequest,
    LetterSource,
)

__all__ = [
    "CategoryLockManager",
    "TrainingCorpusStore",
    "MetricsAggregator",
    "SimilarityRetriever",
    "CaseQuery",
    "GenerativeClient",
    "TemplateEvolver",
    "EvolutionOutcome",
    "EvolutionStatus",
    "TemplateEvolutionScheduler",
    "enqueue_evolution",
    "MAX_ATTEMPTS",
    "LearningOrchestrator",
    "OutcomeReceipt",
    "AppealLetterGenerator",
    "GeneratedLetter",
    "LetterRequest",
    "LetterSource",
]
