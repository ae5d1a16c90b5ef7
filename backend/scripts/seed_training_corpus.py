#!/usr/bin/env python3
"""
Training Corpus Seed Script
Loads resolved appeals from a JSON file into the training corpus.

Each case goes through the learning orchestrator, so metrics are
recomputed and successful cases queue template evolution exactly as
for live outcomes.

Usage:
    python -m scripts.seed_training_corpus <cases.json>

The file holds a list of objects with at least:
    ticket_type, circumstances, appeal_letter, outcome
"""
import json
import sys
import os

# Add the parent directory to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from sqlalchemy.orm import Session
from appeal_engine.database import SessionLocal, engine, Base
from appeal_engine.models import db_models  # noqa: F401
from appeal_engine.models.learning import Outcome, TrainingCase
from appeal_engine.services.errors import AppealEngineError
from appeal_engine.services.learning import (
    CategoryLockManager,
    LearningOrchestrator,
    MetricsAggregator,
)

REQUIRED_FIELDS = ("ticket_type", "circumstances", "appeal_letter", "outcome")


def case_from_record(record: dict) -> TrainingCase:
    missing = [k for k in REQUIRED_FIELDS if not record.get(k)]
    if missing:
        raise ValueError(f"Missing fields: {', '.join(missing)}")

    extra = {"id": record["id"]} if record.get("id") else {}
    return TrainingCase(
        ticket_type=str(record["ticket_type"]).strip().lower(),
        circumstances=str(record["circumstances"]),
        appeal_letter=str(record["appeal_letter"]),
        outcome=Outcome.parse(record["outcome"]),
        evidence_provided=list(record.get("evidence_provided") or []),
        key_arguments=list(record.get("key_arguments") or []),
        success_factors=record.get("success_factors"),
        legal_references=record.get("legal_references"),
        processing_time=float(record.get("processing_time", 28)),
        fine_amount=float(record.get("fine_amount", 0)),
        fine_reduction=record.get("fine_reduction"),
        **extra,
    )


def seed_corpus(path: str) -> int:
    """Record every case in the file. Returns the number recorded."""
    # Ensure tables exist
    Base.metadata.create_all(bind=engine)

    with open(path) as f:
        records = json.load(f)

    db: Session = SessionLocal()
    orchestrator = LearningOrchestrator(db, MetricsAggregator(), CategoryLockManager())
    recorded = 0
    try:
        for index, record in enumerate(records):
            try:
                receipt = orchestrator.record_outcome(case_from_record(record))
            except (ValueError, AppealEngineError) as e:
                print(f"Skipped record {index}: {e}")
                continue
            recorded += 1
            print(f"Recorded {receipt.outcome.value} case {receipt.case_id} ({receipt.ticket_type})")
    finally:
        db.close()

    print(f"\nSeeded {recorded} of {len(records)} cases.")
    return recorded


def main():
    if len(sys.argv) != 2:
        print(__doc__)
        sys.exit(1)

    path = sys.argv[1]
    if not os.path.exists(path):
        print(f"Error: File '{path}' not found.")
        sys.exit(1)

    recorded = seed_corpus(path)
    sys.exit(0 if recorded else 1)


if __name__ == "__main__":
    main()
