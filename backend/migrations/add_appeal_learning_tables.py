"""
Migration: Add appeal learning tables.

Creates the tables behind the outcome-learning pipeline:
1. appeals - submitted appeals and user-reported outcomes
2. appeal_training - append-only, outcome-labeled training corpus
3. appeal_templates - one letter template per ticket category
4. model_metrics - singleton aggregate metrics row ("current")
5. scheduler_tasks - queued template evolution tasks

Safe to re-run: existing tables are left untouched.
"""
from sqlalchemy import create_engine, text
import os

# Use same DB URL pattern as main app
DATABASE_URL = os.getenv(
    "DATABASE_URL",
    f"postgresql://{os.getenv('USER', 'postgres')}@localhost:5432/appeal_engine"
)


def table_exists(conn, table_name: str) -> bool:
    """Check if a table exists in the database."""
    result = conn.execute(text("""
        SELECT EXISTS (
            SELECT FROM information_schema.tables
            WHERE table_name = :table_name
        )
    """), {"table_name": table_name})
    return result.fetchone()[0]


def type_exists(conn, type_name: str) -> bool:
    """Check if a Postgres enum type exists."""
    result = conn.execute(text("""
        SELECT EXISTS (SELECT 1 FROM pg_type WHERE typname = :type_name)
    """), {"type_name": type_name})
    return result.fetchone()[0]


def column_exists(conn, table_name: str, column_name: str) -> bool:
    """Check if a column exists on a table."""
    result = conn.execute(text("""
        SELECT EXISTS (
            SELECT FROM information_schema.columns
            WHERE table_name = :table_name AND column_name = :column_name
        )
    """), {"table_name": table_name, "column_name": column_name})
    return result.fetchone()[0]


def run_migration():
    """Create all appeal learning tables."""
    engine = create_engine(DATABASE_URL)

    with engine.connect() as conn:
        # =================================================================
        # TABLE 1: appeals
        # =================================================================
        if not type_exists(conn, "appealstatus"):
            conn.execute(text("""
                CREATE TYPE appealstatus AS ENUM ('SUBMITTED', 'APPROVED', 'REJECTED')
            """))
            print("Created appealstatus enum type")

        if table_exists(conn, "appeals"):
            print("appeals table already exists")
        else:
            conn.execute(text("""
                CREATE TABLE appeals (
                    id VARCHAR(36) PRIMARY KEY,
                    ticket_number VARCHAR(50),
                    ticket_type VARCHAR(50) NOT NULL DEFAULT 'unknown',
                    reason TEXT,
                    circumstances TEXT NOT NULL,
                    evidence JSON,
                    location VARCHAR(255),
                    contravention_code VARCHAR(10),
                    appeal_letter TEXT,
                    key_arguments JSON,
                    fine_amount FLOAT NOT NULL DEFAULT 0,
                    status appealstatus NOT NULL DEFAULT 'SUBMITTED',
                    submitted_at TIMESTAMP NOT NULL,
                    user_reported_outcome VARCHAR(20),
                    user_reported_at TIMESTAMP,
                    outcome_notes TEXT,
                    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                    updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
                )
            """))
            conn.execute(text("""
                CREATE INDEX ix_appeals_ticket_number ON appeals(ticket_number)
            """))
            print("Created appeals table")

        # =================================================================
        # TABLE 2: appeal_training
        # =================================================================
        if table_exists(conn, "appeal_training"):
            print("appeal_training table already exists")
        else:
            conn.execute(text("""
                CREATE TABLE appeal_training (
                    id VARCHAR(36) PRIMARY KEY,
                    ticket_type VARCHAR(50) NOT NULL,
                    circumstances TEXT NOT NULL,
                    evidence JSON NOT NULL,
                    appeal_letter TEXT NOT NULL,
                    outcome VARCHAR(20) NOT NULL,
                    success_factors JSON,
                    key_arguments JSON NOT NULL,
                    legal_references JSON,
                    processing_time FLOAT,
                    fine_amount FLOAT NOT NULL DEFAULT 0,
                    fine_reduction FLOAT,
                    date_submitted TIMESTAMP,
                    date_resolved TIMESTAMP,
                    appeal_id VARCHAR(36),
                    active BOOLEAN NOT NULL DEFAULT TRUE,
                    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
                )
            """))
            conn.execute(text("""
                CREATE INDEX ix_appeal_training_ticket_type ON appeal_training(ticket_type)
            """))
            conn.execute(text("""
                CREATE INDEX ix_appeal_training_outcome ON appeal_training(outcome)
            """))
            conn.execute(text("""
                CREATE INDEX ix_appeal_training_appeal_id ON appeal_training(appeal_id)
            """))
            print("Created appeal_training table")

        # =================================================================
        # TABLE 3: appeal_templates
        # =================================================================
        if table_exists(conn, "appeal_templates"):
            print("appeal_templates table already exists")
        else:
            conn.execute(text("""
                CREATE TABLE appeal_templates (
                    ticket_type VARCHAR(50) PRIMARY KEY,
                    template TEXT NOT NULL,
                    success_rate FLOAT NOT NULL DEFAULT 0,
                    version INTEGER NOT NULL DEFAULT 1,
                    source_case_id VARCHAR(36),
                    last_used TIMESTAMP,
                    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                    updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
                )
            """))
            print("Created appeal_templates table")

        # =================================================================
        # TABLE 4: model_metrics
        # =================================================================
        if table_exists(conn, "model_metrics"):
            print("model_metrics table already exists")
        else:
            conn.execute(text("""
                CREATE TABLE model_metrics (
                    id VARCHAR(20) PRIMARY KEY,
                    total_cases INTEGER NOT NULL DEFAULT 0,
                    successful_cases INTEGER NOT NULL DEFAULT 0,
                    success_rate FLOAT NOT NULL DEFAULT 0,
                    most_successful_arguments JSON NOT NULL,
                    least_successful_arguments JSON NOT NULL,
                    average_fine_reduction FLOAT NOT NULL DEFAULT 0,
                    average_processing_time FLOAT NOT NULL DEFAULT 0,
                    confidence_score FLOAT NOT NULL DEFAULT 0,
                    computed_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                    updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
                )
            """))
            print("Created model_metrics table")

        # =================================================================
        # TABLE 5: scheduler_tasks
        # =================================================================
        if table_exists(conn, "scheduler_tasks"):
            print("scheduler_tasks table already exists")
        else:
            conn.execute(text("""
                CREATE TABLE scheduler_tasks (
                    id VARCHAR(36) PRIMARY KEY,
                    task_type VARCHAR(50) NOT NULL,
                    case_id VARCHAR(36),
                    ticket_type VARCHAR(50),
                    scheduled_for TIMESTAMP NOT NULL,
                    started_at TIMESTAMP,
                    executed_at TIMESTAMP,
                    status VARCHAR(20) DEFAULT 'pending',
                    attempts INTEGER NOT NULL DEFAULT 0,
                    result JSON,
                    error_message TEXT,
                    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
                )
            """))
            conn.execute(text("""
                CREATE INDEX ix_scheduler_tasks_task_type ON scheduler_tasks(task_type)
            """))
            conn.execute(text("""
                CREATE INDEX ix_scheduler_tasks_case_id ON scheduler_tasks(case_id)
            """))
            print("Created scheduler_tasks table")

        # Lease column for tasks claimed before it existed
        if not column_exists(conn, "scheduler_tasks", "started_at"):
            conn.execute(text("ALTER TABLE scheduler_tasks ADD COLUMN started_at TIMESTAMP"))
            print("Added scheduler_tasks.started_at")

        conn.commit()
        print("\nAppeal learning migration completed successfully!")


if __name__ == "__main__":
    run_migration()
