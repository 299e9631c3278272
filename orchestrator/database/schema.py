"""DDL for the orchestrator tables. Every statement is idempotent."""

from typing import Any

import psycopg

from orchestrator.logging.logger import Log

SCHEMA_STATEMENTS: tuple[str, ...] = (
    """
    CREATE TABLE IF NOT EXISTS submissions (
        id TEXT PRIMARY KEY,
        owner_id TEXT NOT NULL,
        state TEXT NOT NULL,
        stage_attempts JSONB NOT NULL DEFAULT '{}'::jsonb,
        last_transition_at TIMESTAMPTZ NOT NULL,
        last_event_seq BIGINT NOT NULL DEFAULT 0,
        failure_stage TEXT,
        failure_cause TEXT,
        failure_message TEXT,
        artifacts JSONB NOT NULL DEFAULT '{}'::jsonb,
        version BIGINT NOT NULL DEFAULT 0,
        created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
        updated_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
    )
    """,
    """
    ALTER TABLE submissions ADD COLUMN IF NOT EXISTS version BIGINT NOT NULL DEFAULT 0
    """,
    """
    CREATE INDEX IF NOT EXISTS submissions_active_idx
        ON submissions (last_transition_at)
        WHERE state NOT IN ('reported', 'failed')
    """,
    """
    CREATE INDEX IF NOT EXISTS submissions_owner_idx ON submissions (owner_id)
    """,
    """
    CREATE TABLE IF NOT EXISTS stage_events (
        id BIGSERIAL PRIMARY KEY,
        channel TEXT NOT NULL,
        body TEXT NOT NULL,
        status TEXT NOT NULL DEFAULT 'pending',
        deliveries INTEGER NOT NULL DEFAULT 0,
        claimed_at TIMESTAMPTZ,
        created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
        updated_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
    )
    """,
    """
    CREATE INDEX IF NOT EXISTS stage_events_claimable_idx
        ON stage_events (created_at)
        WHERE status IN ('pending', 'processing')
    """,
    """
    CREATE TABLE IF NOT EXISTS stage_requests (
        id BIGSERIAL PRIMARY KEY,
        submission_id TEXT NOT NULL,
        stage TEXT NOT NULL,
        attempt INTEGER NOT NULL,
        cause TEXT NOT NULL,
        body JSONB NOT NULL,
        created_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
    )
    """,
)


def apply_schema(conn: psycopg.Connection[Any]) -> None:
    """Create missing tables and indexes."""
    for statement in SCHEMA_STATEMENTS:
        conn.execute(statement)
    conn.commit()
    Log.info("Database schema is up to date")
