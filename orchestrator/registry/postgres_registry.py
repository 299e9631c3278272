import uuid
from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any

import psycopg
from psycopg.rows import dict_row
from psycopg.types.json import Jsonb

from orchestrator.clock import Clock, utc_now
from orchestrator.database.connection import get_connection, translate_db_errors
from orchestrator.registry.base import BaseSubmissionRegistry, SubmissionTransaction
from orchestrator.registry.exceptions import RegistryUnavailableError, SubmissionNotFoundError
from orchestrator.submissions.models import (
    TERMINAL_STATES,
    FailureCause,
    FailureReason,
    Stage,
    Submission,
    SubmissionState,
)

_COLUMNS = """
    id, owner_id, state, stage_attempts, last_transition_at, last_event_seq,
    failure_stage, failure_cause, failure_message, artifacts, version
"""

_TERMINAL_VALUES = [state.value for state in TERMINAL_STATES]


class PostgresSubmissionRegistry(BaseSubmissionRegistry):
    """Submission records in the submissions table.

    The per-submission lock is the row lock taken by SELECT ... FOR UPDATE and
    held until the transaction commits or rolls back.
    """

    def __init__(self, clock: Clock = utc_now) -> None:
        self._clock = clock

    def create(self, owner_id: str) -> Submission:
        submission = Submission(
            id=str(uuid.uuid4()),
            owner_id=owner_id,
            state=SubmissionState.REGISTERED,
            last_transition_at=self._clock(),
        )
        with translate_db_errors(RegistryUnavailableError):
            with get_connection() as conn:
                conn.execute(
                    """
                    INSERT INTO submissions (
                        id, owner_id, state, stage_attempts, last_transition_at,
                        last_event_seq, artifacts
                    )
                    VALUES (%s, %s, %s, %s, %s, %s, %s)
                    """,
                    (
                        submission.id,
                        submission.owner_id,
                        submission.state.value,
                        Jsonb(submission.stage_attempts),
                        submission.last_transition_at,
                        submission.last_event_seq,
                        Jsonb(submission.artifacts),
                    ),
                )
                conn.commit()
        return submission

    def get(self, submission_id: str) -> Submission:
        with translate_db_errors(RegistryUnavailableError):
            with get_connection() as conn:
                with conn.cursor(row_factory=dict_row) as cur:
                    cur.execute(
                        f"SELECT {_COLUMNS} FROM submissions WHERE id = %s",
                        (submission_id,),
                    )
                    row = cur.fetchone()

        if row is None:
            raise SubmissionNotFoundError(f"Submission {submission_id} not found")
        return _row_to_submission(row)

    @contextmanager
    def locked(self, submission_id: str) -> Iterator[SubmissionTransaction]:
        with translate_db_errors(RegistryUnavailableError):
            with get_connection() as conn:
                transaction = SubmissionTransaction(self._select_for_update(conn, submission_id))
                try:
                    yield transaction
                except BaseException:
                    conn.rollback()
                    raise
                if transaction.pending is not None:
                    self._update(conn, transaction.pending)
                conn.commit()

    def list_active(self) -> list[Submission]:
        with translate_db_errors(RegistryUnavailableError):
            with get_connection() as conn:
                with conn.cursor(row_factory=dict_row) as cur:
                    cur.execute(
                        f"""
                        SELECT {_COLUMNS} FROM submissions
                        WHERE state <> ALL(%s)
                        ORDER BY last_transition_at
                        """,
                        (_TERMINAL_VALUES,),
                    )
                    rows = cur.fetchall()
        return [_row_to_submission(row) for row in rows]

    def list_by_owner(self, owner_id: str) -> list[Submission]:
        with translate_db_errors(RegistryUnavailableError):
            with get_connection() as conn:
                with conn.cursor(row_factory=dict_row) as cur:
                    cur.execute(
                        f"""
                        SELECT {_COLUMNS} FROM submissions
                        WHERE owner_id = %s
                        ORDER BY last_transition_at
                        """,
                        (owner_id,),
                    )
                    rows = cur.fetchall()
        return [_row_to_submission(row) for row in rows]

    @staticmethod
    def _select_for_update(conn: psycopg.Connection[Any], submission_id: str) -> Submission:
        with conn.cursor(row_factory=dict_row) as cur:
            cur.execute(
                f"SELECT {_COLUMNS} FROM submissions WHERE id = %s FOR UPDATE",
                (submission_id,),
            )
            row = cur.fetchone()
        if row is None:
            conn.rollback()
            raise SubmissionNotFoundError(f"Submission {submission_id} not found")
        return _row_to_submission(row)

    @staticmethod
    def _update(conn: psycopg.Connection[Any], submission: Submission) -> None:
        reason = submission.failure_reason
        conn.execute(
            """
            UPDATE submissions
            SET state = %s,
                stage_attempts = %s,
                last_transition_at = %s,
                last_event_seq = %s,
                failure_stage = %s,
                failure_cause = %s,
                failure_message = %s,
                artifacts = %s,
                version = %s,
                updated_at = NOW()
            WHERE id = %s
            """,
            (
                submission.state.value,
                Jsonb(submission.stage_attempts),
                submission.last_transition_at,
                submission.last_event_seq,
                reason.stage.value if reason else None,
                reason.cause.value if reason else None,
                reason.message if reason else None,
                Jsonb(submission.artifacts),
                submission.version,
                submission.id,
            ),
        )


def _row_to_submission(row: dict[str, Any]) -> Submission:
    failure_reason = None
    if row["failure_stage"] is not None:
        failure_reason = FailureReason(
            stage=Stage(row["failure_stage"]),
            cause=FailureCause(row["failure_cause"]),
            message=row["failure_message"] or "",
        )
    return Submission(
        id=row["id"],
        owner_id=row["owner_id"],
        state=SubmissionState(row["state"]),
        stage_attempts=dict(row["stage_attempts"] or {}),
        last_transition_at=row["last_transition_at"],
        last_event_seq=row["last_event_seq"],
        failure_reason=failure_reason,
        artifacts=dict(row["artifacts"] or {}),
        version=row["version"],
    )
