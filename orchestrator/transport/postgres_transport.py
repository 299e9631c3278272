import json
from typing import Any

from psycopg.rows import dict_row
from psycopg.types.json import Jsonb

from orchestrator.database.connection import get_connection, translate_db_errors
from orchestrator.events.models import StageRequest
from orchestrator.logging.logger import Log
from orchestrator.submissions.models import Stage
from orchestrator.transport.base import BaseEventTransport
from orchestrator.transport.exceptions import TransportError, TransportUnavailableError
from orchestrator.transport.models import TransportMessage


class PostgresEventTransport(BaseEventTransport):
    """Event log backed by the stage_events and stage_requests tables.

    Each stage name is a channel. A claimed message that is neither acked nor
    released within the visibility timeout becomes claimable again.
    """

    def __init__(
        self,
        visibility_timeout_seconds: int = 60,
        max_deliveries: int = 10,
        channels: list[str] | None = None,
    ) -> None:
        self._visibility_timeout_seconds = visibility_timeout_seconds
        self._max_deliveries = max_deliveries
        self._channels = channels if channels is not None else [s.value for s in Stage]

    def receive(self) -> TransportMessage | None:
        """Claim the oldest deliverable message using SELECT FOR UPDATE SKIP LOCKED."""
        with translate_db_errors(TransportUnavailableError):
            with get_connection() as conn:
                self._dead_letter_abandoned(conn)
                with conn.cursor(row_factory=dict_row) as cur:
                    cur.execute(
                        """
                        SELECT id, channel, body, deliveries
                        FROM stage_events
                        WHERE channel = ANY(%s)
                          AND deliveries < %s
                          AND (
                            status = 'pending'
                            OR (status = 'processing'
                                AND claimed_at < NOW() - %s * INTERVAL '1 second')
                          )
                        ORDER BY id
                        LIMIT 1
                        FOR UPDATE SKIP LOCKED
                        """,
                        (self._channels, self._max_deliveries, self._visibility_timeout_seconds),
                    )
                    row = cur.fetchone()

                if row is None:
                    conn.commit()
                    return None

                conn.execute(
                    """
                    UPDATE stage_events
                    SET status = 'processing', deliveries = deliveries + 1,
                        claimed_at = NOW(), updated_at = NOW()
                    WHERE id = %s
                    """,
                    (row["id"],),
                )
                conn.commit()

        return TransportMessage(
            id=row["id"],
            channel=row["channel"],
            body=row["body"],
            deliveries=row["deliveries"] + 1,
        )

    def ack(self, message: TransportMessage) -> None:
        with translate_db_errors(TransportUnavailableError):
            with get_connection() as conn:
                conn.execute(
                    """
                    UPDATE stage_events
                    SET status = 'acked', claimed_at = NULL, updated_at = NOW()
                    WHERE id = %s
                    """,
                    (message.id,),
                )
                conn.commit()

    def nack(self, message: TransportMessage) -> None:
        with translate_db_errors(TransportUnavailableError):
            with get_connection() as conn:
                conn.execute(
                    """
                    UPDATE stage_events
                    SET status = CASE WHEN deliveries >= %s THEN 'dead' ELSE 'pending' END,
                        claimed_at = NULL, updated_at = NOW()
                    WHERE id = %s AND status = 'processing'
                    """,
                    (self._max_deliveries, message.id),
                )
                conn.commit()
        if message.deliveries >= self._max_deliveries:
            Log.error(
                "Message dead-lettered after max deliveries",
                message_id=message.id,
                channel=message.channel,
                deliveries=message.deliveries,
            )

    def publish_request(self, request: StageRequest) -> None:
        with translate_db_errors(TransportUnavailableError):
            with get_connection() as conn:
                conn.execute(
                    """
                    INSERT INTO stage_requests (submission_id, stage, attempt, cause, body)
                    VALUES (%s, %s, %s, %s, %s)
                    """,
                    (
                        request.submission_id,
                        request.stage.value,
                        request.attempt,
                        request.cause.value,
                        Jsonb(request.to_dict()),
                    ),
                )
                conn.commit()

    def publish_event(self, channel: str, body: str | bytes | dict[str, Any]) -> int:
        if isinstance(body, dict):
            text = json.dumps(body)
        elif isinstance(body, bytes):
            text = body.decode("utf-8", errors="replace")
        else:
            text = body
        with translate_db_errors(TransportUnavailableError):
            with get_connection() as conn:
                with conn.cursor() as cur:
                    cur.execute(
                        "INSERT INTO stage_events (channel, body) VALUES (%s, %s) RETURNING id",
                        (channel, text),
                    )
                    row = cur.fetchone()
                conn.commit()
        if row is None:
            raise TransportError(f"Insert into channel '{channel}' returned no id")
        return int(row[0])

    def _dead_letter_abandoned(self, conn: Any) -> None:
        """Exhausted messages whose last claim expired will never be claimed again."""
        conn.execute(
            """
            UPDATE stage_events
            SET status = 'dead', updated_at = NOW()
            WHERE status = 'processing'
              AND deliveries >= %s
              AND claimed_at < NOW() - %s * INTERVAL '1 second'
            """,
            (self._max_deliveries, self._visibility_timeout_seconds),
        )
