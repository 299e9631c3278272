"""Parses raw transport messages into StageEvents."""

import json
from collections.abc import Mapping
from datetime import datetime, timezone
from typing import Any

from orchestrator.events.models import Outcome, StageEvent
from orchestrator.ingestion.exceptions import MalformedEventError
from orchestrator.submissions.models import Stage

_REQUIRED_FIELDS = ("submissionId", "stage", "outcome", "sequence", "occurredAt")
_VALID_STAGES = frozenset(stage.value for stage in Stage)
_VALID_OUTCOMES = frozenset(outcome.value for outcome in Outcome)


def parse_stage_event(raw: Any, channel: str | None = None) -> StageEvent:
    """Validate a raw message envelope and build a StageEvent.

    Args:
        raw: Mapping, JSON text or UTF-8 JSON bytes.
        channel: Transport channel the message arrived on; when given, the
            envelope's stage must match it.

    Raises:
        MalformedEventError: on any validation failure.
    """
    data = _decode(raw)
    for field in _REQUIRED_FIELDS:
        if field not in data:
            raise MalformedEventError(f"Missing required field: {field}")

    stage = _build_stage(data["stage"])
    if channel is not None and channel != stage.value:
        raise MalformedEventError(
            f"Stage '{stage.value}' does not match channel '{channel}'"
        )

    return StageEvent(
        submission_id=_build_submission_id(data["submissionId"]),
        stage=stage,
        outcome=_build_outcome(data["outcome"]),
        sequence=_build_sequence(data["sequence"]),
        occurred_at=_build_occurred_at(data["occurredAt"]),
        payload_ref=_build_optional_string(data.get("payloadRef"), "payloadRef"),
        error=_build_optional_string(data.get("error"), "error"),
    )


def _decode(raw: Any) -> Mapping[str, Any]:
    if isinstance(raw, bytes):
        try:
            raw = raw.decode("utf-8")
        except UnicodeDecodeError as exc:
            raise MalformedEventError(f"Message is not valid UTF-8: {exc}") from exc
    if isinstance(raw, str):
        try:
            raw = json.loads(raw)
        except json.JSONDecodeError as exc:
            raise MalformedEventError(f"Message is not valid JSON: {exc}") from exc
    if not isinstance(raw, Mapping):
        raise MalformedEventError("Message must be a JSON object")
    return raw


def _build_submission_id(raw: Any) -> str:
    if not isinstance(raw, str) or not raw.strip():
        raise MalformedEventError("'submissionId' must be a non-empty string")
    return raw


def _build_stage(raw: Any) -> Stage:
    if raw not in _VALID_STAGES:
        raise MalformedEventError(
            f"'stage' must be one of {sorted(_VALID_STAGES)}, got {raw!r}"
        )
    return Stage(raw)


def _build_outcome(raw: Any) -> Outcome:
    if raw not in _VALID_OUTCOMES:
        raise MalformedEventError(
            f"'outcome' must be one of {sorted(_VALID_OUTCOMES)}, got {raw!r}"
        )
    return Outcome(raw)


def _build_sequence(raw: Any) -> int:
    if isinstance(raw, bool) or not isinstance(raw, int) or raw < 1:
        raise MalformedEventError("'sequence' must be a positive integer")
    return raw


def _build_occurred_at(raw: Any) -> datetime:
    if not isinstance(raw, str):
        raise MalformedEventError("'occurredAt' must be an ISO-8601 string")
    value = raw[:-1] + "+00:00" if raw.endswith("Z") else raw
    try:
        occurred_at = datetime.fromisoformat(value)
    except ValueError as exc:
        raise MalformedEventError(f"'occurredAt' is not a valid timestamp: {raw!r}") from exc
    if occurred_at.tzinfo is None:
        occurred_at = occurred_at.replace(tzinfo=timezone.utc)
    return occurred_at


def _build_optional_string(raw: Any, name: str) -> str | None:
    if raw is None:
        return None
    if not isinstance(raw, str):
        raise MalformedEventError(f"'{name}' must be a string or null")
    return raw
