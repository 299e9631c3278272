"""Pure transition logic for submissions.

Edges, in order:

    Registered/Uploading        --upload-->         Uploaded
    Uploaded/Extracting         --extraction-->     Extracted
    Extracted/Interpreting      --interpretation--> Interpreted
    Interpreted/Reporting       --report-->         Reported

A failed stage with retries left moves to the stage's in-progress state
(Uploading, Extracting, ...) and emits a StageRequest; otherwise it moves to
Failed. Any non-terminal state can reach Failed.
"""

from dataclasses import replace
from datetime import datetime

from orchestrator.engine.models import ApplyOutcome, TransitionResult
from orchestrator.engine.retry_policy import RetryPolicy
from orchestrator.events.models import Outcome, StageEvent, StageRequest
from orchestrator.submissions.models import (
    TERMINAL_STATES,
    FailureCause,
    FailureReason,
    Stage,
    Submission,
    SubmissionState,
)

_EXPECTED_STAGE: dict[SubmissionState, Stage] = {
    SubmissionState.REGISTERED: Stage.UPLOAD,
    SubmissionState.UPLOADING: Stage.UPLOAD,
    SubmissionState.UPLOADED: Stage.EXTRACTION,
    SubmissionState.EXTRACTING: Stage.EXTRACTION,
    SubmissionState.EXTRACTED: Stage.INTERPRETATION,
    SubmissionState.INTERPRETING: Stage.INTERPRETATION,
    SubmissionState.INTERPRETED: Stage.REPORT,
    SubmissionState.REPORTING: Stage.REPORT,
}

_SUCCESS_STATE: dict[Stage, SubmissionState] = {
    Stage.UPLOAD: SubmissionState.UPLOADED,
    Stage.EXTRACTION: SubmissionState.EXTRACTED,
    Stage.INTERPRETATION: SubmissionState.INTERPRETED,
    Stage.REPORT: SubmissionState.REPORTED,
}

_RETRY_STATE: dict[Stage, SubmissionState] = {
    Stage.UPLOAD: SubmissionState.UPLOADING,
    Stage.EXTRACTION: SubmissionState.EXTRACTING,
    Stage.INTERPRETATION: SubmissionState.INTERPRETING,
    Stage.REPORT: SubmissionState.REPORTING,
}

_PREVIOUS_STAGE: dict[Stage, Stage] = {
    Stage.EXTRACTION: Stage.UPLOAD,
    Stage.INTERPRETATION: Stage.EXTRACTION,
    Stage.REPORT: Stage.INTERPRETATION,
}

_NEXT_STAGE: dict[Stage, Stage] = {
    previous: stage for stage, previous in _PREVIOUS_STAGE.items()
}

_STAGE_ORDER = list(Stage)


def is_terminal(state: SubmissionState) -> bool:
    return state in TERMINAL_STATES


def expected_stage(state: SubmissionState) -> Stage | None:
    """Stage whose completion the given state is waiting for; None when terminal."""
    return _EXPECTED_STAGE.get(state)


def is_stalled(submission: Submission, policy: RetryPolicy, now: datetime) -> bool:
    stage = expected_stage(submission.state)
    if stage is None:
        return False
    return now - submission.last_transition_at > policy.deadline(stage)


def decide(
    submission: Submission,
    event: StageEvent,
    policy: RetryPolicy,
    now: datetime,
) -> TransitionResult:
    """Decide what an inbound event does to the submission.

    Checks run in a fixed order: terminal state, sequence high-water mark,
    then expected stage. The first that rejects the event wins. An event for a
    later stage than expected arrived ahead of its predecessor and is deferred
    for redelivery; one for an earlier stage is a replay and is stale.
    """
    if is_terminal(submission.state):
        return _discard(
            ApplyOutcome.STALE, submission, f"submission is {submission.state.value}"
        )
    if event.sequence <= submission.last_event_seq:
        return _discard(
            ApplyOutcome.DUPLICATE,
            submission,
            f"sequence {event.sequence} <= applied {submission.last_event_seq}",
        )
    expected = expected_stage(submission.state)
    if expected is not None and event.stage != expected:
        outcome = ApplyOutcome.STALE
        if _STAGE_ORDER.index(event.stage) > _STAGE_ORDER.index(expected):
            outcome = ApplyOutcome.DEFERRED
        return _discard(
            outcome,
            submission,
            f"expected stage {expected.value}, got {event.stage.value}",
        )

    if event.outcome == Outcome.SUCCESS:
        return _advance(submission, event, now)

    return decide_failure(
        submission,
        event.stage,
        FailureCause.STAGE_FAILURE,
        event.error or "",
        policy,
        now,
        sequence=event.sequence,
    )


def decide_failure(
    submission: Submission,
    stage: Stage,
    cause: FailureCause,
    message: str,
    policy: RetryPolicy,
    now: datetime,
    *,
    allow_retry: bool = True,
    sequence: int | None = None,
) -> TransitionResult:
    """Shared failure path for stage failures, timeouts and cancellation.

    ``sequence`` is given only for real events; synthetic failures leave the
    high-water mark where it is.
    """
    if is_terminal(submission.state):
        return _discard(
            ApplyOutcome.STALE, submission, f"submission is {submission.state.value}"
        )

    previous_attempts = submission.attempts(stage)
    last_event_seq = submission.last_event_seq if sequence is None else sequence

    if allow_retry and previous_attempts < policy.max_retries(stage):
        attempt = previous_attempts + 1
        updated = replace(
            submission,
            state=_RETRY_STATE[stage],
            stage_attempts={**submission.stage_attempts, stage.value: attempt},
            last_event_seq=last_event_seq,
            last_transition_at=now,
        )
        request = StageRequest(
            submission_id=submission.id,
            stage=stage,
            sequence=last_event_seq,
            occurred_at=now,
            attempt=attempt,
            cause=cause,
            payload_ref=_input_artifact(submission, stage),
        )
        return TransitionResult(
            outcome=ApplyOutcome.RETRY_SCHEDULED,
            submission_id=submission.id,
            previous_state=submission.state,
            submission=updated,
            retry_request=request,
            reason=message,
        )

    attempts = submission.stage_attempts
    if cause != FailureCause.CANCELED:
        attempts = {**attempts, stage.value: previous_attempts + 1}
    if not message:
        message = _default_failure_message(stage, cause, previous_attempts + 1)
    updated = replace(
        submission,
        state=SubmissionState.FAILED,
        stage_attempts=attempts,
        last_event_seq=last_event_seq,
        last_transition_at=now,
        failure_reason=FailureReason(stage=stage, cause=cause, message=message),
    )
    return TransitionResult(
        outcome=ApplyOutcome.FAILED,
        submission_id=submission.id,
        previous_state=submission.state,
        submission=updated,
        reason=message,
    )


def _advance(submission: Submission, event: StageEvent, now: datetime) -> TransitionResult:
    attempts = dict(submission.stage_attempts)
    next_stage = _NEXT_STAGE.get(event.stage)
    if next_stage is not None:
        attempts[next_stage.value] = 0
    updated = replace(
        submission,
        state=_SUCCESS_STATE[event.stage],
        artifacts={**submission.artifacts, event.stage.value: event.payload_ref},
        stage_attempts=attempts,
        last_event_seq=event.sequence,
        last_transition_at=now,
    )
    return TransitionResult(
        outcome=ApplyOutcome.ADVANCED,
        submission_id=submission.id,
        previous_state=submission.state,
        submission=updated,
    )


def _discard(outcome: ApplyOutcome, submission: Submission, reason: str) -> TransitionResult:
    return TransitionResult(
        outcome=outcome,
        submission_id=submission.id,
        previous_state=submission.state,
        submission=submission,
        reason=reason,
    )


def _input_artifact(submission: Submission, stage: Stage) -> str | None:
    previous = _PREVIOUS_STAGE.get(stage)
    if previous is None:
        return None
    return submission.artifacts.get(previous.value)


def _default_failure_message(stage: Stage, cause: FailureCause, attempts: int) -> str:
    if cause == FailureCause.TIMEOUT:
        return f"{stage.value} timed out after {attempts} attempt(s)"
    if cause == FailureCause.CANCELED:
        return "canceled"
    return f"{stage.value} failed after {attempts} attempt(s)"
