from datetime import datetime, timedelta, timezone

from orchestrator.engine.models import ApplyOutcome
from orchestrator.engine.retry_policy import RetryPolicy
from orchestrator.engine.state_machine import (
    decide,
    decide_failure,
    expected_stage,
    is_stalled,
    is_terminal,
)
from orchestrator.events.models import Outcome, StageEvent
from orchestrator.submissions.models import (
    FailureCause,
    FailureReason,
    Stage,
    Submission,
    SubmissionState,
)

NOW = datetime(2026, 1, 1, 12, 0, tzinfo=timezone.utc)


def _submission(
    state: SubmissionState = SubmissionState.REGISTERED,
    last_event_seq: int = 0,
    stage_attempts: dict[str, int] | None = None,
    artifacts: dict[str, str | None] | None = None,
) -> Submission:
    return Submission(
        id="s-1",
        owner_id="u1",
        state=state,
        last_transition_at=NOW - timedelta(seconds=5),
        stage_attempts=stage_attempts or {},
        last_event_seq=last_event_seq,
        artifacts=artifacts or {},
    )


def _event(
    stage: Stage,
    sequence: int,
    outcome: Outcome = Outcome.SUCCESS,
    payload_ref: str | None = None,
    error: str | None = None,
) -> StageEvent:
    return StageEvent(
        submission_id="s-1",
        stage=stage,
        outcome=outcome,
        sequence=sequence,
        occurred_at=NOW,
        payload_ref=payload_ref,
        error=error,
    )


class TestExpectedStage:
    def test_registered_and_uploading_expect_upload(self) -> None:
        assert expected_stage(SubmissionState.REGISTERED) == Stage.UPLOAD
        assert expected_stage(SubmissionState.UPLOADING) == Stage.UPLOAD

    def test_in_progress_states_expect_their_stage(self) -> None:
        assert expected_stage(SubmissionState.EXTRACTING) == Stage.EXTRACTION
        assert expected_stage(SubmissionState.INTERPRETING) == Stage.INTERPRETATION
        assert expected_stage(SubmissionState.REPORTING) == Stage.REPORT

    def test_completed_states_expect_next_stage(self) -> None:
        assert expected_stage(SubmissionState.UPLOADED) == Stage.EXTRACTION
        assert expected_stage(SubmissionState.EXTRACTED) == Stage.INTERPRETATION
        assert expected_stage(SubmissionState.INTERPRETED) == Stage.REPORT

    def test_terminal_states_expect_nothing(self) -> None:
        assert expected_stage(SubmissionState.REPORTED) is None
        assert expected_stage(SubmissionState.FAILED) is None

    def test_only_reported_and_failed_are_terminal(self) -> None:
        terminal = {state for state in SubmissionState if is_terminal(state)}
        assert terminal == {SubmissionState.REPORTED, SubmissionState.FAILED}


class TestSuccessEdges:
    def test_upload_success_moves_to_uploaded(self, policy: RetryPolicy) -> None:
        result = decide(_submission(), _event(Stage.UPLOAD, 1, payload_ref="pdf#1"), policy, NOW)
        assert result.outcome == ApplyOutcome.ADVANCED
        assert result.submission is not None
        assert result.submission.state == SubmissionState.UPLOADED
        assert result.submission.artifacts == {"upload": "pdf#1"}
        assert result.submission.last_event_seq == 1
        assert result.submission.last_transition_at == NOW
        assert result.previous_state == SubmissionState.REGISTERED

    def test_success_resets_next_stage_attempts(self, policy: RetryPolicy) -> None:
        submission = _submission(
            SubmissionState.EXTRACTING,
            last_event_seq=3,
            stage_attempts={"extraction": 2, "interpretation": 5},
        )
        result = decide(submission, _event(Stage.EXTRACTION, 4, payload_ref="text#1"), policy, NOW)
        assert result.submission is not None
        assert result.submission.state == SubmissionState.EXTRACTED
        assert result.submission.stage_attempts == {"extraction": 2, "interpretation": 0}

    def test_report_success_is_terminal(self, policy: RetryPolicy) -> None:
        submission = _submission(SubmissionState.INTERPRETED, last_event_seq=3)
        result = decide(submission, _event(Stage.REPORT, 4, payload_ref="pdf#out"), policy, NOW)
        assert result.submission is not None
        assert result.submission.state == SubmissionState.REPORTED
        assert result.submission.is_terminal

    def test_success_keeps_earlier_artifacts(self, policy: RetryPolicy) -> None:
        submission = _submission(
            SubmissionState.UPLOADED, last_event_seq=1, artifacts={"upload": "pdf#1"}
        )
        result = decide(submission, _event(Stage.EXTRACTION, 2, payload_ref="text#1"), policy, NOW)
        assert result.submission is not None
        assert result.submission.artifacts == {"upload": "pdf#1", "extraction": "text#1"}


class TestDiscards:
    def test_terminal_submission_discards_as_stale(self, policy: RetryPolicy) -> None:
        submission = _submission(SubmissionState.REPORTED, last_event_seq=4)
        result = decide(submission, _event(Stage.REPORT, 9), policy, NOW)
        assert result.outcome == ApplyOutcome.STALE
        assert result.submission is submission
        assert not result.committed

    def test_equal_sequence_is_duplicate(self, policy: RetryPolicy) -> None:
        submission = _submission(SubmissionState.UPLOADED, last_event_seq=2)
        result = decide(submission, _event(Stage.EXTRACTION, 2), policy, NOW)
        assert result.outcome == ApplyOutcome.DUPLICATE

    def test_lower_sequence_is_duplicate(self, policy: RetryPolicy) -> None:
        submission = _submission(SubmissionState.UPLOADED, last_event_seq=2)
        result = decide(submission, _event(Stage.UPLOAD, 1), policy, NOW)
        assert result.outcome == ApplyOutcome.DUPLICATE

    def test_later_stage_is_deferred(self, policy: RetryPolicy) -> None:
        submission = _submission(SubmissionState.REGISTERED)
        result = decide(submission, _event(Stage.EXTRACTION, 2), policy, NOW)
        assert result.outcome == ApplyOutcome.DEFERRED
        assert "expected stage upload" in result.reason
        assert not result.committed
        assert result.submission is submission

    def test_earlier_stage_with_new_sequence_is_stale(self, policy: RetryPolicy) -> None:
        submission = _submission(SubmissionState.EXTRACTED, last_event_seq=2)
        result = decide(submission, _event(Stage.UPLOAD, 3), policy, NOW)
        assert result.outcome == ApplyOutcome.STALE
        assert "expected stage interpretation" in result.reason

    def test_discards_carry_no_retry_request(self, policy: RetryPolicy) -> None:
        submission = _submission(SubmissionState.UPLOADED, last_event_seq=2)
        result = decide(submission, _event(Stage.EXTRACTION, 1, Outcome.FAILURE), policy, NOW)
        assert result.retry_request is None


class TestFailureEdges:
    def test_failure_with_retries_left_moves_to_in_progress_state(
        self, policy: RetryPolicy
    ) -> None:
        submission = _submission(
            SubmissionState.UPLOADED, last_event_seq=1, artifacts={"upload": "pdf#1"}
        )
        result = decide(submission, _event(Stage.EXTRACTION, 2, Outcome.FAILURE), policy, NOW)
        assert result.outcome == ApplyOutcome.RETRY_SCHEDULED
        assert result.submission is not None
        assert result.submission.state == SubmissionState.EXTRACTING
        assert result.submission.attempts(Stage.EXTRACTION) == 1
        assert result.submission.last_event_seq == 2

    def test_retry_request_points_at_input_artifact(self, policy: RetryPolicy) -> None:
        submission = _submission(
            SubmissionState.UPLOADED, last_event_seq=1, artifacts={"upload": "pdf#1"}
        )
        result = decide(submission, _event(Stage.EXTRACTION, 2, Outcome.FAILURE), policy, NOW)
        request = result.retry_request
        assert request is not None
        assert request.stage == Stage.EXTRACTION
        assert request.attempt == 1
        assert request.payload_ref == "pdf#1"
        assert request.cause == FailureCause.STAGE_FAILURE
        assert request.sequence == 2

    def test_failure_with_no_retries_fails(self, policy: RetryPolicy) -> None:
        result = decide(
            _submission(), _event(Stage.UPLOAD, 1, Outcome.FAILURE, error="virus"), policy, NOW
        )
        assert result.outcome == ApplyOutcome.FAILED
        assert result.submission is not None
        assert result.submission.state == SubmissionState.FAILED
        assert result.submission.failure_reason == FailureReason(
            stage=Stage.UPLOAD, cause=FailureCause.STAGE_FAILURE, message="virus"
        )

    def test_exhausted_retries_fail_with_default_message(self, policy: RetryPolicy) -> None:
        submission = _submission(
            SubmissionState.EXTRACTING, last_event_seq=3, stage_attempts={"extraction": 2}
        )
        result = decide(submission, _event(Stage.EXTRACTION, 4, Outcome.FAILURE), policy, NOW)
        assert result.outcome == ApplyOutcome.FAILED
        assert result.submission is not None
        assert result.submission.attempts(Stage.EXTRACTION) == 3
        reason = result.submission.failure_reason
        assert reason is not None
        assert reason.stage == Stage.EXTRACTION
        assert reason.message == "extraction failed after 3 attempt(s)"

    def test_synthetic_failure_keeps_sequence(self, policy: RetryPolicy) -> None:
        submission = _submission(SubmissionState.UPLOADED, last_event_seq=7)
        result = decide_failure(
            submission, Stage.EXTRACTION, FailureCause.TIMEOUT, "", policy, NOW
        )
        assert result.submission is not None
        assert result.submission.last_event_seq == 7
        assert result.retry_request is not None
        assert result.retry_request.cause == FailureCause.TIMEOUT

    def test_disallowed_retry_fails_immediately(self, policy: RetryPolicy) -> None:
        submission = _submission(SubmissionState.UPLOADED, last_event_seq=1)
        result = decide_failure(
            submission,
            Stage.EXTRACTION,
            FailureCause.CANCELED,
            "",
            policy,
            NOW,
            allow_retry=False,
        )
        assert result.outcome == ApplyOutcome.FAILED
        assert result.submission is not None
        assert result.submission.attempts(Stage.EXTRACTION) == 0
        reason = result.submission.failure_reason
        assert reason is not None
        assert reason.cause == FailureCause.CANCELED
        assert reason.message == "canceled"

    def test_failure_on_terminal_is_stale(self, policy: RetryPolicy) -> None:
        submission = _submission(SubmissionState.FAILED)
        result = decide_failure(
            submission, Stage.UPLOAD, FailureCause.TIMEOUT, "", policy, NOW
        )
        assert result.outcome == ApplyOutcome.STALE


class TestIsStalled:
    def test_not_stalled_within_deadline(self, policy: RetryPolicy) -> None:
        submission = _submission(SubmissionState.UPLOADED)
        assert not is_stalled(submission, policy, NOW + timedelta(seconds=50))

    def test_stalled_past_deadline(self, policy: RetryPolicy) -> None:
        submission = _submission(SubmissionState.UPLOADED)
        assert is_stalled(submission, policy, NOW + timedelta(seconds=60))

    def test_terminal_never_stalled(self, policy: RetryPolicy) -> None:
        submission = _submission(SubmissionState.REPORTED)
        assert not is_stalled(submission, policy, NOW + timedelta(days=10))
