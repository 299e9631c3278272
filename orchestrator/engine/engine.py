from collections.abc import Callable
from dataclasses import replace
from datetime import datetime

from orchestrator.clock import Clock, utc_now
from orchestrator.engine.models import ApplyOutcome, TransitionResult
from orchestrator.engine.retry_policy import RetryPolicy
from orchestrator.engine.state_machine import decide, decide_failure, expected_stage, is_stalled
from orchestrator.events.models import StageEvent
from orchestrator.logging.logger import Log
from orchestrator.notifications.fanout import NotificationFanout
from orchestrator.notifications.models import Notification
from orchestrator.registry.base import BaseSubmissionRegistry
from orchestrator.registry.exceptions import SubmissionNotFoundError
from orchestrator.submissions.models import FailureCause, Submission
from orchestrator.transport.base import BaseEventTransport
from orchestrator.transport.exceptions import TransportError

Decider = Callable[[Submission, datetime], TransitionResult]


class TransitionEngine:
    """Single write path for submission state.

    Every change (stage events, timeouts, cancellation) runs as one locked
    read-modify-write in the registry. Retry requests and notifications go
    out only after the change is committed, carrying the committed version.
    """

    def __init__(
        self,
        registry: BaseSubmissionRegistry,
        transport: BaseEventTransport,
        fanout: NotificationFanout,
        policy: RetryPolicy,
        clock: Clock = utc_now,
    ) -> None:
        self._registry = registry
        self._transport = transport
        self._fanout = fanout
        self._policy = policy
        self._clock = clock

    def apply(self, event: StageEvent) -> TransitionResult:
        """Apply a stage event. Events for unknown submissions are discarded as stale."""
        try:
            return self._transition(
                event.submission_id,
                lambda submission, now: decide(submission, event, self._policy, now),
            )
        except SubmissionNotFoundError:
            return TransitionResult(
                outcome=ApplyOutcome.STALE,
                submission_id=event.submission_id,
                previous_state=None,
                submission=None,
                reason="unknown submission",
            )

    def expire(self, submission_id: str, now: datetime | None = None) -> TransitionResult:
        """Treat a stalled stage as failed with cause "timeout".

        The stall condition is re-checked under the lock, since an event may
        have moved the submission on after the supervisor's scan. ``now`` only
        feeds that check; the committed record is stamped with the time the
        lock was taken.
        """

        def _decide(submission: Submission, locked_now: datetime) -> TransitionResult:
            stage = expected_stage(submission.state)
            if stage is None or not is_stalled(submission, self._policy, now or locked_now):
                return TransitionResult(
                    outcome=ApplyOutcome.STALE,
                    submission_id=submission.id,
                    previous_state=submission.state,
                    submission=submission,
                    reason="not stalled",
                )
            return decide_failure(
                submission,
                stage,
                FailureCause.TIMEOUT,
                f"no {stage.value} completion within {self._policy.deadline(stage)}",
                self._policy,
                locked_now,
            )

        return self._transition(submission_id, _decide)

    def cancel(self, submission_id: str, message: str = "") -> TransitionResult:
        """Force a non-terminal submission to Failed with cause "canceled".

        Raises:
            SubmissionNotFoundError: if the id is unknown.
        """

        def _decide(submission: Submission, now: datetime) -> TransitionResult:
            stage = expected_stage(submission.state)
            if stage is None:
                return TransitionResult(
                    outcome=ApplyOutcome.STALE,
                    submission_id=submission.id,
                    previous_state=submission.state,
                    submission=submission,
                    reason=f"submission is {submission.state.value}",
                )
            return decide_failure(
                submission,
                stage,
                FailureCause.CANCELED,
                message,
                self._policy,
                now,
                allow_retry=False,
            )

        return self._transition(submission_id, _decide)

    def _transition(self, submission_id: str, decider: Decider) -> TransitionResult:
        with self._registry.locked(submission_id) as transaction:
            result = decider(transaction.submission, self._clock())
            if result.committed and result.submission is not None:
                transaction.save(result.submission)
                result = replace(result, submission=transaction.pending)

        if result.committed:
            self._after_commit(result)
        return result

    def _after_commit(self, result: TransitionResult) -> None:
        submission = result.submission
        if submission is None:
            return
        Log.info(
            "Submission transitioned",
            submission_id=submission.id,
            outcome=result.outcome.value,
            from_state=result.previous_state.value if result.previous_state else None,
            to_state=submission.state.value,
        )
        if result.retry_request is not None:
            self._publish_retry(result)
        self._fanout.publish(Notification.from_submission(submission))

    def _publish_retry(self, result: TransitionResult) -> None:
        request = result.retry_request
        if request is None:
            return
        try:
            self._transport.publish_request(request)
        except TransportError as exc:
            # The retry already refreshed last_transition_at; the stall scan re-issues it.
            Log.error(
                f"Failed to publish retry request: {exc}",
                submission_id=request.submission_id,
                stage=request.stage.value,
                attempt=request.attempt,
            )
            return
        Log.info(
            "Retry requested",
            submission_id=request.submission_id,
            stage=request.stage.value,
            attempt=request.attempt,
            cause=request.cause.value,
        )
