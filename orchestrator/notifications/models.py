from dataclasses import dataclass, field
from datetime import datetime

from orchestrator.submissions.models import FailureReason, Submission, SubmissionState

STALE_MESSAGE = "state may be stale, re-fetch"


@dataclass(frozen=True)
class Notification:
    """State of a submission right after a committed transition."""

    submission_id: str
    owner_id: str
    state: SubmissionState
    occurred_at: datetime
    artifacts: dict[str, str | None] = field(default_factory=dict)
    failure_reason: FailureReason | None = None
    stage_attempts: dict[str, int] = field(default_factory=dict)
    version: int = 0

    @classmethod
    def from_submission(cls, submission: Submission) -> "Notification":
        return cls(
            submission_id=submission.id,
            owner_id=submission.owner_id,
            state=submission.state,
            occurred_at=submission.last_transition_at,
            artifacts=dict(submission.artifacts),
            failure_reason=submission.failure_reason,
            stage_attempts=dict(submission.stage_attempts),
            version=submission.version,
        )

    def to_dict(self) -> dict[str, object]:
        """Serialize to a plain dict (for JSON/WebSocket)."""
        return {
            "type": "state",
            "submissionId": self.submission_id,
            "ownerId": self.owner_id,
            "state": self.state.value,
            "artifacts": dict(self.artifacts),
            "failureReason": self.failure_reason.to_dict() if self.failure_reason else None,
            "stageAttempts": dict(self.stage_attempts),
            "occurredAt": self.occurred_at.isoformat(),
            "version": self.version,
        }


@dataclass(frozen=True)
class StaleNotice:
    """Stands in for notifications dropped from a full subscriber queue."""

    subscription: str
    message: str = STALE_MESSAGE

    def to_dict(self) -> dict[str, object]:
        return {"type": "stale", "subscription": self.subscription, "message": self.message}
