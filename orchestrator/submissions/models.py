from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum


class SubmissionState(str, Enum):
    """Lifecycle states of a submission."""

    REGISTERED = "registered"
    UPLOADING = "uploading"
    UPLOADED = "uploaded"
    EXTRACTING = "extracting"
    EXTRACTED = "extracted"
    INTERPRETING = "interpreting"
    INTERPRETED = "interpreted"
    REPORTING = "reporting"
    REPORTED = "reported"
    FAILED = "failed"


class Stage(str, Enum):
    """Pipeline steps, in execution order."""

    UPLOAD = "upload"
    EXTRACTION = "extraction"
    INTERPRETATION = "interpretation"
    REPORT = "report"


class FailureCause(str, Enum):
    STAGE_FAILURE = "stage_failure"
    TIMEOUT = "timeout"
    CANCELED = "canceled"


TERMINAL_STATES = frozenset({SubmissionState.REPORTED, SubmissionState.FAILED})


@dataclass(frozen=True)
class FailureReason:
    """Coded reason attached to a Failed submission."""

    stage: Stage
    cause: FailureCause
    message: str = ""

    def to_dict(self) -> dict[str, str]:
        return {"stage": self.stage.value, "cause": self.cause.value, "message": self.message}


@dataclass(frozen=True)
class Submission:
    """Durable state record of one uploaded document.

    Owned exclusively by the submission registry. Updates produce a new record
    (see ``dataclasses.replace``) which is written back through a locked transaction.
    ``version`` is bumped by the registry on every committed write.
    """

    id: str
    owner_id: str
    state: SubmissionState
    last_transition_at: datetime
    stage_attempts: dict[str, int] = field(default_factory=dict)
    last_event_seq: int = 0
    failure_reason: FailureReason | None = None
    artifacts: dict[str, str | None] = field(default_factory=dict)
    version: int = 0

    @property
    def is_terminal(self) -> bool:
        return self.state in TERMINAL_STATES

    def attempts(self, stage: Stage) -> int:
        return self.stage_attempts.get(stage.value, 0)


@dataclass(frozen=True)
class SubmissionView:
    """Read-only projection returned by the status query."""

    id: str
    owner_id: str
    state: SubmissionState
    artifacts: dict[str, str | None]
    failure_reason: FailureReason | None
    stage_attempts: dict[str, int]
    last_transition_at: datetime
    version: int = 0

    @classmethod
    def from_submission(cls, submission: Submission) -> "SubmissionView":
        return cls(
            id=submission.id,
            owner_id=submission.owner_id,
            state=submission.state,
            artifacts=dict(submission.artifacts),
            failure_reason=submission.failure_reason,
            stage_attempts=dict(submission.stage_attempts),
            last_transition_at=submission.last_transition_at,
            version=submission.version,
        )

    def to_dict(self) -> dict[str, object]:
        return {
            "submissionId": self.id,
            "ownerId": self.owner_id,
            "state": self.state.value,
            "artifacts": dict(self.artifacts),
            "failureReason": self.failure_reason.to_dict() if self.failure_reason else None,
            "stageAttempts": dict(self.stage_attempts),
            "lastTransitionAt": self.last_transition_at.isoformat(),
            "version": self.version,
        }
