"""Wire shapes exchanged with the event transport."""

from dataclasses import dataclass
from datetime import datetime
from enum import Enum

from orchestrator.submissions.models import FailureCause, Stage


class Outcome(str, Enum):
    SUCCESS = "success"
    FAILURE = "failure"


@dataclass(frozen=True)
class StageEvent:
    """A stage-completion signal received from the event transport."""

    submission_id: str
    stage: Stage
    outcome: Outcome
    sequence: int
    occurred_at: datetime
    payload_ref: str | None = None
    error: str | None = None


@dataclass(frozen=True)
class StageRequest:
    """Request for an external worker to (re-)run a stage.

    Mirrors StageEvent without an outcome. ``payload_ref`` points at the input
    artifact of the stage, i.e. what the preceding stage produced.
    """

    submission_id: str
    stage: Stage
    sequence: int
    occurred_at: datetime
    attempt: int
    cause: FailureCause
    payload_ref: str | None = None

    def to_dict(self) -> dict[str, object]:
        return {
            "submissionId": self.submission_id,
            "stage": self.stage.value,
            "sequence": self.sequence,
            "payloadRef": self.payload_ref,
            "occurredAt": self.occurred_at.isoformat(),
            "attempt": self.attempt,
            "cause": self.cause.value,
        }
