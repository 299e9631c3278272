from dataclasses import dataclass
from enum import Enum

from orchestrator.events.models import StageRequest
from orchestrator.submissions.models import Submission, SubmissionState


class ApplyOutcome(str, Enum):
    ADVANCED = "advanced"
    RETRY_SCHEDULED = "retry-scheduled"
    FAILED = "failed"
    DUPLICATE = "duplicate"
    STALE = "stale"
    DEFERRED = "deferred"


_COMMITTED = frozenset({ApplyOutcome.ADVANCED, ApplyOutcome.RETRY_SCHEDULED, ApplyOutcome.FAILED})


@dataclass(frozen=True)
class TransitionResult:
    """What the state machine decided for one event or synthetic failure.

    ``submission`` is the record to commit for committed outcomes and the
    untouched current record for discards. It is None only when the
    submission does not exist.
    """

    outcome: ApplyOutcome
    submission_id: str
    previous_state: SubmissionState | None
    submission: Submission | None
    retry_request: StageRequest | None = None
    reason: str = ""

    @property
    def committed(self) -> bool:
        return self.outcome in _COMMITTED
