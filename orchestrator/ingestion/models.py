from dataclasses import dataclass
from enum import Enum

from orchestrator.engine.models import TransitionResult
from orchestrator.events.models import StageEvent


class IngestOutcome(str, Enum):
    """Audit outcome of one inbound message."""

    APPLIED = "applied"
    DUPLICATE_DISCARDED = "duplicate-discarded"
    STALE_DISCARDED = "stale-discarded"
    DEFERRED = "deferred"
    MALFORMED = "malformed"


@dataclass(frozen=True)
class IngestResult:
    outcome: IngestOutcome
    event: StageEvent | None = None
    transition: TransitionResult | None = None
    error: str | None = None
