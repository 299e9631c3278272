from typing import Any

from orchestrator.engine.engine import TransitionEngine
from orchestrator.engine.models import ApplyOutcome
from orchestrator.ingestion.exceptions import MalformedEventError
from orchestrator.ingestion.models import IngestOutcome, IngestResult
from orchestrator.ingestion.validator import parse_stage_event
from orchestrator.logging.logger import Log

_OUTCOMES = {
    ApplyOutcome.ADVANCED: IngestOutcome.APPLIED,
    ApplyOutcome.RETRY_SCHEDULED: IngestOutcome.APPLIED,
    ApplyOutcome.FAILED: IngestOutcome.APPLIED,
    ApplyOutcome.DUPLICATE: IngestOutcome.DUPLICATE_DISCARDED,
    ApplyOutcome.STALE: IngestOutcome.STALE_DISCARDED,
    ApplyOutcome.DEFERRED: IngestOutcome.DEFERRED,
}


class EventIngestor:
    """Validates raw transport messages and hands them to the transition engine.

    A returned result means the message is settled and may be acknowledged,
    except ``deferred``: the event arrived ahead of its predecessor stage and
    must be released for redelivery.
    Infrastructure errors (e.g. RegistryUnavailableError) propagate so the
    message is left unacknowledged and redelivered.
    """

    def __init__(self, engine: TransitionEngine) -> None:
        self._engine = engine

    def ingest(self, raw: Any, channel: str | None = None) -> IngestResult:
        try:
            event = parse_stage_event(raw, channel=channel)
        except MalformedEventError as exc:
            Log.warning(
                f"Dropping malformed event: {exc}",
                outcome=IngestOutcome.MALFORMED.value,
                channel=channel,
            )
            return IngestResult(outcome=IngestOutcome.MALFORMED, error=str(exc))

        transition = self._engine.apply(event)
        outcome = _OUTCOMES[transition.outcome]
        Log.info(
            "Event ingested",
            outcome=outcome.value,
            submission_id=event.submission_id,
            stage=event.stage.value,
            event_outcome=event.outcome.value,
            sequence=event.sequence,
            reason=transition.reason or None,
        )
        return IngestResult(outcome=outcome, event=event, transition=transition)
