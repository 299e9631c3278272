from typing import Any

from orchestrator.clock import Clock, utc_now
from orchestrator.config.settings import Settings
from orchestrator.engine.engine import TransitionEngine
from orchestrator.engine.models import TransitionResult
from orchestrator.engine.retry_policy import RetryPolicy
from orchestrator.ingestion.ingestor import EventIngestor
from orchestrator.ingestion.models import IngestResult
from orchestrator.logging.logger import Log
from orchestrator.notifications.channel import SendChannel
from orchestrator.notifications.fanout import NotificationFanout
from orchestrator.registry.base import BaseSubmissionRegistry
from orchestrator.registry.factory import SubmissionRegistryFactory
from orchestrator.submissions.models import SubmissionView
from orchestrator.supervisor.supervisor import TimeoutSupervisor
from orchestrator.transport.base import BaseEventTransport
from orchestrator.transport.factory import EventTransportFactory


class Orchestrator:
    """Entry points exposed to collaborators (upload handler, connection layer, UI)."""

    def __init__(
        self,
        registry: BaseSubmissionRegistry,
        transport: BaseEventTransport,
        fanout: NotificationFanout,
        engine: TransitionEngine,
        ingestor: EventIngestor,
        supervisor: TimeoutSupervisor,
    ) -> None:
        self.registry = registry
        self.transport = transport
        self.fanout = fanout
        self.engine = engine
        self.ingestor = ingestor
        self.supervisor = supervisor

    def register_submission(self, owner_id: str) -> str:
        """Create a Registered submission and return its id."""
        if not owner_id:
            raise ValueError("owner_id must be a non-empty string")
        submission = self.registry.create(owner_id)
        Log.info("Submission registered", submission_id=submission.id, owner_id=owner_id)
        return submission.id

    def get_submission(self, submission_id: str) -> SubmissionView:
        """Raises SubmissionNotFoundError for unknown ids."""
        return SubmissionView.from_submission(self.registry.get(submission_id))

    def list_submissions(self, owner_id: str) -> list[SubmissionView]:
        return [SubmissionView.from_submission(s) for s in self.registry.list_by_owner(owner_id)]

    def subscribe(
        self,
        connection_id: str,
        channel: SendChannel,
        *,
        submission_id: str | None = None,
        owner_id: str | None = None,
    ) -> None:
        self.fanout.subscribe(
            connection_id, channel, submission_id=submission_id, owner_id=owner_id
        )

    def unsubscribe(self, connection_id: str) -> bool:
        return self.fanout.unsubscribe(connection_id)

    def cancel_submission(
        self,
        submission_id: str,
        message: str = "canceled by user",
    ) -> TransitionResult:
        result = self.engine.cancel(submission_id, message)
        Log.info(
            "Cancel requested",
            submission_id=submission_id,
            outcome=result.outcome.value,
        )
        return result

    def ingest(self, raw: Any, channel: str | None = None) -> IngestResult:
        return self.ingestor.ingest(raw, channel=channel)


def build_orchestrator(settings: Settings, clock: Clock = utc_now) -> Orchestrator:
    """Build an Orchestrator with the backends selected in settings."""
    policy = RetryPolicy.from_settings(settings)
    registry = SubmissionRegistryFactory.create(settings, clock=clock)
    transport = EventTransportFactory.create(settings)
    fanout = NotificationFanout(queue_size=settings.notification_queue_size)
    engine = TransitionEngine(registry, transport, fanout, policy, clock=clock)
    ingestor = EventIngestor(engine)
    supervisor = TimeoutSupervisor(
        registry,
        engine,
        policy,
        interval_seconds=settings.supervisor_interval_seconds,
        clock=clock,
    )
    return Orchestrator(
        registry=registry,
        transport=transport,
        fanout=fanout,
        engine=engine,
        ingestor=ingestor,
        supervisor=supervisor,
    )
