from collections.abc import Callable
from datetime import datetime, timedelta, timezone

import pytest

from orchestrator.engine.engine import TransitionEngine
from orchestrator.engine.retry_policy import RetryPolicy, StagePolicy
from orchestrator.events.models import Outcome, StageEvent
from orchestrator.notifications.fanout import NotificationFanout
from orchestrator.registry.memory_registry import InMemorySubmissionRegistry
from orchestrator.submissions.models import Stage
from orchestrator.transport.memory_transport import InMemoryEventTransport

START = datetime(2026, 1, 1, 12, 0, tzinfo=timezone.utc)


class FakeClock:
    """Manually advanced clock."""

    def __init__(self, start: datetime = START) -> None:
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += timedelta(seconds=seconds)


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture()
def policy() -> RetryPolicy:
    """Upload is never retried; later stages get two retries; every deadline is 60s."""
    deadline = timedelta(seconds=60)
    return RetryPolicy(
        {
            Stage.UPLOAD: StagePolicy(max_retries=0, deadline=deadline),
            Stage.EXTRACTION: StagePolicy(max_retries=2, deadline=deadline),
            Stage.INTERPRETATION: StagePolicy(max_retries=2, deadline=deadline),
            Stage.REPORT: StagePolicy(max_retries=2, deadline=deadline),
        }
    )


@pytest.fixture()
def registry(clock: FakeClock) -> InMemorySubmissionRegistry:
    return InMemorySubmissionRegistry(clock=clock)


@pytest.fixture()
def transport() -> InMemoryEventTransport:
    return InMemoryEventTransport(max_deliveries=3)


@pytest.fixture()
def fanout() -> NotificationFanout:
    return NotificationFanout(queue_size=4)


@pytest.fixture()
def engine(
    registry: InMemorySubmissionRegistry,
    transport: InMemoryEventTransport,
    fanout: NotificationFanout,
    policy: RetryPolicy,
    clock: FakeClock,
) -> TransitionEngine:
    return TransitionEngine(registry, transport, fanout, policy, clock=clock)


@pytest.fixture()
def make_event() -> Callable[..., StageEvent]:
    """Build a StageEvent with sensible defaults."""

    def _make(
        submission_id: str,
        stage: Stage,
        sequence: int,
        outcome: Outcome = Outcome.SUCCESS,
        payload_ref: str | None = None,
        error: str | None = None,
    ) -> StageEvent:
        return StageEvent(
            submission_id=submission_id,
            stage=stage,
            outcome=outcome,
            sequence=sequence,
            occurred_at=START,
            payload_ref=payload_ref,
            error=error,
        )

    return _make
