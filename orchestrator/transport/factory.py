from orchestrator.config.settings import Settings
from orchestrator.transport.base import BaseEventTransport
from orchestrator.transport.memory_transport import InMemoryEventTransport
from orchestrator.transport.postgres_transport import PostgresEventTransport


class EventTransportFactory:
    """Creates the event transport selected by settings."""

    BACKENDS = ("postgres", "memory")

    @classmethod
    def create(cls, settings: Settings) -> BaseEventTransport:
        backend = settings.transport_backend.lower()
        if backend == "postgres":
            return PostgresEventTransport(
                visibility_timeout_seconds=settings.event_visibility_timeout_seconds,
                max_deliveries=settings.event_max_deliveries,
            )
        if backend == "memory":
            return InMemoryEventTransport(max_deliveries=settings.event_max_deliveries)
        raise ValueError(
            f"Unknown transport backend '{backend}'. Choose from: {list(cls.BACKENDS)}"
        )
