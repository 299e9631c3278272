from orchestrator.clock import Clock, utc_now
from orchestrator.config.settings import Settings
from orchestrator.registry.base import BaseSubmissionRegistry
from orchestrator.registry.memory_registry import InMemorySubmissionRegistry
from orchestrator.registry.postgres_registry import PostgresSubmissionRegistry


class SubmissionRegistryFactory:
    """Creates the submission registry selected by settings."""

    BACKENDS: dict[str, type[BaseSubmissionRegistry]] = {
        "postgres": PostgresSubmissionRegistry,
        "memory": InMemorySubmissionRegistry,
    }

    @classmethod
    def create(cls, settings: Settings, clock: Clock = utc_now) -> BaseSubmissionRegistry:
        backend = settings.registry_backend.lower()
        registry_cls = cls.BACKENDS.get(backend)
        if registry_cls is None:
            raise ValueError(
                f"Unknown registry backend '{backend}'. Choose from: {list(cls.BACKENDS)}"
            )
        return registry_cls(clock=clock)
