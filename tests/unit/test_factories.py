from unittest.mock import patch

import pytest

from orchestrator.registry.factory import SubmissionRegistryFactory
from orchestrator.registry.memory_registry import InMemorySubmissionRegistry
from orchestrator.registry.postgres_registry import PostgresSubmissionRegistry
from orchestrator.transport.factory import EventTransportFactory
from orchestrator.transport.memory_transport import InMemoryEventTransport
from orchestrator.transport.postgres_transport import PostgresEventTransport


def _make_settings(registry_backend: str = "memory", transport_backend: str = "memory"):  # type: ignore[no-untyped-def]
    """Create a minimal Settings-like object with only the backend fields."""
    with patch("orchestrator.config.settings.Settings") as mock_cls:
        settings = mock_cls.return_value
        settings.registry_backend = registry_backend
        settings.transport_backend = transport_backend
        settings.event_visibility_timeout_seconds = 60
        settings.event_max_deliveries = 5
        return settings


class TestSubmissionRegistryFactory:
    def test_creates_memory_registry(self) -> None:
        registry = SubmissionRegistryFactory.create(_make_settings(registry_backend="memory"))
        assert isinstance(registry, InMemorySubmissionRegistry)

    def test_creates_postgres_registry(self) -> None:
        registry = SubmissionRegistryFactory.create(_make_settings(registry_backend="postgres"))
        assert isinstance(registry, PostgresSubmissionRegistry)

    def test_is_case_insensitive(self) -> None:
        registry = SubmissionRegistryFactory.create(_make_settings(registry_backend="Memory"))
        assert isinstance(registry, InMemorySubmissionRegistry)

    def test_raises_for_unknown_backend(self) -> None:
        with pytest.raises(ValueError, match="Unknown registry backend"):
            SubmissionRegistryFactory.create(_make_settings(registry_backend="redis"))


class TestEventTransportFactory:
    def test_creates_memory_transport(self) -> None:
        transport = EventTransportFactory.create(_make_settings(transport_backend="memory"))
        assert isinstance(transport, InMemoryEventTransport)

    def test_creates_postgres_transport(self) -> None:
        transport = EventTransportFactory.create(_make_settings(transport_backend="postgres"))
        assert isinstance(transport, PostgresEventTransport)

    def test_raises_for_unknown_backend(self) -> None:
        with pytest.raises(ValueError, match="Unknown transport backend"):
            EventTransportFactory.create(_make_settings(transport_backend="kafka"))
