from abc import ABC, abstractmethod
from typing import Any

from orchestrator.events.models import StageRequest
from orchestrator.transport.models import TransportMessage


class BaseEventTransport(ABC):
    """Contract for the at-least-once event log the orchestrator consumes.

    A received message stays claimed until it is acknowledged or released.
    Unacknowledged messages are delivered again, possibly to another worker.
    """

    @abstractmethod
    def receive(self) -> TransportMessage | None:
        """Claim the next deliverable message, or return None when there is none."""

    @abstractmethod
    def ack(self, message: TransportMessage) -> None:
        """Mark a message as handled so it is never delivered again."""

    @abstractmethod
    def nack(self, message: TransportMessage) -> None:
        """Release a claimed message for redelivery."""

    @abstractmethod
    def publish_request(self, request: StageRequest) -> None:
        """Ask external workers to run a stage again."""

    @abstractmethod
    def publish_event(self, channel: str, body: str | bytes | dict[str, Any]) -> int:
        """Append a raw message to a channel and return its id."""
