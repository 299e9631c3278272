from orchestrator.ingestion.ingestor import EventIngestor
from orchestrator.ingestion.models import IngestOutcome, IngestResult
from orchestrator.logging.logger import Log
from orchestrator.registry.exceptions import RegistryUnavailableError
from orchestrator.transport.base import BaseEventTransport
from orchestrator.transport.exceptions import TransportError
from orchestrator.transport.models import TransportMessage


class MessageRunner:
    """Ingest one transport message, then acknowledge or release it."""

    def __init__(self, ingestor: EventIngestor, transport: BaseEventTransport) -> None:
        self._ingestor = ingestor
        self._transport = transport

    def run(self, message: TransportMessage) -> IngestResult | None:
        """Handle a single message.

        Returns the ingest result, or None when the message was released for
        redelivery because it could not be settled.
        """
        Log.debug(
            f"Handling message {message.id} (delivery {message.deliveries})",
            channel=message.channel,
        )
        try:
            result = self._ingestor.ingest(message.body, channel=message.channel)
        except RegistryUnavailableError as exc:
            Log.warning(f"Registry unavailable, message {message.id} will be redelivered: {exc}")
            self._release(message)
            return None
        except Exception as exc:
            Log.error(f"Message {message.id} failed: {exc}", channel=message.channel)
            self._release(message)
            return None

        if result.outcome == IngestOutcome.DEFERRED:
            self._release(message)
            return None

        self._acknowledge(message)
        return result

    def _acknowledge(self, message: TransportMessage) -> None:
        try:
            self._transport.ack(message)
        except TransportError as exc:
            # Redelivered after the visibility timeout and discarded as a duplicate.
            Log.warning(f"Could not acknowledge message {message.id}: {exc}")

    def _release(self, message: TransportMessage) -> None:
        try:
            self._transport.nack(message)
        except TransportError as exc:
            Log.warning(f"Could not release message {message.id}: {exc}")
