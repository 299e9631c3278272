import itertools
import threading
from collections import deque
from dataclasses import replace
from typing import Any

from orchestrator.events.models import StageRequest
from orchestrator.logging.logger import Log
from orchestrator.transport.base import BaseEventTransport
from orchestrator.transport.models import TransportMessage


class InMemoryEventTransport(BaseEventTransport):
    """Thread-safe process-local transport with ack/nack redelivery."""

    def __init__(self, max_deliveries: int = 10) -> None:
        self._max_deliveries = max_deliveries
        self._lock = threading.Lock()
        self._ids = itertools.count(1)
        self._pending: deque[TransportMessage] = deque()
        self._in_flight: dict[int, TransportMessage] = {}
        self._dead: list[TransportMessage] = []
        self._requests: list[StageRequest] = []

    @property
    def requests(self) -> list[StageRequest]:
        with self._lock:
            return list(self._requests)

    @property
    def dead_letters(self) -> list[TransportMessage]:
        with self._lock:
            return list(self._dead)

    @property
    def pending_count(self) -> int:
        with self._lock:
            return len(self._pending) + len(self._in_flight)

    def publish_event(self, channel: str, body: str | bytes | dict[str, Any]) -> int:
        with self._lock:
            message = TransportMessage(id=next(self._ids), channel=channel, body=body, deliveries=0)
            self._pending.append(message)
        return message.id

    def receive(self) -> TransportMessage | None:
        with self._lock:
            if not self._pending:
                return None
            message = self._pending.popleft()
            claimed = replace(message, deliveries=message.deliveries + 1)
            self._in_flight[claimed.id] = claimed
            return claimed

    def ack(self, message: TransportMessage) -> None:
        with self._lock:
            self._in_flight.pop(message.id, None)

    def nack(self, message: TransportMessage) -> None:
        with self._lock:
            claimed = self._in_flight.pop(message.id, None)
            if claimed is None:
                return
            if claimed.deliveries >= self._max_deliveries:
                self._dead.append(claimed)
                Log.error(
                    "Message dead-lettered after max deliveries",
                    message_id=claimed.id,
                    channel=claimed.channel,
                    deliveries=claimed.deliveries,
                )
                return
            self._pending.append(claimed)

    def publish_request(self, request: StageRequest) -> None:
        with self._lock:
            self._requests.append(request)
