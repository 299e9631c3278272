import queue
from abc import ABC, abstractmethod

from orchestrator.notifications.exceptions import ChannelClosedError


class SendChannel(ABC):
    """Push handle supplied by the connection layer for one live observer."""

    @abstractmethod
    def try_send(self, payload: dict[str, object]) -> bool:
        """Hand a payload to the connection without blocking.

        Returns:
            False if the connection cannot take it right now.

        Raises:
            ChannelClosedError: if the connection is closed for good.
        """


class QueueSendChannel(SendChannel):
    """SendChannel over a bounded queue.Queue, drained by a connection thread."""

    def __init__(self, maxsize: int = 0) -> None:
        self._queue: queue.Queue[dict[str, object]] = queue.Queue(maxsize)
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def try_send(self, payload: dict[str, object]) -> bool:
        if self._closed:
            raise ChannelClosedError("Channel is closed")
        try:
            self._queue.put_nowait(payload)
        except queue.Full:
            return False
        return True

    def get(self, timeout: float | None = None) -> dict[str, object]:
        """Block until a payload is available. Raises queue.Empty on timeout."""
        return self._queue.get(timeout=timeout)

    def drain(self) -> list[dict[str, object]]:
        """Return every payload currently buffered."""
        payloads: list[dict[str, object]] = []
        while True:
            try:
                payloads.append(self._queue.get_nowait())
            except queue.Empty:
                return payloads

    def close(self) -> None:
        self._closed = True
