import threading
import time

from orchestrator.config.settings import Settings
from orchestrator.logging.logger import Log
from orchestrator.transport.base import BaseEventTransport
from orchestrator.transport.models import TransportMessage
from orchestrator.worker.message_runner import MessageRunner


class Worker:
    """Poll loop: receive -> dispatch -> sleep when idle or backing off."""

    def __init__(
        self,
        transport: BaseEventTransport,
        runner: MessageRunner,
        settings: Settings,
        name: str = "worker",
    ) -> None:
        self._transport = transport
        self._runner = runner
        self._settings = settings
        self._name = name

    def run(
        self,
        stop_event: threading.Event | None = None,
        max_messages: int | None = None,
    ) -> int:
        """Main poll loop. Runs until stop_event is set or interrupted.

        If max_messages is set, stop after handling that many messages (for testing).
        Returns the number of messages handled.
        """
        Log.info(f"{self._name} started, polling for events")
        handled = 0
        try:
            while stop_event is None or not stop_event.is_set():
                if max_messages is not None and handled >= max_messages:
                    break
                message = self._try_receive()
                if message is None:
                    Log.debug("No events available, sleeping")
                    self._sleep(stop_event)
                    continue
                result = self._runner.run(message)
                handled += 1
                if result is None:
                    # Message was released; back off before hitting the store again.
                    self._sleep(stop_event)
        except KeyboardInterrupt:
            Log.info(f"{self._name} shutting down gracefully")
        return handled

    def _try_receive(self) -> TransportMessage | None:
        """Attempt to claim the next message. Gracefully handle transport errors."""
        try:
            return self._transport.receive()
        except Exception as exc:
            Log.warning(f"Transport error, will retry: {exc}")
            return None

    def _sleep(self, stop_event: threading.Event | None) -> None:
        interval = self._settings.event_poll_interval_seconds
        if stop_event is None:
            time.sleep(interval)
        else:
            stop_event.wait(interval)
