import threading
from collections.abc import Callable

from orchestrator.config.settings import Settings
from orchestrator.logging.logger import Log
from orchestrator.notifications.fanout import NotificationFanout
from orchestrator.supervisor.supervisor import TimeoutSupervisor
from orchestrator.worker.worker import Worker


class WorkerPool:
    """Runs ingestion workers, the stall supervisor and the notification flusher.

    All threads share one stop event. Workers serialize per submission through
    the registry lock, so any number of them can drain the transport at once.
    """

    def __init__(
        self,
        workers: list[Worker],
        supervisor: TimeoutSupervisor,
        fanout: NotificationFanout,
        settings: Settings,
    ) -> None:
        self._workers = workers
        self._supervisor = supervisor
        self._fanout = fanout
        self._settings = settings
        self._stop_event = threading.Event()
        self._threads: list[threading.Thread] = []

    @property
    def stop_event(self) -> threading.Event:
        return self._stop_event

    def start(self) -> None:
        if self._threads:
            raise RuntimeError("WorkerPool already started")
        for index, worker in enumerate(self._workers):
            self._spawn(f"ingestion-{index}", lambda w=worker: w.run(self._stop_event))
        self._spawn("supervisor", lambda: self._supervisor.run(self._stop_event))
        self._spawn("notification-flusher", self._flush_notifications)
        Log.info(f"Worker pool started with {len(self._workers)} ingestion worker(s)")

    def stop(self, timeout: float | None = None) -> None:
        self._stop_event.set()
        for thread in self._threads:
            thread.join(timeout)
        self._threads = []
        Log.info("Worker pool stopped")

    def run(self) -> None:
        """Start all threads and block until interrupted."""
        self.start()
        try:
            while not self._stop_event.wait(1.0):
                pass
        except KeyboardInterrupt:
            Log.info("Worker pool shutting down gracefully")
        finally:
            self.stop()

    def _spawn(self, name: str, target: Callable[[], object]) -> None:
        thread = threading.Thread(target=target, name=name, daemon=True)
        thread.start()
        self._threads.append(thread)

    def _flush_notifications(self) -> None:
        interval = self._settings.notification_flush_interval_seconds
        while not self._stop_event.wait(interval):
            self._fanout.flush_pending()
