import threading

from orchestrator.clock import Clock, utc_now
from orchestrator.engine.engine import TransitionEngine
from orchestrator.engine.models import TransitionResult
from orchestrator.engine.retry_policy import RetryPolicy
from orchestrator.engine.state_machine import is_stalled
from orchestrator.logging.logger import Log
from orchestrator.registry.base import BaseSubmissionRegistry
from orchestrator.registry.exceptions import RegistryUnavailableError, SubmissionNotFoundError


class TimeoutSupervisor:
    """Periodic scan for submissions stuck past their stage deadline.

    Holds no state of its own: every scan starts from the registry, so jobs
    that were in flight when a previous process died are picked up as soon as
    their deadline passes.
    """

    def __init__(
        self,
        registry: BaseSubmissionRegistry,
        engine: TransitionEngine,
        policy: RetryPolicy,
        interval_seconds: float,
        clock: Clock = utc_now,
    ) -> None:
        self._registry = registry
        self._engine = engine
        self._policy = policy
        self._interval_seconds = interval_seconds
        self._clock = clock

    def scan_once(self) -> list[TransitionResult]:
        """Expire every stalled submission once. Returns the committed transitions."""
        now = self._clock()
        try:
            candidates = self._registry.list_active()
        except RegistryUnavailableError as exc:
            Log.warning(f"Registry unavailable, skipping stall scan: {exc}")
            return []

        results: list[TransitionResult] = []
        for submission in candidates:
            if not is_stalled(submission, self._policy, now):
                continue
            try:
                result = self._engine.expire(submission.id, now)
            except SubmissionNotFoundError:
                continue
            except RegistryUnavailableError as exc:
                Log.warning(f"Registry unavailable, aborting stall scan: {exc}")
                break
            if result.committed:
                results.append(result)

        if results:
            Log.info(f"Stall scan expired {len(results)} submission(s)")
        return results

    def run(self, stop_event: threading.Event) -> None:
        """Scan on a fixed interval until stop_event is set."""
        Log.info("Supervisor started", interval_seconds=self._interval_seconds)
        while not stop_event.is_set():
            try:
                self.scan_once()
            except Exception as exc:
                Log.error(f"Stall scan failed: {exc}")
            stop_event.wait(self._interval_seconds)
        Log.info("Supervisor stopped")
