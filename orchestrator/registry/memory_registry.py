import threading
import uuid
from collections.abc import Iterator
from contextlib import contextmanager

from orchestrator.clock import Clock, utc_now
from orchestrator.registry.base import BaseSubmissionRegistry, SubmissionTransaction
from orchestrator.registry.exceptions import SubmissionNotFoundError
from orchestrator.submissions.models import Submission, SubmissionState


class InMemorySubmissionRegistry(BaseSubmissionRegistry):
    """Process-local registry with sharded per-submission locks.

    Not durable: intended for local runs and tests.
    """

    LOCK_SHARDS = 64

    def __init__(self, clock: Clock = utc_now, lock_shards: int = LOCK_SHARDS) -> None:
        if lock_shards < 1:
            raise ValueError("lock_shards must be at least 1")
        self._clock = clock
        self._records: dict[str, Submission] = {}
        self._records_lock = threading.Lock()
        self._shards = [threading.Lock() for _ in range(lock_shards)]

    def create(self, owner_id: str) -> Submission:
        submission = Submission(
            id=str(uuid.uuid4()),
            owner_id=owner_id,
            state=SubmissionState.REGISTERED,
            last_transition_at=self._clock(),
        )
        with self._records_lock:
            self._records[submission.id] = submission
        return submission

    def get(self, submission_id: str) -> Submission:
        with self._records_lock:
            submission = self._records.get(submission_id)
        if submission is None:
            raise SubmissionNotFoundError(f"Submission {submission_id} not found")
        return submission

    @contextmanager
    def locked(self, submission_id: str) -> Iterator[SubmissionTransaction]:
        with self._shard_for(submission_id):
            transaction = SubmissionTransaction(self.get(submission_id))
            yield transaction
            if transaction.pending is not None:
                with self._records_lock:
                    self._records[submission_id] = transaction.pending

    def list_active(self) -> list[Submission]:
        with self._records_lock:
            records = list(self._records.values())
        active = [s for s in records if not s.is_terminal]
        return sorted(active, key=lambda s: s.last_transition_at)

    def list_by_owner(self, owner_id: str) -> list[Submission]:
        with self._records_lock:
            records = [s for s in self._records.values() if s.owner_id == owner_id]
        return sorted(records, key=lambda s: s.last_transition_at)

    def _shard_for(self, submission_id: str) -> threading.Lock:
        return self._shards[hash(submission_id) % len(self._shards)]
