from abc import ABC, abstractmethod
from contextlib import AbstractContextManager
from dataclasses import replace

from orchestrator.submissions.models import Submission


class SubmissionTransaction:
    """Handle for one locked read-modify-write of a submission.

    The registry commits ``pending`` when the ``locked`` block exits normally.
    Every save stamps the next version of the record.
    """

    def __init__(self, submission: Submission) -> None:
        self._submission = submission
        self._pending: Submission | None = None

    @property
    def submission(self) -> Submission:
        return self._submission if self._pending is None else self._pending

    @property
    def pending(self) -> Submission | None:
        return self._pending

    def save(self, updated: Submission) -> None:
        if updated.id != self._submission.id:
            raise ValueError(
                f"Cannot save submission {updated.id} in transaction for {self._submission.id}"
            )
        self._pending = replace(updated, version=self._submission.version + 1)


class BaseSubmissionRegistry(ABC):
    """Contract for the durable store of submission records."""

    @abstractmethod
    def create(self, owner_id: str) -> Submission:
        """Register a new submission in the Registered state."""

    @abstractmethod
    def get(self, submission_id: str) -> Submission:
        """Return the current record.

        Raises:
            SubmissionNotFoundError: if the id is unknown.
            RegistryUnavailableError: if the store cannot be reached.
        """

    @abstractmethod
    def locked(self, submission_id: str) -> AbstractContextManager[SubmissionTransaction]:
        """Hold the exclusive per-submission lock for one read-modify-write.

        Changes saved on the transaction are committed when the block exits
        without an exception and discarded otherwise.

        Raises:
            SubmissionNotFoundError: if the id is unknown.
            RegistryUnavailableError: if the store cannot be reached.
        """

    @abstractmethod
    def list_active(self) -> list[Submission]:
        """Return all submissions that are not in a terminal state."""

    @abstractmethod
    def list_by_owner(self, owner_id: str) -> list[Submission]:
        """Return all submissions of one owner, oldest transition first."""
