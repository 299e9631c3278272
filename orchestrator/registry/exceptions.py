class RegistryError(Exception):
    """Base exception for submission registry errors."""


class RegistryUnavailableError(RegistryError):
    """Raised when the durable store cannot be reached; the caller must not acknowledge work."""


class SubmissionNotFoundError(RegistryError):
    """Raised when no submission exists for the given id."""
