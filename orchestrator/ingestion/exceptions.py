class IngestError(Exception):
    """Base exception for ingestion errors."""


class MalformedEventError(IngestError):
    """Raised when a transport message is not a valid stage event. Never retried."""
