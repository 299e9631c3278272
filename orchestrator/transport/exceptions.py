class TransportError(Exception):
    """Base exception for event transport errors."""


class TransportUnavailableError(TransportError):
    """Raised when the transport backend cannot be reached."""
