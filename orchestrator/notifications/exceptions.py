class NotificationError(Exception):
    """Base exception for notification delivery errors."""


class ChannelClosedError(NotificationError):
    """Raised by a send channel whose connection has gone away."""
