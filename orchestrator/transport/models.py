from dataclasses import dataclass
from typing import Any


@dataclass(frozen=True)
class TransportMessage:
    """One delivery of a raw message from the event transport."""

    id: int
    channel: str
    body: str | bytes | dict[str, Any]
    deliveries: int = 1
