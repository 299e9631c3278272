"""Best-effort push of submission state to live observers.

Each subscriber gets its own bounded queue and lock, so a slow or blocked
connection only ever affects itself. Channels are held by weak reference: the
connection layer owns them, and once one is garbage-collected or reports
closed, its subscriber is dropped without further delivery attempts.
"""

import threading
import weakref
from collections import deque

from orchestrator.logging.logger import Log
from orchestrator.notifications.channel import SendChannel
from orchestrator.notifications.exceptions import ChannelClosedError
from orchestrator.notifications.models import Notification, StaleNotice


def submission_key(submission_id: str) -> str:
    return f"submission:{submission_id}"


def owner_key(owner_id: str) -> str:
    return f"owner:{owner_id}"


class _Subscriber:
    def __init__(
        self,
        connection_id: str,
        key: str,
        channel: SendChannel,
        max_pending: int,
    ) -> None:
        self.connection_id = connection_id
        self.key = key
        self._channel_ref = weakref.ref(channel)
        self._max_pending = max_pending
        self._pending: deque[Notification | StaleNotice] = deque()
        self._latest_version: dict[str, int] = {}
        self._lock = threading.Lock()
        self.dropped = 0

    @property
    def pending(self) -> list[Notification | StaleNotice]:
        with self._lock:
            return list(self._pending)

    def deliver(self, notification: Notification) -> bool:
        """Queue a notification and push as much as the channel accepts.

        Notifications older than one already queued for the same submission
        are skipped, so transitions committed concurrently cannot leave an
        older state as the last thing the observer sees.

        Returns False once the channel is gone.
        """
        with self._lock:
            latest = self._latest_version.get(notification.submission_id)
            if latest is not None and notification.version < latest:
                return self._flush()
            self._latest_version[notification.submission_id] = notification.version
            self._enqueue(notification)
            return self._flush()

    def flush(self) -> bool:
        with self._lock:
            return self._flush()

    def _enqueue(self, notification: Notification) -> None:
        self._pending.append(notification)
        has_marker = isinstance(self._pending[0], StaleNotice)
        queued = len(self._pending) - (1 if has_marker else 0)
        if queued <= self._max_pending:
            return
        # The oldest notification gives way to a single stale marker at the head.
        if has_marker:
            del self._pending[1]
        else:
            self._pending[0] = StaleNotice(subscription=self.key)
        self.dropped += 1

    def _flush(self) -> bool:
        channel = self._channel_ref()
        if channel is None:
            return False
        while self._pending:
            try:
                accepted = channel.try_send(self._pending[0].to_dict())
            except ChannelClosedError:
                return False
            except Exception as exc:
                Log.warning(
                    f"Channel send failed, keeping notification queued: {exc}",
                    connection_id=self.connection_id,
                )
                break
            if not accepted:
                break
            self._pending.popleft()
        return True


class NotificationFanout:
    """Routes committed transitions to subscribers of a submission or its owner."""

    def __init__(self, queue_size: int = 16) -> None:
        if queue_size < 1:
            raise ValueError("queue_size must be at least 1")
        self._queue_size = queue_size
        self._lock = threading.Lock()
        self._by_connection: dict[str, _Subscriber] = {}
        self._by_key: dict[str, dict[str, _Subscriber]] = {}

    @property
    def subscriber_count(self) -> int:
        with self._lock:
            return len(self._by_connection)

    def subscribe(
        self,
        connection_id: str,
        channel: SendChannel,
        *,
        submission_id: str | None = None,
        owner_id: str | None = None,
    ) -> None:
        """Register a connection for one submission or for all submissions of an owner.

        Re-subscribing an existing connection id replaces its previous subscription.
        """
        if submission_id is not None and owner_id is None:
            key = submission_key(submission_id)
        elif owner_id is not None and submission_id is None:
            key = owner_key(owner_id)
        else:
            raise ValueError("Exactly one of submission_id or owner_id must be given")
        subscriber = _Subscriber(connection_id, key, channel, self._queue_size)
        with self._lock:
            self._remove_locked(connection_id)
            self._by_connection[connection_id] = subscriber
            self._by_key.setdefault(key, {})[connection_id] = subscriber
        Log.debug("Subscriber registered", connection_id=connection_id, subscription=key)

    def unsubscribe(self, connection_id: str) -> bool:
        with self._lock:
            removed = self._remove_locked(connection_id)
        if removed:
            Log.debug("Subscriber removed", connection_id=connection_id)
        return removed

    def publish(self, notification: Notification) -> int:
        """Push a notification to every matching subscriber without blocking.

        Returns the number of subscribers it was queued for.
        """
        keys = (submission_key(notification.submission_id), owner_key(notification.owner_id))
        with self._lock:
            targets = [s for key in keys for s in self._by_key.get(key, {}).values()]

        for subscriber in targets:
            if not subscriber.deliver(notification):
                self._drop_closed(subscriber)
        return len(targets)

    def flush_pending(self) -> None:
        """Retry queued notifications against channels that were full earlier."""
        with self._lock:
            subscribers = list(self._by_connection.values())
        for subscriber in subscribers:
            if not subscriber.flush():
                self._drop_closed(subscriber)

    def pending_for(self, connection_id: str) -> list[Notification | StaleNotice]:
        with self._lock:
            subscriber = self._by_connection.get(connection_id)
        return subscriber.pending if subscriber is not None else []

    def _drop_closed(self, subscriber: _Subscriber) -> None:
        with self._lock:
            current = self._by_connection.get(subscriber.connection_id)
            if current is not subscriber:
                return
            self._remove_locked(subscriber.connection_id)
        Log.info(
            "Dropped subscriber with closed channel",
            connection_id=subscriber.connection_id,
            subscription=subscriber.key,
        )

    def _remove_locked(self, connection_id: str) -> bool:
        subscriber = self._by_connection.pop(connection_id, None)
        if subscriber is None:
            return False
        bucket = self._by_key.get(subscriber.key)
        if bucket is not None:
            bucket.pop(connection_id, None)
            if not bucket:
                del self._by_key[subscriber.key]
        return True
