"""
Best-effort real-time fan-out of mutation events.

Connected clients register a sink (anything with ``async send_json``) under
one or more scope keys: ``global`` receives every entity mutation and
``user:<id>`` receives that user's notifications. Events are not queued: a
client that is offline when an event is emitted never sees it.
"""
import enum
import logging
from collections import defaultdict
from typing import Any, Optional, Protocol

import anyio.from_thread

logger = logging.getLogger("faae-core.fanout")

GLOBAL_SCOPE = "global"


def user_scope(user_id: str) -> str:
    """Scope key for events addressed to a single user."""
    return f"user:{user_id}"


class EventType(str, enum.Enum):
    """Event types pushed to connected clients."""

    CONNECTED = "connected"
    TASK_CREATED = "task_created"
    TASK_UPDATED = "task_updated"
    TASK_DELETED = "task_deleted"
    COMMENT_ADDED = "comment_added"
    PROJECT_CREATED = "project_created"
    PROJECT_UPDATED = "project_updated"
    PROJECT_DELETED = "project_deleted"
    FILE_UPLOADED = "file_uploaded"
    FILE_DELETED = "file_deleted"
    NOTIFICATION_CREATED = "notification_created"


class Sink(Protocol):
    async def send_json(self, data: Any) -> None: ...


class ConnectionRegistry:
    """
    Registry of scope key -> set of live sinks.

    A failed send drops that sink only; the rest of the broadcast carries on.
    """

    def __init__(self):
        self._scopes: dict[str, set[Sink]] = defaultdict(set)

    def register(self, sink: Sink, *scopes: str) -> None:
        for scope in scopes:
            self._scopes[scope].add(sink)
        logger.info(f"Registered sink in scopes {list(scopes)} (connections: {self.connection_count()})")

    def unregister(self, sink: Sink) -> None:
        """Remove a sink from every scope it was registered under."""
        for scope in list(self._scopes):
            self._scopes[scope].discard(sink)
            if not self._scopes[scope]:
                del self._scopes[scope]

    def sinks(self, scope: str) -> set[Sink]:
        return set(self._scopes.get(scope, ()))

    def connection_count(self) -> int:
        return len({sink for sinks in self._scopes.values() for sink in sinks})

    async def broadcast(self, scope: str, event_type: str, payload: Any) -> int:
        """
        Send an event to every sink in a scope.

        Args:
            scope: Scope key (``global`` or ``user:<id>``)
            event_type: Event type name
            payload: JSON-serializable event data

        Returns:
            Number of sinks the event was delivered to
        """
        if isinstance(event_type, EventType):
            event_type = event_type.value
        message = {"type": event_type, "data": payload}

        delivered = 0
        for sink in list(self._scopes.get(scope, ())):
            try:
                await sink.send_json(message)
                delivered += 1
            except Exception as e:
                logger.warning(f"Dropping sink from scope {scope} after failed send: {e}")
                self.unregister(sink)

        logger.debug(f"Broadcast {event_type} to {scope}: {delivered} delivered")
        return delivered


def reconnect_delays(max_attempts: int, base_seconds: float, max_seconds: float) -> list[float]:
    """
    Backoff schedule a client follows after losing its connection.

    Delay n is ``base * 2**n`` capped at ``max_seconds``. After the last
    attempt the client stops trying and waits for a manual refresh.
    """
    return [min(base_seconds * (2 ** attempt), max_seconds) for attempt in range(max_attempts)]


# Process-wide registry used by the API
registry = ConnectionRegistry()


def publish(
    event_type: EventType,
    payload: Any,
    scope: str = GLOBAL_SCOPE,
    target: Optional[ConnectionRegistry] = None,
) -> int:
    """
    Broadcast from synchronous code.

    Request handlers run in a worker thread; the broadcast is executed on the
    event loop and awaited before returning, so the event leaves after the
    mutation has been committed. Outside a worker thread (scripts, unit tests)
    there is no loop to deliver on and the event is dropped.

    Returns:
        Number of sinks the event was delivered to
    """
    target = target or registry
    try:
        return anyio.from_thread.run(target.broadcast, scope, event_type, payload)
    except RuntimeError:
        logger.debug(f"No event loop available, dropping {event_type} event for {scope}")
        return 0
