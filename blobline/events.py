"""
Presentation Events

The server and client never touch a display directly. Every phase
boundary or diagnostic is reported as an Event passed to a sink
callable (``post``). A sink can print to a console, forward to a log,
or collect events for inspection in tests.

Sinks are always called from the event loop thread.
"""

import logging
from enum import Enum
from typing import Any, Callable, Dict, List, Optional
from dataclasses import dataclass, field

logger = logging.getLogger(__name__)


class EventKind(Enum):
    """Kinds of events posted to the presentation layer."""
    # Endpoint locator
    PORT_UNAVAILABLE = "port_unavailable"
    ENDPOINT_READY = "endpoint_ready"
    ENDPOINTS_EXHAUSTED = "endpoints_exhausted"

    # Server session
    STORE_CREATED = "store_created"
    LISTENING_ON = "listening_on"
    CLIENT_CONNECTED = "client_connected"
    STREAMS_READY = "streams_ready"
    REQUEST_RECEIVED = "request_received"
    REQUEST_DROPPED = "request_dropped"
    BLOB_STORED = "blob_stored"
    STORE_ERROR = "store_error"
    REPLY_SENT = "reply_sent"
    SESSION_CLOSING = "session_closing"
    SESSION_CLOSED = "session_closed"

    # Client session
    COMMAND_SENT = "command_sent"
    NOT_CONNECTED = "not_connected"
    SERVER_LINE = "log_server_line"
    SHOW_CONTENT = "show_content"
    CLEAR_CONTENT = "clear_content"
    CONNECTION_LOST = "connection_lost"


@dataclass(frozen=True)
class Event:
    """A single presentation event."""
    kind: EventKind
    message: str = ''
    data: Dict[str, Any] = field(default_factory=dict)

    def __str__(self) -> str:
        return self.message or self.kind.value


EventSink = Callable[[Event], None]


def null_sink(event: Event):
    """Discard the event."""


def log_sink(target: Optional[logging.Logger] = None) -> EventSink:
    """Build a sink that writes every event to a logger."""
    target = target or logger

    def post(event: Event):
        if event.kind in (EventKind.PORT_UNAVAILABLE, EventKind.STORE_ERROR,
                          EventKind.ENDPOINTS_EXHAUSTED, EventKind.CONNECTION_LOST):
            target.warning(str(event))
        else:
            target.info(str(event))

    return post


class EventCollector:
    """
    Sink that records every event in order.

    Useful for tests and for shells that render events in batches.
    """

    def __init__(self):
        self.events: List[Event] = []

    def __call__(self, event: Event):
        self.events.append(event)

    def kinds(self) -> List[EventKind]:
        return [e.kind for e in self.events]

    def of_kind(self, kind: EventKind) -> List[Event]:
        return [e for e in self.events if e.kind == kind]

    def clear(self):
        self.events.clear()
