"""
Server Session

Serves exactly one client end-to-end:

    LISTENING -> ACCEPTED -> STREAMING -> CLOSING -> CLOSED

CLOSING is entered on peer EOF, on any I/O error, on an oversized line
or on cancellation, and releases the stream and the listener whichever
way it was reached. Errors never leave the session: serve_once returns
normally after a peer failure.
"""

import asyncio
import logging
from enum import Enum
from typing import Optional
from dataclasses import dataclass

from .locator import ListenEndpoint, PortRange, locate_listen
from .protocol import (
    Command, Reply, ReplyKind, Retrieve, Upload,
    decode_line, from_bytes, parse_command, to_bytes,
)
from ..errors import MalformedRequest, StoreReadError, StoreWriteError
from ..events import Event, EventKind, EventSink, null_sink
from ..storage import BlobStore

logger = logging.getLogger(__name__)

# Exceptions that mean the stream is unusable
STREAM_ERRORS = (ConnectionError, OSError, asyncio.IncompleteReadError,
                 asyncio.LimitOverrunError)


class SessionState(Enum):
    LISTENING = "listening"
    ACCEPTED = "accepted"
    STREAMING = "streaming"
    CLOSING = "closing"
    CLOSED = "closed"


@dataclass
class SessionStats:
    """Counters for one served session."""
    port: int
    peer: Optional[str] = None
    requests: int = 0
    dropped: int = 0
    uploads: int = 0
    retrieves: int = 0
    bytes_received: int = 0
    bytes_sent: int = 0


class ServerSession:
    """
    One accept-serve-close cycle on a listening endpoint.

    The blob store is touched from this session's coroutine only.
    """

    def __init__(self, endpoint: ListenEndpoint, store: BlobStore,
                 post: EventSink = null_sink):
        self.endpoint = endpoint
        self.store = store
        self.post = post
        self.state = SessionState.LISTENING
        self.stats = SessionStats(port=endpoint.port)
        self._reader: Optional[asyncio.StreamReader] = None
        self._writer: Optional[asyncio.StreamWriter] = None

    def _emit(self, kind: EventKind, message: str, /, **data):
        self.post(Event(kind, message, data))

    def _transition(self, state: SessionState):
        logger.debug(f"Session on port {self.endpoint.port}: "
                     f"{self.state.value} -> {state.value}")
        self.state = state

    async def serve_once(self) -> SessionStats:
        """
        Wait for one peer, serve it until it disconnects, then clean up.

        Returns:
            Statistics for the served session
        """
        if self.state != SessionState.LISTENING:
            raise RuntimeError("A server session can only be served once")

        try:
            self._emit(EventKind.LISTENING_ON,
                       f"Server started. Waiting for a client on port {self.endpoint.port}...",
                       port=self.endpoint.port)
            self._reader, self._writer = await self.endpoint.accept()
            self._transition(SessionState.ACCEPTED)

            peer = self._writer.get_extra_info('peername')
            self.stats.peer = f"{peer[0]}:{peer[1]}" if peer else None
            self._emit(EventKind.CLIENT_CONNECTED,
                       f"Client connected from {self.stats.peer}",
                       peer=self.stats.peer)

            self._transition(SessionState.STREAMING)
            self._emit(EventKind.STREAMS_READY, "I/O streams are ready.")

            await self._process_connection()

        except STREAM_ERRORS as e:
            logger.warning(f"Session on port {self.endpoint.port} failed: {e}")
        finally:
            await self._close()

        return self.stats

    async def _process_connection(self):
        """Request loop: one reply is fully written before the next read."""
        while True:
            try:
                raw = await self._reader.readline()
            except ValueError as e:
                # StreamReader.readline() reports an overlong line as ValueError
                logger.warning(f"Session on port {self.endpoint.port} aborted: {e}")
                return
            if not raw:
                logger.debug("Peer reached EOF")
                return

            line = decode_line(raw)
            self.stats.requests += 1
            self.stats.bytes_received += len(raw)
            self._emit(EventKind.REQUEST_RECEIVED, f"Client says: {line}", line=line)

            try:
                command = parse_command(line)
            except MalformedRequest as e:
                self.stats.dropped += 1
                logger.debug(f"Dropping request: {e}")
                self._emit(EventKind.REQUEST_DROPPED, f"Ignored: {line}", line=line)
                continue

            reply = await self._dispatch(command)
            if reply is not None:
                await self._send(reply)

    async def _dispatch(self, command: Command) -> Optional[Reply]:
        if isinstance(command, Upload):
            return await self._handle_upload(command)
        if isinstance(command, Retrieve):
            return await self._handle_retrieve(command)
        raise TypeError(f"Unsupported command: {command!r}")

    async def _handle_upload(self, command: Upload) -> Optional[Reply]:
        """Store the payload. A failed write gets no reply at all."""
        data = to_bytes(command.payload)
        try:
            await self.store.write(command.name, data)
        except StoreWriteError as e:
            logger.error(f"Upload of {command.name} failed: {e.reason}")
            self._emit(EventKind.STORE_ERROR, f"Error writing file: {e.reason}",
                       name=command.name, error=e.reason)
            return None

        self.stats.uploads += 1
        self._emit(EventKind.BLOB_STORED, f"Uploaded: {command.name}",
                   name=command.name, size=len(data))
        return Reply(ReplyKind.FILE_UPLOADED, command.name)

    async def _handle_retrieve(self, command: Retrieve) -> Reply:
        """Read the blob. A failed read is reported as the content itself."""
        self.stats.retrieves += 1
        try:
            data = await self.store.read(command.name)
        except StoreReadError as e:
            logger.error(f"Retrieve of {command.name} failed: {e.reason}")
            self._emit(EventKind.STORE_ERROR, f"Error reading file: {e.reason}",
                       name=command.name, error=e.reason)
            return Reply(ReplyKind.FILE_CONTENT, command.name,
                         f"Error reading file: {e.reason}")

        if data is None:
            return Reply(ReplyKind.FILE_NOT_FOUND, command.name)
        return Reply(ReplyKind.FILE_CONTENT, command.name, from_bytes(data))

    async def _send(self, reply: Reply):
        data = reply.to_bytes()
        self._writer.write(data)
        await self._writer.drain()
        self.stats.bytes_sent += len(data)
        self._emit(EventKind.REPLY_SENT, f"Sent: {reply.kind.value} {reply.name}",
                   kind=reply.kind.value, name=reply.name)

    async def _close(self):
        """Release the stream and the listener. Safe to reach from any state."""
        self._transition(SessionState.CLOSING)
        self._emit(EventKind.SESSION_CLOSING, "Terminating connection...")

        if self._writer is not None:
            self._writer.close()
            try:
                await self._writer.wait_closed()
            except STREAM_ERRORS as e:
                logger.debug(f"Error closing connection: {e}")

        await self.endpoint.close()

        self._transition(SessionState.CLOSED)
        logger.info(f"Session closed. Handled {self.stats.requests} requests "
                    f"({self.stats.uploads} uploads, {self.stats.retrieves} retrieves), "
                    f"{self.stats.bytes_sent:,} bytes sent")
        self._emit(EventKind.SESSION_CLOSED, "Connection closed.",
                   requests=self.stats.requests)


async def serve_once(endpoint: ListenEndpoint, store: BlobStore,
                     post: EventSink = null_sink) -> SessionStats:
    """Serve a single client on an already bound endpoint."""
    return await ServerSession(endpoint, store, post).serve_once()


async def run_server(store: BlobStore,
                     port_range: PortRange,
                     host: str,
                     post: EventSink = null_sink,
                     limit: Optional[int] = None) -> SessionStats:
    """
    Prepare the store, bind the first free port and serve one client.

    Raises:
        AllPortsBusy: no port in the range could be bound
    """
    if store.ensure_root():
        post(Event(EventKind.STORE_CREATED,
                   f"Created {store.root} directory.",
                   {'path': str(store.root)}))

    kwargs = {'limit': limit} if limit else {}
    endpoint = await locate_listen(port_range, host=host, post=post, **kwargs)
    return await serve_once(endpoint, store, post)
