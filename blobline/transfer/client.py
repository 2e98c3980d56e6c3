"""
Client Session

Drives one outbound connection. The operator side writes commands
(``submit``, ``upload``, ``retrieve``) and never waits for the reply;
a background reader task turns every server line into events.

The two directions of the socket are independent, so the writer and
the reader task share it without a lock.
"""

import asyncio
import logging
from typing import Optional

from .locator import DEFAULT_HOST, DEFAULT_LINE_LIMIT, PortRange, locate_connect
from .protocol import (
    LF, content_from_reply, decode_line, encode_line,
    format_retrieve, format_upload, is_not_found,
)
from ..events import Event, EventKind, EventSink, null_sink

logger = logging.getLogger(__name__)


class ClientSession:
    """
    An open connection to the server.

    Either fully open (reader and writer usable) or fully closed.
    """

    def __init__(self, reader: asyncio.StreamReader,
                 writer: asyncio.StreamWriter, port: int,
                 post: EventSink = null_sink):
        self.reader = reader
        self.writer = writer
        self.port = port
        self.post = post
        self._closed = False
        self._lost_reported = False

    @property
    def is_open(self) -> bool:
        return not self._closed

    async def send_line(self, line: str):
        """Write one line and flush it."""
        if self._closed:
            raise ConnectionError("Connection closed")
        self.writer.write(encode_line(line))
        await self.writer.drain()

    def start_reader(self) -> asyncio.Task:
        """Spawn the reader task and hand it back to the caller."""
        return asyncio.create_task(self.read_loop(), name=f"blobline-reader-{self.port}")

    async def read_loop(self):
        """Read server lines until EOF or error, posting an event for each."""
        try:
            while True:
                raw = await self.reader.readline()
                if not raw:
                    logger.debug("Server closed the connection")
                    break
                self._handle_line(decode_line(raw))
        except (ConnectionError, OSError, asyncio.IncompleteReadError, ValueError) as e:
            logger.warning(f"Lost connection to server: {e}")

        self.report_lost()
        await self.close()

    def _handle_line(self, line: str):
        self.post(Event(EventKind.SERVER_LINE, f"SERVER>>> {line}", {'line': line}))

        content = content_from_reply(line)
        if content is not None:
            self.post(Event(EventKind.SHOW_CONTENT, content, {'content': content}))
        elif is_not_found(line):
            self.post(Event(EventKind.CLEAR_CONTENT, "", {}))

    def report_lost(self):
        if not self._lost_reported:
            self._lost_reported = True
            self.post(Event(EventKind.CONNECTION_LOST, "Lost connection to server."))

    async def close(self):
        """Close the connection."""
        if self._closed:
            return
        self._closed = True
        self.writer.close()
        try:
            await self.writer.wait_closed()
        except (ConnectionError, OSError) as e:
            logger.debug(f"Error closing connection: {e}")


class FileClient:
    """
    Operator-facing client.

    Holds at most one ClientSession. Commands issued while no session
    is open are reported as NOT_CONNECTED and otherwise ignored.
    """

    def __init__(self, post: EventSink = null_sink, host: str = DEFAULT_HOST,
                 timeout: float = 5.0, limit: int = DEFAULT_LINE_LIMIT):
        self.post = post
        self.host = host
        self.timeout = timeout
        self.limit = limit
        self.session: Optional[ClientSession] = None
        self.reader_task: Optional[asyncio.Task] = None

    @property
    def is_connected(self) -> bool:
        return self.session is not None and self.session.is_open

    async def connect(self, port_range: PortRange) -> ClientSession:
        """
        Connect to the first server answering in the range and start
        the reader task (available as ``reader_task``).

        Raises:
            NoServerReachable: no port in the range accepted
        """
        logger.info(f"Trying to connect to {self.host} on ports {port_range}...")
        reader, writer, port = await locate_connect(
            self.host, port_range, post=self.post,
            timeout=self.timeout, limit=self.limit
        )
        self.session = ClientSession(reader, writer, port, self.post)
        self.reader_task = self.session.start_reader()
        return self.session

    async def submit(self, command_line: str):
        """
        Send one command line. Does not wait for the reply.

        Raises:
            ValueError: the line contains a raw LF
        """
        if LF in command_line:
            raise ValueError("Command lines cannot contain a newline")

        if not self.is_connected:
            self.post(Event(EventKind.NOT_CONNECTED, "Not connected to a server."))
            return

        try:
            await self.session.send_line(command_line)
        except (ConnectionError, OSError) as e:
            logger.warning(f"Send failed: {e}")
            self.session.report_lost()
            await self.session.close()
            return

        self.post(Event(EventKind.COMMAND_SENT, f"CLIENT>>> {command_line}",
                        {'line': command_line}))

    async def upload(self, name: str, body: str = ''):
        await self.submit(format_upload(name, body))

    async def retrieve(self, name: str):
        await self.submit(format_retrieve(name))

    async def close(self):
        """Stop the reader task and close the session."""
        if self.reader_task is not None and not self.reader_task.done():
            self.reader_task.cancel()
            try:
                await self.reader_task
            except asyncio.CancelledError:
                pass
        if self.session is not None:
            await self.session.close()
