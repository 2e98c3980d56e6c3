"""
Endpoint Locator

Both roles scan the same small, fixed port range in ascending order.
The server binds the first port that is free; the client connects to
the first port that answers. Each failed port is reported and never
retried, and only exhausting the whole range is fatal.
"""

import asyncio
import logging
from typing import Iterator, Optional, Tuple
from dataclasses import dataclass

from ..errors import AllPortsBusy, NoServerReachable
from ..events import Event, EventKind, EventSink, null_sink

logger = logging.getLogger(__name__)

DEFAULT_HOST = 'localhost'
PORT_LOW = 23525
PORT_HIGH = 23529
LISTEN_BACKLOG = 1

# StreamReader line limit; a line longer than this ends the session
DEFAULT_LINE_LIMIT = 16 * 1024 * 1024


@dataclass(frozen=True)
class PortRange:
    """Inclusive range of TCP ports."""
    low: int = PORT_LOW
    high: int = PORT_HIGH

    def __post_init__(self):
        if not (0 < self.low <= 65535 and 0 < self.high <= 65535):
            raise ValueError(f"Ports must be in 1..65535: {self.low}-{self.high}")
        if self.low > self.high:
            raise ValueError(f"Empty port range: {self.low}-{self.high}")

    def __iter__(self) -> Iterator[int]:
        return iter(range(self.low, self.high + 1))

    def __len__(self) -> int:
        return self.high - self.low + 1

    def __str__(self) -> str:
        return f"{self.low}-{self.high}"


StreamPair = Tuple[asyncio.StreamReader, asyncio.StreamWriter]


class ListenEndpoint:
    """
    A listening socket that hands out exactly one peer.

    The listener stops accepting as soon as the first peer arrives.
    Peers that race in before that are closed immediately.
    """

    def __init__(self, host: str, port: int):
        self.host = host
        self.port = port
        self.server: Optional[asyncio.AbstractServer] = None
        self._accepted: asyncio.Future = asyncio.get_running_loop().create_future()

    @classmethod
    async def bind(cls, host: str, port: int,
                   limit: int = DEFAULT_LINE_LIMIT) -> 'ListenEndpoint':
        """Bind and listen on host:port. Raises OSError if the port is taken."""
        endpoint = cls(host, port)
        endpoint.server = await asyncio.start_server(
            endpoint._on_connect,
            host,
            port,
            backlog=LISTEN_BACKLOG,
            limit=limit,
        )
        return endpoint

    @property
    def is_listening(self) -> bool:
        return self.server is not None and self.server.is_serving()

    async def _on_connect(self, reader: asyncio.StreamReader,
                          writer: asyncio.StreamWriter):
        if self._accepted.done():
            logger.warning(f"Refusing extra peer {writer.get_extra_info('peername')}")
            writer.close()
            return

        self._accepted.set_result((reader, writer))
        # One peer per endpoint
        self.server.close()

    async def accept(self) -> StreamPair:
        """Wait for the first peer."""
        return await asyncio.shield(self._accepted)

    async def close(self):
        """Stop listening and release the socket."""
        if not self._accepted.done():
            self._accepted.cancel()
        if self.server:
            self.server.close()
            await self.server.wait_closed()
            logger.debug(f"Listener on port {self.port} closed")


async def locate_listen(port_range: PortRange,
                        host: str = DEFAULT_HOST,
                        post: EventSink = null_sink,
                        limit: int = DEFAULT_LINE_LIMIT) -> ListenEndpoint:
    """
    Bind the first free port in the range.

    Raises:
        AllPortsBusy: no port in the range could be bound
    """
    for port in port_range:
        try:
            endpoint = await ListenEndpoint.bind(host, port, limit=limit)
        except OSError as e:
            logger.debug(f"Bind {host}:{port} failed: {e}")
            post(Event(EventKind.PORT_UNAVAILABLE,
                       f"Port {port} is in use. Trying next...",
                       {'port': port, 'error': str(e)}))
            continue

        logger.info(f"Listening on {host}:{port}")
        post(Event(EventKind.ENDPOINT_READY,
                   f"Server started on port {port}",
                   {'port': port, 'role': 'listen'}))
        return endpoint

    message = f"No available ports between {port_range.low} and {port_range.high}."
    post(Event(EventKind.ENDPOINTS_EXHAUSTED, message,
               {'low': port_range.low, 'high': port_range.high}))
    raise AllPortsBusy(message, port_range.low, port_range.high)


async def locate_connect(host: str,
                         port_range: PortRange,
                         post: EventSink = null_sink,
                         timeout: float = 5.0,
                         limit: int = DEFAULT_LINE_LIMIT) -> Tuple[asyncio.StreamReader,
                                                                   asyncio.StreamWriter,
                                                                   int]:
    """
    Connect to the first port in the range that accepts.

    Returns:
        (reader, writer, port)

    Raises:
        NoServerReachable: every port refused or timed out
    """
    for port in port_range:
        try:
            reader, writer = await asyncio.wait_for(
                asyncio.open_connection(host, port, limit=limit),
                timeout=timeout
            )
        except (OSError, asyncio.TimeoutError) as e:
            reason = str(e) or type(e).__name__
            logger.debug(f"Connect {host}:{port} failed: {reason}")
            post(Event(EventKind.PORT_UNAVAILABLE,
                       f"Could not connect on port {port}: {reason}",
                       {'port': port, 'error': reason}))
            continue

        logger.info(f"Connected to {host}:{port}")
        post(Event(EventKind.ENDPOINT_READY,
                   f"Connected to server at {host}:{port}",
                   {'port': port, 'role': 'connect'}))
        return reader, writer, port

    message = (f"Unable to connect to any server between ports "
               f"{port_range.low} and {port_range.high}.")
    post(Event(EventKind.ENDPOINTS_EXHAUSTED, message,
               {'low': port_range.low, 'high': port_range.high}))
    raise NoServerReachable(message, port_range.low, port_range.high)
