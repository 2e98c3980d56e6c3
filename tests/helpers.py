from __future__ import annotations

import asyncio
import socket

import pytest

from blobline.events import EventCollector, EventKind
from blobline.transfer.locator import PortRange

HOST = '127.0.0.1'


def _can_bind(port: int) -> bool:
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
        try:
            s.bind((HOST, port))
        except OSError:
            return False
    return True


def find_free_block(size: int = 1) -> PortRange:
    """Find `size` consecutive ports that are currently bindable on loopback."""
    for _ in range(100):
        with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
            s.bind((HOST, 0))
            start = s.getsockname()[1]
        end = start + size - 1
        if end > 65535:
            continue
        if all(_can_bind(p) for p in range(start, end + 1)):
            return PortRange(start, end)
    pytest.skip(f"no block of {size} free ports")


def occupy(port: int) -> socket.socket:
    """Hold a port without listening: binds fail, connects are refused."""
    s = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    s.bind((HOST, port))
    return s


async def wait_for_events(events: EventCollector, kind: EventKind,
                          count: int = 1, timeout: float = 5.0):
    async def poll():
        while len(events.of_kind(kind)) < count:
            await asyncio.sleep(0.01)
    await asyncio.wait_for(poll(), timeout)
    return events.of_kind(kind)
