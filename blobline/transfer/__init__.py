"""
Transfer Module - Line Protocol, Port Scan, Sessions

Handles the TCP side of blob upload/retrieve between one client and
one server.
"""

from .protocol import Upload, Retrieve, Reply, ReplyKind, parse_command
from .locator import PortRange, ListenEndpoint, locate_listen, locate_connect
from .server import ServerSession, SessionState, SessionStats, serve_once, run_server
from .client import ClientSession, FileClient

__all__ = [
    'Upload',
    'Retrieve',
    'Reply',
    'ReplyKind',
    'parse_command',
    'PortRange',
    'ListenEndpoint',
    'locate_listen',
    'locate_connect',
    'ServerSession',
    'SessionState',
    'SessionStats',
    'serve_once',
    'run_server',
    'ClientSession',
    'FileClient',
]
