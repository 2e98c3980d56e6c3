"""
Line Protocol

Design Decision: Framing
=========================

Options Considered:
1. Length-prefixed binary frames
   - Handles any payload
   - Not readable in a terminal, needs a codec on both sides

2. One LF-terminated text line per message
   - Trivial to debug with netcat
   - Payload newlines must be escaped

Decision: One line per message
- Payload LFs travel as the two characters backslash + 'n'
- Tokens are separated by single ASCII spaces
- The final token keeps any internal spaces (split limit per verb)

Message Format:
```
Client -> Server
    UPLOAD <name>\n
    UPLOAD <name> <encoded-payload>\n
    RETRIEVE <name>\n

Server -> Client
    FILE_UPLOADED <name>\n
    FILE_CONTENT <name> <encoded-payload>\n
    FILE_NOT_FOUND <name>\n
```

The escape is not injective: a payload holding a literal backslash-n
comes back as a real LF after an upload.
"""

import logging
from enum import Enum
from typing import Optional, Union
from dataclasses import dataclass

from ..errors import MalformedRequest

logger = logging.getLogger(__name__)

LF = '\n'
ESCAPED_LF = '\\n'
SEPARATOR = ' '

# Lines are text, but any byte sequence must survive a round trip
WIRE_ENCODING = 'utf-8'
WIRE_ERRORS = 'surrogateescape'

# str.strip() would also eat non-ASCII whitespace
ASCII_WHITESPACE = ' \t\n\r\x0b\x0c'

UPLOAD = "UPLOAD"
RETRIEVE = "RETRIEVE"

UPLOAD_SPLIT_LIMIT = 3
RETRIEVE_SPLIT_LIMIT = 2


class ReplyKind(Enum):
    """Server reply verbs."""
    FILE_UPLOADED = "FILE_UPLOADED"
    FILE_CONTENT = "FILE_CONTENT"
    FILE_NOT_FOUND = "FILE_NOT_FOUND"


@dataclass(frozen=True)
class Upload:
    """Store ``payload`` (already decoded) under ``name``."""
    name: str
    payload: str = ''


@dataclass(frozen=True)
class Retrieve:
    """Fetch the blob stored under ``name``."""
    name: str


Command = Union[Upload, Retrieve]


@dataclass(frozen=True)
class Reply:
    """A server reply. ``payload`` is raw text and is encoded on output."""
    kind: ReplyKind
    name: str
    payload: Optional[str] = None

    def to_line(self) -> str:
        """Format as one LF-terminated line."""
        parts = [self.kind.value, self.name]
        if self.kind == ReplyKind.FILE_CONTENT:
            parts.append(encode_payload(self.payload or ''))
        return SEPARATOR.join(parts) + LF

    def to_bytes(self) -> bytes:
        return self.to_line().encode(WIRE_ENCODING, WIRE_ERRORS)


# === Payload escaping ===

def encode_payload(text: str) -> str:
    """Replace every LF with the two-character escape."""
    return text.replace(LF, ESCAPED_LF)


def decode_payload(text: str) -> str:
    """Replace every two-character escape with an LF."""
    return text.replace(ESCAPED_LF, LF)


def strip_escapes(text: str) -> str:
    """
    Remove the two-character escapes without restoring the LFs.

    This is what the client does with retrieved content, so multi-line
    blobs are shown joined on one line.
    """
    return text.replace(ESCAPED_LF, '')


# === Line handling ===

def decode_line(raw: bytes) -> str:
    """
    Turn a raw line from the stream into text without its terminator.

    Accepts a missing terminator (last line before EOF) and a CR
    before the LF.
    """
    line = raw.decode(WIRE_ENCODING, WIRE_ERRORS)
    if line.endswith(LF):
        line = line[:-1]
    if line.endswith('\r'):
        line = line[:-1]
    return line


def encode_line(line: str) -> bytes:
    return (line + LF).encode(WIRE_ENCODING, WIRE_ERRORS)


def to_bytes(text: str) -> bytes:
    return text.encode(WIRE_ENCODING, WIRE_ERRORS)


def from_bytes(data: bytes) -> str:
    return data.decode(WIRE_ENCODING, WIRE_ERRORS)


# === Server side ===

def parse_command(line: str) -> Command:
    """
    Parse one request line (without terminator) into a Command.

    Raises:
        MalformedRequest: unknown verb or missing name
    """
    if line.startswith(UPLOAD + SEPARATOR):
        parts = line.split(SEPARATOR, UPLOAD_SPLIT_LIMIT - 1)
        name = parts[1]
        if not name:
            raise MalformedRequest(f"UPLOAD without a name: {line!r}")
        payload = parts[2] if len(parts) == UPLOAD_SPLIT_LIMIT else ''
        return Upload(name=name, payload=decode_payload(payload))

    if line.startswith(RETRIEVE + SEPARATOR):
        parts = line.split(SEPARATOR, RETRIEVE_SPLIT_LIMIT - 1)
        name = parts[1]
        if not name:
            raise MalformedRequest(f"RETRIEVE without a name: {line!r}")
        return Retrieve(name=name)

    raise MalformedRequest(f"Unknown command: {line!r}")


# === Client side ===

def trim(text: str) -> str:
    return text.strip(ASCII_WHITESPACE)


def format_upload(name: str, body: str = '') -> str:
    """
    Build an UPLOAD line (without terminator).

    The body goes out verbatim apart from raw LFs, which are escaped so
    the request stays on one line.
    """
    name = trim(name)
    body = trim(body)
    if not body:
        return f"{UPLOAD} {name}"
    return f"{UPLOAD} {name} {encode_payload(body)}"


def format_retrieve(name: str) -> str:
    return f"{RETRIEVE} {trim(name)}"


def content_from_reply(line: str) -> Optional[str]:
    """
    Extract display content from a FILE_CONTENT line.

    Returns None for any other line, and an empty string when the
    payload token is missing.
    """
    if not line.startswith(ReplyKind.FILE_CONTENT.value + SEPARATOR):
        return None
    parts = line.split(SEPARATOR, 2)
    if len(parts) < 3:
        return ''
    return strip_escapes(parts[2])


def is_not_found(line: str) -> bool:
    return line.startswith(ReplyKind.FILE_NOT_FOUND.value)
