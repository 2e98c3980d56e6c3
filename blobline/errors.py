"""
Error types shared by the server and client sides.
"""


class BloblineError(Exception):
    """Base class for all blobline errors."""


class EndpointError(BloblineError):
    """No port in the configured range could be used."""

    def __init__(self, message: str, low: int, high: int):
        super().__init__(message)
        self.low = low
        self.high = high


class AllPortsBusy(EndpointError):
    """Every port in the range refused a bind."""


class NoServerReachable(EndpointError):
    """Every port in the range refused a connection."""


class MalformedRequest(BloblineError, ValueError):
    """A request line has an unknown verb or too few tokens."""


class StoreError(BloblineError):
    """The blob store rejected an operation."""

    def __init__(self, name: str, reason: str):
        super().__init__(f"{name}: {reason}")
        self.name = name
        self.reason = reason


class StoreWriteError(StoreError):
    pass


class StoreReadError(StoreError):
    pass
