"""Stream implementations a connection can talk through.

- NetworkStream: live socket, optionally TLS-wrapped or proxied
- FakeStream: scripted in-memory stream for tests

Use make_stream() to pick one by name.
"""

from .base import CryptoInfo, Stream, StreamMetadata
from .fake import FakeStream
from .network import NetworkStream

__all__ = [
    "CryptoInfo",
    "FakeStream",
    "NetworkStream",
    "Stream",
    "StreamMetadata",
    "make_stream",
]


def make_stream(kind: str = "network") -> Stream:
    """Create a stream of the given kind.

    Args:
        kind: 'network' for a live socket or 'fake' for a scripted stream

    Returns:
        An unopened Stream instance

    Raises:
        ValueError: If the kind is unknown
    """
    if kind == "network":
        return NetworkStream()
    if kind == "fake":
        return FakeStream()
    raise ValueError(f"Unknown stream kind: {kind}")
