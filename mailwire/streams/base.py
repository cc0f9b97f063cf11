"""Base protocol and metadata record for connection streams."""

from __future__ import annotations

import dataclasses
from dataclasses import dataclass, field
from typing import Any, Protocol, runtime_checkable

from mailwire.exceptions import StreamMetadataError


@dataclass(frozen=True)
class CryptoInfo:
    """Negotiated encryption details of a stream."""
    protocol: str = ""
    cipher_name: str = ""
    cipher_bits: int = 0
    cipher_version: str = ""


@dataclass(frozen=True)
class StreamMetadata:
    """Snapshot of a stream's transport state.

    The set of keys is closed. Nested crypto fields are addressed with dotted
    keys such as ``crypto.cipher_bits``.
    """
    crypto: CryptoInfo = field(default_factory=CryptoInfo)
    mode: str = "c"
    eof: bool = False
    blocked: bool = False
    timed_out: bool = False
    seekable: bool = False
    unread_bytes: int = 0
    stream_type: str = "tcp_socket/unknown"

    KEYS = (
        "crypto.protocol",
        "crypto.cipher_name",
        "crypto.cipher_bits",
        "crypto.cipher_version",
        "mode",
        "eof",
        "blocked",
        "timed_out",
        "seekable",
        "unread_bytes",
        "stream_type",
    )

    @classmethod
    def disconnected(cls) -> StreamMetadata:
        """Metadata reported for a stream that is not open."""
        return cls(timed_out=True, blocked=True, eof=True)

    def get(self, key: str) -> Any:
        """Return the value stored under a metadata key."""
        if key not in self.KEYS:
            raise StreamMetadataError(f"Unknown metadata attribute: {key}")
        if key.startswith("crypto."):
            return getattr(self.crypto, key.split(".", 1)[1])
        return getattr(self, key)

    def __getitem__(self, key: str) -> Any:
        return self.get(key)

    def replace(self, key: str, value: Any) -> StreamMetadata:
        """Return a copy with one key changed.

        Raises:
            StreamMetadataError: If the key is unknown or the value's type differs
                from the current value's type
        """
        current = self.get(key)
        if type(value) is not type(current):
            raise StreamMetadataError(
                f"Metadata attribute {key} must be of type {type(current).__name__}"
            )
        if key.startswith("crypto."):
            crypto = dataclasses.replace(self.crypto, **{key.split(".", 1)[1]: value})
            return dataclasses.replace(self, crypto=crypto)
        return dataclasses.replace(self, **{key: value})

    def as_dict(self) -> dict[str, Any]:
        """Flatten into a dict keyed by the dotted metadata keys."""
        return {key: self.get(key) for key in self.KEYS}


@runtime_checkable
class Stream(Protocol):
    """Protocol for the byte channel a connection talks through.

    Ordinary I/O conditions are reported with sentinels rather than
    exceptions: ``None`` when the stream is closed or exhausted, ``b""`` when
    no data is available yet.
    """

    def open(
        self,
        transport: str,
        host: str,
        port: int,
        timeout: float,
        options: dict[str, dict[str, Any]] | None = None,
    ) -> bool:
        """Open the channel. Returns False instead of raising on failure."""
        ...

    def close(self) -> None:
        """Close the channel and discard unread data."""
        ...

    def read(self, length: int) -> bytes | None:
        """Read up to ``length`` bytes."""
        ...

    def read_line(self) -> bytes | None:
        """Read the next newline-terminated chunk."""
        ...

    def write(self, data: bytes) -> int | None:
        """Write data, returning the number of bytes written."""
        ...

    def metadata(self) -> StreamMetadata:
        """Return the current metadata snapshot."""
        ...

    def is_open(self) -> bool:
        ...

    def set_timeout(self, seconds: float) -> bool:
        ...

    def set_crypto_enabled(self, enabled: bool, method: str | None) -> bool:
        """Toggle transport-level encryption using the given method."""
        ...
