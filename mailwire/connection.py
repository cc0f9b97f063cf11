"""Connection state layered on top of a stream.

A Connection owns exactly one stream and keeps the transport options used to
open it: encryption, certificate validation, proxy and timeouts. It also
knows how to frame commands for UID or sequence-number addressing.
"""

from __future__ import annotations

import base64
import re
import ssl
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field, fields, replace
from enum import Enum
from typing import Any

from .exceptions import ConnectionFailedError
from .streams.base import Stream, StreamMetadata

# Strongest first; the generic TLS client method is the fallback.
CRYPTO_METHOD_PREFERENCE = ("TLSv1_2", "TLSv1_1")
GENERIC_CRYPTO_METHOD = "TLS"

DEFAULT_CONNECTION_TIMEOUT = 30

_NUMERIC_PATTERN = re.compile(r"^\s*[+-]?(\d+(\.\d*)?|\.\d+)([eE][+-]?\d+)?\s*$")


class IdentifierMode(str, Enum):
    """Sentinels requesting UID addressing for a command."""
    SEARCH_UID = "ST_UID"
    FETCH_UID = "FT_UID"


def ssl_supports(method: str) -> bool:
    """Report whether the ssl module was built with the given protocol version."""
    return bool(getattr(ssl, f"HAS_{method}", False))


def is_numeric(value: Any) -> bool:
    """Check whether a value is a number or a numeric string."""
    if isinstance(value, bool):
        return False
    if isinstance(value, (int, float)):
        return True
    return bool(_NUMERIC_PATTERN.match(str(value)))


@dataclass(frozen=True)
class ProxyConfig:
    """Proxy tunnel settings."""
    socket: str | None = None
    request_fulluri: bool = False
    username: str | None = None
    password: str | None = field(default=None, repr=False)

    def merged(self, options: Mapping[str, Any]) -> ProxyConfig:
        """Return a copy with the supplied, non-None options applied.

        Keys that are not proxy settings are ignored.
        """
        changes = {
            f.name: options[f.name]
            for f in fields(self)
            if options.get(f.name) is not None
        }
        return replace(self, **changes)


class Connection:
    """Transport options and command framing for a single stream."""

    def __init__(
        self,
        stream: Stream,
        supports: Callable[[str], bool] = ssl_supports,
    ):
        self.stream = stream
        self._supports = supports
        self._encryption: str | None = None
        self._cert_validation = True
        self._connection_timeout = DEFAULT_CONNECTION_TIMEOUT
        self._proxy = ProxyConfig()

    def get_crypto_method(self) -> str:
        """Pick the best TLS client method the runtime supports."""
        for method in CRYPTO_METHOD_PREFERENCE:
            if self._supports(method):
                return method
        return GENERIC_CRYPTO_METHOD

    @property
    def encryption(self) -> str | None:
        return self._encryption

    def set_encryption(self, encryption: str | None) -> Connection:
        self._encryption = encryption or None
        return self

    @property
    def cert_validation(self) -> bool:
        return self._cert_validation

    def enable_cert_validation(self) -> Connection:
        self._cert_validation = True
        return self

    def disable_cert_validation(self) -> Connection:
        self._cert_validation = False
        return self

    def set_cert_validation(self, enabled: bool) -> Connection:
        self._cert_validation = bool(enabled)
        return self

    @property
    def proxy(self) -> ProxyConfig:
        return self._proxy

    def set_proxy(self, options: Mapping[str, Any]) -> Connection:
        """Update proxy settings, leaving settings not supplied unchanged."""
        self._proxy = self._proxy.merged(options)
        return self

    def default_socket_options(self, transport: str) -> dict[str, dict[str, Any]]:
        """Build the socket options used when opening the stream.

        Args:
            transport: Transport name the proxy options are stored under

        Returns:
            Nested options mapping; an ``ssl`` entry is present only when an
            encryption method is set
        """
        options: dict[str, dict[str, Any]] = {}

        if self._encryption:
            options["ssl"] = {
                "verify_peer_name": self._cert_validation,
                "verify_peer": self._cert_validation,
            }

        if self._proxy.socket:
            proxy_options: dict[str, Any] = {
                "proxy": self._proxy.socket,
                "request_fulluri": self._proxy.request_fulluri,
            }
            if self._proxy.username:
                credentials = f"{self._proxy.username}:{self._proxy.password or ''}"
                auth = base64.b64encode(credentials.encode("utf-8")).decode("ascii")
                proxy_options["header"] = [f"Proxy-Authorization: Basic {auth}"]
            options.setdefault(transport, {}).update(proxy_options)

        return options

    @property
    def connection_timeout(self) -> int:
        return self._connection_timeout

    def set_connection_timeout(self, seconds: int) -> Connection:
        self._connection_timeout = seconds
        return self

    def set_stream_timeout(self, seconds: float) -> Connection:
        """Apply a read/write timeout to the open stream.

        Raises:
            ConnectionFailedError: If the stream rejects the timeout
        """
        if not self.stream.set_timeout(seconds):
            raise ConnectionFailedError("Failed to set stream timeout")
        return self

    def get_uid_key(self, identifier: int | str) -> str:
        """Resolve the keyword prefixing a command for the given identifier.

        Returns:
            'UID' for the UID sentinels, the identifier itself when it is a
            non-numeric keyword, or '' for plain sequence numbers
        """
        if identifier in (IdentifierMode.SEARCH_UID, IdentifierMode.FETCH_UID):
            return "UID"

        text = str(identifier)
        if text and not is_numeric(identifier):
            return text

        return ""

    def build_uid_command(self, command: str, identifier: int | str) -> str:
        """Prefix a command with UID when the identifier calls for it."""
        return f"{self.get_uid_key(identifier)} {command}".strip()

    def connected(self) -> bool:
        return self.stream.is_open()

    def meta(self) -> StreamMetadata:
        """Current stream metadata, or the disconnected snapshot."""
        if self.stream.is_open():
            return self.stream.metadata()
        return StreamMetadata.disconnected()

    def close(self) -> None:
        """Close the stream, discarding anything still buffered."""
        self.stream.close()
