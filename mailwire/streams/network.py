"""Live stream over a TCP socket, with optional TLS and HTTP CONNECT proxying."""

from __future__ import annotations

import contextlib
import logging
import socket
import ssl
from typing import Any
from urllib.parse import urlsplit

from .base import CryptoInfo, StreamMetadata

logger = logging.getLogger("mailwire.streams.network")

IMPLICIT_TLS_TRANSPORTS = ("ssl", "tls")
READ_CHUNK_SIZE = 4096


def build_ssl_context(options: dict[str, Any], method: str | None = None) -> ssl.SSLContext:
    """Create a client SSL context from the ``ssl`` socket options.

    Args:
        options: Mapping with ``verify_peer`` and ``verify_peer_name`` flags
        method: Preferred crypto method name (``TLSv1_2``, ``TLSv1_1`` or ``TLS``)

    Returns:
        Configured SSLContext
    """
    context = ssl.create_default_context()

    if not options.get("verify_peer_name", True):
        context.check_hostname = False
    if not options.get("verify_peer", True):
        context.check_hostname = False
        context.verify_mode = ssl.CERT_NONE

    version = getattr(ssl.TLSVersion, method, None) if method else None
    if version is not None:
        context.minimum_version = version

    return context


def parse_proxy_address(address: str) -> tuple[str, int]:
    """Split a proxy endpoint such as ``tcp://proxy:3128`` into host and port."""
    if "://" not in address:
        address = f"tcp://{address}"
    parts = urlsplit(address)
    if not parts.hostname:
        raise ValueError(f"Invalid proxy address: {address}")
    return parts.hostname, parts.port or 8080


class NetworkStream:
    """Stream backed by a real socket."""

    def __init__(self) -> None:
        self._sock: socket.socket | None = None
        self._buffer = bytearray()
        self._host: str | None = None
        self._options: dict[str, dict[str, Any]] = {}
        self._eof = False
        self._timed_out = False
        self.last_error: str | None = None

    def open(
        self,
        transport: str,
        host: str,
        port: int,
        timeout: float,
        options: dict[str, dict[str, Any]] | None = None,
    ) -> bool:
        self.close()
        self._host = host
        self._options = options or {}
        self.last_error = None

        transport_options = self._options.get(transport, {})
        try:
            if transport_options.get("proxy"):
                sock = self._open_tunnel(host, port, timeout, transport_options)
            else:
                sock = socket.create_connection((host, port), timeout=timeout)

            if transport in IMPLICIT_TLS_TRANSPORTS:
                context = build_ssl_context(self._options.get("ssl", {}))
                sock = context.wrap_socket(sock, server_hostname=host)
        except (OSError, ValueError) as e:
            self.last_error = str(e)
            logger.error(f"Failed to open {transport} stream to {host}:{port}: {e}")
            return False

        self._sock = sock
        logger.debug(f"Opened {transport} stream to {host}:{port}")
        return True

    def _open_tunnel(
        self,
        host: str,
        port: int,
        timeout: float,
        transport_options: dict[str, Any],
    ) -> socket.socket:
        """Connect through an HTTP proxy using the CONNECT method."""
        proxy_host, proxy_port = parse_proxy_address(transport_options["proxy"])
        sock = socket.create_connection((proxy_host, proxy_port), timeout=timeout)

        request = [f"CONNECT {host}:{port} HTTP/1.1", f"Host: {host}:{port}"]
        request.extend(transport_options.get("header", []))
        sock.sendall(("\r\n".join(request) + "\r\n\r\n").encode("latin-1"))

        # Read the proxy's reply headers byte by byte so no tunneled data is consumed.
        reply = bytearray()
        while not reply.endswith(b"\r\n\r\n"):
            chunk = sock.recv(1)
            if not chunk:
                sock.close()
                raise ConnectionError("Proxy closed the connection during CONNECT")
            reply.extend(chunk)

        status_line = bytes(reply).split(b"\r\n", 1)[0].decode("latin-1")
        status = status_line.split(" ", 2)
        if len(status) < 2 or status[1] != "200":
            sock.close()
            raise ConnectionError(f"Proxy refused tunnel: {status_line}")

        logger.debug(f"Tunnel to {host}:{port} established via {proxy_host}:{proxy_port}")
        return sock

    def close(self) -> None:
        if self._sock is not None:
            with contextlib.suppress(OSError):
                self._sock.close()
        self._sock = None
        self._buffer.clear()
        self._eof = False
        self._timed_out = False

    def _recv(self, size: int) -> bytes | None:
        """Receive from the socket, recording timeout and end-of-stream state."""
        assert self._sock is not None
        try:
            data = self._sock.recv(size)
        except (socket.timeout, ssl.SSLWantReadError):
            self._timed_out = True
            return None
        self._timed_out = False
        if not data:
            self._eof = True
        return data

    def read(self, length: int) -> bytes | None:
        if not self.is_open():
            return None

        if not self._buffer:
            if self._eof:
                return None
            data = self._recv(length)
            if data is None:
                return b""
            if not data:
                return None
            self._buffer.extend(data)

        result = bytes(self._buffer[:length])
        del self._buffer[:length]
        return result

    def read_line(self) -> bytes | None:
        if not self.is_open():
            return None

        while b"\n" not in self._buffer:
            if self._eof:
                break
            data = self._recv(READ_CHUNK_SIZE)
            if data is None:
                return None
            self._buffer.extend(data)

        if not self._buffer:
            return None

        end = self._buffer.find(b"\n")
        end = len(self._buffer) if end == -1 else end + 1
        line = bytes(self._buffer[:end])
        del self._buffer[:end]
        return line

    def write(self, data: bytes) -> int | None:
        if not self.is_open():
            return None

        assert self._sock is not None
        try:
            self._sock.sendall(data)
        except OSError as e:
            logger.warning(f"Write to {self._host} failed: {e}")
            return None
        return len(data)

    def metadata(self) -> StreamMetadata:
        crypto = CryptoInfo()
        stream_type = "tcp_socket"
        if isinstance(self._sock, ssl.SSLSocket):
            stream_type = "tcp_socket/ssl"
            cipher = self._sock.cipher()
            if cipher:
                name, version, bits = cipher
                crypto = CryptoInfo(
                    protocol=self._sock.version() or "",
                    cipher_name=name,
                    cipher_bits=bits or 0,
                    cipher_version=version,
                )

        return StreamMetadata(
            crypto=crypto,
            mode="r+b",
            eof=self._eof and not self._buffer,
            blocked=self._sock is not None and self._sock.gettimeout() != 0.0,
            timed_out=self._timed_out,
            seekable=False,
            unread_bytes=len(self._buffer),
            stream_type=stream_type,
        )

    def is_open(self) -> bool:
        return self._sock is not None

    def set_timeout(self, seconds: float) -> bool:
        if self._sock is None:
            return False
        self._sock.settimeout(seconds)
        return True

    def set_crypto_enabled(self, enabled: bool, method: str | None) -> bool:
        """Start (or keep) TLS on the open socket.

        Disabling encryption on an established TLS session is not supported
        and reports failure.
        """
        if self._sock is None:
            return False

        is_tls = isinstance(self._sock, ssl.SSLSocket)
        if not enabled:
            return not is_tls
        if is_tls:
            return True

        context = build_ssl_context(self._options.get("ssl", {}), method)
        try:
            self._sock = context.wrap_socket(self._sock, server_hostname=self._host)
        except (OSError, ValueError) as e:
            self.last_error = str(e)
            logger.error(f"TLS negotiation with {self._host} failed: {e}")
            return False

        self._buffer.clear()
        return True
