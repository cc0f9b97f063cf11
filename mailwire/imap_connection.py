"""IMAP command exchange over a Connection."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from typing import Any, Union

from imapclient import imap_utf7
from imapclient.response_parser import parse_response

from .connection import Connection
from .exceptions import CommandError, ConnectionFailedError
from .streams.network import IMPLICIT_TLS_TRANSPORTS

logger = logging.getLogger("mailwire")

# A response line, or a line ending in a {N} literal marker paired with the literal.
ResponseChunk = Union[bytes, tuple[bytes, bytes]]

_LITERAL_PATTERN = re.compile(rb"\{(\d+)\}$")
_LOGIN_PATTERN = re.compile(r"^(\S+ LOGIN) .*$", re.IGNORECASE)


def quote(value: str) -> str:
    """Quote an astring for use in a command."""
    escaped = value.replace("\\", "\\\\").replace('"', '\\"')
    return f'"{escaped}"'


def encode_folder(path: str) -> str:
    """Encode a folder path with modified UTF-7 and quote it."""
    return quote(imap_utf7.encode(path).decode("ascii"))


def _chunk_text(chunk: ResponseChunk) -> bytes:
    return chunk[0] if isinstance(chunk, tuple) else chunk


@dataclass
class Response:
    """Result of one tagged command."""
    command: str
    tag: str
    status: str
    text: str
    untagged: list[list[ResponseChunk]] = field(default_factory=list)
    data: Any = None

    @property
    def ok(self) -> bool:
        return self.status == "OK"

    def validated_data(self) -> Any:
        """Return the parsed data, raising if the server rejected the command."""
        if not self.ok:
            raise CommandError(
                f"{self.command} failed: {self.status} {self.text}".rstrip(), self
            )
        return self.data


def parse_folder_list(untagged: list[list[ResponseChunk]]) -> dict[str, dict[str, Any]]:
    """Turn untagged LIST responses into ``{name: {"flags", "delimiter"}}``."""
    folders: dict[str, dict[str, Any]] = {}

    for chunks in untagged:
        head = chunks[0]
        text = _chunk_text(head)
        if not text.upper().startswith(b"* LIST "):
            continue

        stripped = text[len(b"* LIST "):]
        first: ResponseChunk = (stripped, head[1]) if isinstance(head, tuple) else stripped
        flags, delimiter, name = parse_response([first, *chunks[1:]])

        if isinstance(name, int):
            name = str(name).encode("ascii")

        folders[imap_utf7.decode(name)] = {
            "flags": {flag.decode("ascii", errors="replace") for flag in flags},
            "delimiter": delimiter.decode("ascii") if delimiter else "",
        }

    return folders


class ImapConnection(Connection):
    """Connection that speaks enough IMAP to manage folders."""

    def __init__(self, *args: Any, **kwargs: Any):
        super().__init__(*args, **kwargs)
        self._tag_counter = 0
        self._pending = b""
        self.greeting: bytes | None = None

    def connect(self, host: str, port: int) -> None:
        """Open the stream, read the greeting and negotiate STARTTLS if requested.

        Raises:
            ConnectionFailedError: If the stream cannot be opened, the server
                refuses the connection or TLS cannot be started
        """
        transport = self.encryption if self.encryption in IMPLICIT_TLS_TRANSPORTS else "tcp"
        self._pending = b""

        opened = self.stream.open(
            transport,
            host,
            port,
            self.connection_timeout,
            self.default_socket_options(transport),
        )
        if not opened:
            raise ConnectionFailedError(f"Unable to connect to {host}:{port}")

        try:
            self.greeting = self._read_line()
            if not self.greeting.startswith((b"* OK", b"* PREAUTH")):
                greeting = self.greeting.strip().decode("utf-8", errors="replace")
                raise ConnectionFailedError(f"Server {host} refused connection: {greeting}")

            if self.encryption == "starttls":
                self._start_tls()
        except BaseException:
            self.close()
            raise

        logger.info(f"Connected to {host}:{port} over {transport}")

    def _start_tls(self) -> None:
        try:
            self.command("STARTTLS").validated_data()
        except CommandError as e:
            raise ConnectionFailedError(f"Server rejected STARTTLS: {e}") from e

        if not self.stream.set_crypto_enabled(True, self.get_crypto_method()):
            raise ConnectionFailedError("Failed to enable TLS on the stream")
        self._pending = b""

    def close(self) -> None:
        super().close()
        self._pending = b""

    def _next_tag(self) -> str:
        self._tag_counter += 1
        return f"TAG{self._tag_counter}"

    def _send(self, line: str) -> None:
        masked = _LOGIN_PATTERN.sub(r"\1 ****", line)
        logger.debug(f"C: {masked}")
        if self.stream.write(f"{line}\r\n".encode("utf-8")) is None:
            raise ConnectionFailedError("Failed to write to stream")

    def _read_line(self) -> bytes:
        while b"\n" not in self._pending:
            chunk = self.stream.read_line()
            if not chunk:
                raise ConnectionFailedError("Connection closed while reading response")
            self._pending += chunk

        line, _, self._pending = self._pending.partition(b"\n")
        return line + b"\n"

    def _read_exact(self, size: int) -> bytes:
        data, self._pending = self._pending[:size], self._pending[size:]
        while len(data) < size:
            chunk = self.stream.read(size - len(data))
            if not chunk:
                raise ConnectionFailedError("Stream ended while reading literal")
            data += chunk
        return data

    def _read_response_line(self) -> list[ResponseChunk]:
        """Read one logical response line, pulling in any literals it announces."""
        chunks: list[ResponseChunk] = []
        line = self._read_line().rstrip(b"\r\n")

        while match := _LITERAL_PATTERN.search(line):
            literal = self._read_exact(int(match.group(1)))
            chunks.append((line, literal))
            line = self._read_line().rstrip(b"\r\n")

        if line or not chunks:
            chunks.append(line)
        return chunks

    def command(self, command: str) -> Response:
        """Send a tagged command and collect everything up to its completion."""
        tag = self._next_tag()
        self._send(f"{tag} {command}")

        tag_prefix = f"{tag} ".encode("ascii")
        untagged: list[list[ResponseChunk]] = []

        while True:
            chunks = self._read_response_line()
            text = _chunk_text(chunks[0])
            logger.debug(f"S: {text.decode('utf-8', errors='replace')}")

            if text.startswith(tag_prefix):
                status, _, message = text[len(tag_prefix):].decode(
                    "utf-8", errors="replace"
                ).partition(" ")
                return Response(
                    command=command.split(" ", 1)[0].upper(),
                    tag=tag,
                    status=status.upper(),
                    text=message,
                    untagged=untagged,
                )

            if text.startswith(b"+"):
                continue
            untagged.append(chunks)

    def login(self, username: str, password: str) -> Response:
        return self.command(f"LOGIN {quote(username)} {quote(password)}")

    def logout(self) -> None:
        """Send LOGOUT if connected, then close the stream."""
        if not self.connected():
            return
        try:
            self.command("LOGOUT")
        finally:
            self.close()

    def select_folder(self, path: str) -> Response:
        """Select a folder; data maps EXISTS/RECENT to their counts."""
        response = self.command(f"SELECT {encode_folder(path)}")
        counts: dict[str, int] = {}
        for chunks in response.untagged:
            parts = _chunk_text(chunks[0]).split()
            if len(parts) == 3 and parts[1].isdigit():
                counts[parts[2].decode("ascii", errors="replace").upper()] = int(parts[1])
        response.data = counts
        return response

    def folders(self, reference: str = "", pattern: str = "*") -> Response:
        """List folders under ``reference`` matching ``pattern``."""
        response = self.command(f"LIST {encode_folder(reference)} {encode_folder(pattern)}")
        response.data = parse_folder_list(response.untagged) if response.ok else {}
        return response

    def create_folder(self, path: str) -> Response:
        response = self.command(f"CREATE {encode_folder(path)}")
        response.data = []
        return response

    def expunge(self) -> Response:
        """Expunge the selected folder; data lists the removed sequence numbers."""
        response = self.command("EXPUNGE")
        expunged = []
        for chunks in response.untagged:
            parts = _chunk_text(chunks[0]).split()
            if len(parts) == 3 and parts[2].upper() == b"EXPUNGE" and parts[1].isdigit():
                expunged.append(int(parts[1]))
        response.data = expunged
        return response
