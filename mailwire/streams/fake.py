"""Scriptable in-memory stream for exercising protocol logic in tests."""

from __future__ import annotations

from typing import Any

from .base import StreamMetadata


def _to_bytes(data: str | bytes) -> bytes:
    if isinstance(data, str):
        return data.encode("utf-8")
    return data


class FakeStream:
    """Stream that replays queued server lines and records client writes.

    Each call to read_line() pops the next queued line. Everything passed to
    write() is kept so tests can assert on it with assert_written().
    """

    def __init__(self) -> None:
        self._buffer: list[bytes] = []
        self._written: list[bytes] = []
        self._connection: dict[str, Any] | None = None
        self._meta = StreamMetadata()

    @property
    def connection(self) -> dict[str, Any] | None:
        """Arguments of the last open() call, or None when closed."""
        return self._connection

    @property
    def written(self) -> list[bytes]:
        """Writes not yet consumed by assert_written()."""
        return list(self._written)

    def feed(self, lines: str | bytes | list[str | bytes]) -> FakeStream:
        """Queue one or more lines for the client to read.

        Each line ends up terminated by exactly one CRLF, whatever
        terminator it was given with.
        """
        if isinstance(lines, (str, bytes)):
            lines = [lines]
        self._buffer.extend(_to_bytes(line).rstrip(b"\r\n") + b"\r\n" for line in lines)
        return self

    def set_meta(self, key: str, value: Any) -> FakeStream:
        """Override a metadata value, e.g. ``set_meta("eof", True)``."""
        self._meta = self._meta.replace(key, value)
        return self

    def open(
        self,
        transport: str | None = None,
        host: str | None = None,
        port: int | None = None,
        timeout: float | None = None,
        options: dict[str, dict[str, Any]] | None = None,
    ) -> bool:
        self._connection = {
            "transport": transport,
            "host": host,
            "port": port,
            "timeout": timeout,
            "options": options or {},
        }
        return True

    def close(self) -> None:
        self._buffer = []
        self._connection = None

    def read(self, length: int) -> bytes | None:
        if not self.is_open():
            return None

        if self._meta.eof and not self._buffer:
            return None

        data = b"".join(self._buffer)
        if not data:
            # Nothing queued yet, but the stream is still alive.
            return b""

        result, remaining = data[:length], data[length:]
        self._buffer = [remaining] if remaining else []
        return result

    def read_line(self) -> bytes | None:
        if not self.is_open():
            return None

        if self._meta.timed_out or self._meta.eof:
            return None

        if not self._buffer:
            return None
        return self._buffer.pop(0)

    def write(self, data: str | bytes) -> int | None:
        if not self.is_open():
            return None

        data = _to_bytes(data)
        self._written.append(data)
        return len(data)

    def metadata(self) -> StreamMetadata:
        return self._meta

    def is_open(self) -> bool:
        return bool(self._connection)

    def set_timeout(self, seconds: float) -> bool:
        return True

    def set_crypto_enabled(self, enabled: bool, method: str | None) -> bool:
        return True

    def assert_written(self, expected: str | bytes) -> None:
        """Assert that some write contained ``expected``, consuming that write."""
        needle = _to_bytes(expected)
        for index, data in enumerate(self._written):
            if needle in data:
                del self._written[index]
                return

        raise AssertionError(
            f"Failed asserting that {expected!r} was written to the stream."
        )
