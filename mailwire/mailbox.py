"""Mailbox session: configuration plus the connection it drives."""

from __future__ import annotations

import contextlib
import logging
from typing import TYPE_CHECKING, Any

from .config import ImapConfig
from .imap_connection import ImapConnection
from .streams import Stream, make_stream

if TYPE_CHECKING:
    from .folders import Folder, FolderRepository

logger = logging.getLogger("mailwire")


class Mailbox:
    def __init__(self, config: ImapConfig, stream: Stream | None = None):
        self._config = config
        self._stream = stream
        self._connection: ImapConnection | None = None

    def config(self, key: str, default: Any = None) -> Any:
        """Read a configuration value, falling back to ``default`` when unset."""
        value = getattr(self._config, key, None)
        return default if value is None else value

    def connect(self) -> None:
        """Connect and log in to the IMAP server."""
        stream = self._stream if self._stream is not None else make_stream("network")

        connection = ImapConnection(stream)
        connection.set_encryption(self._config.encryption)
        connection.set_cert_validation(self._config.validate_cert)
        connection.set_proxy(self._config.proxy.as_options())
        connection.set_connection_timeout(self._config.connection_timeout)

        connection.connect(self._config.host, self._config.port)
        try:
            connection.set_stream_timeout(self._config.timeout)
            connection.login(self._config.username, self._config.password).validated_data()
        except Exception:
            connection.close()
            raise

        self._connection = connection
        logger.info(f"Logged in to {self._config.host} as {self._config.username}")

    def disconnect(self) -> None:
        """Log out and drop the connection."""
        if self._connection:
            with contextlib.suppress(Exception):
                self._connection.logout()
            self._connection = None

    def connected(self) -> bool:
        return self._connection is not None and self._connection.connected()

    def connection(self) -> ImapConnection:
        """Return the live connection, connecting on first use."""
        if not self.connected():
            self.connect()
        if self._connection is None:
            raise RuntimeError("Not connected to IMAP server")
        return self._connection

    def folders(self) -> FolderRepository:
        from .folders import FolderRepository

        return FolderRepository(self)

    def inbox(self) -> Folder | None:
        return self.folders().find("INBOX")

    def __enter__(self) -> Mailbox:
        self.connect()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.disconnect()
