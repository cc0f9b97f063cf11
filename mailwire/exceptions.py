"""Exceptions raised by mailwire."""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .imap_connection import Response


class MailwireError(Exception):
    """Base class for all mailwire errors."""


class StreamMetadataError(MailwireError, RuntimeError):
    """Raised when stream metadata is queried or set with an invalid key or value."""


class ConnectionFailedError(MailwireError, ConnectionError):
    """Raised when the connection cannot be established or can no longer be used."""


class CommandError(MailwireError):
    """Raised when the server completes a command with NO or BAD."""

    def __init__(self, message: str, response: Response | None = None):
        super().__init__(message)
        self.response = response


class FolderNotFoundError(MailwireError, LookupError):
    """Raised when a folder expected to exist is missing from the listing."""
