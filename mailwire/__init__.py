"""Transport and session layer for IMAP clients."""

from .config import Config, ImapConfig, ProxySettings, load_config
from .connection import Connection, IdentifierMode, ProxyConfig
from .exceptions import (
    CommandError,
    ConnectionFailedError,
    FolderNotFoundError,
    MailwireError,
    StreamMetadataError,
)
from .folders import Folder, FolderRepository
from .imap_connection import ImapConnection, Response
from .mailbox import Mailbox
from .streams import FakeStream, NetworkStream, Stream, StreamMetadata, make_stream

__all__ = [
    # Configuration
    "Config",
    "ImapConfig",
    "ProxySettings",
    "load_config",
    # Connection
    "Connection",
    "IdentifierMode",
    "ImapConnection",
    "ProxyConfig",
    "Response",
    # Session and folders
    "Folder",
    "FolderRepository",
    "Mailbox",
    # Streams
    "FakeStream",
    "NetworkStream",
    "Stream",
    "StreamMetadata",
    "make_stream",
    # Errors
    "CommandError",
    "ConnectionFailedError",
    "FolderNotFoundError",
    "MailwireError",
    "StreamMetadataError",
]
