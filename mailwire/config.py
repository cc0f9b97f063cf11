"""Configuration management for mailwire."""

import logging
import os
import tomllib
from dataclasses import dataclass, field
from pathlib import Path

logger = logging.getLogger(__name__)


@dataclass
class ProxySettings:
    """Proxy tunnel configuration.

    The password can be set via the MAILWIRE_PROXY_PASSWORD environment variable.
    """
    socket: str | None = None
    request_fulluri: bool = False
    username: str | None = None
    password: str | None = field(default=None, repr=False)

    def __post_init__(self):
        env_password = os.environ.get("MAILWIRE_PROXY_PASSWORD")
        if env_password:
            self.password = env_password

    def as_options(self) -> dict:
        """Proxy settings as the partial mapping Connection.set_proxy() accepts."""
        return {
            "socket": self.socket,
            "request_fulluri": self.request_fulluri,
            "username": self.username,
            "password": self.password,
        }


@dataclass
class ImapConfig:
    """IMAP server configuration.

    Credentials MUST be provided via environment variables:
    - MAILWIRE_IMAP_USERNAME: IMAP username
    - MAILWIRE_IMAP_PASSWORD: IMAP password
    """
    host: str
    port: int = 993
    username: str = ""
    password: str = field(default="", repr=False)
    encryption: str | None = "ssl"  # "ssl", "tls", "starttls" or None for plain
    validate_cert: bool = True
    timeout: int = 30  # stream read/write timeout
    connection_timeout: int = 30
    delimiter: str = "/"
    proxy: ProxySettings = field(default_factory=ProxySettings)

    def __post_init__(self):
        """Load credentials from environment variables."""
        env_username = os.environ.get("MAILWIRE_IMAP_USERNAME")
        env_password = os.environ.get("MAILWIRE_IMAP_PASSWORD")

        if env_username:
            self.username = env_username
        if env_password:
            self.password = env_password

        if self.encryption not in (None, "ssl", "tls", "starttls"):
            raise ValueError(f"Unsupported encryption: {self.encryption}")


@dataclass
class Config:
    imap: ImapConfig


def load_config(path: str | Path) -> Config:
    """Load configuration from a TOML file."""
    path = Path(path)
    with path.open("rb") as f:
        data = tomllib.load(f)

    imap_data = data.get("imap", {})
    proxy_data = imap_data.get("proxy", {})

    proxy_config = ProxySettings(
        socket=proxy_data.get("socket"),
        request_fulluri=proxy_data.get("request_fulluri", False),
        username=proxy_data.get("username"),
    )

    imap_config = ImapConfig(
        host=imap_data.get("host", ""),
        port=imap_data.get("port", 993),
        username=imap_data.get("username", ""),
        encryption=imap_data.get("encryption", "ssl") or None,
        validate_cert=imap_data.get("validate_cert", True),
        timeout=imap_data.get("timeout", 30),
        connection_timeout=imap_data.get("connection_timeout", 30),
        delimiter=imap_data.get("delimiter", "/"),
        proxy=proxy_config,
    )
    logger.debug(f"Loaded configuration for {imap_config.host} from {path}")

    return Config(imap=imap_config)
