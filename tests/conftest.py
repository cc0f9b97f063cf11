"""Shared test fixtures."""

import tempfile
from pathlib import Path

import pytest

from mailwire.config import ImapConfig
from mailwire.mailbox import Mailbox
from mailwire.streams import FakeStream


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    """Keep credentials from the environment out of test configs."""
    for name in ("MAILWIRE_IMAP_USERNAME", "MAILWIRE_IMAP_PASSWORD", "MAILWIRE_PROXY_PASSWORD"):
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def temp_dir():
    """Create a temporary directory for test files."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def fake_stream():
    """An unopened scripted stream."""
    return FakeStream()


@pytest.fixture
def imap_config():
    """Create a test IMAP configuration."""
    return ImapConfig(
        host="imap.example.com",
        port=993,
        username="test@example.com",
        password="testpass",
    )


@pytest.fixture
def connected_mailbox(imap_config, fake_stream):
    """A mailbox logged in over a fake stream; the next command is TAG2."""
    fake_stream.feed([
        "* OK IMAP4rev1 Service Ready",
        "TAG1 OK LOGIN completed",
    ])
    mailbox = Mailbox(imap_config, stream=fake_stream)
    mailbox.connect()
    fake_stream.assert_written("TAG1 LOGIN")
    return mailbox


@pytest.fixture
def sample_config_toml(temp_dir, monkeypatch):
    """Create a sample TOML config file."""
    # Password must come from environment variable
    monkeypatch.setenv("MAILWIRE_IMAP_PASSWORD", "secret")

    config_path = temp_dir / "config.toml"
    config_path.write_text('''
[imap]
host = "imap.test.com"
port = 143
username = "user@test.com"
encryption = "starttls"
validate_cert = false
timeout = 60
delimiter = "."

[imap.proxy]
socket = "tcp://proxy.test.com:3128"
request_fulluri = true
username = "proxyuser"
''')
    return config_path
