"""Tests for the IMAP command exchange, driven by the fake stream."""

import logging
from unittest.mock import MagicMock, patch

import pytest

from mailwire.exceptions import CommandError, ConnectionFailedError
from mailwire.imap_connection import ImapConnection, encode_folder, quote


@pytest.fixture
def connection(fake_stream):
    """An ImapConnection over an open fake stream, past the greeting."""
    fake_stream.feed("* OK IMAP4rev1 Service Ready")
    connection = ImapConnection(fake_stream)
    connection.connect("imap.example.com", 143)
    return connection


class TestConnect:
    def test_plain_connect(self, fake_stream):
        fake_stream.feed("* OK IMAP4rev1 Service Ready")
        connection = ImapConnection(fake_stream)

        connection.connect("imap.example.com", 143)

        assert connection.connected() is True
        assert connection.greeting == b"* OK IMAP4rev1 Service Ready\r\n"
        assert fake_stream.connection == {
            "transport": "tcp",
            "host": "imap.example.com",
            "port": 143,
            "timeout": 30,
            "options": {},
        }

    def test_implicit_tls_uses_ssl_transport(self, fake_stream):
        fake_stream.feed("* PREAUTH ready")
        connection = ImapConnection(fake_stream)
        connection.set_encryption("ssl").set_connection_timeout(10)

        connection.connect("imap.example.com", 993)

        assert fake_stream.connection["transport"] == "ssl"
        assert fake_stream.connection["timeout"] == 10
        assert fake_stream.connection["options"] == {
            "ssl": {"verify_peer_name": True, "verify_peer": True},
        }

    def test_open_failure(self):
        stream = MagicMock()
        stream.open.return_value = False
        connection = ImapConnection(stream)

        with pytest.raises(ConnectionFailedError, match="Unable to connect"):
            connection.connect("imap.example.com", 143)

    def test_bye_greeting(self, fake_stream):
        fake_stream.feed("* BYE Too many connections")
        connection = ImapConnection(fake_stream)

        with pytest.raises(ConnectionFailedError, match="Too many connections"):
            connection.connect("imap.example.com", 143)

        assert fake_stream.is_open() is False

    def test_no_greeting(self, fake_stream):
        connection = ImapConnection(fake_stream)

        with pytest.raises(ConnectionFailedError, match="closed"):
            connection.connect("imap.example.com", 143)

        assert fake_stream.is_open() is False


class TestStartTls:
    def test_starttls(self, fake_stream):
        fake_stream.feed(["* OK ready", "TAG1 OK Begin TLS negotiation now"])
        connection = ImapConnection(fake_stream, supports=lambda method: True)
        connection.set_encryption("starttls")

        with patch.object(fake_stream, "set_crypto_enabled", return_value=True) as mock_crypto:
            connection.connect("imap.example.com", 143)

        fake_stream.assert_written("TAG1 STARTTLS")
        mock_crypto.assert_called_once_with(True, "TLSv1_2")
        assert fake_stream.connection["transport"] == "tcp"

    def test_starttls_rejected(self, fake_stream):
        fake_stream.feed(["* OK ready", "TAG1 BAD STARTTLS not supported"])
        connection = ImapConnection(fake_stream)
        connection.set_encryption("starttls")

        with pytest.raises(ConnectionFailedError, match="rejected STARTTLS"):
            connection.connect("imap.example.com", 143)

        assert fake_stream.is_open() is False

    def test_handshake_failure(self, fake_stream):
        fake_stream.feed(["* OK ready", "TAG1 OK Begin TLS negotiation now"])
        connection = ImapConnection(fake_stream)
        connection.set_encryption("starttls")

        with (
            patch.object(fake_stream, "set_crypto_enabled", return_value=False),
            pytest.raises(ConnectionFailedError, match="enable TLS"),
        ):
            connection.connect("imap.example.com", 143)

        assert fake_stream.is_open() is False


class TestCommands:
    def test_tags_increment(self, connection, fake_stream):
        fake_stream.feed(["TAG1 OK NOOP completed", "TAG2 OK NOOP completed"])

        first = connection.command("NOOP")
        second = connection.command("NOOP")

        assert (first.tag, second.tag) == ("TAG1", "TAG2")
        assert first.status == "OK"
        assert first.text == "NOOP completed"
        fake_stream.assert_written(b"TAG1 NOOP\r\n")
        fake_stream.assert_written(b"TAG2 NOOP\r\n")

    def test_untagged_lines_are_collected(self, connection, fake_stream):
        fake_stream.feed(["* CAPABILITY IMAP4rev1 IDLE", "TAG1 OK done"])

        response = connection.command("CAPABILITY")

        assert response.untagged == [[b"* CAPABILITY IMAP4rev1 IDLE"]]

    def test_failed_command(self, connection, fake_stream):
        fake_stream.feed("TAG1 NO [NONEXISTENT] Unknown folder")

        response = connection.command("SELECT \"Missing\"")

        assert response.ok is False
        with pytest.raises(CommandError, match="SELECT failed: NO") as exc_info:
            response.validated_data()
        assert exc_info.value.response is response

    def test_stream_runs_dry(self, connection, fake_stream):
        fake_stream.feed("* 1 EXISTS")

        with pytest.raises(ConnectionFailedError):
            connection.command("NOOP")

    def test_write_to_closed_stream(self, connection):
        connection.close()

        with pytest.raises(ConnectionFailedError, match="write"):
            connection.command("NOOP")

    def test_login_is_masked_in_logs(self, connection, fake_stream, caplog):
        fake_stream.feed("TAG1 OK LOGIN completed")

        with caplog.at_level(logging.DEBUG, logger="mailwire"):
            connection.login("user", "hunter2").validated_data()

        fake_stream.assert_written('TAG1 LOGIN "user" "hunter2"')
        assert "TAG1 LOGIN ****" in caplog.text
        assert "hunter2" not in caplog.text

    def test_logout_closes_stream(self, connection, fake_stream):
        fake_stream.feed(["* BYE Logging out", "TAG1 OK LOGOUT completed"])

        connection.logout()

        fake_stream.assert_written("TAG1 LOGOUT")
        assert connection.connected() is False

    def test_logout_when_closed(self, fake_stream):
        connection = ImapConnection(fake_stream)

        connection.logout()

        assert fake_stream.written == []


class TestFolderCommands:
    def test_list(self, connection, fake_stream):
        fake_stream.feed([
            '* LIST (\\HasNoChildren) "/" "INBOX"',
            '* LIST (\\HasChildren \\Noselect) "/" Archive',
            '* LIST () "/" "Archive/2024"',
            "TAG1 OK LIST completed",
        ])

        data = connection.folders("", "*").validated_data()

        fake_stream.assert_written('TAG1 LIST "" "*"')
        assert data == {
            "INBOX": {"flags": {"\\HasNoChildren"}, "delimiter": "/"},
            "Archive": {"flags": {"\\HasChildren", "\\Noselect"}, "delimiter": "/"},
            "Archive/2024": {"flags": set(), "delimiter": "/"},
        }

    def test_list_with_literal_name(self, connection, fake_stream):
        fake_stream.feed([
            '* LIST () "/" {8}',
            "Projects",
            "TAG1 OK LIST completed",
        ])

        data = connection.folders().validated_data()

        assert data == {"Projects": {"flags": set(), "delimiter": "/"}}

    def test_list_decodes_modified_utf7(self, connection, fake_stream):
        fake_stream.feed(['* LIST () "." "Entw&APw-rfe"', "TAG1 OK LIST completed"])

        data = connection.folders().validated_data()

        assert list(data) == ["Entwürfe"]

    def test_list_numeric_name_and_nil_delimiter(self, connection, fake_stream):
        fake_stream.feed(["* LIST () NIL 2024", "TAG1 OK LIST completed"])

        data = connection.folders().validated_data()

        assert data == {"2024": {"flags": set(), "delimiter": ""}}

    def test_list_failure(self, connection, fake_stream):
        fake_stream.feed("TAG1 BAD Invalid pattern")

        response = connection.folders("", "*")

        assert response.data == {}
        with pytest.raises(CommandError):
            response.validated_data()

    def test_create_folder_encodes_name(self, connection, fake_stream):
        fake_stream.feed("TAG1 OK CREATE completed")

        assert connection.create_folder("Entwürfe").validated_data() == []

        fake_stream.assert_written('TAG1 CREATE "Entw&APw-rfe"')

    def test_select_folder(self, connection, fake_stream):
        fake_stream.feed([
            "* 172 EXISTS",
            "* 1 RECENT",
            "* OK [UIDVALIDITY 3857529045] UIDs valid",
            "TAG1 OK [READ-WRITE] SELECT completed",
        ])

        counts = connection.select_folder("INBOX").validated_data()

        assert counts == {"EXISTS": 172, "RECENT": 1}

    def test_expunge(self, connection, fake_stream):
        fake_stream.feed(["* 3 EXPUNGE", "* 3 EXPUNGE", "* 5 EXPUNGE", "TAG1 OK EXPUNGE completed"])

        assert connection.expunge().validated_data() == [3, 3, 5]


class TestQuoting:
    def test_quote_escapes(self):
        assert quote('say "hi"') == '"say \\"hi\\""'
        assert quote("back\\slash") == '"back\\\\slash"'

    def test_encode_folder(self):
        assert encode_folder("INBOX") == '"INBOX"'
        assert encode_folder("") == '""'
