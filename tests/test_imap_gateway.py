"""Tests for ImapGateway with a mock IMAPClient."""
from __future__ import annotations

from datetime import datetime, timezone
from unittest.mock import MagicMock, patch

import pytest
from imapclient import DELETED

from inboxsweep.imap.connection import IMAPConnectionError, connect, find_trash_folder
from inboxsweep.imap.gateway import (
    P_SENDER,
    P_SUBJECT,
    GatewayError,
    ImapGateway,
    _decode_header,
    _envelope_addrs,
)
from inboxsweep.models.account import Account


class _MockAddress:
    """Mimics imapclient.response_types.Address (attribute-based)."""
    def __init__(self, name, route, mailbox, host):
        self.name = name
        self.route = route
        self.mailbox = mailbox
        self.host = host


class _MockEnvelope:
    """Mimics imapclient.response_types.Envelope (attribute-based)."""
    def __init__(self, date, subject, from_, to=None):
        self.date = date
        self.subject = subject
        self.from_ = from_
        self.to = to


def make_envelope(
    subject: bytes = b"Test Subject",
    from_name: bytes | None = b"Alice",
    from_mbox: bytes = b"alice",
    from_host: bytes = b"example.com",
    to=((None, b"me", b"home.org"),),
    date=None,
):
    if date is None:
        date = datetime(2024, 1, 1, 12, 0, 0, tzinfo=timezone.utc)
    sender = _MockAddress(from_name, None, from_mbox, from_host)
    recipients = tuple(_MockAddress(n, None, m, h) for n, m, h in to) if to else None
    return _MockEnvelope(date=date, subject=subject, from_=(sender,), to=recipients)


def make_mock_client(uid_map: dict) -> MagicMock:
    client = MagicMock()
    client.search.return_value = list(uid_map.keys())
    client.fetch.return_value = uid_map
    client.capabilities.return_value = (b"IMAP4REV1", b"UIDPLUS")
    client.list_folders.return_value = [
        ((b"\\HasNoChildren",), b"/", "INBOX"),
        ((b"\\HasNoChildren",), b"/", "Trash"),
        ((b"\\HasChildren",), b"/", "Archive"),
        ((b"\\HasNoChildren",), b"/", "Archive/2024"),
    ]
    return client


def _uid_map():
    return {
        3: {
            b"ENVELOPE": make_envelope(subject=b"Newest"),
            b"RFC822.SIZE": 2048,
            b"FLAGS": [b"\\Seen", b"Receipts"],
        },
        1: {
            b"ENVELOPE": make_envelope(subject=b"Oldest", from_mbox=b"bob", from_host=b"test.com"),
            b"RFC822.SIZE": 512,
            b"FLAGS": [],
        },
    }


class TestFetch:
    def test_returns_records_newest_first(self):
        client = make_mock_client(_uid_map())
        records = ImapGateway(client).fetch_messages()

        assert [r.message_id for r in records] == ["3", "1"]
        first = records[0]
        assert first.subject == "Newest"
        assert first.sender_name == "Alice"
        assert first.sender_address == "alice@example.com"
        assert first.recipients == ["me@home.org"]
        assert first.size_bytes == 2048
        assert first.categories == ["Receipts"]
        assert first.received_at == datetime(2024, 1, 1, 12, 0, 0, tzinfo=timezone.utc)
        client.select_folder.assert_called_once_with("INBOX", readonly=True)

    def test_default_criteria_skip_deleted(self):
        client = make_mock_client(_uid_map())
        ImapGateway(client).fetch_messages()
        client.search.assert_called_once_with(["NOT", "DELETED"])

    def test_since_and_search_criteria(self):
        client = make_mock_client(_uid_map())
        since = datetime(2025, 3, 2, 17, 45, tzinfo=timezone.utc)
        ImapGateway(client).fetch_messages(search="invoice", since=since)
        client.search.assert_called_once_with(
            ["NOT", "DELETED", "SINCE", since.date(), "TEXT", "invoice"]
        )

    def test_max_count_keeps_newest(self):
        client = make_mock_client(_uid_map())
        records = ImapGateway(client).fetch_messages(max_count=1)
        assert [r.message_id for r in records] == ["3"]
        uids = client.fetch.call_args[0][0]
        assert uids == [3]

    def test_size_unavailable_falls_back(self):
        client = make_mock_client({})
        client.search.return_value = [5]
        client.fetch.side_effect = [
            Exception("BAD unknown item RFC822.SIZE"),
            {5: {b"ENVELOPE": make_envelope(), b"FLAGS": []}},
        ]
        records = ImapGateway(client).fetch_messages()

        assert len(records) == 1
        assert records[0].size_bytes is None
        assert client.fetch.call_count == 2
        assert b"RFC822.SIZE" not in client.fetch.call_args_list[1][0][1]

    def test_properties_limit_parsed_fields(self):
        client = make_mock_client(_uid_map())
        records = ImapGateway(client).fetch_messages(properties=(P_SUBJECT, P_SENDER))
        assert records[0].subject == "Newest"
        assert records[0].size_bytes is None
        assert records[0].categories == []
        assert b"RFC822.SIZE" not in client.fetch.call_args[0][1]

    def test_vanished_uid_is_skipped(self):
        client = make_mock_client(_uid_map())
        client.search.return_value = [3, 2, 1]
        records = ImapGateway(client).fetch_messages()
        assert [r.message_id for r in records] == ["3", "1"]

    def test_search_failure_raises(self):
        client = make_mock_client({})
        client.search.side_effect = Exception("connection reset")
        with pytest.raises(GatewayError):
            ImapGateway(client).fetch_messages()

    def test_fetch_failure_raises(self):
        client = make_mock_client({})
        client.search.return_value = [1]
        client.fetch.side_effect = Exception("connection reset")
        with pytest.raises(GatewayError):
            ImapGateway(client).fetch_messages()

    def test_no_matches(self):
        client = make_mock_client({})
        assert ImapGateway(client).fetch_messages() == []
        client.fetch.assert_not_called()


class TestDelete:
    def test_copies_to_trash_then_expunges(self):
        client = make_mock_client({})
        ImapGateway(client).delete_message("42")

        client.select_folder.assert_called_once_with("INBOX", readonly=False)
        client.copy.assert_called_once_with([42], "Trash")
        client.set_flags.assert_called_once_with([42], [DELETED])
        client.uid_expunge.assert_called_once_with([42])

    def test_without_trash_deletes_in_place(self):
        client = make_mock_client({})
        client.list_folders.return_value = [((), b"/", "INBOX")]
        ImapGateway(client).delete_message("42")
        client.copy.assert_not_called()
        client.set_flags.assert_called_once_with([42], [DELETED])

    def test_trash_lookup_happens_once(self):
        client = make_mock_client({})
        gw = ImapGateway(client)
        gw.delete_message("1")
        gw.delete_message("2")
        assert client.list_folders.call_count == 1

    def test_deleting_inside_trash_does_not_copy(self):
        client = make_mock_client({})
        ImapGateway(client, folder="Trash").delete_message("7")
        client.copy.assert_not_called()

    def test_expunge_failure_is_tolerated(self):
        client = make_mock_client({})
        client.uid_expunge.side_effect = Exception("UIDPLUS missing")
        ImapGateway(client).delete_message("42")
        client.set_flags.assert_called_once()

    def test_flag_failure_raises(self):
        client = make_mock_client({})
        client.set_flags.side_effect = Exception("NO read-only")
        with pytest.raises(GatewayError):
            ImapGateway(client).delete_message("42")

    def test_non_uid_id_raises(self):
        client = make_mock_client({})
        with pytest.raises(GatewayError):
            ImapGateway(client).delete_message("AAMkAGI2")
        client.set_flags.assert_not_called()

    def test_read_then_write_upgrades_select(self):
        client = make_mock_client(_uid_map())
        gw = ImapGateway(client)
        gw.fetch_messages()
        gw.delete_message("3")
        gw.fetch_messages()
        assert [c.kwargs["readonly"] for c in client.select_folder.call_args_list] == [True, False]


class TestMove:
    def test_uses_move_capability(self):
        client = make_mock_client({})
        client.capabilities.return_value = (b"IMAP4REV1", b"MOVE")
        ImapGateway(client).move_message("9", "Archive")
        client.move.assert_called_once_with([9], "Archive")
        client.copy.assert_not_called()

    def test_falls_back_to_copy_delete(self):
        client = make_mock_client({})
        ImapGateway(client).move_message("9", "Archive")
        client.move.assert_not_called()
        client.copy.assert_called_once_with([9], "Archive")
        client.delete_messages.assert_called_once_with([9])
        client.expunge.assert_called_once_with([9])

    def test_failure_raises(self):
        client = make_mock_client({})
        client.copy.side_effect = Exception("NO [TRYCREATE] no such mailbox")
        with pytest.raises(GatewayError):
            ImapGateway(client).move_message("9", "Nowhere")


class TestListFolders:
    def test_builds_parent_links(self):
        client = make_mock_client({})
        folders = {f.id: f for f in ImapGateway(client).list_folders()}

        assert set(folders) == {"INBOX", "Trash", "Archive", "Archive/2024"}
        assert folders["Archive/2024"].parent_id == "Archive"
        assert folders["Archive/2024"].display_name == "2024"
        assert folders["Archive"].is_top_level

    def test_bytes_names_decoded(self):
        client = make_mock_client({})
        client.list_folders.return_value = [((), b".", b"INBOX.Sent")]
        (folder,) = ImapGateway(client).list_folders()
        assert (folder.id, folder.display_name, folder.parent_id) == ("INBOX.Sent", "Sent", "INBOX")

    def test_failure_raises(self):
        client = make_mock_client({})
        client.list_folders.side_effect = Exception("BYE")
        with pytest.raises(GatewayError):
            ImapGateway(client).list_folders()


class TestHeaderParsing:
    def test_decode_rfc2047(self):
        assert _decode_header(b"=?utf-8?b?SGVsbG8gV29ybGQ=?=") == "Hello World"

    def test_decode_none(self):
        assert _decode_header(None) == ""

    def test_envelope_addrs_without_name(self):
        addrs = _envelope_addrs((_MockAddress(None, None, b"bob", b"test.com"),))
        assert addrs == [("", "bob@test.com")]

    def test_envelope_addrs_empty(self):
        assert _envelope_addrs(None) == []


class TestTrashLookup:
    @pytest.mark.parametrize("names, expected", [
        (["INBOX", "[Gmail]/Trash"], "[Gmail]/Trash"),
        (["INBOX", "Deleted Items"], "Deleted Items"),
        (["INBOX", "INBOX.Trash"], "INBOX.Trash"),
        (["INBOX", "Archive"], None),
    ])
    def test_find_trash_folder(self, names, expected):
        assert find_trash_folder(names) == expected


class TestConnect:
    def test_missing_password_raises(self):
        account = Account(display_name="me", host="imap.example.com", username="me@example.com")
        with patch("inboxsweep.imap.connection.IMAPClient"), \
                patch("inboxsweep.imap.connection.get_password", return_value=None):
            with pytest.raises(IMAPConnectionError):
                connect(account)

    def test_logs_in_with_stored_password(self):
        account = Account(display_name="me", host="imap.example.com", username="me@example.com")
        with patch("inboxsweep.imap.connection.IMAPClient") as client_cls, \
                patch("inboxsweep.imap.connection.get_password", return_value="s3cret"):
            client = connect(account)
        client_cls.assert_called_once_with(host="imap.example.com", port=993, ssl=True, timeout=30)
        client.login.assert_called_once_with("me@example.com", "s3cret")

    def test_login_failure_raises(self):
        account = Account(display_name="me", host="imap.example.com", username="me@example.com")
        with patch("inboxsweep.imap.connection.IMAPClient") as client_cls, \
                patch("inboxsweep.imap.connection.get_password", return_value="wrong"):
            client_cls.return_value.login.side_effect = Exception("AUTHENTICATIONFAILED")
            with pytest.raises(IMAPConnectionError):
                connect(account)
