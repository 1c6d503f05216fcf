"""Shared fixtures: an in-memory gateway and message factories."""
from __future__ import annotations

from datetime import datetime, timezone

import pytest

from inboxsweep.imap.gateway import GatewayError, MailboxGateway
from inboxsweep.index.sender_index import SenderIndex
from inboxsweep.models.folder import Folder
from inboxsweep.models.message import MessageRecord


def make_record(
    message_id: str,
    sender: str = "alice@example.com",
    subject: str | None = None,
    size: int | None = 1000,
    **kwargs,
) -> MessageRecord:
    return MessageRecord(
        message_id=message_id,
        subject=subject if subject is not None else f"Subject {message_id}",
        received_at=datetime(2025, 1, 15, 9, 30, tzinfo=timezone.utc),
        sender_name=kwargs.pop("sender_name", "Sender"),
        sender_address=sender,
        size_bytes=size,
        recipients=kwargs.pop("recipients", ["me@home.org"]),
        categories=kwargs.pop("categories", []),
    )


class FakeGateway(MailboxGateway):
    """Records calls; fails for ids listed in *fail_ids*."""

    def __init__(self, messages=None, fail_ids=(), folders=None) -> None:
        self.messages: list[MessageRecord] = list(messages or [])
        self.fail_ids = set(fail_ids)
        self.folders = folders if folders is not None else [
            Folder(id="INBOX", display_name="INBOX"),
            Folder(id="Archive", display_name="Archive"),
            Folder(id="Archive/2024", display_name="2024", parent_id="Archive"),
        ]
        self.calls: list[tuple] = []

    def fetch_messages(self, search=None, since=None, max_count=None, properties=()):
        self.calls.append(("fetch", search, since, max_count))
        result = list(self.messages)
        if search:
            result = [m for m in result if search.lower() in m.subject.lower()]
        if max_count:
            result = result[:max_count]
        return result

    def delete_message(self, message_id):
        self.calls.append(("delete", message_id))
        if message_id in self.fail_ids:
            raise GatewayError(f"cannot delete {message_id}")
        self.messages = [m for m in self.messages if m.message_id != message_id]

    def move_message(self, message_id, destination_folder_id):
        self.calls.append(("move", message_id, destination_folder_id))
        if message_id in self.fail_ids:
            raise GatewayError(f"cannot move {message_id}")
        self.messages = [m for m in self.messages if m.message_id != message_id]

    def list_folders(self):
        self.calls.append(("list_folders",))
        return list(self.folders)

    def mutations(self) -> list[tuple]:
        return [c for c in self.calls if c[0] in ("delete", "move")]


@pytest.fixture
def index_path(tmp_path):
    return tmp_path / "cache" / "me_example_com.json"


@pytest.fixture
def index(index_path):
    return SenderIndex(index_path)
