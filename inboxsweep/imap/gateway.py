"""Mailbox gateway — fetch / delete / move / list-folders over IMAP.

The rest of InboxSweep only talks to the abstract MailboxGateway, so the
sender index and bulk executor can be driven by any backend (and by fakes in
tests).  ImapGateway works on a single source folder and uses UIDs as
message ids.
"""
from __future__ import annotations

import email.header
import logging
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any, Sequence

from imapclient import DELETED, IMAPClient

from inboxsweep.imap.connection import find_trash_folder
from inboxsweep.models.folder import Folder
from inboxsweep.models.message import MessageRecord

logger = logging.getLogger(__name__)

BATCH_SIZE = 500

# Property names understood by fetch_messages()
P_SUBJECT = "subject"
P_RECEIVED = "received"
P_SENDER = "sender"
P_RECIPIENTS = "recipients"
P_SIZE = "size"
P_CATEGORIES = "categories"

DEFAULT_PROPERTIES: tuple[str, ...] = (
    P_SUBJECT, P_RECEIVED, P_SENDER, P_RECIPIENTS, P_SIZE, P_CATEGORIES,
)


class GatewayError(Exception):
    """Raised when a single remote call fails."""


class MailboxGateway(ABC):
    @abstractmethod
    def fetch_messages(
        self,
        search: str | None = None,
        since: datetime | None = None,
        max_count: int | None = None,
        properties: Sequence[str] = DEFAULT_PROPERTIES,
    ) -> list[MessageRecord]:
        """Return message metadata, newest first.

        *search* is a full-text term, *since* restricts to messages received
        on or after that date, *max_count* bounds the result.  The size
        property is optional on the server side: when it is unavailable the
        records carry ``size_bytes=None`` instead of the fetch failing.
        """

    @abstractmethod
    def delete_message(self, message_id: str) -> None:
        """Delete one message.  Raises GatewayError."""

    @abstractmethod
    def move_message(self, message_id: str, destination_folder_id: str) -> None:
        """Move one message to another folder.  Raises GatewayError."""

    @abstractmethod
    def list_folders(self) -> list[Folder]:
        """Return the folder tree as a flat list.  Raises GatewayError."""


class ImapGateway(MailboxGateway):
    """MailboxGateway over one folder of an authenticated IMAPClient."""

    def __init__(self, client: IMAPClient, folder: str = "INBOX") -> None:
        self._client = client
        self._folder = folder
        self._selected: bool | None = None  # readonly flag of the current SELECT
        self._has_move: bool | None = None
        self._trash_folder: str | None = None
        self._trash_resolved = False

    @property
    def folder(self) -> str:
        return self._folder

    def logout(self) -> None:
        self._client.logout()

    # ── Fetch ─────────────────────────────────────────────────────────────────

    def fetch_messages(
        self,
        search: str | None = None,
        since: datetime | None = None,
        max_count: int | None = None,
        properties: Sequence[str] = DEFAULT_PROPERTIES,
    ) -> list[MessageRecord]:
        criteria: list[Any] = ["NOT", "DELETED"]
        if since is not None:
            criteria += ["SINCE", since.date()]
        if search:
            criteria += ["TEXT", search]

        try:
            self._select(readonly=True)
            uids = sorted(self._client.search(criteria), reverse=True)
        except Exception as exc:
            raise GatewayError(f"SEARCH failed in {self._folder}: {exc}") from exc

        if max_count is not None and max_count > 0:
            uids = uids[:max_count]
        logger.info("Fetching %d message(s) from %s", len(uids), self._folder)

        want_size = P_SIZE in properties
        items = [b"ENVELOPE", b"FLAGS"]
        records: list[MessageRecord] = []
        for batch_start in range(0, len(uids), BATCH_SIZE):
            batch_uids = uids[batch_start: batch_start + BATCH_SIZE]
            fetch_data = self._fetch_batch(batch_uids, items, want_size)
            for uid in batch_uids:
                data = fetch_data.get(uid)
                if data is None:
                    logger.debug("UID %s vanished during fetch", uid)
                    continue
                records.append(_parse_fetch_response(uid, data, properties))
        return records

    def _fetch_batch(self, uids: list[int], items: list[bytes], want_size: bool) -> dict:
        if want_size:
            try:
                return self._client.fetch(uids, items + [b"RFC822.SIZE"])
            except Exception as exc:
                logger.warning("FETCH with RFC822.SIZE failed, retrying without size: %s", exc)
        try:
            return self._client.fetch(uids, items)
        except Exception as exc:
            raise GatewayError(f"FETCH failed in {self._folder}: {exc}") from exc

    # ── Mutations ─────────────────────────────────────────────────────────────

    def delete_message(self, message_id: str) -> None:
        """COPY to Trash (when the server has one), flag \\Deleted, UID EXPUNGE."""
        uid = _uid(message_id)
        trash = self._trash()
        try:
            self._select(readonly=False)
            if trash and trash != self._folder:
                self._client.copy([uid], trash)
            self._client.set_flags([uid], [DELETED])
        except Exception as exc:
            raise GatewayError(f"Delete failed for UID {uid}: {exc}") from exc

        try:
            self._client.uid_expunge([uid])
        except Exception:
            logger.warning(
                "UID EXPUNGE not supported for UID %d in %s, message flagged but not expunged",
                uid, self._folder,
            )
        logger.info("Deleted UID %d from %s", uid, self._folder)

    def move_message(self, message_id: str, destination_folder_id: str) -> None:
        """MOVE (RFC 6851) with COPY + DELETE + EXPUNGE fallback."""
        uid = _uid(message_id)
        try:
            self._select(readonly=False)
            if self._supports_move():
                self._client.move([uid], destination_folder_id)
            else:
                self._client.copy([uid], destination_folder_id)
                self._client.delete_messages([uid])
                self._client.expunge([uid])
        except Exception as exc:
            raise GatewayError(
                f"Move failed for UID {uid} ({self._folder} → {destination_folder_id}): {exc}"
            ) from exc
        logger.info("Moved UID %d from %s to %s", uid, self._folder, destination_folder_id)

    # ── Folders ───────────────────────────────────────────────────────────────

    def list_folders(self) -> list[Folder]:
        try:
            listing = self._client.list_folders()
        except Exception as exc:
            raise GatewayError(f"LIST failed: {exc}") from exc

        folders = []
        for flags, delimiter, name in listing:
            if isinstance(name, bytes):
                name = name.decode("utf-8", errors="replace")
            if isinstance(delimiter, bytes):
                delimiter = delimiter.decode("ascii", errors="replace")
            if delimiter and delimiter in name:
                parent, _, leaf = name.rpartition(delimiter)
                folders.append(Folder(id=name, display_name=leaf, parent_id=parent))
            else:
                folders.append(Folder(id=name, display_name=name))
        return sorted(folders, key=lambda f: f.id.lower())

    # ── Helpers ───────────────────────────────────────────────────────────────

    def _select(self, readonly: bool) -> None:
        # A writable SELECT also serves reads; only upgrade, never downgrade
        if self._selected is False or self._selected is readonly:
            return
        self._client.select_folder(self._folder, readonly=readonly)
        self._selected = readonly

    def _supports_move(self) -> bool:
        if self._has_move is None:
            try:
                self._has_move = b"MOVE" in self._client.capabilities()
            except Exception:
                self._has_move = False
        return self._has_move

    def _trash(self) -> str | None:
        if not self._trash_resolved:
            try:
                names = [f.id for f in self.list_folders()]
            except GatewayError as exc:
                logger.warning("Cannot look up Trash folder, deleting in place: %s", exc)
                names = []
            self._trash_folder = find_trash_folder(names)
            self._trash_resolved = True
        return self._trash_folder


def _uid(message_id: str) -> int:
    try:
        return int(message_id)
    except (TypeError, ValueError) as exc:
        raise GatewayError(f"Not an IMAP UID: {message_id!r}") from exc


# ── IMAP response parsers ─────────────────────────────────────────────────────

def _parse_fetch_response(uid: int, data: dict, properties: Sequence[str]) -> MessageRecord:
    record = MessageRecord(message_id=str(uid))

    envelope = data.get(b"ENVELOPE")
    if envelope is not None:
        if P_SUBJECT in properties:
            record.subject = _decode_header(getattr(envelope, "subject", b""))
        if P_RECEIVED in properties:
            raw_date = getattr(envelope, "date", None)
            record.received_at = raw_date if isinstance(raw_date, datetime) else None
        if P_SENDER in properties:
            senders = _envelope_addrs(getattr(envelope, "from_", None))
            if senders:
                record.sender_name, record.sender_address = senders[0]
        if P_RECIPIENTS in properties:
            record.recipients = [addr for _, addr in _envelope_addrs(getattr(envelope, "to", None)) if addr]

    if P_SIZE in properties:
        size = data.get(b"RFC822.SIZE")
        record.size_bytes = int(size) if size is not None else None

    if P_CATEGORIES in properties:
        flags = [_b(f) for f in data.get(b"FLAGS", ())]
        record.categories = [f for f in flags if f and not f.startswith("\\")]

    return record


def _envelope_addrs(addr_list: Any) -> list[tuple[str, str]]:
    """Extract (name, email) pairs from an ENVELOPE address list.

    imapclient 3.x: addr_list is tuple[Address, ...] or None.
    Address has .name, .mailbox, .host (all bytes or None).
    """
    if not addr_list:
        return []
    result = []
    for addr in addr_list:
        name_raw = getattr(addr, "name", None)
        mailbox = _b(getattr(addr, "mailbox", None))
        host = _b(getattr(addr, "host", None))
        name = _decode_header(name_raw) if name_raw else ""
        # Group syntax markers have no host; skip them
        if not mailbox and not name:
            continue
        result.append((name, f"{mailbox}@{host}" if mailbox and host else mailbox))
    return result


def _decode_header(value: Any) -> str:
    """Decode an IMAP header value (bytes or encoded-word string)."""
    if value is None:
        return ""
    if isinstance(value, bytes):
        value = value.decode("utf-8", errors="replace")
    if not isinstance(value, str):
        return str(value)
    # Decode RFC 2047 encoded words
    try:
        decoded = ""
        for part, charset in email.header.decode_header(value):
            if isinstance(part, bytes):
                decoded += part.decode(charset or "utf-8", errors="replace")
            else:
                decoded += part
        return decoded
    except Exception:
        return value


def _b(val: Any) -> str:
    if isinstance(val, bytes):
        return val.decode("utf-8", errors="replace")
    return str(val) if val is not None else ""
