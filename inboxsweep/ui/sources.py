"""Data sources — the sequences list screens render.

Each source exposes one operation, ``fetch(context)``, returning the current
rows for the view named by the context.  Screens call it on entry and again
after every mutating action.
"""
from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

from inboxsweep.imap.gateway import MailboxGateway
from inboxsweep.index.sender_index import RECENT_VIEW, SEARCH_VIEW, SenderIndex
from inboxsweep.models.message import MessageRecord
from inboxsweep.ui.list_state import Row

logger = logging.getLogger(__name__)

OVERVIEW = "overview"
FOLDER_PICKER = "folder-picker"


@dataclass(frozen=True)
class ViewContext:
    view_key: str
    search_term: str | None = None

    @property
    def title(self) -> str:
        if self.view_key == OVERVIEW:
            return "Domains"
        if self.view_key == FOLDER_PICKER:
            return "Move to folder"
        if self.view_key == RECENT_VIEW:
            return "Recent messages"
        if self.view_key == SEARCH_VIEW:
            return f"Search: {self.search_term or ''}"
        return self.view_key


class DataSource(ABC):
    @abstractmethod
    def fetch(self, context: ViewContext) -> list[Row]:
        """Return the current row sequence for *context*."""


def message_rows(records: list[MessageRecord]) -> list[Row]:
    rows = []
    for i, record in enumerate(records):
        rows.append(Row(
            id=record.message_id or f"#{i}",
            fields={
                "received": record.received_at.strftime("%Y-%m-%d %H:%M") if record.received_at else None,
                "sender": record.sender_display or None,
                "subject": record.subject or None,
                "size": record.size_bytes,
                "categories": ", ".join(record.categories) or None,
            },
            payload=record,
        ))
    return rows


class DomainOverviewSource(DataSource):
    """One row per sender domain in the index."""

    def __init__(self, index: SenderIndex) -> None:
        self._index = index

    def fetch(self, context: ViewContext) -> list[Row]:
        return [
            Row(
                id=bucket.domain_key,
                fields={
                    "domain": bucket.domain_key,
                    "count": bucket.message_count,
                    "size": bucket.total_size_bytes,
                },
                payload=bucket.domain_key,
            )
            for bucket in self._index.domains()
        ]


class CachedDomainSource(DataSource):
    """Messages of one domain, served from the index."""

    def __init__(self, index: SenderIndex) -> None:
        self._index = index

    def fetch(self, context: ViewContext) -> list[Row]:
        return message_rows(self._index.messages_for(context.view_key))


class RemoteViewSource(DataSource):
    """Live gateway queries for the recent and search views; never cached."""

    def __init__(self, gateway: MailboxGateway, max_count: int, recent_days: int) -> None:
        self._gateway = gateway
        self._max_count = max_count
        self._recent_days = recent_days

    def fetch(self, context: ViewContext) -> list[Row]:
        if context.view_key == RECENT_VIEW:
            since = datetime.now(timezone.utc) - timedelta(days=self._recent_days)
            records = self._gateway.fetch_messages(since=since, max_count=self._max_count)
        elif context.view_key == SEARCH_VIEW:
            if not context.search_term:
                return []
            records = self._gateway.fetch_messages(search=context.search_term, max_count=self._max_count)
        else:
            raise ValueError(f"not a live view: {context.view_key!r}")
        logger.info("%s returned %d message(s)", context.title, len(records))
        return message_rows(records)


class FolderSource(DataSource):
    """Destination folders for a move, minus the folder being triaged."""

    def __init__(self, gateway: MailboxGateway, exclude: str | None = None) -> None:
        self._gateway = gateway
        self._exclude = exclude

    def fetch(self, context: ViewContext) -> list[Row]:
        return [
            Row(
                id=folder.id,
                fields={"folder": folder.id, "parent": folder.parent_id},
                payload=folder.id,
            )
            for folder in self._gateway.list_folders()
            if folder.id != self._exclude
        ]
