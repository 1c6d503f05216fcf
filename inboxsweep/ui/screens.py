"""Domain overview, email list, detail and folder picker screens.

Each screen is a SelectableListController over a data source plus a
ListHandler that turns intents into sender-index or bulk-executor calls.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass

from inboxsweep.actions.bulk import ActionKind, BulkActionExecutor, BulkActionRequest, BulkResult
from inboxsweep.imap.gateway import GatewayError, MailboxGateway
from inboxsweep.index.sender_index import RECENT_VIEW, SEARCH_VIEW, SenderIndex
from inboxsweep.models.message import MessageRecord
from inboxsweep.ui.controller import (
    Column,
    ListHandler,
    Outcome,
    SelectableListController,
    Terminal,
)
from inboxsweep.ui.list_state import BulkKind, InputEvent, Row
from inboxsweep.ui.sources import (
    FOLDER_PICKER,
    OVERVIEW,
    CachedDomainSource,
    DataSource,
    DomainOverviewSource,
    FolderSource,
    RemoteViewSource,
    ViewContext,
)
from inboxsweep.utils.size_fmt import human_size

logger = logging.getLogger(__name__)

DOMAIN_COLUMNS = (
    Column("domain", "Domain"),
    Column("count", "Msgs", 7, align_right=True),
    Column("size", "Size", 10, fmt=human_size, align_right=True),
)
MESSAGE_COLUMNS = (
    Column("received", "Received", 16),
    Column("sender", "From", 32),
    Column("subject", "Subject"),
    Column("size", "Size", 9, fmt=human_size, align_right=True),
)
FOLDER_COLUMNS = (
    Column("folder", "Folder"),
    Column("parent", "Parent", 24),
)

OVERVIEW_HELP = (
    "j/k: move | PgUp/PgDn | Enter: open | Space: select | a/u: all/none | "
    "d: delete | m: move | t: recent | /: search | r: refresh | R: rebuild | q: quit"
)
LIST_HELP = (
    "j/k: move | PgUp/PgDn | Enter: open | Space: select | a/u: all/none | "
    "d: delete | m: move | r: refresh | q: back"
)
PICKER_HELP = "j/k: move | Enter: choose | q/Esc: cancel"

_KIND = {BulkKind.DELETE: ActionKind.DELETE, BulkKind.MOVE: ActionKind.MOVE}


@dataclass
class SessionSettings:
    index_max_count: int = 0
    recent_days: int = 7
    search_max_results: int = 500


class Session:
    """Wires the index, gateway and executor to a terminal."""

    def __init__(
        self,
        gateway: MailboxGateway,
        index: SenderIndex,
        terminal: Terminal,
        settings: SessionSettings | None = None,
        source_folder: str | None = None,
    ) -> None:
        self.gateway = gateway
        self.index = index
        self.terminal = terminal
        self.settings = settings or SessionSettings()
        self.source_folder = source_folder
        self.report_lines: list[str] = []
        self.executor = BulkActionExecutor(
            gateway, index, confirm=terminal.confirm, report=self.report_lines.append,
        )

    # ── Screens ───────────────────────────────────────────────────────────────

    def run(self) -> None:
        """Domain overview; returns when the operator quits."""
        self._controller(
            DomainOverviewSource(self.index),
            ViewContext(OVERVIEW),
            DomainOverviewHandler(self),
            DOMAIN_COLUMNS,
            OVERVIEW_HELP,
            "Index is empty. Run again with --rebuild, or press q to quit.",
        ).run()

    def open_domain(self, domain_key: str) -> None:
        self._controller(
            CachedDomainSource(self.index),
            ViewContext(domain_key),
            MessageListHandler(self),
            MESSAGE_COLUMNS,
            LIST_HELP,
            f"No cached messages for {domain_key}.",
        ).run()

    def open_live_view(self, context: ViewContext) -> None:
        source = RemoteViewSource(
            self.gateway, self.settings.search_max_results, self.settings.recent_days,
        )
        self.terminal.show_busy(f"Loading {context.title}...")
        self._controller(
            source, context, MessageListHandler(self), MESSAGE_COLUMNS, LIST_HELP,
            "No messages found. Press q to go back.",
        ).run()

    def pick_folder(self) -> str | None:
        """Folder picker for moves; None when cancelled."""
        self.terminal.show_busy("Loading folders...")
        handler = FolderPickerHandler()
        self._controller(
            FolderSource(self.gateway, exclude=self.source_folder),
            ViewContext(FOLDER_PICKER),
            handler,
            FOLDER_COLUMNS,
            PICKER_HELP,
            "No other folders. Press q to cancel.",
        ).run()
        return handler.chosen

    def show_detail(self, record: MessageRecord) -> str | None:
        lines = [
            f"From:       {record.sender_display or '-'}",
            f"To:         {', '.join(record.recipients) or '-'}",
            f"Subject:    {record.subject or '-'}",
            f"Received:   {record.received_at.isoformat() if record.received_at else '-'}",
            f"Size:       {human_size(record.size_bytes)}",
            f"Categories: {', '.join(record.categories) or '-'}",
            f"Id:         {record.message_id or '-'}",
        ]
        return self.terminal.choose(
            "Message", lines, {"d": "delete", "m": "move", "b": "back"},
        )

    def rebuild_index(self) -> int:
        self.terminal.show_busy("Rebuilding index...")
        return self.index.rebuild(self.gateway, self.settings.index_max_count or None)

    # ── Bulk actions ──────────────────────────────────────────────────────────

    def run_messages_action(self, kind: ActionKind, records: list[MessageRecord], view_key: str) -> BulkResult | None:
        destination = None
        if kind is ActionKind.MOVE:
            destination = self.pick_folder()
            if destination is None:
                return None
        request = BulkActionRequest(
            targets=tuple(records), kind=kind, view_key=view_key,
            destination_folder_id=destination,
        )
        return self._with_report(lambda: self.executor.execute(request))

    def run_domains_action(self, kind: ActionKind, domain_keys: list[str]) -> list[BulkResult]:
        keys = []
        for key in domain_keys:
            if self.index.messages_for(key):
                keys.append(key)
            else:
                logger.info("Skipping %s: no cached messages", key)
        if not keys:
            return []
        destination = None
        if kind is ActionKind.MOVE:
            destination = self.pick_folder()
            if destination is None:
                return []
        return self._with_report(lambda: self.executor.execute_domains(keys, kind, destination))

    def _with_report(self, call):
        self.report_lines.clear()
        outcome = call()
        results = outcome if isinstance(outcome, list) else [outcome]
        if any(r.failures for r in results):
            self.terminal.choose("Bulk action report", list(self.report_lines), {"b": "back"})
        return outcome

    def _controller(self, source: DataSource, context: ViewContext, handler: ListHandler,
                    columns, help_text: str, empty_notice: str) -> SelectableListController:
        return SelectableListController(
            source, context, handler, self.terminal, columns,
            help_text=help_text, empty_notice=empty_notice,
        )


class DomainOverviewHandler(ListHandler):
    def __init__(self, session: Session) -> None:
        self._session = session

    def on_activate(self, ctl, row: Row) -> Outcome:
        self._session.open_domain(row.payload)
        return Outcome.REFRESH

    def on_bulk_action(self, ctl, kind: BulkKind, rows: tuple[Row, ...]) -> Outcome:
        results = self._session.run_domains_action(_KIND[kind], [r.payload for r in rows])
        done = [r for r in results if not r.cancelled]
        if not done:
            ctl.status = "Cancelled."
            return Outcome.NONE
        succeeded = sum(r.succeeded for r in done)
        failed = sum(r.failed for r in done)
        ctl.status = f"{kind.value}: {succeeded} succeeded, {failed} failed"
        if any(r.stale_domain for r in done):
            ctl.status += " (some domains may be stale, press R to rebuild)"
        return Outcome.REFRESH

    def on_command(self, ctl, event: InputEvent) -> Outcome:
        if event is InputEvent.REBUILD:
            if not ctl.terminal.confirm("Rebuild the index from the server?"):
                return Outcome.NONE
            try:
                count = self._session.rebuild_index()
            except GatewayError as exc:
                logger.error("Rebuild failed: %s", exc)
                ctl.status = f"Rebuild failed: {exc}"
                return Outcome.REFRESH
            ctl.status = f"Indexed {count} message(s) in {len(self._session.index)} domain(s)"
            return Outcome.REFRESH
        if event is InputEvent.RECENT:
            self._session.open_live_view(ViewContext(RECENT_VIEW))
            return Outcome.REFRESH
        if event is InputEvent.SEARCH:
            term = ctl.terminal.prompt_text("Search:")
            if not term:
                return Outcome.NONE
            self._session.open_live_view(ViewContext(SEARCH_VIEW, search_term=term))
            return Outcome.REFRESH
        return Outcome.NONE


class MessageListHandler(ListHandler):
    def __init__(self, session: Session) -> None:
        self._session = session

    def on_activate(self, ctl, row: Row) -> Outcome:
        choice = self._session.show_detail(row.payload)
        if choice == "d":
            return self.on_bulk_action(ctl, BulkKind.DELETE, (row,))
        if choice == "m":
            return self.on_bulk_action(ctl, BulkKind.MOVE, (row,))
        return Outcome.NONE

    def on_bulk_action(self, ctl, kind: BulkKind, rows: tuple[Row, ...]) -> Outcome:
        result = self._session.run_messages_action(
            _KIND[kind], [r.payload for r in rows], ctl.context.view_key,
        )
        if result is None or result.cancelled:
            ctl.status = "Cancelled."
            return Outcome.NONE
        ctl.status = f"{kind.value}: {result.summary}"
        return Outcome.REFRESH


class FolderPickerHandler(ListHandler):
    def __init__(self) -> None:
        self.chosen: str | None = None

    def on_activate(self, ctl, row: Row) -> Outcome:
        self.chosen = row.payload
        return Outcome.EXIT
