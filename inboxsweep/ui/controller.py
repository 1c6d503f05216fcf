"""Selectable list controller — the effect shell around list_state.

The loop is strictly sequential: render, block for one input event, apply
the pure transition, then carry out the resulting intents through a
ListHandler.  A handler answers with an Outcome; REFRESH re-fetches the
rows from the data source, EXIT closes the screen.
"""
from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, replace
from enum import Enum
from typing import Any, Callable, Sequence

from inboxsweep.imap.gateway import GatewayError
from inboxsweep.ui.list_state import (
    Activate,
    BulkAction,
    BulkKind,
    Command,
    InputEvent,
    Intent,
    ListViewState,
    Mode,
    Reload,
    Row,
    initial_state,
    reload,
    resize,
    transition,
)
from inboxsweep.ui.sources import DataSource, ViewContext

logger = logging.getLogger(__name__)

PLACEHOLDER = "-"


class Outcome(str, Enum):
    NONE = "none"
    REFRESH = "refresh"
    EXIT = "exit"


@dataclass(frozen=True)
class Column:
    key: str
    title: str
    width: int = 0          # 0 = take the remaining width
    fmt: Callable[[Any], str] | None = None
    align_right: bool = False


def format_cell(row: Row, column: Column) -> str:
    """Text for one cell; missing or unformattable values render as PLACEHOLDER."""
    value = row.fields.get(column.key)
    if value is None or value == "":
        return PLACEHOLDER
    try:
        text = column.fmt(value) if column.fmt else str(value)
    except (TypeError, ValueError) as exc:
        logger.debug("Cannot format %s=%r: %s", column.key, value, exc)
        return PLACEHOLDER
    return " ".join(text.split()) or PLACEHOLDER


@dataclass(frozen=True)
class Frame:
    """Everything a terminal needs to draw one list screen."""
    title: str
    columns: Sequence[Column]
    state: ListViewState
    status: str = ""
    help: str = ""
    empty_notice: str = "Nothing to show."


class Terminal(ABC):
    """Blocking terminal surface used by controllers and screens."""

    @abstractmethod
    def viewport_height(self) -> int:
        """Number of list rows that fit on screen."""

    @abstractmethod
    def render(self, frame: Frame) -> None: ...

    @abstractmethod
    def read_event(self) -> InputEvent:
        """Block for one key and map it to the input vocabulary."""

    @abstractmethod
    def confirm(self, prompt: str) -> bool:
        """Two-option prompt; True only on an explicit affirmative."""

    @abstractmethod
    def prompt_text(self, prompt: str, max_len: int = 200) -> str | None:
        """Single-line text entry; None when cancelled."""

    @abstractmethod
    def choose(self, title: str, lines: Sequence[str], choices: dict[str, str]) -> str | None:
        """Show *lines* and wait for one of the quick-choice characters."""

    @abstractmethod
    def show_busy(self, message: str) -> None:
        """Paint a status message before a blocking call."""


class ListHandler:
    """Screen-specific reactions to controller intents.  Defaults do nothing."""

    def on_activate(self, ctl: SelectableListController, row: Row) -> Outcome:
        return Outcome.NONE

    def on_bulk_action(self, ctl: SelectableListController, kind: BulkKind, rows: tuple[Row, ...]) -> Outcome:
        return Outcome.NONE

    def on_command(self, ctl: SelectableListController, event: InputEvent) -> Outcome:
        return Outcome.NONE


class SelectableListController:
    def __init__(
        self,
        source: DataSource,
        context: ViewContext,
        handler: ListHandler,
        terminal: Terminal,
        columns: Sequence[Column],
        help_text: str = "",
        empty_notice: str = "Nothing to show.",
    ) -> None:
        self.source = source
        self.context = context
        self.terminal = terminal
        self.status = ""
        self.state = ListViewState()
        self._handler = handler
        self._columns = columns
        self._help = help_text
        self._empty_notice = empty_notice

    def run(self) -> ListViewState:
        """Run the screen until it exits; returns the final state."""
        self.state = initial_state(self._fetch(), self.terminal.viewport_height())
        logger.debug("Screen %s opened with %d row(s)", self.context.title, len(self.state.items))
        while self.state.mode is not Mode.EXIT:
            self.state = resize(self.state, self.terminal.viewport_height())
            self.terminal.render(self.frame())
            event = self.terminal.read_event()
            self.state, intents = transition(self.state, event)
            for intent in intents:
                if self._dispatch(intent) is Outcome.EXIT:
                    self.state = replace(self.state, mode=Mode.EXIT)
                    break
        logger.debug("Screen %s closed", self.context.title)
        return self.state

    def frame(self) -> Frame:
        return Frame(
            title=self.context.title,
            columns=self._columns,
            state=self.state,
            status=self.status,
            help=self._help,
            empty_notice=self._empty_notice,
        )

    def refresh(self) -> None:
        self.state = reload(self.state, self._fetch())

    def _fetch(self) -> list[Row]:
        try:
            return self.source.fetch(self.context)
        except GatewayError as exc:
            logger.error("Fetching %s failed: %s", self.context.title, exc)
            self.status = f"Error: {exc}"
            return list(self.state.items)

    def _dispatch(self, intent: Intent) -> Outcome:
        try:
            if isinstance(intent, Activate):
                outcome = self._handler.on_activate(self, intent.row)
            elif isinstance(intent, BulkAction):
                outcome = self._handler.on_bulk_action(self, intent.kind, intent.rows)
            elif isinstance(intent, Command):
                outcome = self._handler.on_command(self, intent.event)
            elif isinstance(intent, Reload):
                outcome = Outcome.REFRESH
            else:
                outcome = Outcome.NONE
        except GatewayError as exc:
            logger.error("Action failed: %s", exc)
            self.status = f"Error: {exc}"
            return Outcome.NONE

        if outcome is Outcome.REFRESH:
            self.refresh()
            if self.state.mode is Mode.EXIT:
                return Outcome.EXIT
        return outcome
