"""Selectable list state — pure transitions, no terminal involved.

A ListViewState describes one list screen: the backing rows, the focused
row, the first visible row, the multi-select set and the viewport height.
``transition(state, event)`` returns the next state plus the intents the
effect shell has to carry out (open a detail view, run a bulk action,
reload, screen commands).  All functions here keep the invariants

    0 <= selected_index < len(items)                        (non-empty)
    top_visible_index <= selected_index < top_visible_index + viewport_height
    multi_select is a subset of the ids in items
"""
from __future__ import annotations

from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Mapping, Sequence, Union


class InputEvent(str, Enum):
    UP = "up"
    DOWN = "down"
    PAGE_UP = "page_up"
    PAGE_DOWN = "page_down"
    HOME = "home"
    END = "end"
    TOGGLE_SELECT = "toggle_select"
    SELECT_ALL = "select_all"
    SELECT_NONE = "select_none"
    ACTIVATE = "activate"
    DELETE = "delete"
    MOVE = "move"
    REFRESH = "refresh"
    SEARCH = "search"
    RECENT = "recent"
    REBUILD = "rebuild"
    QUIT = "quit"
    UNKNOWN = "unknown"


class Mode(str, Enum):
    EMPTY = "empty"
    BROWSING = "browsing"
    EXIT = "exit"


class BulkKind(str, Enum):
    DELETE = "delete"
    MOVE = "move"


@dataclass(frozen=True)
class Row:
    id: str
    fields: Mapping[str, Any] = field(default_factory=dict)
    payload: Any = None


@dataclass(frozen=True)
class Activate:
    row: Row


@dataclass(frozen=True)
class BulkAction:
    kind: BulkKind
    rows: tuple[Row, ...]


@dataclass(frozen=True)
class Reload:
    pass


@dataclass(frozen=True)
class Command:
    event: InputEvent


Intent = Union[Activate, BulkAction, Reload, Command]


@dataclass(frozen=True)
class ListViewState:
    items: tuple[Row, ...] = ()
    selected_index: int = 0
    top_visible_index: int = 0
    multi_select: frozenset[str] = frozenset()
    viewport_height: int = 1
    mode: Mode = Mode.EMPTY

    @property
    def focused(self) -> Row | None:
        if self.mode is not Mode.BROWSING or not self.items:
            return None
        return self.items[self.selected_index]

    @property
    def visible_rows(self) -> tuple[Row, ...]:
        return self.items[self.top_visible_index: self.top_visible_index + self.viewport_height]

    def is_selected(self, row: Row) -> bool:
        return row.id in self.multi_select


def initial_state(items: Sequence[Row], viewport_height: int) -> ListViewState:
    items = tuple(items)
    height = max(1, viewport_height)
    if not items:
        return ListViewState(viewport_height=height, mode=Mode.EMPTY)
    return ListViewState(items=items, viewport_height=height, mode=Mode.BROWSING)


_COMMANDS = frozenset({InputEvent.SEARCH, InputEvent.RECENT, InputEvent.REBUILD})


def transition(state: ListViewState, event: InputEvent) -> tuple[ListViewState, list[Intent]]:
    if event is InputEvent.QUIT:
        return replace(state, mode=Mode.EXIT), []
    if state.mode is not Mode.BROWSING:
        return state, []

    n = len(state.items)
    if event is InputEvent.UP:
        return _move_to(state, state.selected_index - 1), []
    if event is InputEvent.DOWN:
        return _move_to(state, state.selected_index + 1), []
    if event is InputEvent.PAGE_UP:
        return _move_to(state, state.selected_index - state.viewport_height), []
    if event is InputEvent.PAGE_DOWN:
        return _move_to(state, state.selected_index + state.viewport_height), []
    if event is InputEvent.HOME:
        return _move_to(state, 0), []
    if event is InputEvent.END:
        return _move_to(state, n - 1), []

    focused = state.items[state.selected_index]
    if event is InputEvent.TOGGLE_SELECT:
        return replace(state, multi_select=state.multi_select ^ {focused.id}), []
    if event is InputEvent.SELECT_ALL:
        return replace(state, multi_select=frozenset(r.id for r in state.items)), []
    if event is InputEvent.SELECT_NONE:
        return replace(state, multi_select=frozenset()), []

    if event is InputEvent.ACTIVATE:
        return state, [Activate(focused)]
    if event in (InputEvent.DELETE, InputEvent.MOVE):
        kind = BulkKind.DELETE if event is InputEvent.DELETE else BulkKind.MOVE
        return state, [BulkAction(kind, action_rows(state))]
    if event is InputEvent.REFRESH:
        return state, [Reload()]
    if event in _COMMANDS:
        return state, [Command(event)]

    return state, []


def action_rows(state: ListViewState) -> tuple[Row, ...]:
    """Rows a bulk action applies to: the selection in list order, else the focused row."""
    if state.multi_select:
        return tuple(r for r in state.items if r.id in state.multi_select)
    focused = state.focused
    return (focused,) if focused is not None else ()


def reload(state: ListViewState, items: Sequence[Row]) -> ListViewState:
    """Swap in a refreshed sequence; an empty one ends the screen."""
    items = tuple(items)
    if not items:
        return replace(state, items=(), multi_select=frozenset(), selected_index=0,
                       top_visible_index=0, mode=Mode.EXIT)
    ids = {r.id for r in items}
    new = replace(
        state,
        items=items,
        multi_select=frozenset(i for i in state.multi_select if i in ids),
        mode=Mode.BROWSING,
    )
    return _move_to(new, state.selected_index)


def resize(state: ListViewState, viewport_height: int) -> ListViewState:
    height = max(1, viewport_height)
    if height == state.viewport_height:
        return state
    new = replace(state, viewport_height=height)
    if not new.items:
        return new
    return _move_to(new, new.selected_index)


def _move_to(state: ListViewState, index: int) -> ListViewState:
    """Clamp the cursor and scroll the viewport minimally to keep it visible."""
    n = len(state.items)
    index = max(0, min(index, n - 1))
    top = state.top_visible_index
    if index < top:
        top = index
    elif index > top + state.viewport_height - 1:
        top = index - state.viewport_height + 1
    top = max(0, min(top, max(0, n - state.viewport_height)))
    return replace(state, selected_index=index, top_visible_index=top)
