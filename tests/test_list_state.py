"""Tests for the pure list-state transitions."""
from __future__ import annotations

import random

import pytest

from inboxsweep.ui.list_state import (
    Activate,
    BulkAction,
    BulkKind,
    Command,
    InputEvent,
    ListViewState,
    Mode,
    Reload,
    Row,
    action_rows,
    initial_state,
    reload,
    resize,
    transition,
)


def rows(n: int, prefix: str = "m") -> list[Row]:
    return [Row(id=f"{prefix}{i}", fields={"subject": f"Subject {i}"}) for i in range(n)]


def press(state: ListViewState, *events: InputEvent) -> ListViewState:
    for event in events:
        state, _ = transition(state, event)
    return state


def assert_invariants(state: ListViewState) -> None:
    if state.items:
        assert 0 <= state.selected_index < len(state.items)
        assert state.top_visible_index <= state.selected_index
        assert state.selected_index <= state.top_visible_index + state.viewport_height - 1
    ids = {r.id for r in state.items}
    assert state.multi_select <= ids


class TestNavigation:
    def test_cursor_driven_to_end_scrolls_minimally(self):
        state = initial_state(rows(25), viewport_height=10)
        state = press(state, *[InputEvent.DOWN] * 24)
        assert state.selected_index == 24
        assert state.top_visible_index == 15

    def test_down_clamps_at_last_item(self):
        state = press(initial_state(rows(3), 10), *[InputEvent.DOWN] * 7)
        assert state.selected_index == 2
        assert state.top_visible_index == 0

    def test_up_clamps_at_first_item(self):
        state = press(initial_state(rows(3), 10), InputEvent.UP, InputEvent.UP)
        assert state.selected_index == 0

    def test_scrolling_back_up(self):
        state = press(initial_state(rows(25), 10), *[InputEvent.DOWN] * 24)
        state = press(state, *[InputEvent.UP] * 10)
        assert state.selected_index == 14
        assert state.top_visible_index == 14

    def test_page_down_and_up(self):
        state = initial_state(rows(25), 10)
        state = press(state, InputEvent.PAGE_DOWN)
        assert (state.selected_index, state.top_visible_index) == (10, 1)
        state = press(state, InputEvent.PAGE_DOWN, InputEvent.PAGE_DOWN)
        assert (state.selected_index, state.top_visible_index) == (24, 15)
        state = press(state, InputEvent.PAGE_UP)
        assert (state.selected_index, state.top_visible_index) == (14, 14)
        state = press(state, InputEvent.PAGE_UP, InputEvent.PAGE_UP)
        assert (state.selected_index, state.top_visible_index) == (0, 0)

    def test_home_and_end(self):
        state = press(initial_state(rows(25), 10), InputEvent.END)
        assert (state.selected_index, state.top_visible_index) == (24, 15)
        state = press(state, InputEvent.HOME)
        assert (state.selected_index, state.top_visible_index) == (0, 0)

    def test_visible_rows_window(self):
        state = press(initial_state(rows(25), 10), InputEvent.END)
        assert [r.id for r in state.visible_rows] == [f"m{i}" for i in range(15, 25)]

    def test_random_walk_keeps_invariants(self):
        rng = random.Random(1234)
        events = list(InputEvent)
        state = initial_state(rows(37), 7)
        for _ in range(2000):
            event = rng.choice(events)
            if event is InputEvent.QUIT:
                continue
            state, _ = transition(state, event)
            assert_invariants(state)
            if rng.random() < 0.05:
                state = resize(state, rng.randint(1, 15))
                assert_invariants(state)


class TestSelection:
    def test_toggle_twice_restores_selection(self):
        state = press(initial_state(rows(5), 3), InputEvent.DOWN, InputEvent.TOGGLE_SELECT)
        before = state.multi_select
        state = press(state, InputEvent.DOWN, InputEvent.TOGGLE_SELECT, InputEvent.TOGGLE_SELECT)
        assert state.multi_select == before == frozenset({"m1"})

    def test_select_all_covers_whole_sequence(self):
        state = press(initial_state(rows(25), 10), InputEvent.SELECT_ALL)
        assert state.multi_select == frozenset(f"m{i}" for i in range(25))

    def test_select_none(self):
        state = press(initial_state(rows(5), 10), InputEvent.SELECT_ALL, InputEvent.SELECT_NONE)
        assert state.multi_select == frozenset()


class TestIntents:
    def test_activate_targets_focused_row_only(self):
        state = press(initial_state(rows(5), 10), InputEvent.SELECT_ALL, InputEvent.DOWN)
        _, intents = transition(state, InputEvent.ACTIVATE)
        assert intents == [Activate(state.items[1])]

    def test_delete_uses_selection_in_list_order(self):
        state = initial_state(rows(5), 10)
        state = press(state, InputEvent.END, InputEvent.TOGGLE_SELECT, InputEvent.HOME, InputEvent.TOGGLE_SELECT)
        _, intents = transition(state, InputEvent.DELETE)
        assert len(intents) == 1
        assert intents[0].kind is BulkKind.DELETE
        assert [r.id for r in intents[0].rows] == ["m0", "m4"]

    def test_move_without_selection_uses_focused_row(self):
        state = press(initial_state(rows(5), 10), InputEvent.DOWN, InputEvent.DOWN)
        _, intents = transition(state, InputEvent.MOVE)
        assert intents == [BulkAction(BulkKind.MOVE, (state.items[2],))]

    def test_refresh_and_commands(self):
        state = initial_state(rows(2), 10)
        assert transition(state, InputEvent.REFRESH)[1] == [Reload()]
        for event in (InputEvent.SEARCH, InputEvent.RECENT, InputEvent.REBUILD):
            assert transition(state, event)[1] == [Command(event)]

    def test_unknown_input_is_ignored(self):
        state = press(initial_state(rows(5), 10), InputEvent.DOWN)
        new, intents = transition(state, InputEvent.UNKNOWN)
        assert new == state
        assert intents == []

    def test_quit_exits(self):
        state, intents = transition(initial_state(rows(5), 10), InputEvent.QUIT)
        assert state.mode is Mode.EXIT
        assert intents == []

    def test_action_rows_empty_state(self):
        assert action_rows(initial_state([], 10)) == ()


class TestEmptyState:
    def test_empty_items_enter_empty_mode(self):
        state = initial_state([], 10)
        assert state.mode is Mode.EMPTY
        assert state.focused is None

    @pytest.mark.parametrize("event", [e for e in InputEvent if e is not InputEvent.QUIT])
    def test_empty_state_ignores_everything_but_quit(self, event):
        state = initial_state([], 10)
        assert transition(state, event) == (state, [])

    def test_empty_state_quits(self):
        state, _ = transition(initial_state([], 10), InputEvent.QUIT)
        assert state.mode is Mode.EXIT


class TestReload:
    def test_empty_refresh_exits(self):
        state = reload(initial_state(rows(5), 10), [])
        assert state.mode is Mode.EXIT

    def test_prunes_stale_selection(self):
        state = press(initial_state(rows(5), 10), InputEvent.SELECT_ALL)
        state = reload(state, rows(5)[2:])
        assert state.multi_select == frozenset({"m2", "m3", "m4"})
        assert_invariants(state)

    def test_reclamps_cursor_when_items_shrink(self):
        state = press(initial_state(rows(25), 10), InputEvent.END)
        state = reload(state, rows(12))
        assert state.selected_index == 11
        assert state.top_visible_index == 2
        assert_invariants(state)

    def test_keeps_cursor_position_when_possible(self):
        state = press(initial_state(rows(25), 10), *[InputEvent.DOWN] * 5)
        state = reload(state, rows(24))
        assert state.selected_index == 5
        assert state.mode is Mode.BROWSING

    def test_empty_state_becomes_browsing_on_items(self):
        state = reload(initial_state([], 10), rows(3))
        assert state.mode is Mode.BROWSING
        assert state.focused.id == "m0"


class TestResize:
    def test_shrinking_viewport_keeps_cursor_visible(self):
        state = press(initial_state(rows(25), 10), *[InputEvent.DOWN] * 9)
        state = resize(state, 4)
        assert state.viewport_height == 4
        assert_invariants(state)
        assert state.top_visible_index == 6

    def test_viewport_never_below_one(self):
        state = resize(initial_state(rows(3), 10), 0)
        assert state.viewport_height == 1
