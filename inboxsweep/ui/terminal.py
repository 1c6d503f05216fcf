"""Curses implementation of the Terminal surface."""
from __future__ import annotations

import curses
import logging
from typing import Sequence

from inboxsweep.ui.controller import Frame, Terminal, format_cell
from inboxsweep.ui.list_state import InputEvent

logger = logging.getLogger(__name__)

# header, column titles, status, help
CHROME_ROWS = 4

KEYMAP: dict[int, InputEvent] = {
    curses.KEY_UP: InputEvent.UP,
    ord("k"): InputEvent.UP,
    curses.KEY_DOWN: InputEvent.DOWN,
    ord("j"): InputEvent.DOWN,
    curses.KEY_PPAGE: InputEvent.PAGE_UP,
    curses.KEY_NPAGE: InputEvent.PAGE_DOWN,
    curses.KEY_HOME: InputEvent.HOME,
    ord("g"): InputEvent.HOME,
    curses.KEY_END: InputEvent.END,
    ord("G"): InputEvent.END,
    ord(" "): InputEvent.TOGGLE_SELECT,
    ord("a"): InputEvent.SELECT_ALL,
    ord("u"): InputEvent.SELECT_NONE,
    curses.KEY_ENTER: InputEvent.ACTIVATE,
    10: InputEvent.ACTIVATE,
    13: InputEvent.ACTIVATE,
    ord("d"): InputEvent.DELETE,
    curses.KEY_DC: InputEvent.DELETE,
    ord("m"): InputEvent.MOVE,
    ord("r"): InputEvent.REFRESH,
    ord("/"): InputEvent.SEARCH,
    ord("t"): InputEvent.RECENT,
    ord("R"): InputEvent.REBUILD,
    ord("q"): InputEvent.QUIT,
    27: InputEvent.QUIT,
}


def map_key(ch: int) -> InputEvent:
    return KEYMAP.get(ch, InputEvent.UNKNOWN)


class CursesTerminal(Terminal):
    def __init__(self, stdscr) -> None:
        self.stdscr = stdscr
        self._last_frame: Frame | None = None
        try:
            curses.curs_set(0)
        except curses.error:
            pass
        stdscr.keypad(True)
        stdscr.timeout(-1)

    # ── Terminal interface ────────────────────────────────────────────────────

    def viewport_height(self) -> int:
        height, _ = self.stdscr.getmaxyx()
        return max(1, height - CHROME_ROWS)

    def render(self, frame: Frame) -> None:
        self._last_frame = frame
        self._draw(frame)
        self.stdscr.refresh()

    def read_event(self) -> InputEvent:
        ch = self.stdscr.getch()
        event = map_key(ch)
        logger.debug("key=%s event=%s", _key_name(ch), event.value)
        return event

    def confirm(self, prompt: str) -> bool:
        while True:
            self._redraw_with_status(f"{prompt} (y/n)", curses.A_BOLD)
            ch = self.stdscr.getch()
            if ch in (ord("y"), ord("Y")):
                return True
            if ch in (ord("n"), ord("N"), 27):
                return False

    def prompt_text(self, prompt: str, max_len: int = 200) -> str | None:
        value = ""
        try:
            curses.curs_set(1)
        except curses.error:
            pass
        try:
            while True:
                self._redraw_with_status(f"{prompt} {value}", curses.A_BOLD)
                ch = self.stdscr.getch()
                if ch == 27:
                    return None
                if ch in (curses.KEY_ENTER, 10, 13):
                    return value.strip()
                if ch in (curses.KEY_BACKSPACE, 127, 8):
                    value = value[:-1]
                elif 32 <= ch <= 126 and len(value) < max_len:
                    value += chr(ch)
        finally:
            try:
                curses.curs_set(0)
            except curses.error:
                pass

    def choose(self, title: str, lines: Sequence[str], choices: dict[str, str]) -> str | None:
        legend = "  ".join(f"[{key}] {label}" for key, label in choices.items())
        while True:
            self.stdscr.erase()
            height, width = self.stdscr.getmaxyx()
            self._safe_addstr(0, 0, _fit(title, width), curses.A_BOLD)
            for y, line in enumerate(lines[: max(0, height - 3)], start=2):
                self._safe_addstr(y, 0, _fit(line, width))
            self._safe_addstr(height - 1, 0, _fit(legend, width), curses.A_DIM)
            self.stdscr.refresh()
            ch = self.stdscr.getch()
            if ch == 27:
                return None
            if 0 <= ch < 256 and chr(ch) in choices:
                return chr(ch)

    def show_busy(self, message: str) -> None:
        self._redraw_with_status(message, curses.A_DIM)

    # ── Drawing ───────────────────────────────────────────────────────────────

    def _redraw_with_status(self, text: str, attr: int) -> None:
        height, width = self.stdscr.getmaxyx()
        if self._last_frame is not None:
            self._draw(self._last_frame, status_override=True)
        self._safe_addstr(height - 2, 0, " " * max(0, width - 1))
        self._safe_addstr(height - 2, 0, _fit(text, width), attr)
        self.stdscr.refresh()

    def _draw(self, frame: Frame, status_override: bool = False) -> None:
        self.stdscr.erase()
        height, width = self.stdscr.getmaxyx()
        state = frame.state

        selected = len(state.multi_select)
        header = f"InboxSweep | {frame.title} | {len(state.items)} item(s)"
        if selected:
            header += f" | {selected} selected"
        self._safe_addstr(0, 0, _fit(header, width), curses.A_BOLD)

        widths = _column_widths(frame.columns, width - 4)
        titles = "    " + " ".join(
            _pad(col.title, w, col.align_right) for col, w in zip(frame.columns, widths)
        )
        self._safe_addstr(1, 0, _fit(titles, width), curses.A_UNDERLINE)

        if not state.items:
            self._safe_addstr(2, 0, _fit(frame.empty_notice, width), curses.A_DIM)
        else:
            for offset, row in enumerate(state.visible_rows):
                index = state.top_visible_index + offset
                mark = "[x] " if state.is_selected(row) else "[ ] "
                cells = " ".join(
                    _pad(format_cell(row, col), w, col.align_right)
                    for col, w in zip(frame.columns, widths)
                )
                attr = curses.A_REVERSE if index == state.selected_index else curses.A_NORMAL
                self._safe_addstr(2 + offset, 0, _fit(mark + cells, width), attr)

        if not status_override:
            self._safe_addstr(height - 2, 0, _fit(frame.status, width), curses.A_DIM)
        self._safe_addstr(height - 1, 0, _fit(frame.help, width), curses.A_DIM)

    def _safe_addstr(self, y: int, x: int, text: str, attr: int = 0) -> None:
        try:
            self.stdscr.addstr(y, x, text, attr)
        except curses.error:
            pass


def _column_widths(columns, available: int) -> list[int]:
    fixed = sum(c.width for c in columns if c.width) + len(columns) - 1
    flex = [c for c in columns if not c.width]
    rest = max(8, available - fixed) // max(1, len(flex)) if flex else 0
    return [c.width or rest for c in columns]


def _pad(text: str, width: int, right: bool = False) -> str:
    text = _fit(text, width)
    return text.rjust(width) if right else text.ljust(width)


def _fit(text: str, width: int) -> str:
    if width <= 0:
        return ""
    if len(text) <= width:
        return text
    if width <= 3:
        return text[:width]
    return text[: width - 3] + "..."


def _key_name(ch: int) -> str:
    if ch == -1:
        return "NONE"
    if 32 <= ch <= 126:
        return chr(ch)
    return str(ch)
