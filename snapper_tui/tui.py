from __future__ import annotations

import curses
from dataclasses import dataclass
from typing import List, Optional, Tuple

from snapper_tui import __version__
from snapper_tui.formatting import clamp, display_width, format_size, pad_to_width, truncate_to_width, wrap_text
from snapper_tui.layout import (
    FOOTER_BUTTONS,
    FOOTER_LEAD,
    ROW_PREFIX_W,
    Layout,
    Rect,
    column_spans,
    compute_layout,
    footer_button_spans,
)
from snapper_tui.models import Snapshot
from snapper_tui.session import (
    MODE_APPLY_CONFIRM,
    MODE_CREATE_INPUT,
    MODE_DELETE_CONFIRM,
    MODE_FILTER_INPUT,
    MODE_NORMAL,
    MODE_SPLASH,
    MOUSE_CLICK,
    MOUSE_WHEEL_DOWN,
    MOUSE_WHEEL_UP,
    POLL_TIMEOUT_MS,
    AppState,
    Event,
    MouseEvent,
    run,
    start_session,
)


SPINNER_FRAMES = ("|", "/", "-", "\\")


def spinner_frame(frame: int) -> str:
    # ASCII-safe; advances once per loop tick.
    return SPINNER_FRAMES[frame % len(SPINNER_FRAMES)]


@dataclass(frozen=True)
class Theme:
    cursor_attr: int
    marked_attr: int
    heading_attr: int
    title_attr: int
    ok_attr: int
    busy_attr: int
    danger_attr: int
    warn_attr: int
    button_attr: int


def _fallback_theme() -> Theme:
    return Theme(
        cursor_attr=curses.A_REVERSE | curses.A_BOLD,
        marked_attr=curses.A_BOLD,
        heading_attr=curses.A_REVERSE,
        title_attr=curses.A_BOLD,
        ok_attr=0,
        busy_attr=curses.A_BOLD,
        danger_attr=curses.A_BOLD,
        warn_attr=curses.A_BOLD,
        button_attr=curses.A_REVERSE,
    )


def _init_theme() -> Theme:
    if not curses.has_colors():
        return _fallback_theme()
    try:
        curses.start_color()
    except Exception:
        return _fallback_theme()
    try:
        curses.use_default_colors()
        bg = -1
    except Exception:
        bg = curses.COLOR_BLACK

    try:
        curses.init_pair(1, curses.COLOR_BLACK, curses.COLOR_CYAN)  # headings
        curses.init_pair(2, curses.COLOR_CYAN, bg)  # titles
        curses.init_pair(3, curses.COLOR_GREEN, bg)  # idle message
        curses.init_pair(4, curses.COLOR_YELLOW, bg)  # busy message / apply
        curses.init_pair(5, curses.COLOR_RED, bg)  # delete
        curses.init_pair(6, curses.COLOR_MAGENTA, bg)  # multi-selection
        return Theme(
            cursor_attr=curses.A_REVERSE | curses.A_BOLD,
            marked_attr=curses.color_pair(6) | curses.A_BOLD,
            heading_attr=curses.color_pair(1),
            title_attr=curses.color_pair(2) | curses.A_BOLD,
            ok_attr=curses.color_pair(3),
            busy_attr=curses.color_pair(4),
            danger_attr=curses.color_pair(5) | curses.A_BOLD,
            warn_attr=curses.color_pair(4) | curses.A_BOLD,
            button_attr=curses.color_pair(1),
        )
    except Exception:
        return _fallback_theme()


def _safe_addstr(win: "curses.window", y: int, x: int, s: str, attr: int = 0) -> None:
    try:
        win.addstr(y, x, s, attr)
    except curses.error:
        # Ignore drawing errors at borders / tiny terminals.
        return


class _Pane:
    """
    A bordered pane: an outer window for the frame and an inner content window.

    Rows are cached so unchanged lines are not re-sent to the terminal.
    """

    def __init__(self, stdscr: "curses.window", rect: Rect) -> None:
        self.rect = rect
        self.outer: Optional["curses.window"] = None
        self.inner: Optional["curses.window"] = None
        if rect.h <= 0 or rect.w <= 0:
            return
        self.outer = stdscr.derwin(rect.h, rect.w, rect.y, rect.x)
        self.outer.leaveok(True)
        if rect.h >= 3 and rect.w >= 4:
            self.inner = self.outer.derwin(rect.h - 2, rect.w - 2, 1, 1)
            self.inner.leaveok(True)
        self._frame_key: Optional[Tuple[str, int]] = None
        self._inner_cache: List[Tuple[str, int]] = []

    @property
    def inner_size(self) -> Tuple[int, int]:
        return max(0, self.rect.h - 2), max(0, self.rect.w - 2)

    def draw_frame(self, title: str, *, attr: int = 0, force: bool = False) -> None:
        if self.outer is None:
            return
        key = (title, attr)
        if not force and self._frame_key == key:
            return
        self._frame_key = key
        try:
            self.outer.box()
        except curses.error:
            return
        if title and self.rect.w > 4:
            t = truncate_to_width(f" {title} ", self.rect.w - 4)
            _safe_addstr(self.outer, 0, 2, t, attr)
        try:
            self.outer.noutrefresh()
        except curses.error:
            return

    def draw_inner_rows(self, rows: List[Tuple[str, int]], *, force: bool = False) -> None:
        if self.inner is None:
            return
        inner_h, inner_w = self.inner_size
        if inner_h <= 0 or inner_w <= 0:
            return
        if len(self._inner_cache) != inner_h:
            self._inner_cache = [("", -1) for _ in range(inner_h)]
            force = True
        changed = force

        blank = (" " * inner_w, 0)
        for i in range(inner_h):
            if i < len(rows):
                s, attr = rows[i]
                row = (pad_to_width(s, inner_w), attr)
            else:
                row = blank
            if not force and self._inner_cache[i] == row:
                continue
            # The bottom-right cell raises curses.error after writing; harmless.
            _safe_addstr(self.inner, i, 0, row[0], row[1])
            self._inner_cache[i] = row
            changed = True

        if changed:
            try:
                self.inner.noutrefresh()
            except curses.error:
                return


# Pure row builders (no curses windows involved).


def _cells(s: Snapshot) -> List[str]:
    return [
        str(s.number),
        s.type,
        s.date,
        s.user,
        format_size(s.used_space) if s.used_space is not None else "",
        s.description,
    ]


def _compose_row(prefix: str, cells: List[str], layout: Layout) -> str:
    inner_x = layout.table.x + 1
    inner_w = max(0, layout.table.w - 2)
    buf = prefix
    for (x, w, _col), cell in zip(column_spans(layout), cells):
        buf = pad_to_width(buf, x - inner_x) + pad_to_width(cell, w)
    return pad_to_width(buf, inner_w)


def table_rows(state: AppState, layout: Layout, theme: Theme) -> List[Tuple[str, int]]:
    """
    Inner rows of the snapshot table: the column header, then visible data rows.

    Also scrolls the model so the cursor row stays visible.
    """
    m = state.model
    view_h = layout.table_view_h
    m.ensure_visible(view_h)

    titles: List[str] = []
    for x, w, col in column_spans(layout):
        t = col.title
        if col.sort_key is not None and col.sort_key == m.sort_key:
            t += " ↑" if m.ascending else " ↓"
        titles.append(t)
    out: List[Tuple[str, int]] = [(_compose_row(" " * ROW_PREFIX_W, titles, layout), theme.heading_attr)]

    view = m.filtered_view()
    for i in range(m.scroll, min(len(view), m.scroll + view_h)):
        s = view[i]
        is_cursor = i == m.cursor
        marked = m.is_selected(s)
        prefix = (">" if is_cursor else " ") + ("*" if marked else " ") + " "
        attr = theme.cursor_attr if is_cursor else (theme.marked_attr if marked else 0)
        out.append((_compose_row(prefix, _cells(s), layout), attr))

    if not view and view_h > 0:
        if m.filter_text:
            out.append((f"   No snapshots match /{m.filter_text}", curses.A_DIM))
        elif not state.loading:
            out.append(("   No snapshots.", curses.A_DIM))
    return out


def details_lines(s: Optional[Snapshot]) -> List[str]:
    if s is None:
        return ["Select a snapshot to view details."]
    userdata = ", ".join(f"{k}: {v}" for k, v in sorted(s.userdata.items()))
    lines = [
        f"Config: {s.config}",
        f"Subvolume: {s.subvolume}",
        f"Number: {s.number}",
        f"Type: {s.type}",
    ]
    if s.pre_number is not None:
        lines.append(f"Pre Number: {s.pre_number}")
    if s.post_number is not None:
        lines.append(f"Post Number: {s.post_number}")
    lines.extend(
        [
            f"Date: {s.date}",
            f"User: {s.user}",
            f"Cleanup: {s.cleanup or '-'}",
            f"Description: {s.description}",
            f"Used Space: {format_size(s.used_space) if s.used_space is not None else '-'}",
            f"Userdata: {userdata}",
        ]
    )
    flags = [f for f, on in (("default", s.default), ("active", s.active)) if on]
    if flags:
        lines.append(f"Flags: {', '.join(flags)}")
    return lines


def scrolled_rows(lines: List[Tuple[str, int]], offset: int, inner_h: int, inner_w: int) -> List[Tuple[str, int]]:
    out: List[Tuple[str, int]] = []
    for i in range(inner_h):
        src = offset + i
        if src < len(lines):
            text, attr = lines[src]
            out.append((pad_to_width(text, inner_w), attr))
        else:
            out.append((pad_to_width("", inner_w), 0))
    return out


def _wrapped(lines: List[str], width: int, attr: int = 0) -> List[Tuple[str, int]]:
    out: List[Tuple[str, int]] = []
    for ln in lines:
        for w in wrap_text(ln, width) or [""]:
            out.append((w, attr))
    return out


def status_lines(state: AppState, width: int, theme: Theme) -> List[Tuple[str, int]]:
    msg_attr = theme.busy_attr if state.loading else theme.ok_attr
    out = _wrapped([state.message], width, msg_attr)
    out.append(("", 0))
    if state.status_text:
        out.extend(_wrapped(state.status_text.splitlines(), width))
    return out


def footer_hint(state: AppState) -> str:
    if state.mode == MODE_FILTER_INPUT:
        return f" Filter: {state.model.filter_text}_   Enter: keep  Esc: clear"
    n = state.model.selected_count
    hint = " Space: mark  1-5: sort  ↑/↓: move"
    if n:
        hint = f" {n} marked  " + hint.strip()
    return hint


@dataclass(frozen=True)
class Popup:
    title: str
    lines: Tuple[str, ...]
    attr: int


def popup_for(state: AppState, theme: Theme) -> Optional[Popup]:
    m = state.model
    if state.mode == MODE_DELETE_CONFIRM:
        targets = m.targets_for_destructive_op()
        if len(targets) > 1:
            what = f"Delete {len(targets)} marked snapshots?"
        elif targets:
            what = f"Delete snapshot {targets[0]}?"
        else:
            what = "No snapshot selected."
        return Popup(
            "Delete Snapshot",
            (what, "", "This action cannot be undone.", "", "[Enter] Confirm  [Esc] Cancel"),
            theme.danger_attr,
        )
    if state.mode == MODE_APPLY_CONFIRM:
        cur = m.current()
        what = f"Roll back to snapshot {cur.number}?" if cur is not None else "No snapshot selected."
        return Popup(
            "Apply Snapshot",
            (what, "", "System will need a reboot to take effect.", "", "[Enter] Confirm  [Esc] Cancel"),
            theme.warn_attr,
        )
    if state.mode == MODE_CREATE_INPUT:
        return Popup(
            "Create Snapshot",
            ("Description:", f"> {state.create_input}_", "", "[Enter] Create  [Esc] Cancel"),
            theme.title_attr,
        )
    return None


def popup_rect(max_y: int, max_x: int, popup: Popup) -> Rect:
    w = clamp(max(max_x * 60 // 100, 40), 0, max_x)
    h = clamp(max(max_y * 40 // 100, len(popup.lines) + 4), 0, max_y)
    return Rect((max_y - h) // 2, (max_x - w) // 2, h, w)


def mouse_event_from_curses(bstate: int, y: int, x: int) -> Optional[MouseEvent]:
    btn4 = getattr(curses, "BUTTON4_PRESSED", 0) or getattr(curses, "BUTTON4_CLICKED", 0)
    btn5 = getattr(curses, "BUTTON5_PRESSED", 0) or getattr(curses, "BUTTON5_CLICKED", 0)
    if btn4 and (bstate & btn4):
        return MouseEvent(MOUSE_WHEEL_UP, y, x)
    if btn5 and (bstate & btn5):
        return MouseEvent(MOUSE_WHEEL_DOWN, y, x)
    btn1_clicked = getattr(curses, "BUTTON1_CLICKED", 0)
    btn1_pressed = getattr(curses, "BUTTON1_PRESSED", 0)
    if (btn1_clicked and (bstate & btn1_clicked)) or (btn1_pressed and (bstate & btn1_pressed)):
        return MouseEvent(MOUSE_CLICK, y, x)
    return None


class _Renderer:
    def __init__(self, stdscr: "curses.window", theme: Theme) -> None:
        self.stdscr = stdscr
        self.theme = theme
        self._layout: Optional[Layout] = None
        self._screen_key: object = None
        self.header: Optional[_Pane] = None
        self.table: Optional[_Pane] = None
        self.details: Optional[_Pane] = None
        self.status: Optional[_Pane] = None
        self.footer: Optional[_Pane] = None

    def ensure(self, layout: Layout) -> bool:
        """
        Ensure windows exist for the given layout. Returns True if rebuilt.
        """
        if self._layout == layout:
            return False
        self._clear()
        self._layout = layout
        self.header = _Pane(self.stdscr, layout.header)
        self.table = _Pane(self.stdscr, layout.table)
        self.details = _Pane(self.stdscr, layout.details)
        self.status = _Pane(self.stdscr, layout.status)
        self.footer = _Pane(self.stdscr, layout.footer)
        return True

    def _clear(self) -> None:
        try:
            self.stdscr.erase()
            self.stdscr.noutrefresh()
        except curses.error:
            pass

    def draw(self, state: AppState) -> None:
        max_y, max_x = self.stdscr.getmaxyx()
        layout = compute_layout(max_y, max_x)
        state.layout = layout
        force = self.ensure(layout)

        if state.mode == MODE_SPLASH:
            screen_key: object = "splash"
        elif state.mode == MODE_NORMAL and state.loading and not state.model.snapshots and not state.model.filter_text:
            # Dialogs and the filter prompt always get the main view.
            screen_key = "loading"
        else:
            screen_key = ("main", state.mode)
        if screen_key != self._screen_key:
            # Full-screen views and popups paint over the panes: repaint all.
            self._screen_key = screen_key
            self._clear()
            force = True

        if screen_key == "splash":
            self._draw_centered(
                max_y,
                max_x,
                [("SNAPPER TUI", self.theme.title_attr), ("", 0), ("Initializing System...", curses.A_DIM)],
            )
        elif screen_key == "loading":
            self._draw_centered(
                max_y,
                max_x,
                [
                    ("Snapper TUI", self.theme.title_attr),
                    ("", 0),
                    (f"Loading Snapshots... {spinner_frame(state.frame)}", self.theme.busy_attr),
                ],
            )
        else:
            self._draw_main(state, layout, force=force)
            popup = popup_for(state, self.theme)
            if popup is not None:
                self._draw_popup(max_y, max_x, popup)

        try:
            curses.doupdate()
        except curses.error:
            pass

    def _draw_centered(self, max_y: int, max_x: int, lines: List[Tuple[str, int]]) -> None:
        top = max(0, (max_y - len(lines)) // 2)
        for i, (text, attr) in enumerate(lines):
            t = truncate_to_width(text, max_x)
            _safe_addstr(self.stdscr, top + i, max(0, (max_x - display_width(t)) // 2), t, attr)
        try:
            self.stdscr.noutrefresh()
        except curses.error:
            pass

    def _draw_main(self, state: AppState, layout: Layout, *, force: bool) -> None:
        theme = self.theme
        m = state.model

        if self.header is not None:
            self.header.draw_frame("", force=force)
            left = f"Snapper TUI v{__version__}"
            right = f"config: {state.config_label}  snapshots: {len(m.snapshots)}"
            _, w = self.header.inner_size
            gap = max(1, w - display_width(left) - display_width(right))
            self.header.draw_inner_rows([(left + " " * gap + right, theme.title_attr)], force=force)

        if self.table is not None:
            title = "Snapshots"
            if m.filter_text:
                title += f" /{m.filter_text}"
            self.table.draw_frame(title, attr=theme.title_attr, force=force)
            self.table.draw_inner_rows(table_rows(state, layout, theme), force=force)

        if self.details is not None:
            self.details.draw_frame("Details", attr=theme.title_attr, force=force)
            h, w = self.details.inner_size
            lines = _wrapped(details_lines(m.current()), w)
            self.details.draw_inner_rows(scrolled_rows(lines, state.details_scroll.offset, h, w), force=force)

        if self.status is not None:
            title = "Status"
            if state.loading:
                title += f" {spinner_frame(state.frame)}"
            self.status.draw_frame(title, attr=theme.title_attr, force=force)
            h, w = self.status.inner_size
            lines = status_lines(state, w, theme)
            self.status.draw_inner_rows(scrolled_rows(lines, state.status_scroll.offset, h, w), force=force)

        if self.footer is not None:
            self._draw_footer(state, layout, force=force)

    def _draw_footer(self, state: AppState, layout: Layout, *, force: bool) -> None:
        pane = self.footer
        if pane is None or pane.inner is None:
            return
        pane.draw_frame("", force=force)
        _, w = pane.inner_size
        inner_x = layout.footer.x + 1
        spans = footer_button_spans(layout)
        labels = dict((key, label) for label, key in FOOTER_BUTTONS)
        hint_x = (spans[-1][0] + spans[-1][1] + 1 - inner_x) if spans else display_width(FOOTER_LEAD)
        hint = truncate_to_width(footer_hint(state), max(0, w - hint_x))

        row = pad_to_width(FOOTER_LEAD, w)
        pane.draw_inner_rows([(row, curses.A_BOLD)], force=force)
        # Buttons and hint are painted over the base row on every frame.
        for bx, bw, key in spans:
            _safe_addstr(pane.inner, 0, bx - inner_x, labels[key], self.theme.button_attr)
        if hint:
            _safe_addstr(pane.inner, 0, hint_x, hint, curses.A_DIM)
        try:
            pane.inner.noutrefresh()
        except curses.error:
            pass

    def _draw_popup(self, max_y: int, max_x: int, popup: Popup) -> None:
        r = popup_rect(max_y, max_x, popup)
        if r.h < 3 or r.w < 4:
            return
        try:
            win = curses.newwin(r.h, r.w, r.y, r.x)
        except curses.error:
            return
        win.erase()
        try:
            win.attron(popup.attr)
            win.box()
            win.attroff(popup.attr)
        except curses.error:
            pass
        title = truncate_to_width(f" {popup.title} ", r.w - 4)
        _safe_addstr(win, 0, max(1, (r.w - display_width(title)) // 2), title, popup.attr)
        top = max(1, (r.h - len(popup.lines)) // 2)
        for i, ln in enumerate(popup.lines):
            if top + i >= r.h - 1:
                break
            t = truncate_to_width(ln, r.w - 4)
            _safe_addstr(win, top + i, max(2, (r.w - display_width(t)) // 2), t)
        try:
            win.noutrefresh()
        except curses.error:
            pass


def _next_event(stdscr: "curses.window") -> Optional[Event]:
    ch = stdscr.getch()
    if ch == -1 or ch == curses.KEY_RESIZE:
        return None
    if ch == curses.KEY_MOUSE:
        try:
            _, mx, my, _, bstate = curses.getmouse()
        except curses.error:
            return None
        return mouse_event_from_curses(bstate, my, mx)
    return ch


def run_tui(stdscr: "curses.window", state: AppState) -> None:
    try:
        curses.curs_set(0)
    except Exception:
        # Some terminals (or TERM/terminfo combinations) don't support this.
        pass
    stdscr.keypad(True)
    curses.mousemask(curses.ALL_MOUSE_EVENTS)
    # Bounded wait so background results and the spinner are serviced without input.
    stdscr.timeout(POLL_TIMEOUT_MS)

    renderer = _Renderer(stdscr, _init_theme())
    start_session(state)
    run(state, draw=renderer.draw, next_event=lambda: _next_event(stdscr))
