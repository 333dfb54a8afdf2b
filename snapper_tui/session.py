from __future__ import annotations

import curses
import logging
import time
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional, Union

from snapper_tui.bridge import TaskBridge
from snapper_tui.layout import (
    PANE_DETAILS,
    PANE_STATUS,
    Layout,
    footer_key_at,
    header_sort_key_at,
    pane_at,
    table_row_at,
)
from snapper_tui.models import (
    Applied,
    Created,
    DeleteCompleted,
    Failed,
    Outcome,
    Snapshot,
    SnapshotsLoaded,
    StatusLoaded,
)
from snapper_tui.selection import (
    SORT_DATE,
    SORT_NUMBER,
    SORT_TYPE,
    SORT_USED_SPACE,
    SORT_USER,
    PaneScroll,
    SelectionModel,
)
from snapper_tui.snapper import SnapperError


logger = logging.getLogger(__name__)

MODE_SPLASH = "splash"
MODE_DELETE_CONFIRM = "delete_confirm"
MODE_APPLY_CONFIRM = "apply_confirm"
MODE_CREATE_INPUT = "create_input"
MODE_FILTER_INPUT = "filter_input"
MODE_NORMAL = "normal"

OP_FETCH = "fetch"
OP_CREATE = "create"
OP_DELETE = "delete"
OP_APPLY = "apply"
OP_STATUS = "status"

SPLASH_SECONDS = 2.0
POLL_TIMEOUT_MS = 100

KEY_ESC = 27
KEY_SPACE = 32
ENTER_KEYS = (curses.KEY_ENTER, 10, 13)
BACKSPACE_KEYS = (curses.KEY_BACKSPACE, 127, 8)

SORT_DIGITS: Dict[int, str] = {
    ord("1"): SORT_NUMBER,
    ord("2"): SORT_TYPE,
    ord("3"): SORT_DATE,
    ord("4"): SORT_USER,
    ord("5"): SORT_USED_SPACE,
}

SORT_LABELS: Dict[str, str] = {
    SORT_NUMBER: "number",
    SORT_TYPE: "type",
    SORT_DATE: "date",
    SORT_USER: "user",
    SORT_USED_SPACE: "used space",
}

MOUSE_CLICK = "click"
MOUSE_WHEEL_UP = "wheel_up"
MOUSE_WHEEL_DOWN = "wheel_down"


@dataclass(frozen=True)
class MouseEvent:
    kind: str
    y: int
    x: int


Event = Union[int, MouseEvent]


class AppState:
    """
    Everything the dashboard knows. Owned by the UI thread; background
    operations never touch it, they only return an Outcome via the bridge.
    """

    def __init__(
        self,
        backend,
        *,
        bridge: Optional[TaskBridge] = None,
        now: Optional[float] = None,
        config_label: str = "default",
    ) -> None:
        self.backend = backend
        # snapper config shown in the header.
        self.config_label = config_label
        self.bridge = bridge or TaskBridge()
        self.model = SelectionModel()
        self.mode = MODE_SPLASH
        self.splash_started_at = time.monotonic() if now is None else now
        self.message = "Initializing..."
        self.loading = True
        self.status_text = ""
        self.details_scroll = PaneScroll()
        self.status_scroll = PaneScroll()
        self.create_input = ""
        self.frame = 0
        self.quit = False
        # Last painted geometry, for pointer hit-testing.
        self.layout: Optional[Layout] = None
        # Shown together with the result of a chained refresh.
        self.fetch_note = ""
        # A cursor move whose status fetch had to wait for another operation.
        self.status_deferred = False
        # The pending status fetch was not asked for; keep the current message.
        self.status_quiet = False


# Background operations. Each returns an Outcome and never raises SnapperError.


def _fetch_op(backend) -> Callable[[], Outcome]:
    def _run() -> Outcome:
        try:
            return SnapshotsLoaded(backend.list_snapshots())
        except SnapperError as e:
            return Failed(str(e))

    return _run


def _create_op(backend, description: str) -> Callable[[], Outcome]:
    def _run() -> Outcome:
        try:
            backend.create_snapshot(description)
        except SnapperError as e:
            return Failed(str(e))
        return Created(description)

    return _run


def _delete_op(backend, targets: List[Snapshot]) -> Callable[[], Outcome]:
    def _run() -> Outcome:
        ok = 0
        failed = 0
        for s in targets:
            try:
                backend.delete_snapshot(s.number, config=s.config or None)
            except SnapperError as e:
                logger.warning("Delete of %s/%s failed: %s", s.config, s.number, e)
                failed += 1
            else:
                ok += 1
        return DeleteCompleted(ok, failed)

    return _run


def _apply_op(backend, target: Snapshot) -> Callable[[], Outcome]:
    def _run() -> Outcome:
        try:
            backend.rollback(target.number, config=target.config or None)
        except SnapperError as e:
            return Failed(str(e))
        return Applied(target.number)

    return _run


def _status_op(backend, target: Snapshot) -> Callable[[], Outcome]:
    def _run() -> Outcome:
        try:
            return StatusLoaded(target.number, backend.status_between(target))
        except SnapperError as e:
            return Failed(str(e))

    return _run


def _submit(state: AppState, kind: str, fn: Callable[[], Outcome], message: Optional[str] = None) -> None:
    state.loading = True
    if message is not None:
        state.message = message
    state.bridge.submit(fn, kind=kind)


def start_fetch(state: AppState, *, note: str = "", message: Optional[str] = "Fetching snapshots...") -> None:
    state.fetch_note = note
    _submit(state, OP_FETCH, _fetch_op(state.backend), message)


def start_session(state: AppState) -> None:
    start_fetch(state, message=None)


def request_refresh(state: AppState) -> None:
    state.model.clear()
    state.status_text = ""
    state.status_scroll.reset()
    state.details_scroll.reset()
    start_fetch(state, message="Refreshing...")


def request_status(state: AppState, *, quiet: bool = False) -> None:
    s = state.model.current()
    if s is None:
        state.message = "No snapshot selected."
        return
    state.status_deferred = False
    state.status_quiet = quiet
    message = None if quiet else f"Fetching status for {s.number}..."
    _submit(state, OP_STATUS, _status_op(state.backend, s), message)


def _auto_status(state: AppState, *, quiet: bool = False) -> None:
    # Cursor tracking never displaces a fetch or a destructive operation,
    # only an earlier status request. A skipped fetch runs once the other
    # operation has finished (see poll_background).
    if state.bridge.pending and state.bridge.kind != OP_STATUS:
        state.status_deferred = True
        return
    if state.model.current() is None:
        state.status_deferred = False
        return
    state.details_scroll.reset()
    request_status(state, quiet=quiet)


def _sort(state: AppState, key: str) -> None:
    m = state.model
    m.set_sort(key)
    arrow = "↑" if m.ascending else "↓"
    state.message = f"Sorted by {SORT_LABELS.get(key, key)} {arrow}"


# Key handlers, one per mode.


def _key_splash(state: AppState, ch: int) -> None:
    state.mode = MODE_NORMAL


def _key_delete_confirm(state: AppState, ch: int) -> None:
    if ch in ENTER_KEYS:
        state.mode = MODE_NORMAL
        targets = state.model.target_snapshots()
        if not targets:
            state.message = "No snapshot selected."
            return
        n = len(targets)
        label = f"snapshot {targets[0].number}" if n == 1 else f"{n} snapshots"
        _submit(state, OP_DELETE, _delete_op(state.backend, targets), f"Deleting {label}...")
        return
    if ch in (KEY_ESC, ord("q")):
        state.mode = MODE_NORMAL


def _key_apply_confirm(state: AppState, ch: int) -> None:
    if ch in ENTER_KEYS:
        state.mode = MODE_NORMAL
        target = state.model.current()
        if target is None:
            state.message = "No snapshot selected."
            return
        _submit(state, OP_APPLY, _apply_op(state.backend, target), f"Applying snapshot {target.number}...")
        return
    if ch in (KEY_ESC, ord("q")):
        state.mode = MODE_NORMAL


def _key_create_input(state: AppState, ch: int) -> None:
    if ch == KEY_ESC:
        state.create_input = ""
        state.mode = MODE_NORMAL
        return
    if ch in ENTER_KEYS:
        if not state.create_input:
            return
        description = state.create_input
        state.create_input = ""
        state.mode = MODE_NORMAL
        _submit(state, OP_CREATE, _create_op(state.backend, description), "Creating snapshot...")
        return
    if ch in BACKSPACE_KEYS:
        state.create_input = state.create_input[:-1]
        return
    if 32 <= ch <= 126:
        state.create_input += chr(ch)


def _key_filter_input(state: AppState, ch: int) -> None:
    m = state.model
    if ch == KEY_ESC:
        m.set_filter("")
        state.mode = MODE_NORMAL
        return
    if ch in ENTER_KEYS:
        state.mode = MODE_NORMAL
        return
    if ch in BACKSPACE_KEYS:
        m.set_filter(m.filter_text[:-1])
        return
    if 32 <= ch <= 126:
        m.set_filter(m.filter_text + chr(ch))


def _key_normal(state: AppState, ch: int) -> None:
    m = state.model
    if ch in (ord("q"), ord("Q")):
        state.quit = True
        return
    if ch in (ord("r"), ord("R")):
        request_refresh(state)
        return
    if ch in (ord("c"), ord("C")):
        state.create_input = ""
        state.mode = MODE_CREATE_INPUT
        return
    if ch == ord("/"):
        state.mode = MODE_FILTER_INPUT
        return
    if ch in (ord("d"), ord("D")):
        state.mode = MODE_DELETE_CONFIRM
        return
    if ch in (ord("a"), ord("A")):
        if m.selected_count:
            state.message = "Apply works on a single snapshot. Clear the multi-selection first."
            return
        state.mode = MODE_APPLY_CONFIRM
        return
    if ch in (ord("s"), ord("S")):
        if m.selected_count:
            state.message = "Status works on a single snapshot. Clear the multi-selection first."
            return
        request_status(state)
        return
    if ch in (curses.KEY_UP, ord("k")):
        m.move_cursor(-1)
        _auto_status(state)
        return
    if ch in (curses.KEY_DOWN, ord("j")):
        m.move_cursor(1)
        _auto_status(state)
        return
    if ch == KEY_SPACE:
        m.toggle_selection_at_cursor()
        n = m.selected_count
        state.message = f"{n} snapshot{'s' if n != 1 else ''} selected." if n else "Selection cleared."
        return
    if ch in SORT_DIGITS:
        _sort(state, SORT_DIGITS[ch])
        return


_KEY_HANDLERS: Dict[str, Callable[[AppState, int], None]] = {
    MODE_SPLASH: _key_splash,
    MODE_DELETE_CONFIRM: _key_delete_confirm,
    MODE_APPLY_CONFIRM: _key_apply_confirm,
    MODE_CREATE_INPUT: _key_create_input,
    MODE_FILTER_INPUT: _key_filter_input,
    MODE_NORMAL: _key_normal,
}


def dispatch_key(state: AppState, ch: int) -> None:
    _KEY_HANDLERS[state.mode](state, ch)


def dispatch_mouse(state: AppState, ev: MouseEvent) -> None:
    if state.mode == MODE_SPLASH:
        state.mode = MODE_NORMAL
        return
    # Overlays own the screen; the pointer only works in the plain list view.
    if state.mode != MODE_NORMAL:
        return
    layout = state.layout
    if layout is None:
        return

    if ev.kind in (MOUSE_WHEEL_UP, MOUSE_WHEEL_DOWN):
        delta = -1 if ev.kind == MOUSE_WHEEL_UP else 1
        pane = pane_at(layout, ev.y, ev.x)
        if pane == PANE_DETAILS:
            state.details_scroll.move(delta)
        elif pane == PANE_STATUS:
            state.status_scroll.move(delta)
        return

    if ev.kind != MOUSE_CLICK:
        return

    key = footer_key_at(layout, ev.y, ev.x)
    if key is not None:
        _key_normal(state, key)
        return

    sort_key = header_sort_key_at(layout, ev.y, ev.x)
    if sort_key is not None:
        _sort(state, sort_key)
        return

    row = table_row_at(layout, ev.y, ev.x)
    if row is not None and state.model.set_cursor(state.model.scroll + row):
        _auto_status(state)


def dispatch(state: AppState, event: Event) -> None:
    if isinstance(event, MouseEvent):
        dispatch_mouse(state, event)
    else:
        dispatch_key(state, event)


# Completion of background operations.


def _delete_message(success: int, fail: int) -> str:
    if success > 0:
        msg = "Deleted 1 snapshot" if success == 1 else f"Deleted {success} snapshots"
        if fail > 0:
            msg += f" ({fail} failed)"
        return msg + "."
    if fail > 0:
        return f"Failed to delete {fail} snapshot(s)."
    return "Nothing deleted."


def apply_outcome(state: AppState, outcome: Outcome) -> None:
    m = state.model
    if isinstance(outcome, SnapshotsLoaded):
        m.replace(outcome.snapshots)
        n = len(m.snapshots)
        loaded = f"Loaded {n} snapshot{'s' if n != 1 else ''}."
        state.message = f"{state.fetch_note} {loaded}" if state.fetch_note else loaded
        state.fetch_note = ""
        state.details_scroll.reset()
        return
    if isinstance(outcome, Created):
        state.message = f'Created snapshot "{outcome.description}".'
        start_fetch(state, note=state.message, message=None)
        return
    if isinstance(outcome, DeleteCompleted):
        state.message = _delete_message(outcome.success, outcome.fail)
        m.selected.clear()
        start_fetch(state, note=state.message, message=None)
        return
    if isinstance(outcome, Applied):
        state.message = f"Applied snapshot {outcome.number}. Reboot required for the rollback to take effect."
        return
    if isinstance(outcome, StatusLoaded):
        state.status_text = outcome.text
        state.status_scroll.reset()
        if not state.status_quiet:
            state.message = f"Status loaded for snapshot {outcome.number}."
        state.status_quiet = False
        return
    if isinstance(outcome, Failed):
        logger.info("Operation failed: %s", outcome.message)
        state.message = f"Error: {outcome.message}"
        return
    logger.warning("Ignoring unknown outcome %r", outcome)


def poll_background(state: AppState) -> bool:
    outcome = state.bridge.poll_once()
    if outcome is None:
        return False
    state.loading = False
    apply_outcome(state, outcome)
    if state.status_deferred and not state.bridge.pending:
        _auto_status(state, quiet=True)
    return True


def tick(state: AppState, now: float) -> None:
    state.frame += 1
    if state.mode == MODE_SPLASH and (now - state.splash_started_at) >= SPLASH_SECONDS:
        state.mode = MODE_NORMAL


def run(
    state: AppState,
    *,
    draw: Callable[[AppState], None],
    next_event: Callable[[], Optional[Event]],
    clock: Callable[[], float] = time.monotonic,
) -> None:
    """
    Frame loop: draw, collect a finished background result, wait (bounded)
    for input, dispatch it, advance the animation. Returns on quit.
    """
    while True:
        draw(state)
        poll_background(state)
        event = next_event()
        if event is not None:
            dispatch(state, event)
            if state.quit:
                return
        tick(state, clock())
