from __future__ import annotations

from typing import Callable, Dict, List, Optional, Set, Tuple

from snapper_tui.formatting import clamp
from snapper_tui.models import Snapshot


SORT_NUMBER = "number"
SORT_TYPE = "type"
SORT_DATE = "date"
SORT_USER = "user"
SORT_USED_SPACE = "used_space"

SORT_KEYS = (SORT_NUMBER, SORT_TYPE, SORT_DATE, SORT_USER, SORT_USED_SPACE)

_SORT_FIELDS: Dict[str, Callable[[Snapshot], object]] = {
    SORT_NUMBER: lambda s: s.number,
    SORT_TYPE: lambda s: s.type,
    SORT_DATE: lambda s: s.date,
    SORT_USER: lambda s: s.user,
    SORT_USED_SPACE: lambda s: s.used_space or 0,
}


def matches_filter(s: Snapshot, needle: str) -> bool:
    if not needle:
        return True
    n = needle.lower()
    return (
        n in s.description.lower()
        or n in s.type.lower()
        or n in s.user.lower()
        # Numbers match verbatim (no case folding).
        or needle in str(s.number)
    )


class SelectionModel:
    """
    Raw snapshot list plus cursor, multi-selection, sort order and filter.

    The cursor is an index into `filtered_view()`. Multi-selection stores
    snapshot keys, so it survives re-sorting and re-filtering unchanged.
    """

    def __init__(self) -> None:
        self.snapshots: List[Snapshot] = []
        self.cursor: Optional[int] = None
        self.selected: Set[Tuple[str, int]] = set()
        self.sort_key = SORT_NUMBER
        self.ascending = True
        self.filter_text = ""
        # First visible table row; maintained by ensure_visible().
        self.scroll = 0

    def replace(self, snapshots: List[Snapshot]) -> None:
        self.snapshots = list(snapshots)
        self.selected.clear()
        self._sort()
        self.cursor = 0 if self.filtered_view() else None
        self.scroll = 0

    def clear(self) -> None:
        self.snapshots = []
        self.selected.clear()
        self.cursor = None
        self.scroll = 0

    def set_sort(self, key: str) -> None:
        if key not in _SORT_FIELDS:
            raise ValueError(f"unknown sort key: {key!r}")
        if key == self.sort_key:
            self.ascending = not self.ascending
        else:
            self.sort_key = key
            self.ascending = True
        cur = self.current()
        self._sort()
        # Keep the cursor on the same snapshot, wherever it moved to.
        if cur is not None:
            for i, s in enumerate(self.filtered_view()):
                if s.key == cur.key:
                    self.cursor = i
                    break

    def _sort(self) -> None:
        # list.sort is stable for reverse=True as well: ties keep their order.
        self.snapshots.sort(key=_SORT_FIELDS[self.sort_key], reverse=not self.ascending)

    def filtered_view(self) -> List[Snapshot]:
        if not self.filter_text:
            return list(self.snapshots)
        return [s for s in self.snapshots if matches_filter(s, self.filter_text)]

    def set_filter(self, text: str) -> None:
        self.filter_text = text
        self.cursor = 0 if self.filtered_view() else None
        self.scroll = 0

    def move_cursor(self, delta: int) -> None:
        n = len(self.filtered_view())
        if n <= 0:
            return
        if self.cursor is None:
            self.cursor = 0
            return
        self.cursor = (self.cursor + delta) % n

    def set_cursor(self, index: int) -> bool:
        if 0 <= index < len(self.filtered_view()):
            self.cursor = index
            return True
        return False

    def current(self) -> Optional[Snapshot]:
        if self.cursor is None:
            return None
        view = self.filtered_view()
        if 0 <= self.cursor < len(view):
            return view[self.cursor]
        return None

    def toggle_selection_at_cursor(self) -> None:
        s = self.current()
        if s is None:
            return
        if s.key in self.selected:
            self.selected.discard(s.key)
        else:
            self.selected.add(s.key)

    def is_selected(self, s: Snapshot) -> bool:
        return s.key in self.selected

    @property
    def selected_count(self) -> int:
        return len(self.selected)

    def target_snapshots(self) -> List[Snapshot]:
        if self.selected:
            return [s for s in self.snapshots if s.key in self.selected]
        s = self.current()
        return [s] if s is not None else []

    def targets_for_destructive_op(self) -> List[int]:
        return [s.number for s in self.target_snapshots()]

    def ensure_visible(self, view_h: int) -> None:
        n = len(self.filtered_view())
        if n <= 0 or view_h <= 0:
            self.scroll = 0
            return
        max_scroll = max(0, n - view_h)
        if self.cursor is not None:
            if self.cursor < self.scroll:
                self.scroll = self.cursor
            elif self.cursor >= self.scroll + view_h:
                self.scroll = self.cursor - view_h + 1
        self.scroll = clamp(self.scroll, 0, max_scroll)


class PaneScroll:
    """
    Line offset of a scrollable text pane.

    Clamped at the top only; scrolling past the content is harmless.
    """

    def __init__(self) -> None:
        self.offset = 0

    def move(self, delta: int) -> None:
        self.offset = max(0, self.offset + delta)

    def reset(self) -> None:
        self.offset = 0
