from __future__ import annotations

from dataclasses import dataclass
from typing import List, Optional, Tuple

from snapper_tui.formatting import display_width
from snapper_tui.selection import SORT_DATE, SORT_NUMBER, SORT_TYPE, SORT_USED_SPACE, SORT_USER


@dataclass(frozen=True)
class Rect:
    y: int
    x: int
    h: int
    w: int

    def contains(self, y: int, x: int) -> bool:
        return self.y <= y < self.y + self.h and self.x <= x < self.x + self.w


@dataclass(frozen=True)
class Column:
    title: str
    width: int  # 0 = take the remaining width
    sort_key: Optional[str] = None


TABLE_COLUMNS = (
    Column("#", 6, SORT_NUMBER),
    Column("Type", 8, SORT_TYPE),
    Column("Date", 20, SORT_DATE),
    Column("User", 10, SORT_USER),
    Column("Used Space", 12, SORT_USED_SPACE),
    Column("Description", 0),
)

# Each table row starts with a cursor marker, a selection mark and a space.
ROW_PREFIX_W = 3

FOOTER_LEAD = " Actions: "
FOOTER_BUTTONS: Tuple[Tuple[str, int], ...] = (
    ("[c]reate", ord("c")),
    ("[d]elete", ord("d")),
    ("[a]pply", ord("a")),
    ("[s]tatus", ord("s")),
    ("[/]filter", ord("/")),
    ("[r]efresh", ord("r")),
    ("[q]uit", ord("q")),
)

PANE_DETAILS = "details"
PANE_STATUS = "status"


@dataclass(frozen=True)
class Layout:
    max_y: int
    max_x: int
    header: Rect
    table: Rect
    details: Rect
    status: Rect
    footer: Rect

    @property
    def table_rows_y(self) -> int:
        # Border row, then the column header row.
        return self.table.y + 2

    @property
    def table_view_h(self) -> int:
        return max(0, self.table.h - 3)


def compute_layout(max_y: int, max_x: int) -> Layout:
    max_y = max(0, max_y)
    max_x = max(0, max_x)
    # Drop the header first, then the footer, on very short terminals.
    header_h = 3 if max_y >= 12 else 0
    footer_h = 3 if max_y >= 8 else 0
    main_h = max(0, max_y - header_h - footer_h)

    left_w = max_x // 2
    right_w = max_x - left_w
    details_h = (main_h * 40) // 100
    status_h = main_h - details_h

    return Layout(
        max_y=max_y,
        max_x=max_x,
        header=Rect(0, 0, header_h, max_x),
        table=Rect(header_h, 0, main_h, left_w),
        details=Rect(header_h, left_w, details_h, right_w),
        status=Rect(header_h + details_h, left_w, status_h, right_w),
        footer=Rect(header_h + main_h, 0, footer_h, max_x),
    )


def column_spans(layout: Layout) -> List[Tuple[int, int, Column]]:
    """
    Screen (x, width, column) for each table column that fits.
    """
    t = layout.table
    x = t.x + 1 + ROW_PREFIX_W
    right = t.x + t.w - 1  # exclusive, stops at the border
    out: List[Tuple[int, int, Column]] = []
    for col in TABLE_COLUMNS:
        if x >= right:
            break
        w = col.width if col.width > 0 else right - x
        w = min(w, right - x)
        out.append((x, w, col))
        x += w + 1
    return out


def table_row_at(layout: Layout, y: int, x: int) -> Optional[int]:
    """
    Visible row offset (0 = first data row on screen) under the pointer.
    """
    t = layout.table
    if not (t.x < x < t.x + t.w - 1):
        return None
    row = y - layout.table_rows_y
    if 0 <= row < layout.table_view_h:
        return row
    return None


def header_sort_key_at(layout: Layout, y: int, x: int) -> Optional[str]:
    if layout.table.h < 3 or y != layout.table.y + 1:
        return None
    for cx, cw, col in column_spans(layout):
        if cx <= x < cx + cw:
            return col.sort_key
    return None


def footer_button_spans(layout: Layout) -> List[Tuple[int, int, int]]:
    """
    Screen (x, width, key) of each footer button, in drawing order.
    """
    f = layout.footer
    x = f.x + 1 + display_width(FOOTER_LEAD)
    right = f.x + f.w - 1
    out: List[Tuple[int, int, int]] = []
    for label, key in FOOTER_BUTTONS:
        w = display_width(label)
        if x + w > right:
            break
        out.append((x, w, key))
        x += w + 1
    return out


def footer_key_at(layout: Layout, y: int, x: int) -> Optional[int]:
    if not layout.footer.contains(y, x):
        return None
    for bx, bw, key in footer_button_spans(layout):
        if bx <= x < bx + bw:
            return key
    return None


def pane_at(layout: Layout, y: int, x: int) -> Optional[str]:
    if layout.details.contains(y, x):
        return PANE_DETAILS
    if layout.status.contains(y, x):
        return PANE_STATUS
    return None
