from __future__ import annotations

import unicodedata
from typing import List


def clamp(v: int, lo: int, hi: int) -> int:
    if hi < lo:
        return lo
    return max(lo, min(hi, v))


def _char_width(ch: str) -> int:
    if not ch:
        return 0
    if unicodedata.combining(ch):
        return 0
    if unicodedata.category(ch) in ("Cc", "Cf"):
        return 0
    if unicodedata.east_asian_width(ch) in ("W", "F"):
        return 2
    return 1


def display_width(s: str) -> int:
    """
    Terminal column width of `s` (CJK wide chars count as 2, combining marks as 0).
    """
    return sum(_char_width(ch) for ch in s or "")


def truncate_to_width(s: str, width: int) -> str:
    if width <= 0 or not s:
        return ""
    out: List[str] = []
    used = 0
    for ch in s:
        w = _char_width(ch)
        if used + w > width:
            break
        out.append(ch)
        used += w
    return "".join(out)


def pad_to_width(s: str, width: int) -> str:
    """
    Truncate or right-pad `s` with spaces so it occupies exactly `width` columns.
    """
    if width <= 0:
        return ""
    t = truncate_to_width(s, width)
    return t + " " * max(0, width - display_width(t))


def wrap_text(text: str, width: int) -> List[str]:
    """
    Hard-wrap text to `width` columns, preserving explicit newlines.

    Words are kept together when they fit; longer words are split.
    """
    if width <= 0:
        return []
    out: List[str] = []
    for raw in (text or "").splitlines() or [""]:
        line = raw.expandtabs(4).rstrip()
        if not line:
            out.append("")
            continue
        cur = ""
        for word in line.split(" "):
            cand = word if not cur else f"{cur} {word}"
            if display_width(cand) <= width:
                cur = cand
                continue
            if cur:
                out.append(cur)
            # Split words that don't fit on a line of their own.
            while display_width(word) > width:
                head = truncate_to_width(word, width) or word[0]
                out.append(head)
                word = word[len(head) :]
            cur = word
        out.append(cur)
    return out


def format_size(n_bytes: int) -> str:
    """
    Human-readable byte count (binary units, one decimal above bytes).
    """
    if n_bytes < 1024:
        return f"{n_bytes}B"
    if n_bytes < 1024 * 1024:
        return f"{n_bytes / 1024.0:.1f}K"
    if n_bytes < 1024 * 1024 * 1024:
        return f"{n_bytes / (1024.0 * 1024.0):.1f}M"
    return f"{n_bytes / (1024.0 * 1024.0 * 1024.0):.1f}G"
