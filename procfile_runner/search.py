"""Search & context engine.

Matching is a case-insensitive substring test against the escape-stripped
text of each record.  Every match pulls in ``context_radius`` neighbours on
each side; overlapping or touching windows merge, and a gap marker is put
wherever the display skips over filtered records.

An empty query is a pass-through: all filtered records, no gaps, no match
flags, and a match count of zero (the counter is hidden without a query).
"""

from __future__ import annotations

import functools
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field

from .models import LogRecord
from .styles import strip_escapes

ALL_TAB = "all"
CONTEXT_RADIUS = 2


@dataclass(frozen=True)
class ViewFilter:
    """Active tab plus the set of processes hidden from every tab."""
    tab: str = ALL_TAB
    hidden: frozenset[str] = field(default_factory=frozenset)

    def admits(self, process_name: str) -> bool:
        if process_name in self.hidden:
            return False
        return self.tab == ALL_TAB or self.tab == process_name


@dataclass(frozen=True)
class SearchState:
    query: str = ""
    context_radius: int = CONTEXT_RADIUS

    @property
    def active(self) -> bool:
        return bool(self.query)


@dataclass(frozen=True)
class DisplayEntry:
    record: LogRecord
    is_match: bool = False


@dataclass(frozen=True)
class GapMarker:
    """Stands in for ``omitted`` filtered records left out of the display."""
    omitted: int


@functools.lru_cache(maxsize=16384)
def _haystack(raw_text: str) -> str:
    return strip_escapes(raw_text).casefold()


def record_matches(record: LogRecord, query: str) -> bool:
    if not query:
        return False
    return query.casefold() in _haystack(record.raw_text)


def filter_records(records: Iterable[LogRecord], view_filter: ViewFilter) -> list[LogRecord]:
    return [r for r in records if view_filter.admits(r.process_name)]


def match_indices(records: Sequence[LogRecord], query: str) -> list[int]:
    if not query:
        return []
    needle = query.casefold()
    return [i for i, r in enumerate(records) if needle in _haystack(r.raw_text)]


def match_count(records: Iterable[LogRecord], query: str) -> int:
    """Number of matching records; zero for an empty query."""
    if not query:
        return 0
    needle = query.casefold()
    return sum(1 for r in records if needle in _haystack(r.raw_text))


def context_windows(matches: Sequence[int], length: int, radius: int) -> list[tuple[int, int]]:
    """Merge ``[i - radius, i + radius]`` windows (clamped, inclusive).

    Windows that overlap or sit next to each other become one.
    """
    windows: list[tuple[int, int]] = []
    for i in matches:
        lo = max(0, i - radius)
        hi = min(length - 1, i + radius)
        if windows and lo <= windows[-1][1] + 1:
            windows[-1] = (windows[-1][0], max(windows[-1][1], hi))
        else:
            windows.append((lo, hi))
    return windows


def build_display(
    records: Sequence[LogRecord],
    search: SearchState,
) -> list[DisplayEntry | GapMarker]:
    """Lay out already-filtered records for display under ``search``."""
    if not search.active:
        return [DisplayEntry(r) for r in records]

    matches = match_indices(records, search.query)
    if not matches:
        return []

    matched = set(matches)
    display: list[DisplayEntry | GapMarker] = []
    previous_hi: int | None = None
    for lo, hi in context_windows(matches, len(records), search.context_radius):
        if previous_hi is not None:
            display.append(GapMarker(omitted=lo - previous_hi - 1))
        for i in range(lo, hi + 1):
            display.append(DisplayEntry(records[i], is_match=i in matched))
        previous_hi = hi
    return display
