"""Log store: one capped, append-only stream of output lines for all processes."""

from __future__ import annotations

import re
import time
from collections import deque
from collections.abc import Iterable, Iterator

from .models import FileReference, LogRecord, StyledRun

MAX_RECORDS = 10_000

# path/to/file.ext, optionally followed by :line or :line:col
_FILE_REF_RE = re.compile(
    r"(?<![\w/.:~-])"
    r"(?P<path>(?:~?/)?(?:[\w.@+-]+/)*[\w@+-][\w.@+-]*\.[A-Za-z][A-Za-z0-9]*)"
    r"(?::(?P<line>\d+)(?::(?P<col>\d+))?)?"
    r"(?![\w/])"
)


class LogStore:
    """Fixed-size record buffer, tracked by sequence number.

    Sequence numbers keep increasing across evictions so the relative
    order of any two retained records is always known.  Only ``clear``
    resets the counter.
    """

    def __init__(self, max_records: int = MAX_RECORDS) -> None:
        if max_records < 1:
            raise ValueError("max_records must be positive")
        self.max_records = max_records
        self._buf: deque[LogRecord] = deque()
        self._seq = 0  # next sequence number to hand out
        self._evicted = 0

    def append(self, process_name: str, text: str, is_error: bool = False) -> LogRecord:
        record = LogRecord(
            process_name=process_name,
            raw_text=text,
            is_error=is_error,
            sequence=self._seq,
            timestamp=time.time(),
        )
        self._seq += 1
        self._buf.append(record)
        # Evict oldest records until we're within budget
        while len(self._buf) > self.max_records:
            self._buf.popleft()
            self._evicted += 1
        return record

    def clear(self) -> None:
        self._buf.clear()
        self._seq = 0
        self._evicted = 0

    def size(self) -> int:
        return len(self._buf)

    def __len__(self) -> int:
        return len(self._buf)

    def __iter__(self) -> Iterator[LogRecord]:
        return iter(self._buf)

    @property
    def evicted(self) -> int:
        """Records dropped by the cap since the last clear."""
        return self._evicted

    def records(self) -> list[LogRecord]:
        return list(self._buf)

    def for_process(self, name: str) -> list[LogRecord]:
        return [r for r in self._buf if r.process_name == name]

    def extract_file_references(self, runs: Iterable[StyledRun]) -> list[FileReference]:
        return extract_file_references(runs)


def extract_file_references(runs: Iterable[StyledRun]) -> list[FileReference]:
    """Find ``path[:line[:col]]`` tokens in the text of each run.

    Runs are scanned one at a time, so a reference never spans a style
    boundary.  A single segment such as ``config.yaml`` counts; URLs and
    version strings do not, since their extension must start with a
    letter and they may not follow a scheme or another path character.
    """
    refs: list[FileReference] = []
    for index, run in enumerate(runs):
        for match in _FILE_REF_RE.finditer(run.text):
            path = match.group("path")
            line = match.group("line")
            col = match.group("col")
            refs.append(FileReference(
                path=path,
                line=int(line) if line is not None else None,
                column=int(col) if col is not None else None,
                run_index=index,
                start=match.start(),
                end=match.end(),
            ))
    return refs
