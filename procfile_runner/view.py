"""View projection: composes registry, store and search into a render model.

``project`` is a pure function of its inputs, so equal inputs always
produce equal models and a caller can simply re-project on every change.
"""

from __future__ import annotations

from dataclasses import dataclass

from .log_store import LogStore, extract_file_references
from .models import FileReference, ProcessStatus, StyledRun
from .registry import ProcessRegistry
from .search import (
    ALL_TAB,
    DisplayEntry,
    GapMarker,
    SearchState,
    ViewFilter,
    build_display,
    filter_records,
    match_count,
)
from .styles import scan_line

EMPTY_LOG_PLACEHOLDER = 'No processes running. Click "Start All" to begin.'
NO_OUTPUT_PLACEHOLDER = "No output to display."
NO_MATCHES_PLACEHOLDER = "No matches"


@dataclass(frozen=True)
class ProcessRow:
    name: str
    status: ProcessStatus
    color: str
    enabled: bool
    hidden: bool
    last_exit_code: int | None


@dataclass(frozen=True)
class RenderLine:
    sequence: int
    process_name: str
    color: str | None
    is_error: bool
    runs: tuple[StyledRun, ...]
    is_match: bool = False
    file_refs: tuple[FileReference, ...] = ()

    @property
    def text(self) -> str:
        return "".join(run.text for run in self.runs)


@dataclass(frozen=True)
class RenderModel:
    processes: tuple[ProcessRow, ...]
    lines: tuple[RenderLine | GapMarker, ...]
    active_tab: str
    show_prefix: bool
    placeholder: str | None
    # None while no query is active; the UI hides the counter then
    match_count: int | None
    running: int
    total: int

    @property
    def summary(self) -> str:
        return f"{self.running}/{self.total} running"


def _render_line(
    entry: DisplayEntry,
    registry: ProcessRegistry,
    linkify: bool,
) -> RenderLine:
    record = entry.record
    runs = scan_line(record.raw_text)
    refs = tuple(extract_file_references(runs)) if linkify else ()
    return RenderLine(
        sequence=record.sequence,
        process_name=record.process_name,
        color=registry.color_of(record.process_name),
        is_error=record.is_error,
        runs=runs,
        is_match=entry.is_match,
        file_refs=refs,
    )


def project(
    registry: ProcessRegistry,
    store: LogStore,
    view_filter: ViewFilter,
    search: SearchState,
    *,
    linkify: bool = False,
) -> RenderModel:
    """Build the render model for the current state.

    ``linkify`` turns on file-reference extraction; it is enabled when a
    text editor is configured to open references in.
    """
    rows = tuple(
        ProcessRow(
            name=entity.name,
            status=entity.status,
            color=registry.color_of(entity.name) or "",
            enabled=entity.enabled,
            hidden=entity.name in view_filter.hidden,
            last_exit_code=entity.last_exit_code,
        )
        for entity in registry.entities()
    )

    candidates = filter_records(store, view_filter)
    display = build_display(candidates, search)

    placeholder: str | None = None
    if store.size() == 0:
        placeholder = EMPTY_LOG_PLACEHOLDER
    elif not candidates:
        placeholder = NO_OUTPUT_PLACEHOLDER
    elif not display:
        placeholder = NO_MATCHES_PLACEHOLDER

    lines: list[RenderLine | GapMarker] = []
    for item in display:
        if isinstance(item, GapMarker):
            lines.append(item)
        else:
            lines.append(_render_line(item, registry, linkify))

    return RenderModel(
        processes=rows,
        lines=tuple(lines),
        active_tab=view_filter.tab,
        show_prefix=view_filter.tab == ALL_TAB,
        placeholder=placeholder,
        match_count=match_count(candidates, search.query) if search.active else None,
        running=registry.running_count(),
        total=len(registry),
    )
