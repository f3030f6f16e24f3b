"""Log engine: the single writer over registry, log store and view state.

Supervisor events may originate from many reader tasks at once.  They are
funnelled through one ``asyncio.Queue`` and applied by one consumer task,
so log order always matches arrival order and status transitions never
interleave.  Direct calls (``load``, ``set_query`` ...) run on the same
event loop and never await mid-mutation.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Iterable

from .errors import InvalidLoad, UnknownProcess
from .log_store import MAX_RECORDS, LogStore
from .models import LogRecord, ProcessInfo, SupervisorEvent, SupervisorEventType
from .registry import ProcessRegistry
from .search import ALL_TAB, SearchState, ViewFilter, filter_records, match_count
from .view import RenderModel, project

log = logging.getLogger(__name__)


class LogEngine:
    def __init__(self, max_records: int = MAX_RECORDS) -> None:
        self.store = LogStore(max_records)
        self.registry = ProcessRegistry(self.store)
        self.view_filter = ViewFilter()
        self.search = SearchState()
        self.linkify = False

        self.procfile_path: str | None = None
        self.env_loaded = False
        self.env_count = 0
        self.load_error: InvalidLoad | None = None

        self._queue: asyncio.Queue[SupervisorEvent | None] = asyncio.Queue()
        self._consumer: asyncio.Task[None] | None = None

    # ------------------------------------------------------------------
    # Event queue
    # ------------------------------------------------------------------

    def submit(self, event: SupervisorEvent) -> None:
        """Enqueue a supervisor event; safe to call from any task."""
        self._queue.put_nowait(event)

    def start(self) -> asyncio.Task[None]:
        if self._consumer is None or self._consumer.done():
            self._consumer = asyncio.create_task(self._run(), name="log-engine")
        return self._consumer

    async def stop(self) -> None:
        """Apply everything already queued, then stop the consumer."""
        if self._consumer is None:
            return
        await self._queue.put(None)
        await self._consumer
        self._consumer = None

    async def drain(self) -> None:
        """Wait until every queued event has been applied."""
        await self._queue.join()

    async def _run(self) -> None:
        while True:
            event = await self._queue.get()
            try:
                if event is None:
                    return
                self.apply(event)
            except Exception:
                log.exception("Failed to apply %s", event)
            finally:
                self._queue.task_done()

    # ------------------------------------------------------------------
    # Applying events
    # ------------------------------------------------------------------

    def apply(self, event: SupervisorEvent) -> None:
        if event.type == SupervisorEventType.PROCESS_OUTPUT:
            self.append_output(event.name, event.line, event.is_stderr)

        elif event.type == SupervisorEventType.PROCESS_STATUS:
            self.registry.apply_status(event.name, event.status, event.exit_code)

        elif event.type == SupervisorEventType.PROCFILE_LOADED:
            try:
                self.load(
                    event.processes,
                    path=event.path,
                    env_loaded=event.env_loaded,
                    env_count=event.env_count,
                )
            except InvalidLoad as exc:
                log.warning("Rejected Procfile %s: %s", event.path, exc)
                self.load_error = exc

    def append_output(self, name: str, line: str, is_error: bool = False) -> LogRecord | None:
        if name not in self.registry:
            log.debug("Dropping output for unknown process '%s'", name)
            return None
        return self.store.append(name, line, is_error)

    def load(
        self,
        processes: Iterable[ProcessInfo],
        *,
        path: str | None = None,
        env_loaded: bool = False,
        env_count: int = 0,
    ) -> None:
        """Replace the process set and wipe all log and view state.

        Raises InvalidLoad before touching anything if the list is bad.
        """
        self.registry.load(processes)
        self.store.clear()
        self.view_filter = ViewFilter()
        self.search = SearchState()
        self.procfile_path = path
        self.env_loaded = env_loaded
        self.env_count = env_count
        self.load_error = None
        log.info("Loaded %d processes from %s", len(self.registry), path or "<memory>")

    def enable(self, name: str) -> None:
        self.registry.enable(name)

    def clear_logs(self) -> None:
        self.store.clear()

    # ------------------------------------------------------------------
    # View state
    # ------------------------------------------------------------------

    def set_tab(self, tab: str) -> None:
        if tab != ALL_TAB and tab not in self.registry:
            raise UnknownProcess(tab)
        self.view_filter = ViewFilter(tab=tab, hidden=self.view_filter.hidden)

    def toggle_visibility(self, name: str) -> bool:
        """Hide or show a process everywhere.  Returns True if now hidden."""
        if name not in self.registry:
            raise UnknownProcess(name)
        hidden = set(self.view_filter.hidden)
        if name in hidden:
            hidden.discard(name)
        else:
            hidden.add(name)
        self.view_filter = ViewFilter(tab=self.view_filter.tab, hidden=frozenset(hidden))
        return name in hidden

    def set_query(self, query: str) -> None:
        self.search = SearchState(query=query)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def project(
        self,
        view_filter: ViewFilter | None = None,
        search: SearchState | None = None,
    ) -> RenderModel:
        return project(
            self.registry,
            self.store,
            view_filter or self.view_filter,
            search or self.search,
            linkify=self.linkify,
        )

    def match_count(
        self,
        query: str | None = None,
        view_filter: ViewFilter | None = None,
    ) -> int:
        scope = filter_records(self.store, view_filter or self.view_filter)
        return match_count(scope, self.search.query if query is None else query)

    def log_text(self, name: str) -> str:
        """Raw lines of one process, newline-joined, for saving."""
        return "\n".join(r.raw_text for r in self.store.for_process(name))
