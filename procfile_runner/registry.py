"""Process registry: identity, status and display color of each Procfile entry."""

from __future__ import annotations

import logging
from collections.abc import Iterable

from .errors import InvalidLoad, UnknownProcess
from .log_store import LogStore
from .models import ProcessEntity, ProcessInfo, ProcessStatus

log = logging.getLogger(__name__)

# Process colors for visual distinction
PROCESS_COLORS: tuple[str, ...] = (
    "#ef4444",  # red
    "#f97316",  # orange
    "#eab308",  # yellow
    "#22c55e",  # green
    "#14b8a6",  # teal
    "#3b82f6",  # blue
    "#6366f1",  # indigo
    "#a855f7",  # purple
    "#ec4899",  # pink
    "#06b6d4",  # cyan
)


class ProcessRegistry:
    """Ordered registry of the processes from the current Procfile.

    The whole set is replaced on every ``load``; entities are never
    merged across loads.
    """

    def __init__(self, store: LogStore, palette: tuple[str, ...] = PROCESS_COLORS) -> None:
        self._store = store
        self._palette = palette
        self._processes: dict[str, ProcessEntity] = {}

    # ------------------------------------------------------------------
    # Loading
    # ------------------------------------------------------------------

    def load(self, processes: Iterable[ProcessInfo]) -> None:
        entries = list(processes)
        if not entries:
            raise InvalidLoad("Procfile defines no processes")

        seen: set[str] = set()
        for entry in entries:
            if not entry.name:
                raise InvalidLoad("Process name must not be empty")
            if entry.name in seen:
                raise InvalidLoad(f"Duplicate process name '{entry.name}'")
            seen.add(entry.name)

        # Validation passed; replace wholesale
        self._processes = {
            entry.name: ProcessEntity(
                name=entry.name,
                color_index=index % len(self._palette),
                status=ProcessStatus.DISABLED if entry.disabled else ProcessStatus.STOPPED,
            )
            for index, entry in enumerate(entries)
        }

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    def __contains__(self, name: object) -> bool:
        return name in self._processes

    def __len__(self) -> int:
        return len(self._processes)

    def get(self, name: str) -> ProcessEntity | None:
        return self._processes.get(name)

    def entities(self) -> list[ProcessEntity]:
        """All entities in Procfile order."""
        return list(self._processes.values())

    def names(self) -> list[str]:
        return list(self._processes)

    def color_of(self, name: str) -> str | None:
        entity = self._processes.get(name)
        if entity is None:
            return None
        return self._palette[entity.color_index]

    def running_count(self) -> int:
        return sum(1 for p in self._processes.values() if p.status == ProcessStatus.RUNNING)

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    def apply_status(
        self,
        name: str,
        new_status: ProcessStatus | str,
        exit_code: int | None = None,
    ) -> bool:
        """Apply a status event.  Returns False when the event was ignored."""
        entity = self._processes.get(name)
        if entity is None:
            # Expected after a reload: events from the old process set
            log.debug("Ignoring status for unknown process '%s'", name)
            return False

        try:
            status = ProcessStatus(new_status)
        except ValueError:
            log.warning("Ignoring unknown status %r for '%s'", new_status, name)
            return False

        if status == ProcessStatus.DISABLED or entity.status == ProcessStatus.DISABLED:
            # disabled is left only through enable()
            log.warning(
                "Ignoring status %s for '%s' (currently %s)",
                status.value, name, entity.status.value,
            )
            return False

        previous = entity.status
        entity.status = status

        if previous == ProcessStatus.RUNNING and status == ProcessStatus.STOPPED:
            entity.last_exit_code = exit_code
            if exit_code is not None and exit_code != 0:
                self._store.append(name, f"Process exited with code {exit_code}", is_error=True)
        return True

    def enable(self, name: str) -> None:
        entity = self._processes.get(name)
        if entity is None:
            raise UnknownProcess(name)
        if entity.status == ProcessStatus.DISABLED:
            entity.status = ProcessStatus.STOPPED
