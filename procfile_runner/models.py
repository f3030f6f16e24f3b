from __future__ import annotations

import enum
import html
import os
import time
from dataclasses import dataclass, field
from typing import Any


# ---------------------------------------------------------------------------
# Process identity and lifecycle
# ---------------------------------------------------------------------------

class ProcessStatus(str, enum.Enum):
    STOPPED = "stopped"
    RUNNING = "running"
    DISABLED = "disabled"


@dataclass
class ProcessEntity:
    name: str
    color_index: int
    status: ProcessStatus = ProcessStatus.STOPPED
    last_exit_code: int | None = None

    @property
    def enabled(self) -> bool:
        return self.status != ProcessStatus.DISABLED


@dataclass(frozen=True)
class ProcessInfo:
    """One Procfile entry as announced by the supervisor."""
    name: str
    disabled: bool = False


# ---------------------------------------------------------------------------
# Log records and their rendered form
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class LogRecord:
    process_name: str
    raw_text: str
    is_error: bool
    sequence: int
    timestamp: float = field(default_factory=time.time, compare=False)


@dataclass(frozen=True)
class StyledRun:
    """A segment of a line sharing one SGR style.

    ``text`` is the literal, escape-free content.  Use ``html`` when the
    segment is embedded in markup.
    """
    text: str
    color: str | None = None
    background_color: str | None = None
    bold: bool = False
    dim: bool = False
    italic: bool = False
    underline: bool = False

    @property
    def html(self) -> str:
        return html.escape(self.text, quote=False)


@dataclass(frozen=True)
class FileReference:
    """A ``path[:line[:col]]`` token found inside one StyledRun.

    ``run_index``/``start``/``end`` locate the token in the run's text.
    """
    path: str
    line: int | None
    column: int | None
    run_index: int
    start: int
    end: int

    def resolve(self, base_dir: str) -> str:
        return resolve_path(self.path, base_dir)


def resolve_path(path: str, base_dir: str) -> str:
    """Join a relative path onto ``base_dir`` without touching the disk."""
    if os.path.isabs(path):
        return path
    return os.path.normpath(os.path.join(base_dir, path))


# ---------------------------------------------------------------------------
# SupervisorEvent: the envelope pushed by the process supervisor
# ---------------------------------------------------------------------------

class SupervisorEventType(enum.Enum):
    PROCESS_OUTPUT = "process-output"     # one line of child output
    PROCESS_STATUS = "process-status"     # running / stopped transition
    PROCFILE_LOADED = "procfile-loaded"   # new process set, replaces all state


@dataclass(frozen=True)
class SupervisorEvent:
    type: SupervisorEventType
    name: str = ""
    # PROCESS_OUTPUT
    line: str = ""
    is_stderr: bool = False
    # PROCESS_STATUS
    status: str = ""
    exit_code: int | None = None
    # PROCFILE_LOADED
    path: str = ""
    processes: tuple[ProcessInfo, ...] = ()
    env_loaded: bool = False
    env_count: int = 0

    @classmethod
    def output(cls, name: str, line: str, is_stderr: bool = False) -> SupervisorEvent:
        return cls(SupervisorEventType.PROCESS_OUTPUT, name=name, line=line, is_stderr=is_stderr)

    @classmethod
    def status_change(
        cls, name: str, status: str, exit_code: int | None = None
    ) -> SupervisorEvent:
        return cls(SupervisorEventType.PROCESS_STATUS, name=name, status=status, exit_code=exit_code)

    @classmethod
    def procfile_loaded(
        cls,
        path: str,
        processes: list[ProcessInfo] | tuple[ProcessInfo, ...],
        env_loaded: bool = False,
        env_count: int = 0,
    ) -> SupervisorEvent:
        return cls(
            SupervisorEventType.PROCFILE_LOADED,
            path=path,
            processes=tuple(processes),
            env_loaded=env_loaded,
            env_count=env_count,
        )

    def to_dict(self) -> dict[str, Any]:
        """Wire form matching the supervisor's push-event payloads."""
        if self.type == SupervisorEventType.PROCESS_OUTPUT:
            return {"name": self.name, "line": self.line, "is_stderr": self.is_stderr}
        if self.type == SupervisorEventType.PROCESS_STATUS:
            return {"name": self.name, "status": self.status, "exit_code": self.exit_code}
        return {
            "path": self.path,
            "processes": [{"name": p.name, "disabled": p.disabled} for p in self.processes],
            "env_loaded": self.env_loaded,
            "env_count": self.env_count,
        }
