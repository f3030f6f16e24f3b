"""Process Supervisor: spawns, tracks, and stops the processes of a Procfile."""

from __future__ import annotations

import asyncio
import logging
import os
import signal
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from procfile_runner.errors import UnknownProcess
from procfile_runner.models import ProcessInfo, SupervisorEvent
from procfile_runner.process_manager.orphans import (
    SESSION_ENV_KEY,
    kill_orphans,
    track_process_group,
)
from procfile_runner.procfile import (
    ProcessDefinition,
    enable_in_procfile,
    load_env,
    read_procfile,
)

log = logging.getLogger(__name__)

AUTO_RESTART_DELAY = 2.0  # seconds
STREAM_LIMIT = 1024 * 1024  # longer lines are emitted in pieces

EventSink = Callable[[SupervisorEvent], None]


@dataclass(frozen=True)
class LoadedProcfile:
    """What the supervisor knows about the current Procfile."""

    path: str | None = None
    env: dict[str, str] = field(default_factory=dict)
    definitions: dict[str, ProcessDefinition] = field(default_factory=dict)


@dataclass
class ManagedProcess:
    """State for a single running child."""

    name: str
    command: str
    cwd: str
    pid: int | None = None
    start_time: float = field(default_factory=time.time)
    stopping: bool = False
    _process: asyncio.subprocess.Process | None = field(
        default=None, repr=False
    )
    _reader_tasks: list[asyncio.Task[None]] = field(
        default_factory=list, repr=False
    )


class ProcessSupervisor:
    """Runs the processes of one Procfile and reports what they do.

    Every observation is pushed to ``sink`` as a SupervisorEvent:
    ``process-output`` per line, ``process-status`` on start and exit,
    ``procfile-loaded`` after each (re)load.
    """

    def __init__(
        self,
        sink: EventSink,
        *,
        auto_restart: bool = True,
        stop_timeout: float = 10.0,
        sessions_file: str | Path | None = None,
    ) -> None:
        self._sink = sink
        self.auto_restart = auto_restart
        self.stop_timeout = stop_timeout
        self.sessions_file = sessions_file
        self.session_id = str(time.time_ns())
        self.procfile_path: str | None = None
        self.env: dict[str, str] = {}
        self._definitions: dict[str, ProcessDefinition] = {}
        self._running: dict[str, ManagedProcess] = {}
        self._restart_tasks: set[asyncio.Task[None]] = set()

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def load_procfile(self, path: str | Path) -> dict[str, Any]:
        """Parse a Procfile (and the .env beside it) and announce the set.

        Raises OSError when the file cannot be read.
        """
        path = str(path)
        definitions = read_procfile(path)
        env = load_env(path)

        # Pending restarts belong to the previous process set
        self._cancel_restarts()
        self.procfile_path = path
        self.env = env
        self._definitions = {d.name: d for d in definitions}

        processes = [ProcessInfo(name=d.name, disabled=d.disabled) for d in definitions]
        event = SupervisorEvent.procfile_loaded(
            path, processes, env_loaded=bool(env), env_count=len(env),
        )
        self._sink(event)
        log.info("Loaded %d processes from %s (%d env vars)", len(processes), path, len(env))
        return event.to_dict()

    @property
    def loaded(self) -> LoadedProcfile:
        return LoadedProcfile(self.procfile_path, dict(self.env), dict(self._definitions))

    def restore(self, loaded: LoadedProcfile) -> None:
        """Go back to an earlier Procfile, e.g. after the new one was rejected."""
        self.procfile_path = loaded.path
        self.env = dict(loaded.env)
        self._definitions = dict(loaded.definitions)

    async def start(self, name: str) -> ManagedProcess | None:
        """Start a named process.  Idempotent; unknown or disabled names are ignored."""
        definition = self._definitions.get(name)
        if definition is None or definition.disabled:
            return None
        if name in self._running:
            return self._running[name]

        cwd = str(Path(self.procfile_path).parent) if self.procfile_path else os.getcwd()

        spawn_env = os.environ.copy()
        spawn_env.update(self.env)
        spawn_env[SESSION_ENV_KEY] = self.session_id

        process = await asyncio.create_subprocess_exec(
            "sh", "-c", definition.command,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
            cwd=cwd,
            env=spawn_env,
            limit=STREAM_LIMIT,
            # Create new process group so we can kill the whole tree
            preexec_fn=os.setsid,
        )

        managed = ManagedProcess(
            name=name,
            command=definition.command,
            cwd=cwd,
            pid=process.pid,
            _process=process,
        )
        if self.sessions_file is not None:
            try:
                track_process_group(self.sessions_file, self.session_id, process.pid)
            except OSError as exc:
                log.warning("Could not record process group of '%s': %s", name, exc)

        self._running[name] = managed
        self._sink(SupervisorEvent.status_change(name, "running"))

        # Background readers for stdout/stderr
        managed._reader_tasks = [
            asyncio.create_task(
                self._read_stream(name, process.stdout, is_stderr=False),  # type: ignore[arg-type]
                name=f"{name}-stdout",
            ),
            asyncio.create_task(
                self._read_stream(name, process.stderr, is_stderr=True),  # type: ignore[arg-type]
                name=f"{name}-stderr",
            ),
        ]

        # Background waiter to report the exit
        asyncio.create_task(
            self._wait_for_exit(managed),
            name=f"{name}-waiter",
        )
        return managed

    async def stop(self, name: str, force: bool = False) -> None:
        """Stop a running process. Sends SIGTERM, waits, then SIGKILL."""
        managed = self._running.pop(name, None)
        if managed is None:
            return
        managed.stopping = True

        proc = managed._process
        if proc is not None and proc.returncode is None:
            await self._terminate(proc, force)

        # Let readers flush what is left in the pipes
        if managed._reader_tasks:
            _, pending = await asyncio.wait(managed._reader_tasks, timeout=1.0)
            for task in pending:
                task.cancel()

        self._sink(SupervisorEvent.status_change(name, "stopped"))

    async def restart(self, name: str) -> ManagedProcess | None:
        if name not in self._definitions:
            return None
        await self.stop(name)
        return await self.start(name)

    async def start_all(self) -> None:
        for name in list(self._definitions):
            if name not in self._running:
                await self.start(name)

    async def stop_all(self) -> None:
        """Stop all running processes."""
        self._cancel_restarts()
        for name in list(self._running):
            try:
                await self.stop(name)
            except Exception:
                log.exception("Failed to stop '%s'", name)
        # A child may have crashed while we were stopping the others
        self._cancel_restarts()

    def kill_orphans(self) -> int:
        """Kill children of earlier sessions that outlived their daemon."""
        return kill_orphans(self.session_id, self.sessions_file)

    async def enable(self, name: str) -> None:
        """Uncomment a disabled process in the Procfile so it can be started."""
        if self.procfile_path is None:
            raise RuntimeError("no Procfile loaded")
        definition = self._definitions.get(name)
        if definition is None:
            raise UnknownProcess(name)
        if not definition.disabled:
            return
        enable_in_procfile(self.procfile_path, name)
        self._definitions[name] = ProcessDefinition(definition.name, definition.command)

    def set_auto_restart(self, enabled: bool) -> None:
        self.auto_restart = enabled

    def is_running(self, name: str) -> bool:
        return name in self._running

    def list_all(self) -> list[dict[str, Any]]:
        """Return summary info for every process in the Procfile."""
        result = []
        for definition in self._definitions.values():
            managed = self._running.get(definition.name)
            result.append({
                "name": definition.name,
                "command": definition.command,
                "disabled": definition.disabled,
                "pid": managed.pid if managed else None,
                "uptime_seconds": (
                    round(time.time() - managed.start_time, 1) if managed else None
                ),
            })
        return result

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _cancel_restarts(self) -> None:
        for task in list(self._restart_tasks):
            task.cancel()

    async def _terminate(self, proc: asyncio.subprocess.Process, force: bool) -> None:
        try:
            pgid = os.getpgid(proc.pid)
        except (ProcessLookupError, OSError):
            return

        sig = signal.SIGKILL if force else signal.SIGTERM
        try:
            os.killpg(pgid, sig)
        except (ProcessLookupError, OSError):
            return

        if force:
            await proc.wait()
            return

        # Wait for graceful shutdown, then escalate
        try:
            await asyncio.wait_for(proc.wait(), timeout=self.stop_timeout)
        except asyncio.TimeoutError:
            log.warning("pid %d ignored SIGTERM, sending SIGKILL", proc.pid)
            try:
                os.killpg(pgid, signal.SIGKILL)
            except (ProcessLookupError, OSError):
                pass
            try:
                await asyncio.wait_for(proc.wait(), timeout=5.0)
            except asyncio.TimeoutError:
                log.error("pid %d did not exit after SIGKILL", proc.pid)

    async def _read_stream(
        self,
        name: str,
        stream: asyncio.StreamReader,
        is_stderr: bool,
    ) -> None:
        """Emit each line of an async stream as process output.

        A line longer than STREAM_LIMIT is emitted as several records of
        roughly STREAM_LIMIT bytes each instead of being buffered whole.
        """
        oversized = False
        try:
            while True:
                try:
                    raw = await stream.readuntil(b"\n")
                except asyncio.IncompleteReadError as exc:
                    # EOF; whatever is left has no trailing newline
                    if exc.partial:
                        self._emit(name, exc.partial, is_stderr)
                    break
                except asyncio.LimitOverrunError as exc:
                    if not oversized:
                        log.warning(
                            "'%s' wrote a line over %d bytes; splitting it",
                            name, STREAM_LIMIT,
                        )
                    oversized = True
                    self._emit(name, await stream.readexactly(exc.consumed), is_stderr)
                    continue

                if oversized and not raw.rstrip(b"\r\n"):
                    # Newline closing a line already emitted in pieces
                    oversized = False
                    continue
                oversized = False
                self._emit(name, raw, is_stderr)
        except asyncio.CancelledError:
            pass

    def _emit(self, name: str, raw: bytes, is_stderr: bool) -> None:
        line = raw.decode("utf-8", errors="replace").rstrip("\r\n")
        self._sink(SupervisorEvent.output(name, line, is_stderr))

    async def _wait_for_exit(self, managed: ManagedProcess) -> None:
        """Wait for process to exit and report it."""
        proc = managed._process
        if proc is None:
            return
        code = await proc.wait()
        # Output must land before the exit status
        await asyncio.gather(*managed._reader_tasks, return_exceptions=True)
        if managed.stopping:
            # Being stopped by stop(), which reports the status itself
            return

        if self._running.get(managed.name) is managed:
            del self._running[managed.name]
        self._sink(SupervisorEvent.status_change(managed.name, "stopped", code))

        if self.auto_restart and code != 0:
            task = asyncio.create_task(
                self._auto_restart(managed.name),
                name=f"{managed.name}-restart",
            )
            self._restart_tasks.add(task)
            task.add_done_callback(self._restart_tasks.discard)

    async def _auto_restart(self, name: str) -> None:
        await asyncio.sleep(AUTO_RESTART_DELAY)
        # The flag may have been switched off while we waited
        if not self.auto_restart or name in self._running:
            return
        self._sink(SupervisorEvent.output(name, "Auto-restarting process..."))
        try:
            await self.start(name)
        except Exception:
            log.exception("Auto-restart of '%s' failed", name)
