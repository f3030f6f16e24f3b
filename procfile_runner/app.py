"""ProcfileRunner: ties the supervisor, the log engine and the settings together.

Every call into the supervisor or an auxiliary collaborator goes through
``_external``: a failure becomes an ExternalCallFailure, is shown as
status text and never escapes to the caller.
"""

from __future__ import annotations

import inspect
import logging
import os
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

from .config import Config
from .engine import LogEngine
from .errors import ExternalCallFailure, UnknownProcess
from .models import resolve_path
from .ports import PortInfo, get_active_ports, kill_port
from .process_manager.orphans import SESSIONS_FILE_NAME
from .process_manager.supervisor import ProcessSupervisor
from .search import ALL_TAB
from .settings import (
    TEXT_EDITOR_KEY,
    SettingsStore,
    open_in_editor,
    project_display_name,
    save_log,
)

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class StatusLine:
    text: str = ""
    is_error: bool = False


class ProcfileRunner:
    def __init__(
        self,
        config: Config,
        *,
        supervisor: ProcessSupervisor | None = None,
        settings: SettingsStore | None = None,
    ) -> None:
        self.config = config
        self.engine = LogEngine(config.max_records)
        self.supervisor = supervisor or ProcessSupervisor(
            self.engine.submit,
            auto_restart=config.auto_restart,
            stop_timeout=config.stop_timeout,
            sessions_file=os.path.join(config.config_dir, SESSIONS_FILE_NAME),
        )
        self.settings = settings or SettingsStore(config.config_dir)
        self.status = StatusLine()
        self.last_failure: ExternalCallFailure | None = None

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def startup(self) -> None:
        self.engine.start()
        await self._external("kill_orphaned_processes", self.supervisor.kill_orphans)
        ok, editor = await self._external("get_settings", lambda: self.settings.text_editor)
        self.engine.linkify = bool(ok and editor)

    async def shutdown(self) -> None:
        await self._external("stop_all_processes", self.supervisor.stop_all)
        await self.engine.stop()

    # ------------------------------------------------------------------
    # Status and failure recovery
    # ------------------------------------------------------------------

    def set_status(self, text: str, is_error: bool = False) -> None:
        self.status = StatusLine(text, is_error)

    async def _external(
        self, operation: str, func: Callable[..., Any], *args: Any
    ) -> tuple[bool, Any]:
        """Run a collaborator call.  Returns ``(ok, result)``."""
        try:
            result = func(*args)
            if inspect.isawaitable(result):
                result = await result
            return True, result
        except Exception as exc:
            failure = ExternalCallFailure(operation, exc)
            log.warning("%s failed: %s", operation, failure)
            self.last_failure = failure
            self.set_status(f"Error: {failure}", is_error=True)
            return False, None

    # ------------------------------------------------------------------
    # Procfile
    # ------------------------------------------------------------------

    async def load_procfile(self, path: str) -> bool:
        """Stop everything, load ``path`` and remember it as a recent project."""
        ok, resolved = await self._external("load_procfile", self.config.resolve_procfile, path)
        if not ok:
            return False
        await self._external("stop_all_processes", self.supervisor.stop_all)
        previous = self.supervisor.loaded
        ok, _ = await self._external("load_procfile", self.supervisor.load_procfile, resolved)
        if not ok:
            return False

        await self.engine.drain()
        if self.engine.load_error is not None:
            # The registry kept the old set; keep the supervisor in step
            self.supervisor.restore(previous)
            self.set_status(f"Error: {self.engine.load_error}", is_error=True)
            return False

        await self._external("add_recent_project", self.settings.add_recent_project, resolved)
        self.set_status(f"Loaded {len(self.engine.registry)} processes from Procfile")
        return True

    async def enable_process(self, name: str) -> bool:
        if name not in self.engine.registry:
            self.set_status(f"Error: {UnknownProcess(name)}", is_error=True)
            return False
        ok, _ = await self._external("enable_process", self.supervisor.enable, name)
        if ok:
            await self.engine.drain()
            self.engine.enable(name)
            self.set_status(f"Enabled {name}")
        return ok

    # ------------------------------------------------------------------
    # Process control
    # ------------------------------------------------------------------

    async def start_process(self, name: str) -> bool:
        ok, _ = await self._external("start_process", self.supervisor.start, name)
        return ok

    async def stop_process(self, name: str) -> bool:
        ok, _ = await self._external("stop_process", self.supervisor.stop, name)
        return ok

    async def restart_process(self, name: str) -> bool:
        ok, _ = await self._external("restart_process", self.supervisor.restart, name)
        return ok

    async def start_all(self) -> bool:
        ok, _ = await self._external("start_all_processes", self.supervisor.start_all)
        if ok:
            self.set_status("Starting all processes...")
        return ok

    async def stop_all(self) -> bool:
        ok, _ = await self._external("stop_all_processes", self.supervisor.stop_all)
        if ok:
            self.set_status("Stopping all processes...")
        return ok

    async def set_auto_restart(self, enabled: bool) -> bool:
        ok, _ = await self._external(
            "set_global_auto_restart", self.supervisor.set_auto_restart, enabled
        )
        if ok:
            self.set_status(f"Auto-restart {'enabled' if enabled else 'disabled'}")
        return ok

    # ------------------------------------------------------------------
    # Log view
    # ------------------------------------------------------------------

    async def clear_logs(self) -> None:
        await self.engine.drain()
        self.engine.clear_logs()

    def select_tab(self, tab: str) -> bool:
        try:
            self.engine.set_tab(tab)
        except UnknownProcess as exc:
            self.set_status(f"Error: {exc}", is_error=True)
            return False
        return True

    def toggle_visibility(self, name: str) -> bool | None:
        """Returns whether ``name`` is now hidden, or None if it is unknown."""
        try:
            return self.engine.toggle_visibility(name)
        except UnknownProcess as exc:
            self.set_status(f"Error: {exc}", is_error=True)
            return None

    def search(self, query: str) -> int:
        """Set the active search and return its match count."""
        self.engine.set_query(query)
        return self.engine.match_count()

    # ------------------------------------------------------------------
    # Auxiliary collaborators
    # ------------------------------------------------------------------

    async def save_log(self, name: str) -> str | None:
        """Save one process's buffered output; the "all" tab saves nothing."""
        if name == ALL_TAB:
            return None
        await self.engine.drain()
        if not self.engine.store.for_process(name):
            self.set_status("No logs to save")
            return None
        content = self.engine.log_text(name)
        ok, path = await self._external("save_log", save_log, name, content)
        if not ok:
            return None
        self.set_status(f"Log saved to {path}")
        return path

    async def open_file(self, path: str, line: int = 1) -> bool:
        """Open a file reference in the configured editor.

        Relative paths are taken relative to the Procfile's directory.
        """
        if self.engine.procfile_path:
            path = resolve_path(path, os.path.dirname(self.engine.procfile_path))
        ok, editor = await self._external("get_settings", lambda: self.settings.text_editor)
        if not ok:
            return False
        ok, _ = await self._external("open_file_in_editor", open_in_editor, editor, path, line)
        return ok

    async def recent_projects(self) -> list[dict[str, str]]:
        ok, projects = await self._external(
            "get_recent_projects", self.settings.get_recent_projects
        )
        if not ok:
            return []
        return [{"path": p, "name": project_display_name(p)} for p in projects]

    async def active_ports(self) -> list[PortInfo]:
        ok, ports = await self._external("get_active_ports", get_active_ports)
        return ports if ok else []

    async def kill_port(self, port: int) -> bool:
        ok, info = await self._external("kill_port", kill_port, port)
        if ok:
            self.set_status(f"Killed {info.process} (pid {info.pid}) on port {port}")
        return ok

    async def get_settings(self) -> dict[str, str]:
        ok, settings = await self._external("get_settings", self.settings.get_settings)
        return settings if ok else {}

    async def save_setting(self, key: str, value: str) -> bool:
        ok, _ = await self._external("save_setting", self.settings.save_setting, key, value)
        if ok and key == TEXT_EDITOR_KEY:
            self.engine.linkify = bool(value)
        return ok
