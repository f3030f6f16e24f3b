"""MCP Server exposing the Procfile runner over stdio or HTTP."""

from __future__ import annotations

import os
from collections.abc import Awaitable, Callable
from typing import TYPE_CHECKING, Any

from mcp.server.fastmcp import FastMCP

from procfile_runner.config import DEFAULT_PORT
from procfile_runner.search import GapMarker, SearchState, ViewFilter
from procfile_runner.view import RenderLine, RenderModel

if TYPE_CHECKING:
    from procfile_runner.app import ProcfileRunner


def _status(runner: ProcfileRunner, ok: bool, **extra: Any) -> dict[str, Any]:
    result: dict[str, Any] = {"status": "ok" if ok else "error", **extra}
    if not ok and runner.status.is_error:
        result["error"] = runner.status.text.removeprefix("Error: ")
    elif runner.status.text:
        result["message"] = runner.status.text
    return result


async def _call(
    runner: ProcfileRunner,
    operation: Callable[..., Awaitable[bool]],
    *args: Any,
    **extra: Any,
) -> dict[str, Any]:
    runner.set_status("")
    ok = await operation(*args)
    return _status(runner, ok, **extra)


def _scope(
    runner: ProcfileRunner,
    tab: str | None,
    hidden: list[str] | None,
) -> ViewFilter:
    """The engine's current filter with any explicit overrides applied."""
    current = runner.engine.view_filter
    return ViewFilter(
        tab=current.tab if tab is None else tab,
        hidden=current.hidden if hidden is None else frozenset(hidden),
    )


def _line_to_dict(line: RenderLine | GapMarker, base_dir: str) -> dict[str, Any]:
    if isinstance(line, GapMarker):
        return {"gap": line.omitted}
    return {
        "seq": line.sequence,
        "process": line.process_name,
        "text": line.text,
        "is_error": line.is_error,
        "is_match": line.is_match,
        "file_refs": [
            {
                "path": ref.path,
                "resolved": ref.resolve(base_dir),
                "line": ref.line,
                "column": ref.column,
            }
            for ref in line.file_refs
        ],
    }


def model_to_dict(
    model: RenderModel,
    tail: int,
    *,
    base_dir: str = ".",
    evicted: int = 0,
) -> dict[str, Any]:
    """Wire form of a render model, keeping only the last ``tail`` lines.

    File references also carry a path resolved against ``base_dir`` as
    ``resolved``.  ``evicted`` counts lines already dropped by the cap.
    """
    lines = model.lines[-tail:] if tail > 0 else model.lines
    return {
        "tab": model.active_tab,
        "summary": model.summary,
        "placeholder": model.placeholder,
        "match_count": model.match_count,
        "total_lines": len(model.lines),
        "evicted": evicted,
        "lines": [_line_to_dict(line, base_dir) for line in lines],
    }


def create_server(
    runner: ProcfileRunner,
    host: str = "127.0.0.1",
    port: int = DEFAULT_PORT,
) -> FastMCP:
    """Create and configure the MCP Procfile runner server."""

    mcp = FastMCP(
        name="procfile-runner",
        instructions=(
            "Runs the processes of a Procfile and keeps their interleaved output. "
            "Use load_procfile first, start_all_processes or start_process to run "
            "them, get_logs to read (and search) output, list_processes for status."
        ),
        host=host,
        port=port,
        stateless_http=True,
    )

    # ------------------------------------------------------------------
    # Procfile
    # ------------------------------------------------------------------
    @mcp.tool()
    async def load_procfile(path: str) -> dict:
        """Load a Procfile, stopping every running process first.

        All previous processes and output are discarded.

        Args:
            path: Path to the Procfile (relative paths use the daemon's cwd).
        """
        ok = await runner.load_procfile(path)
        return _status(
            runner, ok,
            path=runner.engine.procfile_path,
            env_loaded=runner.engine.env_loaded,
            env_count=runner.engine.env_count,
        )

    @mcp.tool()
    async def enable_process(name: str) -> dict:
        """Uncomment a disabled (commented-out) process in the Procfile.

        Args:
            name: Name of the disabled process.
        """
        return await _call(runner, runner.enable_process, name, name=name)

    # ------------------------------------------------------------------
    # Process control
    # ------------------------------------------------------------------
    @mcp.tool()
    async def start_process(name: str) -> dict:
        """Start one process.  Starting a running process does nothing.

        Args:
            name: Process name from the Procfile.
        """
        return await _call(runner, runner.start_process, name, name=name)

    @mcp.tool()
    async def stop_process(name: str) -> dict:
        """Stop one process (SIGTERM to its process group, then SIGKILL).

        Args:
            name: Process name from the Procfile.
        """
        return await _call(runner, runner.stop_process, name, name=name)

    @mcp.tool()
    async def restart_process(name: str) -> dict:
        """Stop and start one process.

        Args:
            name: Process name from the Procfile.
        """
        return await _call(runner, runner.restart_process, name, name=name)

    @mcp.tool()
    async def start_all_processes() -> dict:
        """Start every enabled process that is not already running."""
        return await _call(runner, runner.start_all)

    @mcp.tool()
    async def stop_all_processes() -> dict:
        """Stop every running process."""
        return await _call(runner, runner.stop_all)

    @mcp.tool()
    async def set_auto_restart(enabled: bool) -> dict:
        """Turn automatic restart of crashed (non-zero exit) processes on or off.

        Args:
            enabled: New global auto-restart setting.
        """
        return await _call(runner, runner.set_auto_restart, enabled, enabled=enabled)

    @mcp.tool()
    async def list_processes() -> dict:
        """List the processes of the loaded Procfile with status and color."""
        await runner.engine.drain()
        model = runner.engine.project()
        running = {p["name"]: p for p in runner.supervisor.list_all()}
        processes = []
        for row in model.processes:
            info = running.get(row.name, {})
            processes.append({
                "name": row.name,
                "status": row.status.value,
                "enabled": row.enabled,
                "color": row.color,
                "last_exit_code": row.last_exit_code,
                "command": info.get("command"),
                "pid": info.get("pid"),
                "uptime_seconds": info.get("uptime_seconds"),
            })
        return {
            "procfile": runner.engine.procfile_path,
            "summary": model.summary,
            "processes": processes,
        }

    # ------------------------------------------------------------------
    # Logs and search
    # ------------------------------------------------------------------
    @mcp.tool()
    async def get_logs(
        tab: str | None = None,
        query: str | None = None,
        hidden: list[str] | None = None,
        tail: int = 200,
    ) -> dict:
        """Read buffered output, optionally filtered and searched.

        With a query, only matching lines and two lines of context around
        each are returned; {"gap": n} entries mark n skipped lines.
        Arguments left out fall back to the view set by select_tab,
        toggle_process_visibility and search_logs.

        Args:
            tab: "all" or a single process name.
            query: Case-insensitive substring to search for (ignores colors).
            hidden: Process names to leave out entirely.
            tail: Return at most this many trailing entries (0 = all).
        """
        engine = runner.engine
        await engine.drain()
        search = engine.search if query is None else SearchState(query=query)
        model = engine.project(_scope(runner, tab, hidden), search)
        base_dir = os.path.dirname(engine.procfile_path) if engine.procfile_path else "."
        return model_to_dict(model, tail, base_dir=base_dir, evicted=engine.store.evicted)

    @mcp.tool()
    async def match_count(
        tab: str | None = None,
        query: str | None = None,
        hidden: list[str] | None = None,
    ) -> dict:
        """Count lines matching a query without returning them.

        Args:
            tab: "all" or a single process name.
            query: Case-insensitive substring; an empty query counts 0.
            hidden: Process names to leave out entirely.
        """
        await runner.engine.drain()
        scope = _scope(runner, tab, hidden)
        count = runner.engine.match_count(query, scope)
        return {
            "tab": scope.tab,
            "query": runner.engine.search.query if query is None else query,
            "count": count,
        }

    @mcp.tool()
    async def select_tab(tab: str) -> dict:
        """Make "all" or one process the current log view.

        Args:
            tab: "all" or a process name.
        """
        runner.set_status("")
        return _status(runner, runner.select_tab(tab), tab=tab)

    @mcp.tool()
    async def toggle_process_visibility(name: str) -> dict:
        """Hide a process's output from every view, or show it again.

        Args:
            name: Process name.
        """
        runner.set_status("")
        hidden = runner.toggle_visibility(name)
        return _status(runner, hidden is not None, name=name, hidden=hidden)

    @mcp.tool()
    async def search_logs(query: str) -> dict:
        """Set the current search; an empty query clears it.

        Args:
            query: Case-insensitive substring.
        """
        await runner.engine.drain()
        return {"query": query, "count": runner.search(query)}

    @mcp.tool()
    async def clear_logs() -> dict:
        """Discard all buffered output.  Processes keep running."""
        await runner.clear_logs()
        return {"status": "ok"}

    @mcp.tool()
    async def save_log(name: str) -> dict:
        """Write one process's buffered output to a temp file.

        Args:
            name: Process name (the "all" view cannot be saved).
        """
        runner.set_status("")
        path = await runner.save_log(name)
        return _status(runner, path is not None, path=path)

    @mcp.tool()
    async def open_file(path: str, line: int = 1) -> dict:
        """Open a file reference from the logs in the configured text editor.

        Args:
            path: File path; relative paths resolve against the Procfile directory.
            line: Line number to jump to.
        """
        return await _call(runner, runner.open_file, path, line, path=path, line=line)

    # ------------------------------------------------------------------
    # Ports
    # ------------------------------------------------------------------
    @mcp.tool()
    async def get_active_ports() -> dict:
        """Processes listening on TCP ports 3000-9000 (needs lsof)."""
        runner.set_status("")
        ports = await runner.active_ports()
        return _status(
            runner, not runner.status.is_error,
            ports=[p.to_dict() for p in ports],
        )

    @mcp.tool()
    async def kill_port(port: int) -> dict:
        """Send SIGTERM to whatever listens on a port.

        Args:
            port: TCP port number.
        """
        return await _call(runner, runner.kill_port, port, port=port)

    # ------------------------------------------------------------------
    # Settings
    # ------------------------------------------------------------------
    @mcp.tool()
    async def get_recent_projects() -> dict:
        """Recently loaded Procfiles, newest first."""
        return {"projects": await runner.recent_projects()}

    @mcp.tool()
    async def get_settings() -> dict:
        """All saved settings."""
        return {"settings": await runner.get_settings()}

    @mcp.tool()
    async def save_setting(key: str, value: str) -> dict:
        """Save one setting.  Setting "textEditor" enables file links in logs.

        Args:
            key: Setting name.
            value: Setting value.
        """
        return await _call(runner, runner.save_setting, key, value, key=key)

    return mcp
