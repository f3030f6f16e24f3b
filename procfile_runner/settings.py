"""Persistent settings, recent projects, saved logs and the external editor."""

from __future__ import annotations

import asyncio
import json
import logging
import os
import shutil
import tempfile
from datetime import datetime
from pathlib import Path

log = logging.getLogger(__name__)

MAX_RECENT_PROJECTS = 10
TEXT_EDITOR_KEY = "textEditor"


class SettingsStore:
    """JSON files under the config directory.

    A missing or unreadable file reads as empty; writes create the
    directory on demand.
    """

    def __init__(self, config_dir: str | Path) -> None:
        self.config_dir = Path(config_dir)

    @property
    def recent_projects_path(self) -> Path:
        return self.config_dir / "recent_projects.json"

    @property
    def settings_path(self) -> Path:
        return self.config_dir / "settings.json"

    def _read_json(self, path: Path):
        try:
            with open(path) as f:
                return json.load(f)
        except FileNotFoundError:
            return None
        except (OSError, json.JSONDecodeError) as exc:
            log.warning("Ignoring unreadable %s: %s", path, exc)
            return None

    def _write_json(self, path: Path, data) -> None:
        self.config_dir.mkdir(parents=True, exist_ok=True)
        with open(path, "w") as f:
            json.dump(data, f)

    # -- recent projects -----------------------------------------------------

    def get_recent_projects(self) -> list[str]:
        data = self._read_json(self.recent_projects_path)
        if not isinstance(data, list):
            return []
        return [p for p in data if isinstance(p, str)]

    def add_recent_project(self, path: str) -> list[str]:
        """Move ``path`` to the front of the list and return the new list."""
        projects = [p for p in self.get_recent_projects() if p != path]
        projects.insert(0, path)
        projects = projects[:MAX_RECENT_PROJECTS]
        self._write_json(self.recent_projects_path, projects)
        return projects

    # -- key/value settings --------------------------------------------------

    def get_settings(self) -> dict[str, str]:
        data = self._read_json(self.settings_path)
        if not isinstance(data, dict):
            return {}
        return {str(k): str(v) for k, v in data.items()}

    def save_setting(self, key: str, value: str) -> None:
        settings = self.get_settings()
        settings[key] = value
        self._write_json(self.settings_path, settings)

    @property
    def text_editor(self) -> str:
        return self.get_settings().get(TEXT_EDITOR_KEY, "")


def project_display_name(procfile_path: str) -> str:
    """Label for a recent project: parent directory, plus Procfile suffix.

        /src/shop/Procfile      ->  shop
        /src/shop/Procfile.dev  ->  shop (dev)
    """
    path = Path(procfile_path)
    project = path.parent.name or path.name
    if path.name.startswith("Procfile.") and len(path.name) > len("Procfile."):
        return f"{project} ({path.name[len('Procfile.'):]})"
    return project


def save_log(process_name: str, content: str, directory: str | None = None) -> str:
    """Write a process log to a timestamped file and return its path."""
    timestamp = datetime.now().strftime("%Y-%m-%d_%H-%M-%S")
    file_name = f"procfile-runner_{process_name}_{timestamp}.txt"
    file_path = os.path.join(directory or tempfile.gettempdir(), file_name)
    with open(file_path, "w", encoding="utf-8") as f:
        f.write(content)
    return file_path


def editor_command(editor_path: str, file_path: str, line: int) -> list[str]:
    """Build the command line that opens ``file_path`` at ``line``."""
    editor_name = os.path.basename(editor_path).lower()
    line_arg = f"{file_path}:{line}"

    if "cursor" in editor_name:
        return [shutil.which("cursor") or editor_path, "--goto", line_arg]
    if "visual studio code" in editor_name or "code" in editor_name:
        return [shutil.which("code") or editor_path, "--goto", line_arg]
    if "sublime" in editor_name or editor_name == "subl":
        return [shutil.which("subl") or editor_path, line_arg]
    if "textmate" in editor_name or editor_name == "mate":
        return [shutil.which("mate") or editor_path, "--line", str(line), file_path]
    return [editor_path, file_path]


async def open_in_editor(editor_path: str, file_path: str, line: int = 1) -> None:
    """Launch the configured editor; raises if none is configured or it fails."""
    if not editor_path:
        raise ValueError("no text editor configured")

    argv = editor_command(editor_path, file_path, line)
    log.info("Opening %s:%d with %s", file_path, line, argv[0])
    process = await asyncio.create_subprocess_exec(
        *argv,
        stdout=asyncio.subprocess.DEVNULL,
        stderr=asyncio.subprocess.PIPE,
    )
    _, stderr = await process.communicate()
    if process.returncode != 0:
        detail = stderr.decode("utf-8", errors="replace").strip()
        raise RuntimeError(
            f"{argv[0]} exited with code {process.returncode}" + (f": {detail}" if detail else "")
        )
