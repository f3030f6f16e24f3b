"""Procfile and .env parsing."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

from dotenv import dotenv_values


@dataclass(frozen=True)
class ProcessDefinition:
    name: str
    command: str
    disabled: bool = False


def _split_entry(line: str) -> tuple[str, str] | None:
    name, sep, command = line.partition(":")
    if not sep:
        return None
    name, command = name.strip(), command.strip()
    if not name or not command:
        return None
    return name, command


def parse_procfile(content: str) -> list[ProcessDefinition]:
    """Parse Procfile content into process definitions.

    Active ``name: command`` lines come first, in file order.  Commented
    entries (``# name: command``) follow as disabled definitions unless a
    process of that name is already active.

        web: bundle exec puma        ->  web (active)
        # worker: bundle exec sidekiq ->  worker (disabled)
        # just a note                 ->  skipped
    """
    definitions: list[ProcessDefinition] = []
    seen: set[str] = set()
    lines = [line.strip() for line in content.splitlines()]

    for line in lines:
        if not line or line.startswith("#"):
            continue
        entry = _split_entry(line)
        if entry is None or entry[0] in seen:
            continue
        definitions.append(ProcessDefinition(*entry))
        seen.add(entry[0])

    for line in lines:
        if not line.startswith("#"):
            continue
        entry = _split_entry(line.lstrip("#").strip())
        if entry is None or entry[0] in seen:
            continue
        definitions.append(ProcessDefinition(*entry, disabled=True))
        seen.add(entry[0])

    return definitions


def read_procfile(path: str | Path) -> list[ProcessDefinition]:
    return parse_procfile(Path(path).read_text(encoding="utf-8"))


def enable_in_procfile(path: str | Path, name: str) -> None:
    """Uncomment the first disabled entry for ``name`` in the file.

    Indentation before the ``#`` is kept.  Raises ValueError when no such
    entry exists.
    """
    path = Path(path)
    lines = path.read_text(encoding="utf-8").split("\n")

    for i, line in enumerate(lines):
        stripped = line.strip()
        if not stripped.startswith("#"):
            continue
        entry = _split_entry(stripped.lstrip("#").strip())
        if entry is None or entry[0] != name:
            continue
        indent = line[: len(line) - len(line.lstrip())]
        lines[i] = indent + stripped.lstrip("#").lstrip()
        break
    else:
        raise ValueError(f"process {name} not found as disabled")

    path.write_text("\n".join(lines), encoding="utf-8")


def find_env_file(procfile_path: str | Path) -> Path | None:
    """Return the ``.env`` next to the Procfile, if there is one."""
    env_path = Path(procfile_path).parent / ".env"
    return env_path if env_path.is_file() else None


def load_env(procfile_path: str | Path) -> dict[str, str]:
    env_path = find_env_file(procfile_path)
    if env_path is None:
        return {}
    return {k: v for k, v in dotenv_values(env_path).items() if v is not None}
