from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv

from .log_store import MAX_RECORDS

DEFAULT_PORT = 8902
DEFAULT_CONFIG_DIR = Path.home() / ".config" / "procfile-runner"

_TRUE = {"1", "true", "yes", "on"}
_FALSE = {"0", "false", "no", "off"}


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name, "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        raise ValueError(f"{name} must be an integer, got {raw!r}") from None


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name, "").strip()
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError:
        raise ValueError(f"{name} must be a number, got {raw!r}") from None


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name, "").strip().lower()
    if not raw:
        return default
    if raw in _TRUE:
        return True
    if raw in _FALSE:
        return False
    raise ValueError(f"{name} must be a boolean, got {raw!r}")


@dataclass(frozen=True)
class Config:
    host: str = "127.0.0.1"
    port: int = DEFAULT_PORT
    config_dir: str = str(DEFAULT_CONFIG_DIR)
    max_records: int = MAX_RECORDS
    auto_restart: bool = True
    stop_timeout: float = 10.0

    def resolve_procfile(self, path: str) -> str:
        """Turn a user-supplied Procfile path into an absolute one.

        Procfile            ->  /current/dir/Procfile
        ~/app/Procfile.dev  ->  /Users/.../app/Procfile.dev

        Raises ValueError if the file does not exist.
        """
        resolved = Path(path).expanduser().resolve()
        if not resolved.is_file():
            raise ValueError(f"Procfile does not exist: {resolved}")
        return str(resolved)

    @classmethod
    def from_env(cls, env_path: str | Path | None = None) -> Config:
        load_dotenv(env_path)

        max_records = _env_int("PROCFILE_RUNNER_MAX_RECORDS", MAX_RECORDS)
        if max_records < 1:
            raise ValueError("PROCFILE_RUNNER_MAX_RECORDS must be positive")

        return cls(
            host=os.getenv("PROCFILE_RUNNER_HOST", "127.0.0.1"),
            port=_env_int("PROCFILE_RUNNER_PORT", DEFAULT_PORT),
            config_dir=os.path.expanduser(
                os.getenv("PROCFILE_RUNNER_CONFIG_DIR", str(DEFAULT_CONFIG_DIR))
            ),
            max_records=max_records,
            auto_restart=_env_bool("PROCFILE_RUNNER_AUTO_RESTART", True),
            stop_timeout=_env_float("PROCFILE_RUNNER_STOP_TIMEOUT", 10.0),
        )
