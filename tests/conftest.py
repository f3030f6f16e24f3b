"""Shared fixtures for procfile-runner tests."""

import pytest

from procfile_runner.engine import LogEngine
from procfile_runner.log_store import LogStore
from procfile_runner.models import ProcessInfo
from procfile_runner.registry import ProcessRegistry


@pytest.fixture
def store():
    return LogStore()


@pytest.fixture
def registry(store):
    return ProcessRegistry(store)


@pytest.fixture
def engine():
    """Engine with web, worker and a disabled clock process."""
    eng = LogEngine()
    eng.load([
        ProcessInfo("web"),
        ProcessInfo("worker"),
        ProcessInfo("clock", disabled=True),
    ])
    return eng


@pytest.fixture
def procfile(tmp_path):
    """A Procfile on disk with one disabled entry and a .env beside it."""
    path = tmp_path / "Procfile"
    path.write_text(
        "# Sample Procfile\n"
        "web: echo web-up\n"
        "worker: echo worker-up\n"
        "# clock: echo tick\n"
    )
    (tmp_path / ".env").write_text("GREETING=hello\nQUOTED=\"a b\"\n")
    return path
