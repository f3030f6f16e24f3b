"""Clean up children left behind by an earlier, crashed session.

Every child carries ``PROCFILE_RUNNER_SESSION=<session id>`` in its
environment.  Where ``/proc`` exists the environments are scanned
directly; elsewhere the process groups recorded in ``sessions.txt``
are used instead.
"""

from __future__ import annotations

import logging
import os
import signal
from pathlib import Path

log = logging.getLogger(__name__)

SESSION_ENV_KEY = "PROCFILE_RUNNER_SESSION"
SESSIONS_FILE_NAME = "sessions.txt"


def track_process_group(sessions_file: str | Path, session_id: str, pgid: int) -> None:
    """Append ``session:pgid`` to the sessions file."""
    if pgid <= 0:
        return
    path = Path(sessions_file)
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "a") as f:
        f.write(f"{session_id}:{pgid}\n")


def tracked_groups(sessions_file: str | Path, session_id: str) -> list[int]:
    """Process groups recorded by sessions other than ``session_id``."""
    try:
        lines = Path(sessions_file).read_text().splitlines()
    except FileNotFoundError:
        return []
    groups = []
    for line in lines:
        session, sep, pgid = line.partition(":")
        if not sep or session == session_id or not pgid.strip().isdigit():
            continue
        groups.append(int(pgid))
    return groups


def find_orphans(session_id: str, proc_root: str = "/proc") -> list[int]:
    """PIDs whose environment names a session other than ``session_id``."""
    key = f"{SESSION_ENV_KEY}=".encode()
    own = os.getpid()
    pids = []
    for entry in os.listdir(proc_root):
        if not entry.isdigit() or int(entry) == own:
            continue
        try:
            with open(os.path.join(proc_root, entry, "environ"), "rb") as f:
                environ = f.read()
        except OSError:
            # exited meanwhile, or owned by another user
            continue
        for var in environ.split(b"\x00"):
            if var.startswith(key):
                session = var[len(key):].decode("utf-8", errors="replace")
                if session and session != session_id:
                    pids.append(int(entry))
                break
    return sorted(pids)


def kill_orphans(
    session_id: str,
    sessions_file: str | Path | None = None,
    proc_root: str = "/proc",
) -> int:
    """SIGKILL leftovers of earlier sessions.  Returns how many were signalled."""
    if os.path.isdir(proc_root):
        targets = [(os.kill, pid) for pid in find_orphans(session_id, proc_root)]
    elif sessions_file is not None:
        targets = [(os.killpg, pgid) for pgid in tracked_groups(sessions_file, session_id)]
    else:
        targets = []

    killed = 0
    for kill, target in targets:
        try:
            kill(target, signal.SIGKILL)
            killed += 1
        except ProcessLookupError:
            continue

    if sessions_file is not None:
        Path(sessions_file).unlink(missing_ok=True)
    if killed:
        log.info("Killed %d orphaned processes from earlier sessions", killed)
    return killed
