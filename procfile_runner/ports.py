"""Listening TCP ports in the development range, via ``lsof``."""

from __future__ import annotations

import asyncio
import logging
import os
import re
import signal
from dataclasses import asdict, dataclass
from typing import Any

log = logging.getLogger(__name__)

PORT_RANGE = (3000, 9000)
MAX_PROCESS_NAME = 15
MAX_COMMAND = 50

_PORT_RE = re.compile(r":(\d+)$")


@dataclass(frozen=True)
class PortInfo:
    port: int
    pid: int
    process: str  # short process name
    command: str = ""  # full command line, truncated

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


def extract_port(name: str) -> int | None:
    """Port from an lsof NAME field.

        *:3000          ->  3000
        127.0.0.1:5173  ->  5173
        [::1]:8080      ->  8080
    """
    match = _PORT_RE.search(name)
    return int(match.group(1)) if match else None


def parse_lsof_output(output: str) -> list[PortInfo]:
    """Parse ``lsof -iTCP -sTCP:LISTEN -n -P`` into one entry per port.

    Ports outside PORT_RANGE are skipped; the first listener of a port
    wins.  Sorted by port.
    """
    ports: dict[int, PortInfo] = {}
    low, high = PORT_RANGE
    for line in output.splitlines()[1:]:
        # COMMAND PID USER FD TYPE DEVICE SIZE/OFF NODE NAME (STATE)
        fields = line.split()
        if len(fields) < 9:
            continue
        try:
            pid = int(fields[1])
        except ValueError:
            continue
        port = extract_port(fields[8])
        if port is None or not low <= port <= high or port in ports:
            continue
        ports[port] = PortInfo(port=port, pid=pid, process=fields[0][:MAX_PROCESS_NAME])
    return [ports[p] for p in sorted(ports)]


def _truncate(command: str) -> str:
    command = command.strip()
    if len(command) > MAX_COMMAND:
        return command[:MAX_COMMAND] + "..."
    return command


async def process_command(pid: int) -> str:
    """Command line of ``pid``, or "" when it cannot be read."""
    cmdline = f"/proc/{pid}/cmdline"
    if os.path.exists(cmdline):
        try:
            with open(cmdline, "rb") as f:
                raw = f.read()
        except OSError:
            return ""
        return _truncate(raw.replace(b"\x00", b" ").decode("utf-8", errors="replace"))

    proc = await asyncio.create_subprocess_exec(
        "ps", "-p", str(pid), "-o", "command=",
        stdout=asyncio.subprocess.PIPE,
        stderr=asyncio.subprocess.DEVNULL,
    )
    stdout, _ = await proc.communicate()
    if proc.returncode != 0:
        return ""
    return _truncate(stdout.decode("utf-8", errors="replace"))


async def get_active_ports() -> list[PortInfo]:
    """Processes listening on a TCP port in PORT_RANGE.

    Raises FileNotFoundError when ``lsof`` is not installed.
    """
    proc = await asyncio.create_subprocess_exec(
        "lsof", "-iTCP", "-sTCP:LISTEN", "-n", "-P",
        stdout=asyncio.subprocess.PIPE,
        stderr=asyncio.subprocess.DEVNULL,
    )
    stdout, _ = await proc.communicate()
    # lsof exits 1 when nothing is listening
    if proc.returncode != 0:
        return []
    ports = parse_lsof_output(stdout.decode("utf-8", errors="replace"))
    return [
        PortInfo(p.port, p.pid, p.process, await process_command(p.pid))
        for p in ports
    ]


async def kill_port(port: int) -> PortInfo:
    """SIGTERM the process listening on ``port``.

    Raises LookupError when nothing listens there.
    """
    for info in await get_active_ports():
        if info.port != port or info.pid <= 0:
            continue
        os.kill(info.pid, signal.SIGTERM)
        log.info("Sent SIGTERM to pid %d on port %d", info.pid, port)
        return info
    raise LookupError(f"no process found on port {port}")
