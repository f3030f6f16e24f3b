"""Tests for listening-port discovery and kill."""

import os
import signal
import sys

import pytest

from procfile_runner import ports
from procfile_runner.app import ProcfileRunner
from procfile_runner.config import Config
from procfile_runner.ports import PortInfo, extract_port, parse_lsof_output

LSOF_OUTPUT = """\
COMMAND     PID USER   FD   TYPE DEVICE SIZE/OFF NODE NAME
sshd        100 root    3u  IPv4  12345      0t0  TCP *:22 (LISTEN)
ruby-with-a-long-name 300 dev 9u IPv4 2222 0t0 TCP 127.0.0.1:3000 (LISTEN)
node       4242 dev    21u  IPv4  33333      0t0  TCP *:5173 (LISTEN)
node       4242 dev    22u  IPv6  33334      0t0  TCP [::1]:5173 (LISTEN)
postgres   5000 dev     5u  IPv6  44444      0t0  TCP [::1]:5432 (LISTEN)
garbage line
"""


class TestParse:
    def test_extract_port(self):
        assert extract_port("*:3000") == 3000
        assert extract_port("127.0.0.1:5173") == 5173
        assert extract_port("[::1]:8080") == 8080
        assert extract_port("localhost") is None

    def test_parse_lsof_output(self):
        assert parse_lsof_output(LSOF_OUTPUT) == [
            PortInfo(3000, 300, "ruby-with-a-lon"),
            PortInfo(5173, 4242, "node"),
            PortInfo(5432, 5000, "postgres"),
        ]

    def test_header_only(self):
        assert parse_lsof_output(LSOF_OUTPUT.splitlines()[0]) == []


@pytest.mark.skipif(not sys.platform.startswith("linux"), reason="reads /proc")
@pytest.mark.asyncio
async def test_process_command_of_self():
    command = await ports.process_command(os.getpid())
    assert command
    assert len(command) <= ports.MAX_COMMAND + len("...")


class TestKillPort:
    @pytest.fixture
    def listening(self, monkeypatch):
        async def fake_active_ports():
            return [PortInfo(5173, 4242, "node", "node vite")]

        killed = []
        monkeypatch.setattr(ports, "get_active_ports", fake_active_ports)
        monkeypatch.setattr(ports.os, "kill", lambda pid, sig: killed.append((pid, sig)))
        return killed

    @pytest.mark.asyncio
    async def test_sends_sigterm(self, listening):
        info = await ports.kill_port(5173)
        assert info.process == "node"
        assert listening == [(4242, signal.SIGTERM)]

    @pytest.mark.asyncio
    async def test_nothing_listening(self, listening):
        with pytest.raises(LookupError, match="no process found on port 9999"):
            await ports.kill_port(9999)
        assert listening == []

    @pytest.mark.asyncio
    async def test_runner_status(self, listening, tmp_path):
        runner = ProcfileRunner(Config(config_dir=str(tmp_path)))
        assert await runner.kill_port(5173)
        assert runner.status.text == "Killed node (pid 4242) on port 5173"

        assert not await runner.kill_port(9999)
        assert runner.status.is_error
        assert runner.status.text == "Error: no process found on port 9999"


@pytest.mark.asyncio
async def test_missing_lsof_becomes_status(monkeypatch, tmp_path):
    monkeypatch.setenv("PATH", str(tmp_path))
    runner = ProcfileRunner(Config(config_dir=str(tmp_path)))
    assert await runner.active_ports() == []
    assert runner.status.is_error
    assert runner.last_failure.operation == "get_active_ports"
