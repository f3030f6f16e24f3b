"""Tests for cleaning up children of earlier sessions."""

import asyncio
import os
import signal

import pytest

from procfile_runner.process_manager.orphans import (
    SESSION_ENV_KEY,
    find_orphans,
    kill_orphans,
    track_process_group,
    tracked_groups,
)


def _fake_proc(root, pid, environ):
    entry = root / str(pid)
    entry.mkdir(parents=True)
    (entry / "environ").write_bytes(environ)


async def _sleeper(session=None, new_session=False):
    env = dict(os.environ)
    env.pop(SESSION_ENV_KEY, None)
    if session is not None:
        env[SESSION_ENV_KEY] = session
    return await asyncio.create_subprocess_exec(
        "sleep", "30", env=env, start_new_session=new_session,
    )


class TestSessionsFile:
    def test_track_and_read_back(self, tmp_path):
        sessions = tmp_path / "config" / "sessions.txt"
        track_process_group(sessions, "old", 100)
        track_process_group(sessions, "old", 101)
        track_process_group(sessions, "current", 200)
        track_process_group(sessions, "current", 0)
        assert sessions.read_text() == "old:100\nold:101\ncurrent:200\n"
        assert tracked_groups(sessions, "current") == [100, 101]

    def test_malformed_lines_are_skipped(self, tmp_path):
        sessions = tmp_path / "sessions.txt"
        sessions.write_text("garbage\nold:abc\nold:42\n\n")
        assert tracked_groups(sessions, "current") == [42]

    def test_missing_file(self, tmp_path):
        assert tracked_groups(tmp_path / "sessions.txt", "current") == []


class TestFindOrphans:
    def test_only_other_sessions_match(self, tmp_path):
        key = SESSION_ENV_KEY.encode()
        _fake_proc(tmp_path, 11, b"HOME=/root\x00" + key + b"=old\x00")
        _fake_proc(tmp_path, 12, key + b"=current\x00")
        _fake_proc(tmp_path, 13, b"PATH=/bin\x00")
        _fake_proc(tmp_path, 14, key + b"=\x00")
        (tmp_path / "self").mkdir()
        (tmp_path / "15").mkdir()  # no readable environ
        assert find_orphans("current", str(tmp_path)) == [11]


class TestKillOrphans:
    @pytest.mark.asyncio
    async def test_kills_listed_pid(self, tmp_path):
        proc = await _sleeper(session="old")
        _fake_proc(tmp_path, proc.pid, f"{SESSION_ENV_KEY}=old\x00".encode())

        assert kill_orphans("current", proc_root=str(tmp_path)) == 1
        assert await asyncio.wait_for(proc.wait(), 5) == -signal.SIGKILL

    @pytest.mark.asyncio
    async def test_sessions_file_without_proc(self, tmp_path):
        orphan = await _sleeper(new_session=True)
        ours = await _sleeper(new_session=True)
        sessions = tmp_path / "sessions.txt"
        track_process_group(sessions, "old", orphan.pid)
        track_process_group(sessions, "current", ours.pid)

        killed = kill_orphans("current", sessions, proc_root=str(tmp_path / "no-proc"))

        assert killed == 1
        assert await asyncio.wait_for(orphan.wait(), 5) == -signal.SIGKILL
        assert ours.returncode is None
        assert not sessions.exists()
        ours.kill()
        await ours.wait()

    def test_vanished_process_is_not_counted(self, tmp_path):
        sessions = tmp_path / "sessions.txt"
        sessions.write_text("old:999999\n")
        assert kill_orphans("current", sessions, proc_root=str(tmp_path / "no-proc")) == 0
