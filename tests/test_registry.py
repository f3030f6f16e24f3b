"""Tests for the process registry state machine."""

import pytest

from procfile_runner.errors import InvalidLoad, UnknownProcess
from procfile_runner.models import ProcessInfo, ProcessStatus
from procfile_runner.registry import PROCESS_COLORS


def _load(registry, *names, disabled=()):
    registry.load([ProcessInfo(n, disabled=n in disabled) for n in names])


class TestLoad:
    def test_initial_status_and_colors(self, registry):
        _load(registry, "web", "worker", "clock", disabled=("clock",))
        assert registry.names() == ["web", "worker", "clock"]
        assert registry.get("web").status == ProcessStatus.STOPPED
        assert registry.get("clock").status == ProcessStatus.DISABLED
        assert not registry.get("clock").enabled
        assert [e.color_index for e in registry.entities()] == [0, 1, 2]

    def test_color_index_wraps_around_palette(self, registry):
        names = [f"p{i}" for i in range(len(PROCESS_COLORS) + 2)]
        _load(registry, *names)
        assert registry.get(names[len(PROCESS_COLORS)]).color_index == 0
        assert registry.color_of(names[-1]) == PROCESS_COLORS[1]

    def test_empty_list_is_invalid(self, registry):
        with pytest.raises(InvalidLoad):
            registry.load([])

    def test_duplicates_are_invalid_and_keep_prior_state(self, registry):
        _load(registry, "web")
        registry.apply_status("web", "running")
        with pytest.raises(InvalidLoad):
            _load(registry, "a", "b", "a")
        assert registry.names() == ["web"]
        assert registry.get("web").status == ProcessStatus.RUNNING

    def test_reload_replaces_everything(self, registry):
        _load(registry, "web", "worker")
        registry.apply_status("web", "running")
        _load(registry, "api")
        assert registry.names() == ["api"]
        assert "web" not in registry


class TestApplyStatus:
    def test_stopped_running_cycle(self, registry, store):
        _load(registry, "web")
        assert registry.apply_status("web", ProcessStatus.RUNNING)
        assert registry.running_count() == 1
        assert registry.apply_status("web", "stopped", 0)
        assert registry.get("web").last_exit_code == 0
        assert store.size() == 0

    def test_nonzero_exit_writes_diagnostic(self, registry, store):
        _load(registry, "web")
        registry.apply_status("web", "running")
        registry.apply_status("web", "stopped", 3)
        (record,) = store.records()
        assert record.raw_text == "Process exited with code 3"
        assert record.is_error and record.process_name == "web"
        assert registry.get("web").last_exit_code == 3

    def test_no_diagnostic_without_exit_code(self, registry, store):
        _load(registry, "web")
        registry.apply_status("web", "running")
        registry.apply_status("web", "stopped", None)
        assert store.size() == 0

    def test_no_diagnostic_unless_leaving_running(self, registry, store):
        _load(registry, "web")
        registry.apply_status("web", "stopped", 1)
        assert store.size() == 0
        assert registry.get("web").last_exit_code is None

    def test_unknown_name_is_ignored(self, registry):
        _load(registry, "web")
        assert registry.apply_status("ghost", "running") is False
        assert registry.get("ghost") is None
        assert len(registry) == 1

    def test_unknown_status_is_ignored(self, registry):
        _load(registry, "web")
        assert registry.apply_status("web", "exploded") is False
        assert registry.get("web").status == ProcessStatus.STOPPED

    def test_disabled_cannot_start(self, registry):
        _load(registry, "clock", disabled=("clock",))
        assert registry.apply_status("clock", "running") is False
        assert registry.get("clock").status == ProcessStatus.DISABLED


class TestEnable:
    def test_enable_disabled(self, registry):
        _load(registry, "clock", disabled=("clock",))
        registry.enable("clock")
        assert registry.get("clock").status == ProcessStatus.STOPPED
        assert registry.apply_status("clock", "running")

    def test_enable_is_noop_when_enabled(self, registry):
        _load(registry, "web")
        registry.apply_status("web", "running")
        registry.enable("web")
        assert registry.get("web").status == ProcessStatus.RUNNING

    def test_enable_unknown_raises(self, registry):
        _load(registry, "web")
        with pytest.raises(UnknownProcess):
            registry.enable("ghost")
