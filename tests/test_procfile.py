"""Tests for Procfile and .env parsing."""

import pytest

from procfile_runner.procfile import (
    ProcessDefinition,
    enable_in_procfile,
    find_env_file,
    load_env,
    parse_procfile,
    read_procfile,
)


class TestParse:
    def test_active_then_disabled(self):
        content = (
            "# clock: bin/clock\n"
            "web: bundle exec puma -p $PORT\n"
            "\n"
            "worker:   bundle exec sidekiq  \n"
        )
        assert parse_procfile(content) == [
            ProcessDefinition("web", "bundle exec puma -p $PORT"),
            ProcessDefinition("worker", "bundle exec sidekiq"),
            ProcessDefinition("clock", "bin/clock", disabled=True),
        ]

    def test_command_may_contain_colons(self):
        (defn,) = parse_procfile("api: node server.js --listen 0.0.0.0:3000")
        assert defn.command == "node server.js --listen 0.0.0.0:3000"

    def test_comments_without_entries_are_skipped(self):
        assert parse_procfile("# just a note\n#\n## web\n") == []

    def test_malformed_lines_are_skipped(self):
        assert parse_procfile("no colon here\n: missing name\nempty:\n") == []

    def test_first_definition_wins(self):
        defs = parse_procfile("web: a\nweb: b\n# web: c\n")
        assert defs == [ProcessDefinition("web", "a")]

    def test_disabled_duplicates_keep_first(self):
        defs = parse_procfile("# job: one\n# job: two\n")
        assert defs == [ProcessDefinition("job", "one", disabled=True)]

    def test_read_procfile(self, procfile):
        assert [(d.name, d.disabled) for d in read_procfile(procfile)] == [
            ("web", False),
            ("worker", False),
            ("clock", True),
        ]


class TestEnable:
    def test_uncomments_entry(self, procfile):
        enable_in_procfile(procfile, "clock")
        assert "clock: echo tick" in procfile.read_text().splitlines()
        assert [d.disabled for d in read_procfile(procfile)] == [False, False, False]

    def test_keeps_indentation_and_other_lines(self, tmp_path):
        path = tmp_path / "Procfile"
        path.write_text("web: a\n  #  job: b\n# note\n")
        enable_in_procfile(path, "job")
        assert path.read_text() == "web: a\n  job: b\n# note\n"

    def test_only_first_match_is_uncommented(self, tmp_path):
        path = tmp_path / "Procfile"
        path.write_text("# job: one\n# job: two\n")
        enable_in_procfile(path, "job")
        assert path.read_text() == "job: one\n# job: two\n"

    def test_missing_entry_raises(self, procfile):
        with pytest.raises(ValueError, match="process web not found as disabled"):
            enable_in_procfile(procfile, "web")


class TestEnv:
    def test_load_env_next_to_procfile(self, procfile):
        assert load_env(procfile) == {"GREETING": "hello", "QUOTED": "a b"}

    def test_no_env_file(self, tmp_path):
        path = tmp_path / "Procfile"
        path.write_text("web: a\n")
        assert find_env_file(path) is None
        assert load_env(path) == {}

    def test_keys_without_values_are_dropped(self, tmp_path):
        (tmp_path / ".env").write_text("EMPTY=\nBARE\nSET=1\n")
        assert load_env(tmp_path / "Procfile") == {"EMPTY": "", "SET": "1"}
