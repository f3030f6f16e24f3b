"""Tests for the SGR style scanner."""

import pytest

from procfile_runner.models import StyledRun
from procfile_runner.styles import ANSI_COLORS, scan_line, strip_escapes

RED = ANSI_COLORS[1]
GREEN = ANSI_COLORS[2]
BRIGHT_BLUE = ANSI_COLORS[12]


class TestScanLine:
    def test_plain_text_is_one_unstyled_run(self):
        assert scan_line("hello world") == (StyledRun("hello world"),)

    def test_empty_line_has_no_runs(self):
        assert scan_line("") == ()

    def test_reset_closes_run_and_clears_style(self):
        """Color then reset gives a red run followed by an unstyled one."""
        runs = scan_line("\x1b[31mA\x1b[0mB")
        assert runs == (StyledRun("A", color=RED), StyledRun("B"))

    def test_style_accumulates_within_a_line(self):
        runs = scan_line("\x1b[1mbold \x1b[32mgreen\x1b[22m plain-green")
        assert runs == (
            StyledRun("bold ", bold=True),
            StyledRun("green", color=GREEN, bold=True),
            StyledRun(" plain-green", color=GREEN),
        )

    def test_combined_parameters(self):
        runs = scan_line("\x1b[1;3;4;94;41mx")
        assert runs == (
            StyledRun(
                "x",
                color=BRIGHT_BLUE,
                background_color=RED,
                bold=True,
                italic=True,
                underline=True,
            ),
        )

    def test_dim_and_clearing_codes(self):
        runs = scan_line("\x1b[2;3;4ma\x1b[23;24mb\x1b[22mc")
        assert [r.text for r in runs] == ["a", "b", "c"]
        assert runs[0].dim and runs[0].italic and runs[0].underline
        assert runs[1].dim and not runs[1].italic and not runs[1].underline
        assert not runs[2].dim

    def test_default_foreground_and_background(self):
        runs = scan_line("\x1b[31;42mx\x1b[39my\x1b[49mz")
        assert runs[0].color == RED and runs[0].background_color == GREEN
        assert runs[1].color is None and runs[1].background_color == GREEN
        assert runs[2] == StyledRun("z")

    def test_bright_background(self):
        (run,) = scan_line("\x1b[107mx")
        assert run.background_color == ANSI_COLORS[15]

    def test_unknown_codes_are_ignored(self):
        assert scan_line("\x1b[5;7;58mblink") == (StyledRun("blink"),)

    def test_extended_color_parameters_do_not_leak(self):
        """The 1 in 38;5;1 is a palette index, not bold."""
        (run,) = scan_line("\x1b[38;5;1mx")
        assert run == StyledRun("x")

    def test_unchanged_style_does_not_split(self):
        assert scan_line("\x1b[31ma\x1b[31mb") == (StyledRun("ab", color=RED),)

    def test_empty_sgr_is_reset(self):
        assert scan_line("\x1b[31ma\x1b[mb") == (StyledRun("a", color=RED), StyledRun("b"))

    def test_style_does_not_carry_to_next_line(self):
        scan_line("\x1b[31mstill red at end of line")
        assert scan_line("next") == (StyledRun("next"),)

    def test_same_input_same_runs(self):
        line = "\x1b[33mwarn\x1b[0m: disk 91%"
        assert scan_line(line) == scan_line(line)

    def test_html_property_escapes(self):
        (run,) = scan_line("<b> & co")
        assert run.text == "<b> & co"
        assert run.html == "&lt;b&gt; &amp; co"


class TestRoundTrip:
    @pytest.mark.parametrize("line", [
        "no escapes at all",
        "\x1b[0m",
        "\x1b[31mred\x1b[0m and \x1b[1mbold",
        "unterminated \x1b[31",
        "unknown \x1b[999mcode",
        "cursor \x1b[2K\x1b[1Gmoves",
        "\x1b[?25lhidden cursor\x1b[?25h",
        "lone escape \x1b here",
        "<html> & \"quotes\"",
    ])
    def test_runs_rebuild_visible_text(self, line):
        runs = scan_line(line)
        assert "".join(r.text for r in runs) == strip_escapes(line)

    def test_strip_escapes(self):
        assert strip_escapes("\x1b[1;31mERROR\x1b[0m boom") == "ERROR boom"
