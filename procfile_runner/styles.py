"""Style scanner: turns terminal SGR escapes into StyledRun sequences.

Each line is scanned on its own: a style opened on one line never leaks
into the next.  Escape sequences that are not SGR (cursor movement, erase
line, ...) are dropped from the text, and SGR codes we do not understand
are skipped, so scanning always terminates with a valid run sequence.
"""

from __future__ import annotations

import functools
import re
from dataclasses import dataclass, replace

from .models import StyledRun

# CSI: ESC [ <parameter bytes> <intermediate bytes> <final byte>
_CSI_RE = re.compile(r"\x1b\[([0-?]*)[ -/]*([@-~])")

# Standard (30–37 / 40–47) followed by bright (90–97 / 100–107)
ANSI_COLORS: tuple[str, ...] = (
    "#000000",  # black
    "#cd3131",  # red
    "#0dbc79",  # green
    "#e5e510",  # yellow
    "#2472c8",  # blue
    "#bc3fbc",  # magenta
    "#11a8cd",  # cyan
    "#e5e5e5",  # white
    "#666666",  # bright black
    "#f14c4c",  # bright red
    "#23d18b",  # bright green
    "#f5f543",  # bright yellow
    "#3b8eea",  # bright blue
    "#d670d6",  # bright magenta
    "#29b8db",  # bright cyan
    "#ffffff",  # bright white
)


@dataclass(frozen=True)
class _Style:
    fg: str | None = None
    bg: str | None = None
    bold: bool = False
    dim: bool = False
    italic: bool = False
    underline: bool = False


_DEFAULT = _Style()

_FLAG_CODES: dict[int, dict[str, bool]] = {
    1: {"bold": True},
    2: {"dim": True},
    3: {"italic": True},
    4: {"underline": True},
    22: {"bold": False, "dim": False},
    23: {"italic": False},
    24: {"underline": False},
}


def _color_for(code: int) -> tuple[str, str] | None:
    """Map a color code to ``(attribute, value)``, or None if it is not one."""
    if 30 <= code <= 37:
        return "fg", ANSI_COLORS[code - 30]
    if 90 <= code <= 97:
        return "fg", ANSI_COLORS[code - 90 + 8]
    if 40 <= code <= 47:
        return "bg", ANSI_COLORS[code - 40]
    if 100 <= code <= 107:
        return "bg", ANSI_COLORS[code - 100 + 8]
    return None


def _parse_params(params: str) -> list[int]:
    codes: list[int] = []
    for part in params.split(";"):
        if part == "":
            codes.append(0)
        elif part.isdigit():
            codes.append(int(part))
        # anything else (private markers, colon sub-params) is ignored
    return codes


def _apply_sgr(style: _Style, params: str) -> tuple[_Style, bool]:
    """Apply one SGR parameter list.  Returns the new style and whether a
    reset was seen."""
    codes = _parse_params(params)
    reset = False
    i = 0
    while i < len(codes):
        code = codes[i]
        i += 1
        if code == 0:
            style = _DEFAULT
            reset = True
        elif code in _FLAG_CODES:
            style = replace(style, **_FLAG_CODES[code])
        elif code == 39:
            style = replace(style, fg=None)
        elif code == 49:
            style = replace(style, bg=None)
        elif code in (38, 48):
            # 256-color / truecolor: skip the sub-parameters, keep the style
            if i < len(codes) and codes[i] == 5:
                i += 2
            elif i < len(codes) and codes[i] == 2:
                i += 4
        else:
            color = _color_for(code)
            if color is not None:
                attr, value = color
                style = replace(style, **{attr: value})
    return style, reset


def _make_run(text: str, style: _Style) -> StyledRun:
    return StyledRun(
        text=text,
        color=style.fg,
        background_color=style.bg,
        bold=style.bold,
        dim=style.dim,
        italic=style.italic,
        underline=style.underline,
    )


@functools.lru_cache(maxsize=16384)
def scan_line(raw: str) -> tuple[StyledRun, ...]:
    """Decode one raw line into its styled runs.

    Joining ``run.text`` over the result gives ``strip_escapes(raw)``.
    """
    runs: list[StyledRun] = []
    pending: list[str] = []
    style = _DEFAULT

    def close() -> None:
        if pending:
            runs.append(_make_run("".join(pending), style))
            pending.clear()

    pos = 0
    for match in _CSI_RE.finditer(raw):
        if match.start() > pos:
            pending.append(raw[pos:match.start()])
        pos = match.end()
        if match.group(2) != "m":
            continue
        new_style, reset = _apply_sgr(style, match.group(1))
        if reset or new_style != style:
            close()
        style = new_style

    if pos < len(raw):
        pending.append(raw[pos:])
    close()
    return tuple(runs)


def strip_escapes(raw: str) -> str:
    """Return the visible text of a raw line, used for searching."""
    return _CSI_RE.sub("", raw)
