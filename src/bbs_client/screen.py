"""Scrolling text display shared by the curses front end and tests."""

from __future__ import annotations

import textwrap
from typing import Iterable, List, Sequence, Tuple

STYLE_PLAIN = ""
STYLE_ACCENT = "accent"
STYLE_INFO = "info"
STYLE_OK = "ok"
STYLE_WARN = "warn"
STYLE_ERROR = "error"
STYLE_MUTED = "muted"

ERROR_MARKER = "✗"
OK_MARKER = "✓"

Segment = Tuple[str, str]


class BufferScreen:
    """Line-oriented screen kept entirely in memory.

    Output is appended to the last line until a newline; ``clear`` drops
    everything, mirroring a full terminal redraw.
    """

    def __init__(self, width: int = 80, max_lines: int = 1000) -> None:
        self.width = width
        self.max_lines = max_lines
        self.lines: List[List[Segment]] = [[]]
        self.clears = 0

    def write(self, text: str, style: str = STYLE_PLAIN) -> None:
        parts = text.split("\n")
        for idx, part in enumerate(parts):
            if idx > 0:
                self.lines.append([])
            if part:
                self.lines[-1].append((part, style))
        if len(self.lines) > self.max_lines:
            del self.lines[: len(self.lines) - self.max_lines]
        self.touch()

    def writeln(self, text: str = "", style: str = STYLE_PLAIN) -> None:
        self.write(text + "\n", style)

    def erase_char(self) -> None:
        line = self.lines[-1]
        if not line:
            return
        text, style = line[-1]
        if len(text) <= 1:
            line.pop()
        else:
            line[-1] = (text[:-1], style)
        self.touch()

    def clear(self) -> None:
        self.lines = [[]]
        self.clears += 1
        self.touch()

    def touch(self) -> None:
        """Hook for subclasses that repaint lazily."""

    def plain_lines(self) -> List[str]:
        return ["".join(text for text, _ in line) for line in self.lines]

    def text(self) -> str:
        return "\n".join(self.plain_lines())


def wrap(text: str, width: int, indent: str = "  ") -> List[str]:
    usable = max(10, width - len(indent))
    lines: List[str] = []
    for paragraph in str(text).split("\n"):
        if not paragraph:
            lines.append("")
            continue
        lines.extend(indent + chunk for chunk in textwrap.wrap(paragraph, usable, break_long_words=True))
    return lines


def write_wrapped(screen: BufferScreen, text: str, style: str = STYLE_PLAIN, indent: str = "  ") -> None:
    for line in wrap(text, screen.width, indent):
        screen.writeln(line, style)


def separator(screen: BufferScreen, char: str = "─") -> None:
    screen.writeln(" " + char * max(10, screen.width - 2), STYLE_MUTED)


def header(screen: BufferScreen, title: str, subtitle: str = "") -> None:
    screen.writeln()
    screen.writeln(" " + " ".join(title.upper()), STYLE_INFO)
    if subtitle:
        screen.writeln(" " + subtitle, STYLE_MUTED)
    separator(screen)
    screen.writeln()


def error_line(screen: BufferScreen, message: str) -> None:
    screen.writeln()
    screen.writeln(f"  {ERROR_MARKER} {message}", STYLE_ERROR)


def ok_line(screen: BufferScreen, message: str) -> None:
    screen.writeln()
    screen.writeln(f"  {OK_MARKER} {message}", STYLE_OK)


def notice(screen: BufferScreen, message: str, style: str = STYLE_MUTED) -> None:
    screen.writeln()
    screen.writeln(f"  {message}", style)


def prompt(screen: BufferScreen, label: str = ">", restore: str = "") -> None:
    screen.write(f"  {label} ", STYLE_ACCENT)
    if restore:
        screen.write(restore)


def navigation(screen: BufferScreen, options: Sequence[Tuple[str, str]]) -> None:
    screen.writeln()
    separator(screen)
    screen.writeln()
    for key, label in options:
        screen.write(f"  [{key}]", STYLE_INFO)
        screen.writeln(f" {label}")
    screen.writeln()
    prompt(screen)


def write_lines(screen: BufferScreen, lines: Iterable[str], style: str = STYLE_PLAIN) -> None:
    for line in lines:
        screen.writeln(line, style)
