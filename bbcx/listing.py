"""
Listing files.

A listing numbers every line it holds. It opens with a title (source name
and timestamp), shows each source line with failures flagged by ``*****``,
and closes with the symbol table when assembly succeeded.
"""

from __future__ import annotations

from datetime import datetime
from pathlib import Path

from .assembler import Assembly
from .parser import ParsedLine

TITLE_DATE_FORMAT = "%a %d %b %Y %H:%M"
ERROR_MARKER = " ***** "


class ListWriter:
    def __init__(self, source_name: str, now: datetime | None = None):
        self.lines: list[str] = []
        stamp = (now or datetime.now()).strftime(TITLE_DATE_FORMAT)
        self.add_line(f"{'':<14}{source_name:<42} {stamp}".upper())
        self.add_line("")

    def add_line(self, text: str):
        self.lines.append(f"{len(self.lines) + 1:>5} {text}".rstrip())

    def add_lines(self, text: str):
        for line in text.split("\n"):
            self.add_line(line)

    def add_source(self, parsed: list[ParsedLine]):
        for p in parsed:
            if p.ok:
                self.add_line(f"        {p.text}")
            else:
                self.add_line(f"{ERROR_MARKER} {p.text}")
                self.add_line(f"         {p.error}")

    def add_error(self, error: Exception):
        self.add_line("")
        self.add_line(f"{ERROR_MARKER} {error}")

    def add_symbol_table(self, assembly: Assembly):
        if not assembly.symbols:
            return
        self.add_line("")
        self.add_line("SYMBOL TABLE")
        for label in sorted(assembly.symbols):
            self.add_line(f"{label:<8}{assembly.symbols[label]:08o}")

    def render(self) -> str:
        return "\n".join(self.lines) + "\n"

    def write(self, path: str | Path):
        Path(path).write_text(self.render())
