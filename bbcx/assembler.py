"""
Assembler — gather parsed lines into an Assembly.

No code is emitted here. Lines are keyed by location and labels are
recorded in the symbol table; clashes and dangling references are reported
all at once so a listing can show every offender.
"""

from __future__ import annotations

from collections import Counter
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Mapping

from .errors import DuplicatedSymbols, UndefinedSymbols
from .syntax import SourceLine


@dataclass(frozen=True)
class Assembly:
    symbols: Mapping[str, int] = field(default_factory=dict)
    code: Mapping[int, SourceLine] = field(default_factory=dict)

    def locations(self) -> list[int]:
        return sorted(self.code)

    def lines(self) -> list[SourceLine]:
        return [self.code[loc] for loc in self.locations()]


def assemble(lines: list[SourceLine]) -> Assembly:
    location_counts = Counter(line.location for line in lines)
    label_counts = Counter(line.label for line in lines if line.label)

    dup_locations = [loc for loc, n in location_counts.items() if n > 1]
    dup_labels = [label for label, n in label_counts.items() if n > 1]
    if dup_locations or dup_labels:
        raise DuplicatedSymbols(dup_locations, dup_labels)

    symbols = {line.label: line.location for line in lines if line.label}
    missing = [name for line in lines for name in line.identifiers
               if name not in symbols]
    if missing:
        raise UndefinedSymbols(missing)

    code = {line.location: line for line in lines}
    return Assembly(MappingProxyType(symbols), MappingProxyType(code))
