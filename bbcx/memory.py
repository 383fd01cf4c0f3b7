"""
Memory — the 128-word store of a BBC-X machine.

There is no separate register file: accumulators and index registers are
the low words of memory, so every access goes through the same array.
"""

from __future__ import annotations

from collections.abc import Iterable

from .errors import InvalidOperand
from .word import UNDEFINED, Word


MEMORY_SIZE = 128


class Memory:
    """Fixed-size word store with read/write counters."""

    def __init__(self, size: int = MEMORY_SIZE):
        self.size = size
        self.words: list[Word] = [UNDEFINED] * size
        self.reads = 0
        self.writes = 0

    def _check(self, addr: int) -> int:
        if not 0 <= addr < self.size:
            raise InvalidOperand(f"Address out of range: {addr}")
        return addr

    def __len__(self) -> int:
        return self.size

    def __getitem__(self, addr: int) -> Word:
        return self.words[self._check(addr)]

    def __setitem__(self, addr: int, word: Word):
        self.words[self._check(addr)] = word

    def __iter__(self):
        return iter(self.words)

    def read(self, addr: int) -> Word:
        self.reads += 1
        return self[addr]

    def write(self, addr: int, word: Word):
        self.writes += 1
        self[addr] = word

    def highest_free(self, reserved: Iterable[int] = ()) -> int | None:
        """Largest address still Undefined and not reserved, or None."""
        taken = set(reserved)
        for addr in range(self.size - 1, -1, -1):
            if addr not in taken and not self.words[addr].is_defined:
                return addr
        return None

    def defined(self) -> dict[int, Word]:
        return {addr: w for addr, w in enumerate(self.words) if w.is_defined}

    def reset_counters(self):
        self.reads = 0
        self.writes = 0


class Register:
    """N-bit clocked register."""

    def __init__(self, width: int, value: int = 0):
        self.width = width
        self._mask = (1 << width) - 1
        self.value = value & self._mask

    def load(self, val: int):
        self.value = val & self._mask
