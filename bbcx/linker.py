"""
Linker — fold an Assembly into a memory image.

Locations are visited in ascending order. Every constant operand gets a
fresh word at the top of memory: the highest address that is still
Undefined and not the home of a code line. Identical constants are never
shared, so literal addresses are predictable.
"""

from __future__ import annotations

from dataclasses import dataclass

from .assembler import Assembly
from .errors import BbcxError, InvalidOperand, OutOfMemory, UndefinedSymbols
from .instruction import Function, Instruction, MAX_INDEX_REGISTER, make_pword
from .memory import MEMORY_SIZE, Memory
from .syntax import (
    AddressOperand, FloatLiteral, IntLiteral, PWord, SourceLine, SourceWord,
    StringLiteral,
)
from .word import TAG_P, Word, make_float_word, make_int_word, make_string_word


@dataclass
class Image:
    memory: Memory
    entry: int
    literals: dict[int, int]    # literal slot -> location of the line using it


def literal_word(word: SourceWord) -> Word:
    if isinstance(word, IntLiteral):
        return make_int_word(word.value, strict=True)
    if isinstance(word, FloatLiteral):
        return make_float_word(word.value)
    if isinstance(word, StringLiteral):
        return make_string_word(word.text)
    raise TypeError(f"Not a literal: {word!r}")


class Linker:
    def __init__(self, assembly: Assembly, size: int = MEMORY_SIZE):
        self.assembly = assembly
        self.memory = Memory(size)
        self.literals: dict[int, int] = {}
        self._code_locations = set(assembly.code)

    def link(self) -> Image:
        for loc in self.assembly.locations():
            if not 0 <= loc < self.memory.size:
                raise InvalidOperand(f"Location out of range: {loc}", location=loc)
        for loc in self.assembly.locations():
            line = self.assembly.code[loc]
            try:
                self.memory[loc] = self._encode(line)
            except BbcxError as e:
                e.location = loc
                raise
        return Image(self.memory, self._entry(), dict(self.literals))

    def _encode(self, line: SourceLine) -> Word:
        if isinstance(line.word, PWord):
            return make_pword(self._instruction(line.location, line.word))
        return literal_word(line.word)

    def _instruction(self, loc: int, pword: PWord) -> Instruction:
        operand = pword.operand
        if operand is None:
            return Instruction(pword.function, pword.accumulator)
        if isinstance(operand, AddressOperand):
            address = self._resolve(operand.address)
            index = operand.index or 0
            # EXTRA carries a library code, not a location
            if pword.function != Function.EXTRA and address >= self.memory.size:
                raise InvalidOperand(f"Address out of range: {address}")
            if index > MAX_INDEX_REGISTER:
                raise InvalidOperand(f"Invalid index register: {index}")
            return Instruction(pword.function, pword.accumulator,
                               index_register=index,
                               indirect=operand.indirect,
                               address=address)
        return Instruction(pword.function, pword.accumulator,
                           address=self._store_literal(loc, operand))

    def _resolve(self, address: int | str) -> int:
        if isinstance(address, int):
            return address
        try:
            return self.assembly.symbols[address]
        except KeyError:
            raise UndefinedSymbols([address])

    def _store_literal(self, loc: int, literal) -> int:
        word = literal_word(literal)
        slot = self.memory.highest_free(self._code_locations)
        if slot is None:
            raise OutOfMemory()
        self.memory[slot] = word
        self.literals[slot] = loc
        return slot

    def _entry(self) -> int:
        for addr, w in enumerate(self.memory):
            if w.tag == TAG_P and addr in self._code_locations:
                return addr
        return 0


def link(assembly: Assembly, size: int = MEMORY_SIZE) -> Image:
    return Linker(assembly, size).link()
