"""
Instruction — the decoded form of a P-word.

Layout (bit 23 first):
  function 6 | accumulator 3 | index register 3 | indirect 1 | page 1 | address 10
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import IntEnum

from .errors import CannotConvertWordToInstruction, InvalidOperand
from .word import TAG_P, WORD_MASK, Word


# ---------------------------------------------------------------------------
# P-word fields
# ---------------------------------------------------------------------------

FUNCTION_MASK       = 0o77000000
ACCUMULATOR_MASK    = 0o00700000
INDEX_REGISTER_MASK = 0o00070000
INDIRECT_MASK       = 0o00004000
PAGE_MASK           = 0o00002000
ADDRESS_MASK        = 0o00001777

FUNCTION_SHIFT       = 18
ACCUMULATOR_SHIFT    = 15
INDEX_REGISTER_SHIFT = 12
INDIRECT_SHIFT       = 11
PAGE_SHIFT           = 10

MAX_ACCUMULATOR = 7
MAX_INDEX_REGISTER = 7
MAX_ADDRESS = ADDRESS_MASK

DEFAULT_ACCUMULATOR = 1


class Function(IntEnum):
    NIL = 0
    OR = 1
    NEQV = 2
    AND = 3
    ADD = 4
    SUBT = 5
    MULT = 6
    DVD = 7
    TAKE = 8
    TSTR = 9
    TNEG = 10
    TNOT = 11
    TTYP = 12
    TTYZ = 13
    TTTT = 14
    TOUT = 15
    SKIP = 16
    SKAE = 17
    SKAN = 18
    SKET = 19
    SKAL = 20
    SKAG = 21
    SKED = 22
    SKEI = 23
    SHL = 24
    ROT = 25
    DSHL = 26
    DROT = 27
    POWR = 28
    DMULT = 29
    DIV = 30
    DDIV = 31
    NILX = 32
    ORX = 33
    NEQVX = 34
    ANDX = 35
    ADDX = 36
    SUBTX = 37
    MULTX = 38
    DVDX = 39
    PUT = 40
    PSQU = 41
    PNEG = 42
    PNOT = 43
    PTYP = 44
    PTYZ = 45
    PFFP = 46
    PIN = 47
    JUMP = 48
    JEZ = 49
    JNZ = 50
    JAT = 51
    JLZ = 52
    JGZ = 53
    JZD = 54
    JZI = 55
    DECR = 56
    INCR = 57
    MOCKP = 58
    MOCKS = 59
    DBYTE = 60
    UNUSED = 61
    EXEC = 62
    EXTRA = 63


# Library routines reached through EXTRA; the code goes in the address field
LIBRARY: dict[str, int] = {
    "SQRT": 1, "LN": 2, "EXP": 3, "READ": 4, "PRINT": 5, "SIN": 6,
    "COS": 7, "TAN": 8, "ATN": 9, "STOP": 10, "LINE": 11, "INT": 12,
    "FRAC": 13, "FLOAT": 14, "CAPTN": 15, "PAGE": 16, "RND": 17, "ABS": 18,
}
LIBRARY_NAMES: dict[int, str] = {code: name for name, code in LIBRARY.items()}

ALIASES: dict[str, Function] = {
    "NTHG": Function.NIL,
    "MPLY": Function.MULT,
    "MPLYX": Function.MULTX,
    "SWAP": Function.NILX,
}

MNEMONICS: dict[str, Function] = {
    f.name: f for f in Function if f is not Function.UNUSED
}
MNEMONICS.update(ALIASES)


@dataclass(frozen=True)
class Instruction:
    function: Function
    accumulator: int = DEFAULT_ACCUMULATOR
    index_register: int = 0
    indirect: bool = False
    page: int = 0
    address: int = 0

    @property
    def library_name(self) -> str | None:
        if self.function != Function.EXTRA:
            return None
        return LIBRARY_NAMES.get(self.address)


def pack_instruction(instr: Instruction) -> int:
    if not 0 <= instr.accumulator <= MAX_ACCUMULATOR:
        raise InvalidOperand(f"Invalid accumulator: {instr.accumulator}")
    if not 0 <= instr.index_register <= MAX_INDEX_REGISTER:
        raise InvalidOperand(f"Invalid index register: {instr.index_register}")
    if instr.page not in (0, 1):
        raise InvalidOperand(f"Invalid page: {instr.page}")
    if not 0 <= instr.address <= MAX_ADDRESS:
        raise InvalidOperand(f"Invalid address: {instr.address}")
    return (int(instr.function) << FUNCTION_SHIFT) | \
           (instr.accumulator << ACCUMULATOR_SHIFT) | \
           (instr.index_register << INDEX_REGISTER_SHIFT) | \
           (int(instr.indirect) << INDIRECT_SHIFT) | \
           (instr.page << PAGE_SHIFT) | \
           instr.address


def unpack_instruction(raw: int) -> Instruction:
    raw &= WORD_MASK
    code = (raw & FUNCTION_MASK) >> FUNCTION_SHIFT
    if code == Function.UNUSED:
        raise CannotConvertWordToInstruction(raw)
    return Instruction(
        function=Function(code),
        accumulator=(raw & ACCUMULATOR_MASK) >> ACCUMULATOR_SHIFT,
        index_register=(raw & INDEX_REGISTER_MASK) >> INDEX_REGISTER_SHIFT,
        indirect=bool(raw & INDIRECT_MASK),
        page=(raw & PAGE_MASK) >> PAGE_SHIFT,
        address=raw & ADDRESS_MASK,
    )


def make_pword(instr: Instruction) -> Word:
    return Word(TAG_P, pack_instruction(instr))


def disassemble(instr: Instruction) -> str:
    """Render an instruction in source form, e.g. ``ADD 2, *40[3]``."""
    name = instr.library_name
    if name is not None:
        return name if instr.accumulator == DEFAULT_ACCUMULATOR \
            else f"{name} {instr.accumulator},"
    operand = f"*{instr.address}" if instr.indirect else str(instr.address)
    if instr.index_register:
        operand += f"[{instr.index_register}]"
    return f"{instr.function.name} {instr.accumulator}, {operand}"
