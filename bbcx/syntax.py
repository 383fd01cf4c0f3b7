"""
Syntax tree for BBC-X source lines.

One SourceLine per program line: its location, optional label, the source
word it assembles to and any trailing comment. Literals appear both as
source words and as constant operands of P-words.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Union

from .instruction import DEFAULT_ACCUMULATOR, Function


@dataclass(frozen=True)
class IntLiteral:
    value: int


@dataclass(frozen=True)
class FloatLiteral:
    value: float


@dataclass(frozen=True)
class StringLiteral:
    text: str


Literal = Union[IntLiteral, FloatLiteral, StringLiteral]


@dataclass(frozen=True)
class AddressOperand:
    """Store operand naming a location: numeric or identifier, maybe *indirect and [indexed]."""
    address: int | str
    indirect: bool = False
    index: int | None = None

    @property
    def identifier(self) -> str | None:
        return self.address if isinstance(self.address, str) else None


@dataclass(frozen=True)
class PWord:
    mnemonic: str
    function: Function
    accumulator: int = DEFAULT_ACCUMULATOR
    operand: AddressOperand | Literal | None = None


SourceWord = Union[IntLiteral, FloatLiteral, StringLiteral, PWord]


@dataclass(frozen=True)
class SourceLine:
    location: int
    label: str | None
    word: SourceWord
    comment: str = ""

    @property
    def identifiers(self) -> list[str]:
        """Identifiers this line refers to."""
        if isinstance(self.word, PWord) and isinstance(self.word.operand, AddressOperand):
            name = self.word.operand.identifier
            if name is not None:
                return [name]
        return []
