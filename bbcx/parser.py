"""
Line parser for BBC-X source.

Each line is parsed on its own:

  LOCATION [LABEL:] SOURCE-WORD [; comment]

where the source word is an S-word ("ABCD"), an I-word (+12), an F-word
(-1.5@3) or a P-word (MNEMONIC [acc,] operand). Blank and comment-only
lines carry nothing and are skipped.
"""

from __future__ import annotations

from dataclasses import dataclass

from lark import Lark, Transformer, v_args
from lark.exceptions import LarkError, UnexpectedInput, VisitError

from .errors import ParseFailed
from .instruction import (
    DEFAULT_ACCUMULATOR, LIBRARY, MAX_ACCUMULATOR, MNEMONICS, Function,
)
from .syntax import (
    AddressOperand, FloatLiteral, IntLiteral, PWord, SourceLine, StringLiteral,
)


# ============================================================
# Grammar (Lark LALR, contextual lexer)
# ============================================================

_MNEMONIC_NAMES = sorted(set(MNEMONICS) | set(LIBRARY), key=lambda n: (-len(n), n))

# A mnemonic ends at whitespace, a comment, end of line or an "acc," suffix
MNEMONIC_PATTERN = "(?:" + "|".join(_MNEMONIC_NAMES) + r")(?=[0-7],|[ \t;]|$)"

_EXPONENT = r"@[+-]?\d{1,2}"
_UNSIGNED_FLOAT = r"(?:(?:\d+\.\d+|\.\d+)(?:" + _EXPONENT + r")?|\d+" + _EXPONENT + ")"

GRAMMAR = r"""
    line: DIGITS [LABEL] source_word [COMMENT]

    ?source_word: pword
                | iword
                | fword
                | sword

    pword: MNEMONIC [ACC] [operand]

    ?operand: address_operand
            | const_operand

    address_operand: [INDIRECT] address [index]
    address: IDENTIFIER | DIGITS
    index: "[" DIGITS "]"
    const_operand: SIGNED_FLOAT | SIGNED_INT | STRING

    iword: SIGNED_INT | DIGITS
    fword: SIGNED_FLOAT | FLOAT
    sword: STRING

    LABEL.3: /[A-Z][A-Z0-9]*:/
    ACC.3: /[0-7],/
    MNEMONIC.2: /""" + MNEMONIC_PATTERN + r"""/
    SIGNED_FLOAT.2: /[+-]""" + _UNSIGNED_FLOAT + r"""/
    FLOAT.2: /""" + _UNSIGNED_FLOAT + r"""/
    SIGNED_INT: /[+-]\d+/
    DIGITS: /\d+/
    IDENTIFIER: /[A-Z][A-Z0-9]*/
    STRING: /"[^"\n]{1,4}"/
    INDIRECT: "*"
    COMMENT: /;[^\n]*/

    %ignore /[ \t]+/
"""

parser = Lark(GRAMMAR, start="line", parser="lalr", lexer="contextual")


def _float(text: str) -> float:
    return float(text.replace("@", "e"))


def _is_accumulator(operand) -> bool:
    return (isinstance(operand, AddressOperand)
            and isinstance(operand.address, int)
            and operand.address <= MAX_ACCUMULATOR
            and not operand.indirect and operand.index is None)


@v_args(inline=True)
class LineBuilder(Transformer):
    def line(self, location, label, word, comment):
        return SourceLine(
            location=int(location),
            label=str(label)[:-1] if label is not None else None,
            word=word,
            comment=str(comment) if comment is not None else "",
        )

    def pword(self, mnemonic, acc, operand):
        name = str(mnemonic)
        accumulator = int(str(acc)[0]) if acc is not None else DEFAULT_ACCUMULATOR
        if name in LIBRARY:
            # "PRINT 2" names the accumulator in the operand position
            if acc is None and _is_accumulator(operand):
                accumulator, operand = operand.address, None
            if operand is not None:
                raise ValueError(f"{name} takes no operand")
            return PWord(name, Function.EXTRA, accumulator, AddressOperand(LIBRARY[name]))
        return PWord(name, MNEMONICS[name], accumulator, operand)

    def address_operand(self, indirect, address, index):
        return AddressOperand(address, indirect is not None, index)

    def address(self, tok):
        return int(tok) if tok.type == "DIGITS" else str(tok)

    def index(self, tok):
        return int(tok)

    def const_operand(self, tok):
        if tok.type == "SIGNED_INT":
            return IntLiteral(int(tok))
        if tok.type == "SIGNED_FLOAT":
            return FloatLiteral(_float(str(tok)))
        return StringLiteral(str(tok)[1:-1])

    def iword(self, tok):
        return IntLiteral(int(tok))

    def fword(self, tok):
        return FloatLiteral(_float(str(tok)))

    def sword(self, tok):
        return StringLiteral(str(tok)[1:-1])


line_builder = LineBuilder()


# ============================================================
# Entry points
# ============================================================

@dataclass
class ParsedLine:
    text: str
    line: SourceLine | None = None
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


def _reason(err: LarkError) -> str:
    if isinstance(err, VisitError):
        return str(err.orig_exc)
    if isinstance(err, UnexpectedInput):
        return f"unexpected input at column {err.column}"
    return str(err).splitlines()[0]


def parse_line(text: str) -> SourceLine | None:
    """Parse one source line; None for blank or comment-only lines."""
    stripped = text.strip()
    if not stripped or stripped.startswith(";"):
        return None
    try:
        return line_builder.transform(parser.parse(stripped))
    except LarkError as e:
        raise ParseFailed([text], [_reason(e)]) from e


def parse_lines(source: str) -> list[ParsedLine]:
    """Parse every line, keeping failures alongside the text for listings."""
    results = []
    for text in source.splitlines():
        try:
            results.append(ParsedLine(text, parse_line(text)))
        except ParseFailed as e:
            results.append(ParsedLine(text, error=e.reasons[0]))
    return results


def parse_program(source: str) -> list[SourceLine]:
    parsed = parse_lines(source)
    failed = [p for p in parsed if not p.ok]
    if failed:
        raise ParseFailed([p.text for p in failed], [p.error for p in failed])
    return [p.line for p in parsed if p.line is not None]
