"""
Word — the 24-bit typed value held by every BBC-X memory cell.

A word is a tag plus 24 raw bits. The tag selects one of four readings of
the bits: a two's-complement integer (I), a sign/exponent/mantissa float (F),
four 6-bit characters (S) or a packed instruction (P). A cell that has never
been written is Undefined.

Arithmetic promotes to float when either side is an F-word; integer results
wrap to 24 bits. Bitwise operations work on the raw bits and keep the tag of
the left operand. Double-length operations treat an accumulator pair as one
signed 48-bit value, the lower-numbered word holding the high half.
"""

from __future__ import annotations

import math
import struct
from dataclasses import dataclass

from .charset import CHAR_BITS, CHAR_MASK, char_to_code, code_to_char
from .errors import (
    ArithmeticTypeMismatch, DivisionByZero, InvalidFWordValue,
    InvalidIWordValue, InvalidOperand, InvalidSWordValue,
)


# ---------------------------------------------------------------------------
# Word format: 24 raw bits, tag kept alongside
# ---------------------------------------------------------------------------

WORD_BITS   = 24
WORD_MASK   = 0o77777777
SIGN_BIT    = 0o40000000
DOUBLE_BITS = 2 * WORD_BITS
DOUBLE_MASK = (1 << DOUBLE_BITS) - 1

INT_MIN = -(1 << (WORD_BITS - 1))
INT_MAX = (1 << (WORD_BITS - 1)) - 1

CHARS_PER_WORD = WORD_BITS // CHAR_BITS   # 4

# F-word: 1 sign bit | 7-bit exponent (bias 63) | 16-bit mantissa
FWORD_SIGN_MASK      = 0o40000000
FWORD_EXPONENT_MASK  = 0o37600000
FWORD_MANTISSA_MASK  = 0o00177777
FWORD_EXPONENT_SHIFT = 16
FWORD_MANTISSA_BITS  = 16
FWORD_BIAS           = 63
FWORD_EXPONENT_MIN   = -63
FWORD_EXPONENT_MAX   = 63
# Smallest non-zero magnitude an F-word holds (raw bits 1)
FWORD_SMALLEST = math.ldexp(1.0 + 2.0 ** -FWORD_MANTISSA_BITS, FWORD_EXPONENT_MIN)

IEEE_MANTISSA_BITS = 52
IEEE_BIAS          = 1023

# Tag constants. I..P are also the type codes reported by TTYP.
TAG_I         = 0
TAG_F         = 1
TAG_S         = 2
TAG_P         = 3
TAG_UNDEFINED = 4

TAG_NAMES = {
    TAG_I: "I", TAG_F: "F", TAG_S: "S", TAG_P: "P", TAG_UNDEFINED: "U",
}


@dataclass(frozen=True)
class Word:
    tag: int = TAG_UNDEFINED
    raw: int = 0

    @property
    def is_defined(self) -> bool:
        return self.tag != TAG_UNDEFINED

    @property
    def is_numeric(self) -> bool:
        return self.tag == TAG_I or self.tag == TAG_F

    def as_int(self) -> int:
        if self.tag != TAG_I:
            raise ArithmeticTypeMismatch(f"Expected an I-word, found {self}")
        return to_signed(self.raw)

    def as_float(self) -> float:
        if self.tag != TAG_F:
            raise ArithmeticTypeMismatch(f"Expected an F-word, found {self}")
        return decode_float(self.raw)

    def as_string(self) -> str:
        if self.tag != TAG_S:
            raise ArithmeticTypeMismatch(f"Expected an S-word, found {self}")
        return decode_string(self.raw)

    def number(self) -> int | float:
        """Numeric value of an I- or F-word."""
        if self.tag == TAG_I:
            return to_signed(self.raw)
        if self.tag == TAG_F:
            return decode_float(self.raw)
        raise ArithmeticTypeMismatch(f"Expected a number, found {self}")

    def __repr__(self) -> str:
        return f"Word({TAG_NAMES[self.tag]}, {self.raw:08o})"


UNDEFINED = Word()


# ---------------------------------------------------------------------------
# Encodings
# ---------------------------------------------------------------------------

def to_signed(raw: int) -> int:
    raw &= WORD_MASK
    return raw - (1 << WORD_BITS) if raw & SIGN_BIT else raw


def encode_int(value: int) -> int:
    if not INT_MIN <= value <= INT_MAX:
        raise InvalidIWordValue(value)
    return value & WORD_MASK


def encode_float(value: float) -> int:
    """Pack a Python float into F-word bits, truncating the mantissa."""
    if value == 0.0:
        return 0
    if not math.isfinite(value):
        raise InvalidFWordValue(value)
    bits, = struct.unpack(">Q", struct.pack(">d", value))
    sign = bits >> 63
    exponent = ((bits >> IEEE_MANTISSA_BITS) & 0x7FF) - IEEE_BIAS
    if not FWORD_EXPONENT_MIN <= exponent <= FWORD_EXPONENT_MAX:
        raise InvalidFWordValue(value)
    mantissa = (bits & ((1 << IEEE_MANTISSA_BITS) - 1)) \
        >> (IEEE_MANTISSA_BITS - FWORD_MANTISSA_BITS)
    raw = (sign << (WORD_BITS - 1)) | \
          ((exponent + FWORD_BIAS) << FWORD_EXPONENT_SHIFT) | \
          mantissa
    # 2**-63 would pack to the all-zero pattern reserved for 0.0
    if raw == 0:
        raise InvalidFWordValue(value)
    return raw


def decode_float(raw: int) -> float:
    raw &= WORD_MASK
    if raw == 0:
        return 0.0
    sign = -1.0 if raw & FWORD_SIGN_MASK else 1.0
    exponent = ((raw & FWORD_EXPONENT_MASK) >> FWORD_EXPONENT_SHIFT) - FWORD_BIAS
    mantissa = (raw & FWORD_MANTISSA_MASK) / (1 << FWORD_MANTISSA_BITS)
    return sign * math.ldexp(1.0 + mantissa, exponent)


def encode_string(text: str) -> int:
    """Pack up to four characters, first character most significant."""
    if len(text) > CHARS_PER_WORD:
        raise InvalidSWordValue(text)
    raw = 0
    for ch in text.ljust(CHARS_PER_WORD, "\0"):
        code = char_to_code(ch)
        if code is None:
            raise InvalidSWordValue(text)
        raw = (raw << CHAR_BITS) | code
    return raw


def string_codes(raw: int) -> list[int]:
    return [(raw >> (CHAR_BITS * i)) & CHAR_MASK
            for i in range(CHARS_PER_WORD - 1, -1, -1)]


def decode_string(raw: int) -> str:
    chars = []
    for code in string_codes(raw):
        ch = code_to_char(code)
        if ch is None:
            raise InvalidSWordValue(f"{raw:08o}")
        chars.append(ch)
    return "".join(chars)


def make_int_word(value: int, strict: bool = False) -> Word:
    """I-word for value; wraps to 24 bits unless strict."""
    if strict:
        return Word(TAG_I, encode_int(value))
    return Word(TAG_I, value & WORD_MASK)


def make_float_word(value: float) -> Word:
    return Word(TAG_F, encode_float(value))


def make_float_result(value: float) -> Word:
    """F-word for a computed value; magnitudes below the F range become 0.0."""
    if abs(value) < FWORD_SMALLEST:
        value = 0.0
    return make_float_word(value)


def make_string_word(text: str) -> Word:
    return Word(TAG_S, encode_string(text))


# ---------------------------------------------------------------------------
# Arithmetic
# ---------------------------------------------------------------------------

def _check_numeric(a: Word, b: Word, op: str):
    if not (a.is_numeric and b.is_numeric):
        raise ArithmeticTypeMismatch(f"Cannot {op} {a} and {b}")


def _arith_result(value, floating: bool) -> Word:
    return make_float_result(value) if floating else make_int_word(value)


def _trunc_div(x: int, y: int) -> int:
    q = abs(x) // abs(y)
    return q if (x < 0) == (y < 0) else -q


def add(a: Word, b: Word) -> Word:
    _check_numeric(a, b, "add")
    return _arith_result(a.number() + b.number(), TAG_F in (a.tag, b.tag))


def subtract(a: Word, b: Word) -> Word:
    _check_numeric(a, b, "subtract")
    return _arith_result(a.number() - b.number(), TAG_F in (a.tag, b.tag))


def multiply(a: Word, b: Word) -> Word:
    _check_numeric(a, b, "multiply")
    return _arith_result(a.number() * b.number(), TAG_F in (a.tag, b.tag))


def divide(a: Word, b: Word) -> Word:
    """I/I truncates toward zero; anything involving an F-word is float."""
    _check_numeric(a, b, "divide")
    x, y = a.number(), b.number()
    if y == 0:
        raise DivisionByZero()
    if TAG_F in (a.tag, b.tag):
        return make_float_result(x / y)
    return make_int_word(_trunc_div(x, y))


def power(a: Word, b: Word) -> Word:
    _check_numeric(a, b, "raise")
    x, n = a.number(), b.number()
    if n == 0:
        return make_int_word(1)
    if a.tag == TAG_I and b.tag == TAG_I:
        if n > 0:
            return make_int_word(pow(x, n, 1 << WORD_BITS))
        if x == 0:
            raise DivisionByZero()
        return make_int_word(int(x ** n))
    try:
        result = math.pow(x, n)
    except ValueError:
        raise InvalidOperand(f"{x} ** {n} is undefined")
    except OverflowError:
        raise InvalidFWordValue(f"{x} ** {n}")
    return make_float_result(result)


def negate(a: Word) -> Word:
    if a.tag == TAG_I:
        return make_int_word(-to_signed(a.raw))
    if a.tag == TAG_F:
        if a.raw == 0:
            return a
        return Word(TAG_F, a.raw ^ FWORD_SIGN_MASK)
    raise ArithmeticTypeMismatch(f"Cannot negate {a}")


def compare(a: Word, b: Word) -> int:
    """-1, 0 or 1 as a is less than, equal to or greater than b."""
    _check_numeric(a, b, "compare")
    x, y = a.number(), b.number()
    return (x > y) - (x < y)


def equal(a: Word, b: Word) -> bool:
    if a.is_numeric and b.is_numeric:
        return a.number() == b.number()
    return a.tag == b.tag and a.raw == b.raw


# ---------------------------------------------------------------------------
# Bitwise, shift and rotate (single length)
# ---------------------------------------------------------------------------

def _with_raw(a: Word, raw: int) -> Word:
    if a.tag == TAG_UNDEFINED:
        return a
    return Word(a.tag, raw & WORD_MASK)


def bit_or(a: Word, b: Word) -> Word:
    return _with_raw(a, a.raw | b.raw)


def bit_xor(a: Word, b: Word) -> Word:
    return _with_raw(a, a.raw ^ b.raw)


def bit_and(a: Word, b: Word) -> Word:
    return _with_raw(a, a.raw & b.raw)


def bit_not(a: Word) -> Word:
    return _with_raw(a, ~a.raw)


def shift_count(w: Word) -> int:
    if w.tag == TAG_I:
        return to_signed(w.raw)
    if w.tag == TAG_F:
        return int(decode_float(w.raw))
    raise ArithmeticTypeMismatch(f"Shift count must be a number, found {w}")


def shift_left(a: Word, n: int) -> Word:
    """Shift left by n; a negative n shifts right, arithmetically for I-words."""
    n = max(-WORD_BITS, min(n, WORD_BITS))
    if n >= 0:
        return _with_raw(a, a.raw << n)
    if a.tag == TAG_I:
        return _with_raw(a, to_signed(a.raw) >> -n)
    return _with_raw(a, a.raw >> -n)


def rotate_left(a: Word, n: int) -> Word:
    n %= WORD_BITS
    return _with_raw(a, (a.raw << n) | (a.raw >> (WORD_BITS - n)))


# ---------------------------------------------------------------------------
# Double length: (hi, lo) = (word[acc - 1], word[acc])
# ---------------------------------------------------------------------------

def double_value(hi: Word, lo: Word) -> int:
    value = ((hi.raw & WORD_MASK) << WORD_BITS) | (lo.raw & WORD_MASK)
    if value >> (DOUBLE_BITS - 1):
        value -= 1 << DOUBLE_BITS
    return value


def split_double(value: int, hi_tag: int = TAG_I,
                 lo_tag: int = TAG_I) -> tuple[Word, Word]:
    value &= DOUBLE_MASK
    return Word(hi_tag, value >> WORD_BITS), Word(lo_tag, value & WORD_MASK)


def _half_tag(w: Word) -> int:
    return TAG_I if w.tag == TAG_UNDEFINED else w.tag


def double_shift_left(hi: Word, lo: Word, n: int) -> tuple[Word, Word]:
    n = max(-DOUBLE_BITS, min(n, DOUBLE_BITS))
    value = double_value(hi, lo)
    value = value << n if n >= 0 else value >> -n
    return split_double(value, _half_tag(hi), _half_tag(lo))


def double_rotate_left(hi: Word, lo: Word, n: int) -> tuple[Word, Word]:
    n %= DOUBLE_BITS
    value = double_value(hi, lo) & DOUBLE_MASK
    value = (value << n) | (value >> (DOUBLE_BITS - n))
    return split_double(value, _half_tag(hi), _half_tag(lo))


def double_multiply(hi: Word, lo: Word, b: Word) -> tuple[Word, Word]:
    return split_double(double_value(hi, lo) * b.as_int())


def double_divide(hi: Word, lo: Word, b: Word) -> tuple[Word, Word]:
    divisor = b.as_int()
    if divisor == 0:
        raise DivisionByZero()
    return split_double(_trunc_div(double_value(hi, lo), divisor))


def squash(hi: Word, lo: Word) -> Word:
    """Fold a double-length value into one word: sign of hi, low bits of lo."""
    return Word(_half_tag(lo), (hi.raw & SIGN_BIT) | (lo.raw & ~SIGN_BIT & WORD_MASK))


# ---------------------------------------------------------------------------
# Type introspection
# ---------------------------------------------------------------------------

def word_type(w: Word) -> Word:
    if w.tag == TAG_UNDEFINED:
        raise InvalidOperand("Undefined word has no type")
    return make_int_word(w.tag)


def word_bits(w: Word) -> Word:
    return Word(TAG_I, w.raw & WORD_MASK)


def set_word_type(w: Word, type_word: Word) -> Word:
    """Retag w using the low two bits of type_word (0=I, 1=F, 2=S, 3=P)."""
    return Word(type_word.raw & 0b11, w.raw & WORD_MASK)


# ---------------------------------------------------------------------------
# Display
# ---------------------------------------------------------------------------

def format_float(value: float) -> str:
    return f"{value:+.6G}".replace("E", "@")


def word_text(w: Word) -> str:
    """Printed form of a word's value, as written by PRINT."""
    if w.tag == TAG_I:
        return f"{to_signed(w.raw):+d}"
    if w.tag == TAG_F:
        return format_float(decode_float(w.raw))
    if w.tag == TAG_S:
        return decode_string(w.raw).rstrip("\0")
    if w.tag == TAG_P:
        return f"{w.raw:08o}"
    raise InvalidOperand("Cannot print an undefined word")


def format_word(w: Word) -> str:
    """Tagged form for traces and listings; never raises."""
    if w.tag == TAG_UNDEFINED:
        return "U"
    if w.tag == TAG_S:
        chars = "".join(code_to_char(c) or "?" for c in string_codes(w.raw))
        return f'S "{chars.replace(chr(0), " ")}"'
    return f"{TAG_NAMES[w.tag]} {word_text(w)}"
