"""
Tests for the word model: encodings, arithmetic, bit operations and the
double-length accumulator pair.
"""

from __future__ import annotations

import math

import pytest

from bbcx.errors import (
    ArithmeticTypeMismatch, DivisionByZero, InvalidFWordValue,
    InvalidIWordValue, InvalidOperand, InvalidSWordValue,
)
from bbcx.word import (
    INT_MAX, INT_MIN, SIGN_BIT, TAG_F, TAG_I, TAG_S, UNDEFINED, WORD_MASK,
    Word, add, bit_not, bit_or, compare, decode_float, divide,
    double_divide, double_multiply, double_rotate_left, double_shift_left,
    equal, format_word, make_float_word, make_int_word, make_string_word,
    multiply, negate, power, rotate_left, set_word_type, shift_left, squash,
    subtract, word_bits, word_text, word_type,
)


I = make_int_word
F = make_float_word
S = make_string_word


# ---------------------------------------------------------------------------
# Encodings
# ---------------------------------------------------------------------------

def test_int_limits():
    """I-words hold the 24-bit two's-complement range."""
    assert I(INT_MAX).as_int() == INT_MAX
    assert I(INT_MIN).as_int() == INT_MIN
    assert I(-1).raw == WORD_MASK
    with pytest.raises(InvalidIWordValue):
        I(INT_MAX + 1, strict=True)
    with pytest.raises(InvalidIWordValue):
        I(INT_MIN - 1, strict=True)


def test_int_wraps_when_not_strict():
    assert I(INT_MAX + 1).as_int() == INT_MIN


def test_float_zero_is_all_zero_bits():
    assert F(0.0).raw == 0
    assert F(-0.0).raw == 0
    assert decode_float(0) == 0.0


def test_float_fields():
    assert F(1.0).raw == 63 << 16
    # -2.5 = -(1 + 0.25) * 2**1
    assert F(-2.5).raw == SIGN_BIT | (64 << 16) | 0x4000
    assert F(-2.5).as_float() == -2.5


def test_float_truncation_error_bound():
    """Only mantissa truncation is lost: relative error <= 2**-16."""
    for value in (3.14159, -1234.5678, 1e-10, 6.02e18, 0.1):
        back = F(value).as_float()
        assert abs(back - value) / abs(value) <= 2 ** -16


def test_float_out_of_range():
    for value in (1e30, -1e30, 2.0 ** 64, float("inf"), float("nan")):
        with pytest.raises(InvalidFWordValue):
            F(value)
    # 2**-63 would collide with the zero pattern
    with pytest.raises(InvalidFWordValue):
        F(2.0 ** -63)
    assert F(2.0 ** 63).as_float() == 2.0 ** 63


def test_string_packing():
    assert S("ABCD").raw == 0o01020304
    assert S("AB").raw == 0o01020000
    assert S("AB").as_string() == "AB\0\0"
    assert S("9 +.").as_string() == "9 +."


def test_string_rejects_bad_input():
    with pytest.raises(InvalidSWordValue):
        S("ABCDE")
    with pytest.raises(InvalidSWordValue):
        S("abc")


# ---------------------------------------------------------------------------
# Arithmetic
# ---------------------------------------------------------------------------

def test_integer_arithmetic():
    assert add(I(12), I(10)) == I(22)
    assert subtract(I(12), I(10)) == I(2)
    assert subtract(I(10), I(12)) == I(-2)
    assert multiply(I(-3), I(7)) == I(-21)
    assert divide(I(12), I(6)) == I(2)
    assert divide(I(-7), I(2)) == I(-3)
    assert add(I(INT_MAX), I(1)) == I(INT_MIN)


def test_mixed_arithmetic_promotes():
    result = add(I(1), F(0.5))
    assert result.tag == TAG_F
    assert result.as_float() == 1.5
    assert divide(I(7), F(2.0)).as_float() == 3.5


def test_arithmetic_type_mismatch():
    with pytest.raises(ArithmeticTypeMismatch):
        add(S("ABCD"), I(1))
    with pytest.raises(ArithmeticTypeMismatch):
        subtract(I(1), UNDEFINED)
    with pytest.raises(ArithmeticTypeMismatch):
        compare(S("A"), S("B"))


def test_division_by_zero():
    with pytest.raises(DivisionByZero):
        divide(I(1), I(0))
    with pytest.raises(DivisionByZero):
        divide(F(1.0), F(0.0))


def test_power():
    assert power(I(2), I(10)) == I(1024)
    assert power(I(2), I(-1)) == I(0)
    assert power(I(-1), I(-3)) == I(-1)
    assert power(F(2.0), I(3)).as_float() == 8.0
    assert power(I(4), F(0.5)).as_float() == 2.0
    assert power(I(5), I(0)) == I(1)
    assert power(F(2.5), F(0.0)) == I(1)
    with pytest.raises(DivisionByZero):
        power(I(0), I(-1))
    with pytest.raises(InvalidOperand):
        power(F(-8.0), F(0.5))


def test_negate():
    assert negate(I(5)) == I(-5)
    assert negate(F(0.0)).raw == 0
    assert negate(F(1.5)).as_float() == -1.5
    with pytest.raises(ArithmeticTypeMismatch):
        negate(S("A"))


def test_equality_and_ordering():
    assert equal(I(2), F(2.0))
    assert equal(S("AB"), S("AB"))
    assert not equal(S("AB"), I(S("AB").raw))
    assert compare(I(-1), I(0)) == -1
    assert compare(F(2.5), I(2)) == 1


# ---------------------------------------------------------------------------
# Bit operations
# ---------------------------------------------------------------------------

def test_bitwise_keeps_left_tag():
    result = bit_or(S("A"), I(2))
    assert result.tag == TAG_S
    assert result.raw == S("A").raw | 2
    assert bit_not(I(0)) == I(-1)
    assert bit_or(UNDEFINED, I(1)) == UNDEFINED


def test_shift():
    assert shift_left(I(1), 3) == I(8)
    assert shift_left(I(-8), -2) == I(-2)
    assert shift_left(S("A"), -6).raw == S("A").raw >> 6
    assert shift_left(I(1), 30) == I(0)


def test_rotate():
    assert rotate_left(I(1), -1).raw == SIGN_BIT
    for n in (0, 1, 5, 23, -7):
        w = I(0o12345670)
        assert rotate_left(w, n) == rotate_left(w, n + 24)


# ---------------------------------------------------------------------------
# Double length
# ---------------------------------------------------------------------------

def test_double_shift():
    assert double_shift_left(I(0), I(1), 24) == (I(1), I(0))
    hi, lo = double_shift_left(I(0), I(0o1234567), 5)
    assert double_shift_left(hi, lo, -5) == (I(0), I(0o1234567))


def test_double_rotate():
    hi, lo = double_rotate_left(Word(TAG_I, SIGN_BIT), I(0), 1)
    assert (hi.raw, lo.raw) == (0, 1)
    assert double_rotate_left(I(3), I(5), 48) == (I(3), I(5))


def test_double_multiply_and_divide():
    hi, lo = double_multiply(I(-1), I(-16000), I(12000))
    assert (hi, lo) == (I(-12), I(-7450624))
    assert double_divide(hi, lo, I(12000)) == (I(-1), I(-16000))
    with pytest.raises(DivisionByZero):
        double_divide(hi, lo, I(0))


def test_squash():
    assert squash(I(-1), I(-16000)) == I(-16000)
    assert squash(I(0), I(-1)) == I(INT_MAX)
    assert squash(I(0), S("AB")).tag == TAG_S


# ---------------------------------------------------------------------------
# Type introspection and display
# ---------------------------------------------------------------------------

def test_type_introspection():
    assert word_type(F(1.0)) == I(1)
    assert word_type(S("A")) == I(2)
    with pytest.raises(InvalidOperand):
        word_type(UNDEFINED)
    assert word_bits(S("ABCD")) == Word(TAG_I, 0o01020304)
    retagged = set_word_type(S("ABCD"), I(1))
    assert retagged == Word(TAG_F, 0o01020304)
    assert set_word_type(I(7), I(6)).tag == TAG_S


def test_display():
    assert word_text(I(16)) == "+16"
    assert word_text(F(4.0)) == "+4"
    assert word_text(F(1.5e10)) == "+1.5@+10"
    assert word_text(S("HI")) == "HI"
    assert format_word(UNDEFINED) == "U"
    assert format_word(S("HI")) == 'S "HI  "'
    assert math.isclose(F(-0.75).as_float(), -0.75)


def test_float_underflow_flushes_to_zero():
    """Computed results below the F range become 0.0; literals stay strict."""
    tiny = F(1e-10)
    assert multiply(tiny, tiny) == F(0.0)
    assert divide(tiny, F(1e15)).raw == 0
    assert power(F(1e-10), I(3)) == F(0.0)
    assert multiply(F(-1e-10), tiny).raw == 0
    with pytest.raises(InvalidFWordValue):
        F(1e-20)
    with pytest.raises(InvalidFWordValue):
        multiply(F(1e18), F(1e18))
