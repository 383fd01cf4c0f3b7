"""
Verification suite for the BBC-X machine.

Programs are assembled from source text through BbcxHost and run to
completion; results are checked against hand-computed memory contents,
PC and output bytes.
"""

from __future__ import annotations

import io
import sys

import pytest

from bbcx.errors import (
    CannotConvertWordToInstruction, DivisionByZero, InvalidOperand,
    InvalidSWordValue,
)
from bbcx.host import BbcxHost
from bbcx.instruction import Function
from bbcx.machine import S_DONE, S_FAULT, BbcxMachine
from bbcx.memory import Memory
from bbcx.word import (
    TAG_F, TAG_I, TAG_P, TAG_S, UNDEFINED, Word, make_float_word, make_int_word,
    make_string_word,
)


I = make_int_word
F = make_float_word
S = make_string_word


def _run(source: str, input_bytes: bytes = b"", **kwargs) -> tuple[BbcxHost, dict]:
    host = BbcxHost(**kwargs)
    result = host.eval(source, input_bytes)
    return host, result


# ---------------------------------------------------------------------------
# Reference programs
# ---------------------------------------------------------------------------

def test_empty_program():
    host, result = _run("")
    assert result["state"] == "DONE"
    assert result["pc"] == 0
    assert host.dump() == {}


def test_integer_add():
    host, result = _run("""
0001    +12
0100    ADD 1,  +10
""")
    assert result["ok"]
    assert host.word(1) == I(22)
    assert host.word(127) == I(10)
    assert result["pc"] == 101


def test_jump_with_link():
    """The skipped TAKEs must never run; word 0 holds the last JUMP's own address."""
    host, result = _run("""
0100    JUMP 1, 110
0101    TAKE 2, +1
0110    TAKE 2, +2
0111    JUMP 1, 121
0120    TAKE 2, +3
""")
    assert host.word(0) == I(111)
    assert host.word(2) == I(2)
    assert result["pc"] == 121
    # one literal slot per constant, top down
    assert [host.word(a) for a in (127, 126, 125)] == [I(1), I(2), I(3)]


def test_double_multiply():
    host, _ = _run("""
0001    -1
0002    -16000
0100    DMULT 2, +12000
""")
    assert host.word(1) == I(-12)
    assert host.word(2) == I(-7450624)


def test_double_divide_inverts_multiply():
    host, _ = _run("""
0001    -1
0002    -16000
0100    DMULT 2, +12000
0101    DDIV 2, +12000
""")
    assert (host.word(1), host.word(2)) == (I(-1), I(-16000))


def test_ptyz_keeps_destination_tag():
    host, _ = _run("""
0003        "ABCD"
0050    LOC: 0.0
0100        PTYZ 3, LOC
""")
    assert host.word(50) == Word(TAG_F, 0o01020304)


def test_pin_reports_end_of_data():
    host, result = _run("""
0100    PIN 50
0101    PIN 50
0102    PIN 50
""", b"12")
    assert result["output"] == b"12DATA*"
    assert host.word(50) == S("2")


# ---------------------------------------------------------------------------
# Faults
# ---------------------------------------------------------------------------

def test_fault_leaves_pc_on_instruction():
    host, result = _run("""
0100    TAKE 1, +1
0101    DVD 1,  +0
""")
    assert not result["ok"]
    assert result["state"] == "FAULT"
    assert result["pc"] == 101
    assert isinstance(result["error"], DivisionByZero)
    assert result["error"].pc == 101
    assert host.word(1) == I(1)


def test_unused_function_code_faults():
    memory = Memory()
    memory[0] = Word(TAG_P, 61 << 18)
    machine = BbcxMachine(memory)
    with pytest.raises(CannotConvertWordToInstruction):
        machine.run()
    assert machine.state == S_FAULT
    assert machine.pc.value == 0


def test_pair_instruction_needs_partner():
    _, result = _run("0100    JUMP 0, 110\n")
    assert isinstance(result["error"], InvalidOperand)


def test_address_out_of_range_at_runtime():
    _, result = _run("""
0003    +100
0100    TAKE 1, 50[3]
""")
    assert isinstance(result["error"], InvalidOperand)


# ---------------------------------------------------------------------------
# Addressing
# ---------------------------------------------------------------------------

def test_indexed_operand():
    host, _ = _run("""
0003    +2
0012    +9
0100    TAKE 1, 10[3]
""")
    assert host.word(1) == I(9)


def test_indirect_operand():
    host, _ = _run("""
0003    +2
0012    +9
0014    +4
0020    +12
0100    TAKE 1, *20
0101    TAKE 2, *20[3]
""")
    assert host.word(1) == I(9)
    assert host.word(2) == I(4)


def test_indirect_through_undefined_word_faults():
    host, result = _run("""
0000    +42
0100    TAKE 1, *60
""")
    assert result["state"] == "FAULT"
    assert isinstance(result["error"], CannotConvertWordToInstruction)
    assert result["pc"] == 100
    assert host.word(1) == UNDEFINED


# ---------------------------------------------------------------------------
# Arithmetic and logic through the machine
# ---------------------------------------------------------------------------

def test_accumulate_family():
    host, _ = _run("""
0001    +12
0002    +12
0003    +12
0004    +12
0005    +12
0100    OR 1,   +3
0101    NEQV 2, +10
0102    AND 3,  +10
0103    SUBT 4, +20
0104    MULT 5, -3
""")
    assert [host.word(a) for a in range(1, 6)] == [I(15), I(6), I(8), I(-8), I(-36)]


def test_power_and_divide():
    host, _ = _run("""
0001    +2
0002    -7
0003    +7
0100    POWR 1, +10
0101    DIV 2,  +2
0102    DIV 3,  +2.0
""")
    assert host.word(1) == I(1024)
    assert host.word(2) == I(-3)
    assert host.word(3) == F(3.5)


def test_float_underflow_gives_zero():
    host, result = _run("""
0001    1.0@-10
0100    MULT 1, +1.0@-10
""")
    assert result["ok"]
    assert host.word(1) == F(0.0)


def test_take_family():
    host, _ = _run("""
0003    "AB"
0100    TNEG 1, +5
0101    TNOT 2, +0
0102    TTTT 3, +1
0103    MOCKP 4, +5
""")
    assert host.word(1) == I(-5)
    assert host.word(2) == I(-1)
    assert host.word(3) == Word(TAG_S, 1)
    assert host.word(4) == Word(TAG_P, 5)


def test_rotates():
    host, _ = _run("""
0001    +1
0003    -8388608
0004    +0
0100    ROT 1,  -1
0101    DROT 4, +1
""")
    assert host.word(1) == I(-8388608)
    assert (host.word(3), host.word(4)) == (I(0), I(1))


def test_exchange_arithmetic():
    host, _ = _run("""
0001    +12
0002    +12
0003    +12
0004    +12
0005    +12
0006    +12
0051    +3
0052    +10
0053    +10
0054    +20
0055    -3
0056    +5
0100    ORX 1,   51
0101    NEQVX 2, 52
0102    ANDX 3,  53
0103    SUBTX 4, 54
0104    MULTX 5, 55
0105    DVDX 6,  56
""")
    assert [host.word(a) for a in range(1, 7)] == [I(3), I(10), I(10), I(20), I(-3), I(5)]
    assert [host.word(a) for a in range(51, 57)] == [I(15), I(6), I(8), I(-8), I(-36), I(2)]


# ---------------------------------------------------------------------------
# Skips and loops
# ---------------------------------------------------------------------------

def test_unconditional_skip():
    host, _ = _run("""
0100    SKIP
0101    TAKE 1, +1
0102    TAKE 2, +2
""")
    assert host.word(1) == UNDEFINED
    assert host.word(2) == I(2)


def test_skip_on_not_equal():
    host, _ = _run("""
0001    +5
0100    SKAN 1, +6
0101    TAKE 2, +1
0102    SKAN 1, +5
0103    TAKE 3, +2
""")
    assert host.word(2) == UNDEFINED
    assert host.word(3) == I(2)


def test_skip_on_same_type():
    host, _ = _run("""
0001    1.0
0100    SKET 1, +1.5
0101    TAKE 2, +1
0102    SKET 1, +1
0103    TAKE 3, +2
""")
    assert host.word(2) == UNDEFINED
    assert host.word(3) == I(2)


def test_skip_on_greater():
    host, _ = _run("""
0001    +5
0100    SKAG 1, +4
0101    TAKE 2, +1
0102    SKAG 1, +5
0103    TAKE 3, +2
""")
    assert host.word(2) == UNDEFINED
    assert host.word(3) == I(2)


def test_skei_counts_up():
    host, result = _run("""
0001    +0
0100    SKEI 1, +3
0101    JUMP 7, 100
""")
    assert host.word(1) == I(3)
    assert result["state"] == "DONE"
    assert result["stats"]["cycles"] == 7

def test_skip_on_equal():
    host, _ = _run("""
0001    +5
0100    SKAE 1, +5
0101    TAKE 2, +1
0102    TAKE 3, +2
""")
    assert host.word(2) == UNDEFINED
    assert host.word(3) == I(2)


def test_skip_on_less():
    host, _ = _run("""
0001    1.5
0100    SKAL 1, +2
0101    TAKE 2, +1
""")
    assert host.word(2) == UNDEFINED


def test_sked_counts_down():
    host, result = _run("""
0001    +3
0100    SKED 1, +0
0101    JUMP 7, 100
""")
    assert host.word(1) == I(0)
    assert host.word(6) == I(101)
    assert result["stats"]["cycles"] == 7
    assert result["stats"]["jumps"] == 3


def test_jzd_exits_at_zero():
    host, result = _run("""
0001    +3
0100    JZD 1,  103
0101    JUMP 7, 100
""")
    assert host.word(1) == I(0)
    assert result["pc"] == 103


def test_conditional_jumps():
    host, result = _run("""
0001    -4
0100    JLZ 1,  110
0101    TAKE 2, +1
0110    TAKE 3, +2
0111    JGZ 3,  120
0112    TAKE 4, +3
0120    JNZ 3,  90
0121    TAKE 5, +4
""")
    assert host.word(2) == UNDEFINED
    assert host.word(3) == I(2)
    assert host.word(4) == UNDEFINED
    assert host.word(5) == UNDEFINED
    assert result["pc"] == 90


def test_jump_on_zero():
    host, result = _run("""
0001    +0
0100    JEZ 1,  110
0101    TAKE 2, +1
0110    TAKE 3, +2
0111    JEZ 3,  90
0112    TAKE 4, +3
""")
    assert host.word(2) == UNDEFINED
    assert host.word(3) == I(2)
    assert host.word(4) == I(3)
    assert result["pc"] == 113


def test_jzi_counts_up_to_zero():
    host, result = _run("""
0001    -3
0100    JZI 1,  103
0101    JUMP 7, 100
""")
    assert host.word(1) == I(0)
    assert result["pc"] == 103


def test_jump_on_type():
    _, result = _run("""
0001    1.0
0050    2.0
0100    JAT 1,  50
""")
    assert result["pc"] == 50
    assert result["state"] == "DONE"


# ---------------------------------------------------------------------------
# Stores and exchanges
# ---------------------------------------------------------------------------

def test_put_family():
    host, _ = _run("""
0001    +5
0100    PUT 1,  50
0101    PNEG 1, 51
0102    PFFP 1, 52
0103    INCR    50
0104    DECR    51
0105    PNOT 1, 53
""")
    assert host.word(50) == I(6)
    assert host.word(51) == I(-6)
    assert host.word(52) == F(5.0)
    assert host.word(53) == I(-6)


def test_exchange_family():
    host, _ = _run("""
0001    +5
0002    +3
0050    +7
0051    +9
0100    ADDX 1, 50
0101    SWAP 2, 51
""")
    assert host.word(1) == I(7)
    assert host.word(50) == I(12)
    assert host.word(2) == I(9)
    assert host.word(51) == I(3)


def test_squash_pair():
    host, _ = _run("""
0001    -1
0002    -16000
0100    PSQU 2, 50
""")
    assert host.word(50) == I(-16000)


def test_retype_store():
    host, _ = _run("""
0001    +2
0050    +0
0100    PTYP 1, 50
""")
    assert host.word(50) == Word(TAG_S, 0)


# ---------------------------------------------------------------------------
# Type and character operations
# ---------------------------------------------------------------------------

def test_type_of_operand():
    host, _ = _run("""
0050    1.5
0100    TTYP 1, 50
0101    TTYZ 2, 50
""")
    assert host.word(1) == I(1)
    assert host.word(2) == Word(TAG_I, F(1.5).raw)


def test_mock_string():
    host, _ = _run("""
0050    +16
0100    MOCKS 1, 50
""")
    assert host.word(1).tag == TAG_S
    assert host.word(1).raw == 16


def test_character_extraction():
    host, _ = _run("""
0001    "ABCD"
0100    DBYTE 1, +2
""")
    assert host.word(1) == I(3)


def test_shifts():
    host, _ = _run("""
0001    +1
0003    +0
0004    +1
0100    SHL 1,  +4
0101    DSHL 4, +24
""")
    assert host.word(1) == I(16)
    assert (host.word(3), host.word(4)) == (I(1), I(0))


def test_test_and_store_flag():
    host, _ = _run("""
0100    TSTR 3, +0
0101    TSTR 5, +4
""")
    assert (host.word(2), host.word(3)) == (I(-1), I(0))
    assert (host.word(4), host.word(5)) == (I(0), I(4))


# ---------------------------------------------------------------------------
# IO
# ---------------------------------------------------------------------------

def test_character_output():
    _, result = _run("""
0100    TOUT 1, "   H"
0101    TOUT 1, "   I"
""")
    assert result["output"] == b"HI"


def test_pin_rejects_unknown_byte():
    _, result = _run("0100    PIN 50\n", b"\xff")
    assert isinstance(result["error"], InvalidSWordValue)


# ---------------------------------------------------------------------------
# EXEC
# ---------------------------------------------------------------------------

def test_exec_runs_target():
    host, result = _run("""
0100    EXEC 1, 110
0110    TAKE 2, +7
""")
    assert host.word(2) == I(7)
    assert result["pc"] == 101


def test_exec_rejects_data_and_nesting():
    _, result = _run("""
0050    +1
0100    EXEC 1, 50
""")
    assert isinstance(result["error"], CannotConvertWordToInstruction)

    _, result = _run("""
0100    EXEC 1, 110
0110    EXEC 1, 111
""")
    assert isinstance(result["error"], InvalidOperand)


# ---------------------------------------------------------------------------
# Library routines
# ---------------------------------------------------------------------------

def test_sqrt_and_print():
    host, result = _run("""
0001    16.0
0100    SQRT
0101    PRINT
""")
    assert host.word(1) == F(4.0)
    assert result["output"] == b"+4"


def test_read_numbers():
    host, result = _run("""
0100    READ
0101    READ 2,
0102    READ 3,
""", b"  42 -1.5@2\n")
    assert host.word(1) == I(42)
    assert host.word(2) == F(-150.0)
    assert host.word(3) == UNDEFINED
    assert result["output"] == b"DATA*"


def test_numeric_routines():
    host, _ = _run("""
0001    -2.75
0002    -2.75
0003    -2.75
0004    +3
0005    -3
0100    INT
0101    FRAC 2,
0102    ABS 3,
0103    FLOAT 4,
0104    ABS 5,
""")
    assert host.word(1) == I(-2)
    assert host.word(2) == F(-0.75)
    assert host.word(3) == F(2.75)
    assert host.word(4) == F(3.0)
    assert host.word(5) == I(3)


def test_text_routines():
    _, result = _run("""
0001    "HI"
0100    CAPTN
0101    LINE
0102    PAGE
""")
    assert result["output"] == b"HI\n\f"


def test_log_of_zero_faults():
    _, result = _run("""
0001    +0
0100    LN
""")
    assert isinstance(result["error"], InvalidOperand)


def test_stop():
    host, result = _run("""
0100    STOP
0101    TAKE 1, +1
""")
    assert result["state"] == "STOPPED"
    assert result["pc"] == 101
    assert host.word(1) == UNDEFINED


def test_random_is_seeded():
    source = "0100    RND\n"
    first, _ = _run(source, seed=7)
    second, _ = _run(source, seed=7)
    assert first.word(1) == second.word(1)
    assert first.word(1).tag == TAG_F
    assert 0.0 <= first.word(1).as_float() < 1.0


# ---------------------------------------------------------------------------
# Run control
# ---------------------------------------------------------------------------

def test_cycle_cap_halts():
    _, result = _run("0100    JUMP 7, 100\n", max_cycles=10)
    assert result["state"] == "HALTED"
    assert result["stats"]["cycles"] == 10


def test_trace_lines():
    trace = io.StringIO()
    _run("""
0001    +12
0100    ADD 1,  +10
""", trace=trace)
    assert trace.getvalue() == f"0100  {'ADD 1, 127':<20} I +22\n"


def test_trace_records_faulting_instruction():
    trace = io.StringIO()
    _run("""
0100    TAKE 1, +1
0101    DVD 1,  +0
""", trace=trace)
    lines = trace.getvalue().splitlines()
    assert len(lines) == 2
    assert lines[1].startswith(f"0101  {'DVD 1, 126':<20} *****")


def test_dispatch_covers_every_function():
    machine = BbcxMachine()
    assert set(machine._dispatch) == set(Function) - {Function.UNUSED}


def test_non_instruction_ends_run():
    memory = Memory()
    memory[0] = I(5)
    machine = BbcxMachine(memory)
    assert machine.run() == S_DONE
    assert machine.cycles == 0


def main():
    tests = [(name, fn) for name, fn in sorted(globals().items())
             if name.startswith("test_") and callable(fn)]
    failed = 0
    for name, fn in tests:
        try:
            fn()
        except AssertionError as e:
            print(f"  FAIL: {name} {e}")
            failed += 1
    print(f"{len(tests) - failed}/{len(tests)} machine tests passed")
    if failed:
        sys.exit(1)


if __name__ == "__main__":
    main()
