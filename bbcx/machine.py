"""
BBC-X machine — fetch/decode/dispatch interpreter for linked images.

Each tick fetches the word at PC. A word that is not a P-word (or a PC past
the end of memory) ends the run normally. Otherwise the instruction is
decoded, PC is advanced, and the handler for its function runs. A runtime
error leaves PC on the faulting instruction and memory as it was before it.

Operand forms:
  - effective address: address, replaced by the address field of the word
    there when indirect, plus the signed value of the index register
  - direct address: the bare address field (PUT family, X family, INCR/DECR)
"""

from __future__ import annotations

import io
import math
import random
from typing import BinaryIO, Callable, TextIO

from .charset import CHAR_BITS, byte_to_code, code_to_byte
from .errors import (
    BbcxError, CannotConvertWordToInstruction, InvalidFWordValue,
    InvalidOperand, InvalidSWordValue,
)
from .instruction import (
    ADDRESS_MASK, Function, Instruction, disassemble, unpack_instruction,
)
from .memory import Memory, Register
from .word import (
    CHARS_PER_WORD, FWORD_SIGN_MASK, TAG_F, TAG_I, TAG_P, TAG_S,
    Word, add, bit_and, bit_not, bit_or, bit_xor, compare, divide,
    double_divide, double_multiply, double_rotate_left, double_shift_left,
    equal, format_word, make_float_result, make_float_word, make_int_word,
    multiply, negate, power, rotate_left, set_word_type, shift_count,
    shift_left, squash, string_codes, subtract, word_bits, word_text,
    word_type,
)


# ---------------------------------------------------------------------------
# Machine states and limits
# ---------------------------------------------------------------------------

S_RUNNING = 0
S_DONE    = 1   # fetched a non-P word, or PC left memory
S_STOPPED = 2   # library STOP
S_HALTED  = 3   # cycle cap reached
S_FAULT   = 4   # runtime error

STATE_NAMES = {
    S_RUNNING: "RUNNING", S_DONE: "DONE", S_STOPPED: "STOPPED",
    S_HALTED: "HALTED", S_FAULT: "FAULT",
}

MAX_CYCLES = 100_000
PC_BITS = 10

DATA_MARKER = b"DATA*"

ZERO = make_int_word(0)
ONE = make_int_word(1)


class BbcxMachine:
    """Accumulator machine over a single 128-word memory."""

    def __init__(self, memory: Memory | None = None, entry: int = 0,
                 input_stream: BinaryIO | None = None,
                 output_stream: BinaryIO | None = None,
                 trace: TextIO | None = None,
                 max_cycles: int = MAX_CYCLES,
                 seed: int | None = None):
        self.memory = memory if memory is not None else Memory()
        self.pc = Register(PC_BITS, entry)
        self.state = S_RUNNING
        self.error: BbcxError | None = None

        # --- IO ---
        self.input = input_stream if input_stream is not None else io.BytesIO()
        self.output = output_stream if output_stream is not None else io.BytesIO()
        self.trace = trace

        self.max_cycles = max_cycles
        self.rng = random.Random(seed)

        self._dispatch = self._build_dispatch()
        self._library = self._build_library()

        # --- Counters ---
        self.cycles = 0
        self.io_ops = 0
        self.jumps = 0

    # -------------------------------------------------------------------
    # Dispatch tables
    # -------------------------------------------------------------------

    def _build_dispatch(self) -> dict[Function, Callable[[Instruction], None]]:
        F = Function
        return {
            F.NIL:   self._op_nil,
            F.OR:    self._accumulate(bit_or),
            F.NEQV:  self._accumulate(bit_xor),
            F.AND:   self._accumulate(bit_and),
            F.ADD:   self._accumulate(add),
            F.SUBT:  self._accumulate(subtract),
            F.MULT:  self._accumulate(multiply),
            F.DVD:   self._accumulate(divide),
            F.TAKE:  self._take(lambda w: w),
            F.TSTR:  self._op_tstr,
            F.TNEG:  self._take(negate),
            F.TNOT:  self._take(bit_not),
            F.TTYP:  self._take(word_type),
            F.TTYZ:  self._take(word_bits),
            F.TTTT:  self._op_tttt,
            F.TOUT:  self._op_tout,
            F.SKIP:  self._op_skip,
            F.SKAE:  self._skip_if(equal),
            F.SKAN:  self._skip_if(lambda a, b: not equal(a, b)),
            F.SKET:  self._skip_if(lambda a, b: a.tag == b.tag),
            F.SKAL:  self._skip_if(lambda a, b: compare(a, b) < 0),
            F.SKAG:  self._skip_if(lambda a, b: compare(a, b) > 0),
            F.SKED:  self._skip_or_step(subtract),
            F.SKEI:  self._skip_or_step(add),
            F.SHL:   self._accumulate(lambda a, b: shift_left(a, shift_count(b))),
            F.ROT:   self._accumulate(lambda a, b: rotate_left(a, shift_count(b))),
            F.DSHL:  self._double(lambda hi, lo, b: double_shift_left(hi, lo, shift_count(b))),
            F.DROT:  self._double(lambda hi, lo, b: double_rotate_left(hi, lo, shift_count(b))),
            F.POWR:  self._accumulate(power),
            F.DMULT: self._double(double_multiply),
            F.DIV:   self._accumulate(divide),
            F.DDIV:  self._double(double_divide),
            F.NILX:  self._exchange(None),
            F.ORX:   self._exchange(bit_or),
            F.NEQVX: self._exchange(bit_xor),
            F.ANDX:  self._exchange(bit_and),
            F.ADDX:  self._exchange(add),
            F.SUBTX: self._exchange(subtract),
            F.MULTX: self._exchange(multiply),
            F.DVDX:  self._exchange(divide),
            F.PUT:   self._put(lambda acc, old: acc),
            F.PSQU:  self._op_psqu,
            F.PNEG:  self._put(lambda acc, old: negate(acc)),
            F.PNOT:  self._put(lambda acc, old: bit_not(acc)),
            F.PTYP:  self._put(lambda acc, old: set_word_type(old, acc)),
            F.PTYZ:  self._put(lambda acc, old: Word(old.tag if old.is_defined else TAG_I, acc.raw)),
            F.PFFP:  self._put(lambda acc, old: make_float_word(acc.number())),
            F.PIN:   self._op_pin,
            F.JUMP:  self._op_jump,
            F.JEZ:   self._jump_if(lambda acc, target: equal(acc, ZERO)),
            F.JNZ:   self._jump_if(lambda acc, target: not equal(acc, ZERO)),
            F.JAT:   self._jump_if(lambda acc, target: acc.tag == self.memory.read(target).tag),
            F.JLZ:   self._jump_if(lambda acc, target: compare(acc, ZERO) < 0),
            F.JGZ:   self._jump_if(lambda acc, target: compare(acc, ZERO) > 0),
            F.JZD:   self._jump_or_step(subtract),
            F.JZI:   self._jump_or_step(add),
            F.DECR:  self._put(lambda acc, old: subtract(old, ONE), uses_acc=False),
            F.INCR:  self._put(lambda acc, old: add(old, ONE), uses_acc=False),
            F.MOCKP: self._take(lambda w: Word(TAG_P, w.raw)),
            F.MOCKS: self._take(lambda w: Word(TAG_S, w.raw)),
            F.DBYTE: self._op_dbyte,
            F.EXEC:  self._op_exec,
            F.EXTRA: self._op_extra,
        }

    def _build_library(self) -> dict[int, Callable[[Instruction], None]]:
        return {
            1:  self._lib_math(math.sqrt),
            2:  self._lib_math(math.log),
            3:  self._lib_math(math.exp),
            4:  self._lib_read,
            5:  self._lib_print,
            6:  self._lib_math(math.sin),
            7:  self._lib_math(math.cos),
            8:  self._lib_math(math.tan),
            9:  self._lib_math(math.atan),
            10: self._lib_stop,
            11: lambda instr: self._emit(b"\n"),
            12: self._lib_int,
            13: self._lib_frac,
            14: self._lib_float,
            15: self._lib_captn,
            16: lambda instr: self._emit(b"\f"),
            17: self._lib_rnd,
            18: self._lib_abs,
        }

    # -------------------------------------------------------------------
    # Operand helpers
    # -------------------------------------------------------------------

    def _check_address(self, addr: int) -> int:
        if not 0 <= addr < self.memory.size:
            raise InvalidOperand(f"Address out of range: {addr}")
        return addr

    def effective_address(self, instr: Instruction) -> int:
        address = instr.address
        if instr.indirect:
            pointer = self.memory.read(self._check_address(address))
            if not pointer.is_defined:
                raise CannotConvertWordToInstruction(pointer.raw)
            address = unpack_instruction(pointer.raw).address
        if instr.index_register:
            address += self.memory.read(instr.index_register).as_int()
        return self._check_address(address)

    def _operand(self, instr: Instruction) -> Word:
        return self.memory.read(self.effective_address(instr))

    def _direct(self, instr: Instruction) -> int:
        return self._check_address(instr.address)

    def _pair(self, instr: Instruction) -> tuple[int, int]:
        if instr.accumulator == 0:
            raise InvalidOperand("Accumulator 0 has no partner word")
        return instr.accumulator - 1, instr.accumulator

    def _emit(self, data: bytes):
        self.output.write(data)
        self.io_ops += len(data)

    def _jump(self, target: int):
        self.pc.load(target)
        self.jumps += 1

    # -------------------------------------------------------------------
    # Handler families
    # -------------------------------------------------------------------

    def _accumulate(self, op):
        """acc <- acc op operand"""
        def handler(instr: Instruction):
            operand = self._operand(instr)
            acc = instr.accumulator
            self.memory.write(acc, op(self.memory.read(acc), operand))
        return handler

    def _take(self, op):
        """acc <- op(operand)"""
        def handler(instr: Instruction):
            self.memory.write(instr.accumulator, op(self._operand(instr)))
        return handler

    def _skip_if(self, pred):
        def handler(instr: Instruction):
            if pred(self.memory.read(instr.accumulator), self._operand(instr)):
                self.pc.load(self.pc.value + 1)
        return handler

    def _skip_or_step(self, step):
        def handler(instr: Instruction):
            acc = self.memory.read(instr.accumulator)
            if equal(acc, self._operand(instr)):
                self.pc.load(self.pc.value + 1)
            else:
                self.memory.write(instr.accumulator, step(acc, ONE))
        return handler

    def _double(self, op):
        """(acc-1, acc) <- op(acc-1, acc, operand)"""
        def handler(instr: Instruction):
            hi_addr, lo_addr = self._pair(instr)
            hi, lo = op(self.memory.read(hi_addr), self.memory.read(lo_addr),
                        self._operand(instr))
            self.memory.write(hi_addr, hi)
            self.memory.write(lo_addr, lo)
        return handler

    def _exchange(self, op):
        """acc <- acc op word[address], then swap acc with word[address]."""
        def handler(instr: Instruction):
            addr = self._direct(instr)
            acc = instr.accumulator
            stored = self.memory.read(addr)
            current = self.memory.read(acc)
            result = op(current, stored) if op is not None else current
            self.memory.write(acc, stored)
            self.memory.write(addr, result)
        return handler

    def _put(self, op, uses_acc: bool = True):
        """word[address] <- op(acc, word[address])"""
        def handler(instr: Instruction):
            addr = self._direct(instr)
            acc = self.memory.read(instr.accumulator) if uses_acc else None
            self.memory.write(addr, op(acc, self.memory.read(addr)))
        return handler

    def _jump_if(self, pred):
        def handler(instr: Instruction):
            target = self.effective_address(instr)
            if pred(self.memory.read(instr.accumulator), target):
                self._jump(target)
        return handler

    def _jump_or_step(self, step):
        def handler(instr: Instruction):
            target = self.effective_address(instr)
            acc = self.memory.read(instr.accumulator)
            if equal(acc, ZERO):
                self._jump(target)
            else:
                self.memory.write(instr.accumulator, step(acc, ONE))
        return handler

    # -------------------------------------------------------------------
    # Single handlers
    # -------------------------------------------------------------------

    def _op_nil(self, instr: Instruction):
        pass

    def _op_tstr(self, instr: Instruction):
        hi_addr, lo_addr = self._pair(instr)
        operand = self._operand(instr)
        flag = make_int_word(-1 if compare(operand, ONE) < 0 else 0)
        self.memory.write(lo_addr, operand)
        self.memory.write(hi_addr, flag)

    def _op_tttt(self, instr: Instruction):
        operand = self._operand(instr)
        acc = self.memory.read(instr.accumulator)
        self.memory.write(instr.accumulator,
                          Word(acc.tag if acc.is_defined else TAG_I, operand.raw))

    def _op_tout(self, instr: Instruction):
        code = self._operand(instr).raw & 0o77
        byte = code_to_byte(code)
        if byte is None:
            raise InvalidSWordValue(f"character code {code:02o}")
        self._emit(bytes([byte]))

    def _op_skip(self, instr: Instruction):
        self.pc.load(self.pc.value + 1)

    def _op_psqu(self, instr: Instruction):
        addr = self._direct(instr)
        hi_addr, lo_addr = self._pair(instr)
        self.memory.write(addr, squash(self.memory.read(hi_addr),
                                       self.memory.read(lo_addr)))

    def _op_pin(self, instr: Instruction):
        addr = self._direct(instr)
        data = self.input.read(1)
        if not data:
            self._emit(DATA_MARKER)
            return
        code = byte_to_code(data[0])
        if code is None:
            raise InvalidSWordValue(data)
        self._emit(data)
        self.memory.write(addr, Word(TAG_S, code << (CHAR_BITS * (CHARS_PER_WORD - 1))))

    def _op_jump(self, instr: Instruction):
        link, _ = self._pair(instr)
        target = self.effective_address(instr)
        self.memory.write(link, make_int_word(self.pc.value - 1))
        self._jump(target)

    def _op_dbyte(self, instr: Instruction):
        index = self._operand(instr).as_int()
        if not 0 <= index < CHARS_PER_WORD:
            raise InvalidOperand(f"Character index out of range: {index}")
        acc = self.memory.read(instr.accumulator)
        self.memory.write(instr.accumulator, make_int_word(string_codes(acc.raw)[index]))

    def _op_exec(self, instr: Instruction):
        target = self._operand(instr)
        if target.tag != TAG_P:
            raise CannotConvertWordToInstruction(target.raw)
        inner = unpack_instruction(target.raw)
        if inner.function == Function.EXEC:
            raise InvalidOperand("EXEC of EXEC")
        self._dispatch[inner.function](inner)

    def _op_extra(self, instr: Instruction):
        routine = self._library.get(instr.address & ADDRESS_MASK)
        if routine is None:
            raise InvalidOperand(f"Unknown library routine: {instr.address}")
        routine(instr)

    # -------------------------------------------------------------------
    # Library routines (EXTRA); all act on the accumulator
    # -------------------------------------------------------------------

    def _lib_math(self, fn):
        def routine(instr: Instruction):
            x = self.memory.read(instr.accumulator).number()
            try:
                result = fn(x)
            except ValueError:
                raise InvalidOperand(f"{fn.__name__}({x}) is undefined")
            except OverflowError:
                raise InvalidFWordValue(f"{fn.__name__}({x})")
            self.memory.write(instr.accumulator, make_float_result(result))
        return routine

    def _read_token(self) -> bytes:
        ch = self.input.read(1)
        while ch and ch.isspace():
            ch = self.input.read(1)
        token = bytearray()
        while ch and not ch.isspace():
            token += ch
            ch = self.input.read(1)
        return bytes(token)

    def _lib_read(self, instr: Instruction):
        token = self._read_token()
        if not token:
            self._emit(DATA_MARKER)
            return
        text = token.decode("ascii", errors="replace")
        try:
            value = make_int_word(int(text), strict=True)
        except ValueError:
            try:
                value = make_float_word(float(text.replace("@", "e")))
            except ValueError:
                raise InvalidOperand(f"Not a number: {text!r}")
        self.memory.write(instr.accumulator, value)

    def _lib_print(self, instr: Instruction):
        self._emit(word_text(self.memory.read(instr.accumulator)).encode("ascii"))

    def _lib_stop(self, instr: Instruction):
        self.state = S_STOPPED

    def _lib_int(self, instr: Instruction):
        x = self.memory.read(instr.accumulator).number()
        self.memory.write(instr.accumulator, make_int_word(math.trunc(x), strict=True))

    def _lib_frac(self, instr: Instruction):
        x = self.memory.read(instr.accumulator).number()
        self.memory.write(instr.accumulator, make_float_word(x - math.trunc(x)))

    def _lib_float(self, instr: Instruction):
        x = self.memory.read(instr.accumulator).number()
        self.memory.write(instr.accumulator, make_float_word(float(x)))

    def _lib_captn(self, instr: Instruction):
        text = self.memory.read(instr.accumulator).as_string().rstrip("\0")
        self._emit(text.encode("ascii"))

    def _lib_rnd(self, instr: Instruction):
        self.memory.write(instr.accumulator, make_float_word(self.rng.random()))

    def _lib_abs(self, instr: Instruction):
        acc = self.memory.read(instr.accumulator)
        if acc.tag == TAG_F:
            result = Word(TAG_F, acc.raw & ~FWORD_SIGN_MASK)
        else:
            result = make_int_word(abs(acc.as_int()))
        self.memory.write(instr.accumulator, result)

    # -------------------------------------------------------------------
    # Fetch / decode / dispatch
    # -------------------------------------------------------------------

    def tick(self) -> bool:
        """Execute one instruction. Returns True if still running."""
        if self.state != S_RUNNING:
            return False

        pc = self.pc.value
        if pc >= self.memory.size or self.memory[pc].tag != TAG_P:
            self.state = S_DONE
            return False
        if self.cycles >= self.max_cycles:
            self.state = S_HALTED
            return False

        self.cycles += 1
        instr = None
        try:
            instr = unpack_instruction(self.memory.read(pc).raw)
            self.pc.load(pc + 1)
            self._dispatch[instr.function](instr)
        except BbcxError as e:
            self.pc.load(pc)
            self.state = S_FAULT
            e.pc = pc
            self.error = e
            self._trace_fault(pc, instr, e)
            raise

        if self.trace is not None:
            acc = self.memory[instr.accumulator]
            self.trace.write(f"{pc:04d}  {disassemble(instr):<20} {format_word(acc)}\n")
        return self.state == S_RUNNING

    def _trace_fault(self, pc: int, instr: Instruction | None, error: BbcxError):
        if self.trace is None:
            return
        text = disassemble(instr) if instr is not None else f"{self.memory[pc].raw:08o}"
        self.trace.write(f"{pc:04d}  {text:<20} ***** {error.message}\n")

    def run(self) -> int:
        """Run until the machine leaves S_RUNNING. Returns the final state."""
        while self.tick():
            pass
        return self.state

    # -------------------------------------------------------------------
    # Stats
    # -------------------------------------------------------------------

    def reset_counters(self):
        self.cycles = 0
        self.io_ops = 0
        self.jumps = 0
        self.memory.reset_counters()

    def stats(self) -> dict:
        return {
            "cycles": self.cycles,
            "memory_reads": self.memory.reads,
            "memory_writes": self.memory.writes,
            "io_ops": self.io_ops,
            "jumps": self.jumps,
            "pc": self.pc.value,
            "state": STATE_NAMES[self.state],
        }

    def stats_summary(self) -> str:
        s = self.stats()
        return (
            f"State: {s['state']} at PC {s['pc']:04d}\n"
            f"Cycles: {s['cycles']}\n"
            f"Memory: {s['memory_reads']}R/{s['memory_writes']}W\n"
            f"Jumps: {s['jumps']}\n"
            f"IO: {s['io_ops']} bytes"
        )
