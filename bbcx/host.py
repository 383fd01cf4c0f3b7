"""
BbcxHost — high-level interface to the BBC-X toolchain.

Takes source text through parse, assemble and link, loads the image into a
fresh machine and runs it. Input bytes are queued with uart_send and the
program's output collected with uart_recv.
"""

from __future__ import annotations

import io
from typing import TextIO

from .assembler import Assembly, assemble
from .errors import BbcxError
from .linker import Image, link
from .machine import MAX_CYCLES, S_FAULT, STATE_NAMES, BbcxMachine
from .parser import parse_program
from .word import Word, format_word


class BbcxHost:
    """Assemble, link and run BBC-X programs.

    Args:
        max_cycles: Instruction cap before the machine halts.
        seed: Seed for the RND library routine.
        trace: Optional text stream receiving one line per instruction.
    """

    def __init__(self, max_cycles: int = MAX_CYCLES, seed: int | None = None,
                 trace: TextIO | None = None):
        self.max_cycles = max_cycles
        self.seed = seed
        self.trace = trace
        self.assembly: Assembly | None = None
        self.image: Image | None = None
        self.machine: BbcxMachine | None = None
        self._input = io.BytesIO()
        self._output = io.BytesIO()

    # -------------------------------------------------------------------
    # Loading
    # -------------------------------------------------------------------

    def assemble(self, source: str) -> Assembly:
        self.assembly = assemble(parse_program(source))
        return self.assembly

    def load(self, source: str) -> Image:
        """Parse, assemble and link source, and reset the machine onto it."""
        self.image = link(self.assemble(source))
        self._output = io.BytesIO()
        self.machine = BbcxMachine(
            self.image.memory, self.image.entry,
            input_stream=self._input, output_stream=self._output,
            trace=self.trace, max_cycles=self.max_cycles, seed=self.seed,
        )
        return self.image

    # -------------------------------------------------------------------
    # IO
    # -------------------------------------------------------------------

    def uart_send(self, data: bytes):
        """Queue bytes for PIN and READ."""
        pos = self._input.tell()
        self._input.seek(0, io.SEEK_END)
        self._input.write(data)
        self._input.seek(pos)

    def uart_recv(self) -> bytes:
        return self._output.getvalue()

    # -------------------------------------------------------------------
    # Execution
    # -------------------------------------------------------------------

    def run(self) -> dict:
        """
        Run the loaded program to completion.

        Returns dict with final state, PC, any runtime error, output and stats.
        A runtime error is reported in the result; memory is left as it was
        at the fault for inspection.
        """
        if self.machine is None:
            raise RuntimeError("No program loaded")
        error = None
        try:
            self.machine.run()
        except BbcxError as e:
            error = e
        return {
            "ok": self.machine.state != S_FAULT,
            "state": STATE_NAMES[self.machine.state],
            "pc": self.machine.pc.value,
            "error": error,
            "output": self.uart_recv(),
            "stats": self.machine.stats(),
        }

    def eval(self, source: str, input_bytes: bytes = b"") -> dict:
        """Load source, queue input and run it."""
        self._input = io.BytesIO()
        self.uart_send(input_bytes)
        self.load(source)
        return self.run()

    # -------------------------------------------------------------------
    # Inspection
    # -------------------------------------------------------------------

    def word(self, addr: int) -> Word:
        return self.machine.memory[addr]

    def decode_word(self, addr: int) -> str:
        return format_word(self.word(addr))

    def dump(self) -> dict[int, str]:
        """Every defined word, formatted, keyed by address."""
        return {addr: format_word(w)
                for addr, w in self.machine.memory.defined().items()}
