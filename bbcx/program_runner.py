"""
program_runner — per-file driver for BBC-X sources.

For each file: read it, parse every line, optionally write a listing,
assemble and link, then optionally run it with a trace file. Each file is
handled on its own; a failure in one does not stop the others.
"""

from __future__ import annotations

import sys
from dataclasses import dataclass
from pathlib import Path
from typing import BinaryIO

from .assembler import assemble
from .errors import BbcxError, ParseFailed
from .linker import link
from .listing import ListWriter
from .machine import MAX_CYCLES, STATE_NAMES, BbcxMachine
from .parser import parse_lines

LIST_SUFFIX = ".lst"
TRACE_SUFFIX = ".out"


# ---------------------------------------------------------------------------
# Per-file result
# ---------------------------------------------------------------------------

@dataclass
class BuildResult:
    path: Path
    error: Exception | None = None
    listing: Path | None = None
    trace: Path | None = None
    state: str | None = None
    summary: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


def _companion(path: Path, folder: Path | None, suffix: str) -> Path:
    return (folder or path.parent) / (path.stem + suffix)


# ---------------------------------------------------------------------------
# ProgramRunner
# ---------------------------------------------------------------------------

class ProgramRunner:
    """Builds, lists and runs source files."""

    def __init__(self, listing: bool = False, list_path: Path | None = None,
                 run: bool = False, trace: bool = False,
                 trace_path: Path | None = None,
                 max_cycles: int = MAX_CYCLES, seed: int | None = None,
                 stdin: BinaryIO | None = None, stdout: BinaryIO | None = None):
        self.listing = listing or list_path is not None
        self.list_path = list_path
        self.trace = trace or trace_path is not None
        self.trace_path = trace_path
        self.run = run or self.trace
        self.max_cycles = max_cycles
        self.seed = seed
        self.stdin = stdin if stdin is not None else sys.stdin.buffer
        self.stdout = stdout if stdout is not None else sys.stdout.buffer

    def list_file(self, path: Path) -> Path:
        return _companion(path, self.list_path, LIST_SUFFIX)

    def trace_file(self, path: Path) -> Path:
        return _companion(path, self.trace_path, TRACE_SUFFIX)

    def build(self, path: str | Path) -> BuildResult:
        path = Path(path)
        result = BuildResult(path)
        parsed = parse_lines(path.read_text(encoding="utf-8"))
        writer = ListWriter(str(path)) if self.listing else None
        if writer is not None:
            writer.add_source(parsed)

        try:
            failed = [p for p in parsed if not p.ok]
            if failed:
                raise ParseFailed([p.text for p in failed], [p.error for p in failed])
            assembly = assemble([p.line for p in parsed if p.line is not None])
            if writer is not None:
                writer.add_symbol_table(assembly)
            image = link(assembly)
        except BbcxError as e:
            result.error = e
            if writer is not None and not isinstance(e, ParseFailed):
                writer.add_error(e)
            return result
        finally:
            if writer is not None:
                result.listing = self.list_file(path)
                writer.write(result.listing)

        if self.run:
            self._execute(path, image, result)
        return result

    def _execute(self, path: Path, image, result: BuildResult):
        trace_stream = None
        if self.trace:
            result.trace = self.trace_file(path)
            trace_stream = open(result.trace, "w")
        machine = BbcxMachine(
            image.memory, image.entry,
            input_stream=self.stdin, output_stream=self.stdout,
            trace=trace_stream, max_cycles=self.max_cycles, seed=self.seed,
        )
        try:
            machine.run()
        except BbcxError as e:
            result.error = e
        finally:
            if trace_stream is not None:
                trace_stream.close()
            self.stdout.flush()
        result.state = STATE_NAMES[machine.state]
        result.summary = machine.stats_summary()

    def build_all(self, paths: list[str | Path]) -> list[BuildResult]:
        results = []
        for path in paths:
            try:
                results.append(self.build(path))
            except (OSError, UnicodeDecodeError) as e:
                results.append(BuildResult(Path(path), error=e))
        return results
