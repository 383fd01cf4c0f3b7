"""
bbcx — command line for the BBC-X assembler and machine.

Usage:
  bbcx prog.bbc                   # assemble and link only
  bbcx --run prog.bbc             # ...then run; output on stdout, input from stdin
  bbcx --list --trace a.bbc b.bbc # listings (.lst) and traces (.out) for each file
"""

from __future__ import annotations

import argparse
import sys
from pathlib import Path

from .machine import MAX_CYCLES
from .program_runner import ProgramRunner


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="bbcx",
        description="Assembler and virtual machine for the BBC-X teaching language")
    parser.add_argument("files", nargs="+", type=Path,
                        help="Source file(s) to assemble and optionally run")
    parser.add_argument("-l", "--list", action="store_true",
                        help="Write a listing file '<FILE>.lst' for each source")
    parser.add_argument("--list-path", type=Path, default=None,
                        help="Folder for listing files (implies --list)")
    parser.add_argument("-r", "--run", action="store_true",
                        help="Run each file after a successful build")
    parser.add_argument("-t", "--trace", action="store_true",
                        help="Write a trace file '<FILE>.out' while running (implies --run)")
    parser.add_argument("--trace-path", type=Path, default=None,
                        help="Folder for trace files (implies --trace)")
    parser.add_argument("--max-cycles", type=int, default=MAX_CYCLES,
                        help=f"Instruction cap per run (default {MAX_CYCLES})")
    parser.add_argument("--seed", type=int, default=None,
                        help="Seed for the RND library routine")
    parser.add_argument("--stats", action="store_true",
                        help="Print machine statistics after each run")
    return parser


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)

    runner = ProgramRunner(
        listing=args.list, list_path=args.list_path,
        run=args.run, trace=args.trace, trace_path=args.trace_path,
        max_cycles=args.max_cycles, seed=args.seed,
    )
    results = runner.build_all(args.files)

    for result in results:
        if result.error is not None:
            print(f"{result.path}: {result.error}", file=sys.stderr, flush=True)
        if args.stats and result.summary is not None:
            print(f"--- {result.path} ---", file=sys.stderr)
            print(result.summary, file=sys.stderr, flush=True)

    return 0 if all(r.ok for r in results) else 1


if __name__ == "__main__":
    sys.exit(main())
