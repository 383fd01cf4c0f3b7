"""
Error kinds raised by the parser, assembler, linker and machine.

Static errors carry every offender found in their stage. Link errors carry
the source location of the failing line; runtime errors carry the PC of the
faulting instruction.
"""

from __future__ import annotations


class BbcxError(Exception):
    """Base class for every BBC-X failure."""

    def __init__(self, message: str, location: int | None = None,
                 pc: int | None = None):
        super().__init__(message)
        self.message = message
        self.location = location
        self.pc = pc

    def __str__(self) -> str:
        if self.pc is not None:
            return f"{self.message} (pc {self.pc:04d})"
        if self.location is not None:
            return f"{self.message} (location {self.location:04d})"
        return self.message


# ---------------------------------------------------------------------------
# Static errors
# ---------------------------------------------------------------------------

class ParseFailed(BbcxError):
    """One or more source lines could not be parsed."""

    def __init__(self, lines: list[str], reasons: list[str] | None = None):
        self.lines = list(lines)
        self.reasons = list(reasons) if reasons else [""] * len(self.lines)
        super().__init__("Failed to parse: " + ", ".join(
            f'"{line}"' for line in self.lines))


class DuplicatedSymbols(BbcxError):
    def __init__(self, locations: list[int], labels: list[str]):
        self.locations = sorted(locations)
        self.labels = sorted(labels)
        locs = ", ".join(str(loc) for loc in self.locations)
        lbls = ", ".join(f"{label}:" for label in self.labels)
        super().__init__(
            f'Multiple definitions: locations: "{locs}", labels: "{lbls}"')


class UndefinedSymbols(BbcxError):
    def __init__(self, names: list[str], location: int | None = None):
        self.names = sorted(set(names))
        super().__init__("Undefined symbols: " + ", ".join(self.names),
                         location=location)


# ---------------------------------------------------------------------------
# Value and link errors
# ---------------------------------------------------------------------------

class InvalidIWordValue(BbcxError):
    def __init__(self, value, location: int | None = None):
        self.value = value
        super().__init__(f"Invalid I-word value: {value}", location=location)


class InvalidFWordValue(BbcxError):
    def __init__(self, value, location: int | None = None):
        self.value = value
        super().__init__(f"Invalid F-word value: {value}", location=location)


class InvalidSWordValue(BbcxError):
    def __init__(self, value, location: int | None = None):
        self.value = value
        super().__init__(f"Invalid S-word value: {value!r}", location=location)


class OutOfMemory(BbcxError):
    def __init__(self, location: int | None = None):
        super().__init__("No free storage for literal", location=location)


# ---------------------------------------------------------------------------
# Runtime errors
# ---------------------------------------------------------------------------

class CannotConvertWordToInstruction(BbcxError):
    def __init__(self, raw: int, pc: int | None = None):
        self.raw = raw
        super().__init__(f"Cannot convert word {raw:08o} to instruction", pc=pc)


class InvalidOperand(BbcxError):
    pass


class ArithmeticTypeMismatch(BbcxError):
    pass


class DivisionByZero(BbcxError):
    def __init__(self, pc: int | None = None):
        super().__init__("Division by zero", pc=pc)
