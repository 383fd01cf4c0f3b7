"""
CharSet — the 6-bit BBC-X character code.

Codes 30, 31, 53, 55 and 63 are unassigned. The mapping is injective in both
directions; anything outside it is rejected by the callers that encode
S-words or perform character I/O.
"""

from __future__ import annotations

CHAR_BITS = 6
CHAR_MASK = 0o77

NUL = 0

CODE_TO_CHAR: dict[int, str] = {0: "\0"}
CODE_TO_CHAR.update({i + 1: chr(ord("A") + i) for i in range(26)})
CODE_TO_CHAR.update({27: "'", 28: "<", 29: ">"})
CODE_TO_CHAR.update({32 + i: chr(ord("0") + i) for i in range(10)})
CODE_TO_CHAR.update({
    42: ".", 43: "@", 44: "+", 45: "-", 46: "(", 47: ")", 48: "[", 49: "]",
    50: "*", 51: "/", 52: "=", 54: "^", 56: "?", 57: '"', 58: ":", 59: ";",
    60: ",", 61: " ", 62: "\n",
})

CHAR_TO_CODE: dict[str, int] = {c: code for code, c in CODE_TO_CHAR.items()}


def char_to_code(ch: str) -> int | None:
    return CHAR_TO_CODE.get(ch)


def code_to_char(code: int) -> str | None:
    return CODE_TO_CHAR.get(code)


def byte_to_code(byte: int) -> int | None:
    """Map an input byte to its 6-bit code, or None when it has none."""
    return CHAR_TO_CODE.get(chr(byte)) if byte < 0x80 else None


def code_to_byte(code: int) -> int | None:
    ch = CODE_TO_CHAR.get(code)
    return ord(ch) if ch is not None else None
