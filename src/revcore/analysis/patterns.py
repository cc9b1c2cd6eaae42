"""Byte signatures, instruction predicates, NOP sleds and string scanning."""

from __future__ import annotations

import re
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass

from revcore.config.defaults import DEFAULT_MIN_STRING_LENGTH, DEFAULT_NOP_SLED_LENGTH
from revcore.errors import InvalidInputError
from revcore.extraction.instruction import Instruction

NOP_OPCODE = 0x90
WILDCARD_TOKEN = "??"
_HEX_BYTE = re.compile(r"[0-9A-Fa-f]{2}")
_PRINTABLE_CONTROL = frozenset({0x09, 0x0A, 0x0D})

X64_PROLOGUE_PATTERN = "55 48 89 E5"  # push rbp; mov rbp, rsp
STACK_SETUP_PATTERN = "48 83 EC ??"  # sub rsp, imm8
RETURN_PATTERN = "C3"

# (byte values, wildcard mask)
BytePattern = tuple[bytes, tuple[bool, ...]]


@dataclass(frozen=True)
class PatternMatch:
    address: int
    offset: int
    matched_bytes: bytes = b""
    description: str | None = None
    text: str | None = None

    @property
    def length(self) -> int:
        return len(self.matched_bytes)

    def __str__(self) -> str:
        return f"Match @ {self.address:#x}+{self.offset}: {self.description}"


def _require_buffer(buffer: bytes | None) -> bytes:
    if buffer is None:
        raise InvalidInputError("Byte buffer cannot be None.")
    return bytes(buffer)


def parse_byte_pattern(pattern: str) -> BytePattern | None:
    """Parse ``"55 ?? E5"`` into bytes plus a wildcard mask.

    Returns None for an empty pattern or when any token is malformed.
    """
    tokens = pattern.split() if pattern else []
    if not tokens:
        return None
    values = bytearray()
    wildcards = []
    for token in tokens:
        if token == WILDCARD_TOKEN:
            values.append(0)
            wildcards.append(True)
        elif _HEX_BYTE.fullmatch(token):
            values.append(int(token, 16))
            wildcards.append(False)
        else:
            return None
    return bytes(values), tuple(wildcards)


def _matches_at(buffer: bytes, offset: int, pattern: BytePattern) -> bool:
    values, wildcards = pattern
    for i, value in enumerate(values):
        if not wildcards[i] and buffer[offset + i] != value:
            return False
    return True


def find_byte_pattern(
    buffer: bytes, pattern: str, description: str | None = None
) -> list[PatternMatch]:
    """Every (possibly overlapping) offset where *pattern* matches."""
    buffer = _require_buffer(buffer)
    parsed = parse_byte_pattern(pattern)
    if parsed is None:
        return []
    values, wildcards = parsed
    size = len(values)
    matches = []

    if not any(wildcards):
        offset = buffer.find(values)
        while offset != -1:
            matches.append(
                PatternMatch(address=offset, offset=offset, matched_bytes=values, description=description)
            )
            offset = buffer.find(values, offset + 1)
        return matches

    for offset in range(len(buffer) - size + 1):
        if _matches_at(buffer, offset, parsed):
            matches.append(
                PatternMatch(
                    address=offset,
                    offset=offset,
                    matched_bytes=buffer[offset : offset + size],
                    description=description,
                )
            )
    return matches


def find_multiple_patterns(
    buffer: bytes, patterns: Mapping[str, str]
) -> dict[str, list[PatternMatch]]:
    return {name: find_byte_pattern(buffer, pattern, name) for name, pattern in patterns.items()}


def find_instruction_pattern(
    instructions: Sequence[Instruction],
    predicate: Callable[[Instruction], bool],
    description: str | None = None,
) -> list[PatternMatch]:
    return [
        PatternMatch(
            address=ins.address,
            offset=ins.file_offset,
            matched_bytes=ins.data,
            description=description,
        )
        for ins in instructions
        if predicate(ins)
    ]


def find_x64_prologues(buffer: bytes) -> list[PatternMatch]:
    return find_byte_pattern(buffer, X64_PROLOGUE_PATTERN, "x64_prologue_rbp")


def find_stack_setup(buffer: bytes) -> list[PatternMatch]:
    return find_byte_pattern(buffer, STACK_SETUP_PATTERN, "stack_setup")


def find_return_instructions(buffer: bytes) -> list[PatternMatch]:
    return find_byte_pattern(buffer, RETURN_PATTERN, "ret")


def find_nop_sleds(buffer: bytes, min_length: int = DEFAULT_NOP_SLED_LENGTH) -> list[PatternMatch]:
    """Non-overlapping runs of 0x90 at least *min_length* long, one match per run."""
    buffer = _require_buffer(buffer)
    matches = []
    i = 0
    size = len(buffer)
    while i < size:
        if buffer[i] != NOP_OPCODE:
            i += 1
            continue
        run = 1
        while i + run < size and buffer[i + run] == NOP_OPCODE:
            run += 1
        if run >= min_length:
            matches.append(
                PatternMatch(
                    address=i,
                    offset=i,
                    matched_bytes=buffer[i : i + run],
                    description=f"nop_sled_{run}",
                )
            )
        i += run
    return matches


def _is_printable(byte: int) -> bool:
    return 0x20 <= byte <= 0x7E or byte in _PRINTABLE_CONTROL


def _string_match(start: int, raw: bytes) -> PatternMatch:
    text = raw.decode("ascii")
    return PatternMatch(
        address=start,
        offset=start,
        matched_bytes=raw,
        description=f"String: {text}",
        text=text,
    )


def find_strings(buffer: bytes, min_length: int = DEFAULT_MIN_STRING_LENGTH) -> list[PatternMatch]:
    """Printable ASCII runs (plus tab, LF, CR) of at least *min_length* bytes."""
    buffer = _require_buffer(buffer)
    matches = []
    start = None
    for i, byte in enumerate(buffer):
        if _is_printable(byte):
            if start is None:
                start = i
            continue
        if start is not None and i - start >= min_length:
            matches.append(_string_match(start, buffer[start:i]))
        start = None
    if start is not None and len(buffer) - start >= min_length:
        matches.append(_string_match(start, buffer[start:]))
    return matches


def find_wide_strings(
    buffer: bytes, min_length: int = DEFAULT_MIN_STRING_LENGTH
) -> list[PatternMatch]:
    """UTF-16-ish runs: printable low byte, high byte zero or below 0x20.

    Scans two bytes at a time from offset 0. A run is emitted when it reaches
    half of *min_length* characters and is closed by a null pair or any other
    non-conforming pair; a run still open at the end of the buffer is dropped.
    """
    buffer = _require_buffer(buffer)
    min_chars = min_length // 2
    matches = []
    start = 0
    chars: list[str] = []

    def flush() -> None:
        if chars and len(chars) >= min_chars:
            text = "".join(chars)
            matches.append(
                PatternMatch(
                    address=start,
                    offset=start,
                    matched_bytes=buffer[start : start + 2 * len(chars)],
                    description=f"WideString: {text}",
                    text=text,
                )
            )
        chars.clear()

    for i in range(0, len(buffer) - 1, 2):
        low, high = buffer[i], buffer[i + 1]
        if 0x20 <= low <= 0x7E and high < 0x20:
            if not chars:
                start = i
            chars.append(chr(low))
        else:
            flush()
    return matches


def find_all_strings(
    buffer: bytes,
    min_length: int = DEFAULT_MIN_STRING_LENGTH,
    include_wide: bool = True,
) -> list[PatternMatch]:
    matches = find_strings(buffer, min_length)
    if include_wide:
        matches.extend(find_wide_strings(buffer, min_length))
    return sorted(matches, key=lambda m: m.offset)
