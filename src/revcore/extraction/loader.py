"""Load a PE file from disk into bytes, headers and decoded instructions."""

from __future__ import annotations

import hashlib
from dataclasses import dataclass
from pathlib import Path

from revcore.errors import InvalidInputError
from revcore.extraction.decoder import decode_sections
from revcore.extraction.instruction import Instruction
from revcore.extraction.pe_reader import PEHeaders, parse_headers
from revcore.utils.logging import get_logger

log = get_logger(__name__)


@dataclass(frozen=True)
class LoadedBinary:
    path: Path
    data: bytes
    sha256: str
    headers: PEHeaders
    instructions: tuple[Instruction, ...]

    @property
    def name(self) -> str:
        return self.path.stem

    @property
    def is_64bit(self) -> bool:
        return self.headers.is_64bit

    @property
    def image_base(self) -> int:
        return self.headers.image_base

    @property
    def entry_point(self) -> int:
        return self.headers.entry_point


def load_pe(path: Path | str) -> LoadedBinary:
    """Read, hash, parse and decode a PE image.

    Raises InvalidInputError when the file is missing or is not a PE.
    """
    path = Path(path)
    if not path.is_file():
        raise InvalidInputError(f"Binary not found: {path}")

    data = path.read_bytes()
    sha256 = hashlib.sha256(data).hexdigest()
    headers = parse_headers(data)
    if headers is None:
        raise InvalidInputError(f"Not a PE image: {path}")

    instructions = decode_sections(data, headers)
    log.info(
        "pe_loaded",
        path=str(path),
        sha256=sha256[:16],
        bits=64 if headers.is_64bit else 32,
        sections=len(headers.sections),
        instructions=len(instructions),
    )
    return LoadedBinary(
        path=path,
        data=data,
        sha256=sha256,
        headers=headers,
        instructions=instructions,
    )
