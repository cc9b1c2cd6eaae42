"""Heuristic function discovery with per-function CFG attachment."""

from __future__ import annotations

import time
from collections.abc import Sequence
from dataclasses import dataclass, replace
from enum import Enum

from revcore.analysis.cfg import ControlFlowGraph, build_cfg
from revcore.config.defaults import MAX_FUNCTION_SIZE
from revcore.errors import InvalidInputError
from revcore.extraction.instruction import IMMEDIATE_KINDS, Instruction, OperandKind, register_width
from revcore.extraction.pe_reader import parse_headers, read_exports, read_imports
from revcore.utils.logging import get_logger

log = get_logger(__name__)

ENTRY_FUNCTION_NAME = "_entry"


class FunctionSource(str, Enum):
    ENTRY = "entry"
    EXPORT = "export"
    IMPORT = "import"
    PROLOGUE = "prologue"
    CALL_TARGET = "call_target"


@dataclass(frozen=True)
class Function:
    address: int
    source: FunctionSource
    name: str | None = None
    instruction_count: int = 0
    is_imported: bool = False
    is_exported: bool = False
    is_entry_point: bool = False
    cfg: ControlFlowGraph | None = None

    def __str__(self) -> str:
        return (
            f"Function @ {self.address:#x}: {self.name or 'unnamed'} "
            f"({self.instruction_count} instrs, src={self.source.value})"
        )


def find_functions(
    instructions: Sequence[Instruction],
    include_exports: bool = True,
    include_imports: bool = True,
    include_prologues: bool = True,
    include_call_graph: bool = True,
    *,
    binary_bytes: bytes | None = None,
    is_64bit: bool = True,
    max_cfg_functions: int | None = None,
) -> list[Function]:
    """Discover functions and return them sorted by address.

    Heuristics run in a fixed order (entry, exports, imports, prologues,
    call targets) and never replace an address an earlier one claimed.
    Export and import nominations need *binary_bytes*; without them those
    steps contribute nothing. A CFG is attached to each function in address
    order up to *max_cfg_functions*; a function whose CFG cannot be built
    keeps ``cfg=None``.
    """
    if not instructions:
        raise InvalidInputError("Instruction stream cannot be empty.")

    found: dict[int, Function] = {}

    def nominate(function: Function) -> None:
        found.setdefault(function.address, function)

    first = instructions[0].address
    nominate(
        Function(
            address=first,
            source=FunctionSource.ENTRY,
            name=ENTRY_FUNCTION_NAME,
            is_entry_point=True,
        )
    )

    headers = parse_headers(binary_bytes) if binary_bytes is not None else None
    if headers is not None and include_exports:
        for export in read_exports(binary_bytes, headers):
            if export.is_forwarder:
                continue
            nominate(
                Function(
                    address=headers.image_base + export.rva,
                    source=FunctionSource.EXPORT,
                    name=export.display_name,
                    is_exported=True,
                )
            )
    if headers is not None and include_imports:
        for entry in read_imports(binary_bytes, is_64bit, headers):
            nominate(
                Function(
                    address=entry.address,
                    source=FunctionSource.IMPORT,
                    name=entry.display_name,
                    is_imported=True,
                )
            )

    if include_prologues:
        before = len(found)
        for i, ins in enumerate(instructions):
            if matches_prologue(instructions, i):
                nominate(Function(address=ins.address, source=FunctionSource.PROLOGUE))
        log.debug("prologue_scan_complete", found=len(found) - before)

    if include_call_graph:
        for target in sorted(collect_call_targets(instructions)):
            nominate(Function(address=target, source=FunctionSource.CALL_TARGET))

    functions = [found[address] for address in sorted(found)]
    functions = _attach_cfgs(instructions, functions, max_cfg_functions)
    log.debug("functions_found", count=len(functions))
    return functions


def _attach_cfgs(
    instructions: Sequence[Instruction],
    functions: list[Function],
    limit: int | None,
) -> list[Function]:
    started = time.perf_counter()
    built = 0
    attached = []
    for n, function in enumerate(functions):
        if limit is not None and n >= limit:
            attached.append(function)
            continue
        try:
            cfg = build_cfg(instructions, function.address)
        except Exception as exc:
            log.debug("function_cfg_failed", address=hex(function.address), error=str(exc))
            attached.append(function)
            continue
        built += 1
        count = sum(block.instruction_count for block in cfg.dfs(function.address))
        attached.append(replace(function, cfg=cfg, instruction_count=count))

    log.debug(
        "function_cfgs_built",
        built=built,
        total=len(functions),
        elapsed_ms=round((time.perf_counter() - started) * 1000, 1),
    )
    return attached


def collect_call_targets(instructions: Sequence[Instruction]) -> set[int]:
    return {
        ins.branch_target
        for ins in instructions
        if ins.is_call and ins.branch_target is not None
    }


def matches_prologue(instructions: Sequence[Instruction], index: int) -> bool:
    """Whether the instruction at *index* looks like a function start.

    Recognized shapes: ``push r64`` followed by a register-to-register
    ``mov``, ``sub r64, imm``, ``mov rbp, rsp`` and ``xor r32, r32``.
    Deliberately loose; expect false positives.
    """
    if index < 0 or index >= len(instructions):
        return False
    ins = instructions[index]
    mnemonic = ins.mnemonic

    if mnemonic == "push":
        if not _is_reg(ins, 0, 64) or index + 1 >= len(instructions):
            return False
        following = instructions[index + 1]
        return (
            following.mnemonic == "mov"
            and following.operand_kind(0) is OperandKind.REGISTER
            and following.operand_kind(1) is OperandKind.REGISTER
        )
    if mnemonic == "sub":
        return _is_reg(ins, 0, 64) and ins.operand_kind(1) in IMMEDIATE_KINDS
    if mnemonic == "mov":
        return ins.register(0) == "rbp" and ins.register(1) == "rsp"
    if mnemonic == "xor":
        return _is_reg(ins, 0, 32) and _is_reg(ins, 1, 32)
    return False


def _is_reg(ins: Instruction, index: int, width: int) -> bool:
    return (
        ins.operand_kind(index) is OperandKind.REGISTER
        and register_width(ins.register(index)) == width
    )


def calculate_function_size(instructions: Sequence[Instruction], function_address: int) -> int:
    """Estimate a function's size by walking forward to the first ``ret``.

    Returns 0 when no instruction starts at *function_address*. The walk
    also stops once the running total exceeds 64 KiB.
    """
    start = next(
        (i for i, ins in enumerate(instructions) if ins.address == function_address), None
    )
    if start is None:
        return 0
    size = 0
    for ins in instructions[start:]:
        size += ins.length
        if ins.is_return or size > MAX_FUNCTION_SIZE:
            break
    return size
