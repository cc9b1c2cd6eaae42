"""Cross-reference extraction over a decoded instruction stream."""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from enum import Enum

from revcore.config.defaults import DEFAULT_IMAGE_BASE
from revcore.extraction.instruction import OperandKind, Instruction, register_width
from revcore.utils.logging import get_logger

log = get_logger(__name__)

XRefMap = dict[int, list["CrossReference"]]

# Heuristic bounds for an immediate that "looks like" an address in the image.
MIN_LIKELY_ADDRESS = 0x1000
IMAGE_SPAN = 0x1_0000_0000

_MOV_IMM64_MNEMONICS = frozenset({"mov", "movabs"})
_RIP_RELATIVE_MNEMONICS = frozenset({"lea", "mov"})


class RefType(str, Enum):
    JUMP = "jump"
    COND_JUMP = "cond_jump"
    CALL = "call"
    MOV_IMMEDIATE64 = "mov_imm64"
    RIP_RELATIVE = "rip_relative"


@dataclass(frozen=True)
class CrossReference:
    source_address: int
    target_address: int
    ref_type: RefType
    description: str | None = None

    def __str__(self) -> str:
        return f"{self.source_address:#x} -> {self.target_address:#x} [{self.ref_type.value}]"


def build_xrefs(
    instructions: Sequence[Instruction],
    image_base: int = DEFAULT_IMAGE_BASE,
    resolve_rip_relative: bool = False,
) -> XRefMap:
    """Build the forward cross-reference map keyed by source address.

    Code-to-code references come from direct jumps, conditional jumps and
    calls. Code-to-data references come from ``mov r64, imm64`` whose value
    looks like an address inside the image. RIP-relative operands are only
    resolved when *resolve_rip_relative* is set and the decoder supplied the
    effective address; string-literal references are not tracked.
    """
    xrefs: XRefMap = {}
    _find_code_refs(instructions, xrefs)
    _find_data_refs(instructions, image_base, xrefs)
    if resolve_rip_relative:
        _find_rip_relative_refs(instructions, xrefs)

    log.debug(
        "xrefs_built",
        sources=len(xrefs),
        references=sum(len(refs) for refs in xrefs.values()),
    )
    return xrefs


def get_outgoing_refs(address: int, xrefs: XRefMap) -> list[CrossReference]:
    return list(xrefs.get(address, []))


def get_incoming_refs(address: int, xrefs: XRefMap) -> list[CrossReference]:
    """All references that target *address*. Linear in the size of the map."""
    return [ref for refs in xrefs.values() for ref in refs if ref.target_address == address]


def build_reverse_index(xrefs: XRefMap) -> dict[int, list[int]]:
    """Derive ``target -> [source, ...]`` for callers doing many reverse lookups."""
    index: dict[int, list[int]] = {}
    for source in sorted(xrefs):
        for ref in xrefs[source]:
            index.setdefault(ref.target_address, []).append(source)
    return index


def classify_branch(ins: Instruction) -> RefType | None:
    if ins.is_unconditional_jump:
        return RefType.JUMP
    if ins.is_conditional_jump:
        return RefType.COND_JUMP
    if ins.is_call:
        return RefType.CALL
    return None


def is_likely_address(value: int, image_base: int = DEFAULT_IMAGE_BASE) -> bool:
    if value == 0 or value < MIN_LIKELY_ADDRESS:
        return False
    return image_base <= value < image_base + IMAGE_SPAN


def _add(xrefs: XRefMap, ins: Instruction, target: int, ref_type: RefType) -> None:
    description = f"{ins.mnemonic} {ins.operands}".strip()
    xrefs.setdefault(ins.address, []).append(
        CrossReference(
            source_address=ins.address,
            target_address=target,
            ref_type=ref_type,
            description=description,
        )
    )


def _find_code_refs(instructions: Sequence[Instruction], xrefs: XRefMap) -> None:
    for ins in instructions:
        ref_type = classify_branch(ins)
        if ref_type is None:
            continue
        target = ins.branch_target
        if target is not None:
            _add(xrefs, ins, target, ref_type)


def _find_data_refs(instructions: Sequence[Instruction], image_base: int, xrefs: XRefMap) -> None:
    for ins in instructions:
        if ins.mnemonic not in _MOV_IMM64_MNEMONICS:
            continue
        if ins.operand_kind(0) is not OperandKind.REGISTER or register_width(ins.register(0)) != 64:
            continue
        if ins.operand_kind(1) is not OperandKind.IMMEDIATE64 or ins.immediate is None:
            continue
        if is_likely_address(ins.immediate, image_base):
            _add(xrefs, ins, ins.immediate, RefType.MOV_IMMEDIATE64)


def _find_rip_relative_refs(instructions: Sequence[Instruction], xrefs: XRefMap) -> None:
    for ins in instructions:
        if ins.mnemonic not in _RIP_RELATIVE_MNEMONICS or ins.rip_relative_target is None:
            continue
        if ins.operand_kind(0) is OperandKind.REGISTER and ins.operand_kind(1) is OperandKind.MEMORY:
            _add(xrefs, ins, ins.rip_relative_target, RefType.RIP_RELATIVE)
