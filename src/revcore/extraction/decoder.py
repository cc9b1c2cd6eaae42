"""capstone adapter producing :class:`Instruction` records."""

from __future__ import annotations

from capstone import CS_ARCH_X86, CS_GRP_CALL, CS_GRP_JUMP, CS_MODE_32, CS_MODE_64, Cs, CsInsn
from capstone.x86 import X86_OP_IMM, X86_OP_MEM, X86_OP_REG, X86_REG_RIP

from revcore.extraction.instruction import Instruction, OperandKind
from revcore.extraction.pe_reader import PEHeaders
from revcore.utils.logging import get_logger

log = get_logger(__name__)

_IMMEDIATE_BY_SIZE = {
    1: OperandKind.IMMEDIATE8,
    2: OperandKind.IMMEDIATE16,
    4: OperandKind.IMMEDIATE32,
    8: OperandKind.IMMEDIATE64,
}
_FAR_BRANCH_MNEMONICS = frozenset({"ljmp", "lcall"})
_MASK_64 = (1 << 64) - 1


def _make_disassembler(is_64bit: bool) -> Cs:
    md = Cs(CS_ARCH_X86, CS_MODE_64 if is_64bit else CS_MODE_32)
    md.detail = True
    return md


def decode(
    code: bytes,
    address: int,
    is_64bit: bool = True,
    file_offset: int = 0,
) -> tuple[Instruction, ...]:
    """Linear-sweep *code* loaded at *address*.

    A byte capstone cannot decode is skipped and the sweep resumes at the
    next one.
    """
    md = _make_disassembler(is_64bit)
    instructions: list[Instruction] = []
    offset = 0
    skipped = 0
    while offset < len(code):
        for insn in md.disasm(code[offset:], address + offset):
            instructions.append(_convert(insn, is_64bit, file_offset + offset))
            offset += insn.size
        if offset < len(code):
            skipped += 1
            offset += 1
    if skipped:
        log.debug("decode_skipped_bytes", address=hex(address), skipped=skipped, size=len(code))
    return tuple(instructions)


def decode_sections(data: bytes, headers: PEHeaders) -> tuple[Instruction, ...]:
    """Decode every executable section of a PE image, in address order."""
    instructions: list[Instruction] = []
    for section in sorted(headers.sections, key=lambda s: s.virtual_address):
        if not section.is_executable or section.raw_size == 0:
            continue
        size = section.raw_size
        if section.virtual_size:
            size = min(size, section.virtual_size)
        code = data[section.raw_pointer : section.raw_pointer + size]
        decoded = decode(
            code,
            headers.image_base + section.virtual_address,
            headers.is_64bit,
            file_offset=section.raw_pointer,
        )
        log.debug("section_decoded", section=section.name, instructions=len(decoded))
        instructions.extend(decoded)
    return tuple(instructions)


def _convert(insn: CsInsn, is_64bit: bool, file_offset: int) -> Instruction:
    is_branch = insn.group(CS_GRP_JUMP) or insn.group(CS_GRP_CALL)
    branch_kind = OperandKind.NEAR_BRANCH64 if is_64bit else OperandKind.NEAR_BRANCH32
    branch_mask = _MASK_64 if is_64bit else 0xFFFFFFFF

    kinds: list[OperandKind] = []
    registers: list[str | None] = []
    immediate = None
    near_branch = None
    rip_target = None

    for i, op in enumerate(insn.operands):
        if op.type == X86_OP_REG:
            kinds.append(OperandKind.REGISTER)
            registers.append(insn.reg_name(op.reg))
            continue
        registers.append(None)
        if op.type == X86_OP_IMM:
            if insn.mnemonic in _FAR_BRANCH_MNEMONICS:
                kinds.append(OperandKind.FAR_BRANCH)
            elif is_branch and i == 0:
                kinds.append(branch_kind)
                near_branch = op.imm & branch_mask
            else:
                kinds.append(_immediate_kind(insn, op.size))
                if immediate is None:
                    immediate = op.imm & ((1 << ((op.size or 8) * 8)) - 1)
        elif op.type == X86_OP_MEM:
            kinds.append(OperandKind.MEMORY)
            if op.mem.base == X86_REG_RIP:
                rip_target = (insn.address + insn.size + op.mem.disp) & _MASK_64

    return Instruction(
        address=insn.address,
        data=bytes(insn.bytes),
        mnemonic=insn.mnemonic,
        operands=insn.op_str,
        operand_kinds=tuple(kinds),
        registers=tuple(registers),
        immediate=immediate,
        near_branch=near_branch,
        rip_relative_target=rip_target,
        file_offset=file_offset,
    )


def _immediate_kind(insn: CsInsn, size: int) -> OperandKind:
    # capstone reports the operand width, not the encoded width; only
    # movabs actually carries eight immediate bytes.
    if size == 8 and insn.mnemonic != "movabs":
        return OperandKind.IMMEDIATE32
    return _IMMEDIATE_BY_SIZE.get(size, OperandKind.IMMEDIATE32)
