"""Frozen instruction records consumed read-only by every analysis pass."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum


class OperandKind(str, Enum):
    REGISTER = "register"
    IMMEDIATE8 = "immediate8"
    IMMEDIATE16 = "immediate16"
    IMMEDIATE32 = "immediate32"
    IMMEDIATE64 = "immediate64"
    NEAR_BRANCH16 = "near_branch16"
    NEAR_BRANCH32 = "near_branch32"
    NEAR_BRANCH64 = "near_branch64"
    FAR_BRANCH = "far_branch"
    MEMORY = "memory"


IMMEDIATE_KINDS = frozenset(
    {
        OperandKind.IMMEDIATE8,
        OperandKind.IMMEDIATE16,
        OperandKind.IMMEDIATE32,
        OperandKind.IMMEDIATE64,
    }
)
# Only direct 32/64-bit near branches carry a statically resolvable target.
RESOLVABLE_BRANCH_KINDS = frozenset({OperandKind.NEAR_BRANCH32, OperandKind.NEAR_BRANCH64})

CONDITIONAL_JUMP_MNEMONICS = frozenset(
    {
        "jo", "jno",
        "jb", "jnae", "jc",
        "jae", "jnb", "jnc",
        "je", "jz",
        "jne", "jnz",
        "jbe", "jna",
        "ja", "jnbe",
        "js", "jns",
        "jp", "jpe",
        "jnp", "jpo",
        "jl", "jnge",
        "jge", "jnl",
        "jle", "jng",
        "jg", "jnle",
        "jcxz", "jecxz", "jrcxz",
    }
)
UNCONDITIONAL_JUMP_MNEMONICS = frozenset({"jmp"})
CALL_MNEMONICS = frozenset({"call", "lcall", "callf"})
RETURN_MNEMONICS = frozenset({"ret", "retn"})
NOP_MNEMONICS = frozenset({"nop", "fnop"})

REGS_64 = frozenset(
    {
        "rax", "rbx", "rcx", "rdx", "rsi", "rdi", "rbp", "rsp",
        "r8", "r9", "r10", "r11", "r12", "r13", "r14", "r15",
    }
)
REGS_32 = frozenset(
    {
        "eax", "ebx", "ecx", "edx", "esi", "edi", "ebp", "esp",
        "r8d", "r9d", "r10d", "r11d", "r12d", "r13d", "r14d", "r15d",
    }
)


def register_width(name: str | None) -> int:
    """Return 64, 32 or 0 (unknown / not a general-purpose register)."""
    if not name:
        return 0
    name = name.lower()
    if name in REGS_64:
        return 64
    if name in REGS_32:
        return 32
    return 0


@dataclass(frozen=True)
class Instruction:
    address: int
    data: bytes
    mnemonic: str
    operands: str = ""
    operand_kinds: tuple[OperandKind, ...] = ()
    registers: tuple[str | None, ...] = ()
    immediate: int | None = None
    near_branch: int | None = None
    rip_relative_target: int | None = None
    file_offset: int = 0
    length: int = field(default=-1)

    def __post_init__(self) -> None:
        if self.length < 0:
            object.__setattr__(self, "length", len(self.data))
        object.__setattr__(self, "mnemonic", self.mnemonic.lower())

    @property
    def end_address(self) -> int:
        return self.address + self.length

    @property
    def op_count(self) -> int:
        return len(self.operand_kinds)

    def operand_kind(self, index: int) -> OperandKind | None:
        if 0 <= index < len(self.operand_kinds):
            return self.operand_kinds[index]
        return None

    def register(self, index: int) -> str | None:
        if 0 <= index < len(self.registers):
            return self.registers[index]
        return None

    @property
    def branch_target(self) -> int | None:
        """Static near-branch target, or None for indirect/far control flow."""
        if self.operand_kind(0) in RESOLVABLE_BRANCH_KINDS:
            return self.near_branch
        return None

    @property
    def is_return(self) -> bool:
        return self.mnemonic in RETURN_MNEMONICS

    @property
    def is_unconditional_jump(self) -> bool:
        return self.mnemonic in UNCONDITIONAL_JUMP_MNEMONICS

    @property
    def is_conditional_jump(self) -> bool:
        return self.mnemonic in CONDITIONAL_JUMP_MNEMONICS

    @property
    def is_jump(self) -> bool:
        return self.is_unconditional_jump or self.is_conditional_jump

    @property
    def is_call(self) -> bool:
        return self.mnemonic in CALL_MNEMONICS

    @property
    def is_nop(self) -> bool:
        return self.mnemonic in NOP_MNEMONICS

    @property
    def is_terminator(self) -> bool:
        """Ends a basic block: unconditional jump, conditional jump or return."""
        return self.is_jump or self.is_return

    def __str__(self) -> str:
        text = f"{self.mnemonic} {self.operands}".strip()
        return f"{self.address:#x}: {text}"
