"""Tests for the instruction model and its classification helpers."""

import pytest

from revcore.extraction.instruction import Instruction, OperandKind, register_width


def test_length_defaults_to_data_size():
    ins = Instruction(address=0x1000, data=b"\x48\x89\xe5", mnemonic="MOV")
    assert ins.length == 3
    assert ins.end_address == 0x1003
    assert ins.mnemonic == "mov"


def test_explicit_length_is_kept():
    ins = Instruction(address=0x1000, data=b"", mnemonic="nop", length=4)
    assert ins.length == 4


@pytest.mark.parametrize("mnemonic", ["je", "jne", "jrcxz", "jg", "jnle", "jpo"])
def test_conditional_jumps(asm, mnemonic):
    ins = asm.jcc(0x1000, 0x1010, mnemonic)
    assert ins.is_conditional_jump
    assert ins.is_jump
    assert ins.is_terminator
    assert not ins.is_unconditional_jump


def test_loop_is_not_a_conditional_jump(asm):
    ins = asm.make(0x1000, "loop", 2, kinds=(OperandKind.NEAR_BRANCH64,), target=0x1000)
    assert not ins.is_jump


def test_call_is_not_a_terminator(asm):
    ins = asm.call(0x1000, 0x2000)
    assert ins.is_call
    assert not ins.is_terminator
    assert ins.branch_target == 0x2000


def test_ret_is_terminator(asm):
    assert asm.ret(0x1000).is_terminator
    assert asm.ret(0x1000).is_return


def test_indirect_jump_has_no_target(asm):
    ins = asm.jmp_reg(0x1000)
    assert ins.is_unconditional_jump
    assert ins.branch_target is None


def test_near_branch16_is_not_resolvable(asm):
    ins = asm.make(0x1000, "jmp", 3, kinds=(OperandKind.NEAR_BRANCH16,), target=0x1234)
    assert ins.branch_target is None


def test_operand_accessors_out_of_range(asm):
    ins = asm.ret(0x1000)
    assert ins.operand_kind(0) is None
    assert ins.register(5) is None
    assert ins.op_count == 0


def test_register_width():
    assert register_width("rax") == 64
    assert register_width("R15") == 64
    assert register_width("r8d") == 32
    assert register_width("ax") == 0
    assert register_width(None) == 0


def test_instructions_are_frozen(asm):
    ins = asm.ret(0x1000)
    with pytest.raises(AttributeError):
        ins.address = 0x2000


def test_str(asm):
    assert str(asm.push(0x1000)) == "0x1000: push rbp"
