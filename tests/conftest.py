"""Shared test fixtures."""

from __future__ import annotations

import struct

import pytest

from revcore.config.models import FunctionsConfig, RevCoreConfig, SymbolsConfig
from revcore.extraction.instruction import Instruction, OperandKind

REG = OperandKind.REGISTER
MEM = OperandKind.MEMORY
IMM8 = OperandKind.IMMEDIATE8
IMM32 = OperandKind.IMMEDIATE32
IMM64 = OperandKind.IMMEDIATE64
NEAR64 = OperandKind.NEAR_BRANCH64

TEXT_RVA = 0x1000
TEXT_RAW = 0x200
TEXT_SIZE = 0x200
RDATA_RVA = 0x2000
RDATA_RAW = 0x400
RDATA_SIZE = 0x400
IMAGE_BASE_64 = 0x140000000
IMAGE_BASE_32 = 0x400000


class InsnBuilder:
    """Shorthand constructors for synthetic instructions."""

    @staticmethod
    def make(address, mnemonic, length=1, operands="", kinds=(), regs=(), immediate=None,
             target=None, rip_target=None):
        return Instruction(
            address=address,
            data=bytes(length),
            mnemonic=mnemonic,
            operands=operands,
            operand_kinds=tuple(kinds),
            registers=tuple(regs),
            immediate=immediate,
            near_branch=target,
            rip_relative_target=rip_target,
            file_offset=address,
        )

    def push(self, address, reg="rbp"):
        return self.make(address, "push", 1, reg, (REG,), (reg,))

    def pop(self, address, reg="rbp"):
        return self.make(address, "pop", 1, reg, (REG,), (reg,))

    def mov_rr(self, address, dst="rbp", src="rsp", length=3):
        return self.make(address, "mov", length, f"{dst}, {src}", (REG, REG), (dst, src))

    def mov_ri64(self, address, reg, value, length=10):
        return self.make(address, "movabs", length, f"{reg}, {value:#x}", (REG, IMM64), (reg, None), immediate=value)

    def sub_ri(self, address, reg="rsp", value=0x28, length=4):
        return self.make(address, "sub", length, f"{reg}, {value:#x}", (REG, IMM8), (reg, None), immediate=value)

    def xor_rr(self, address, a="eax", b="eax", length=2):
        return self.make(address, "xor", length, f"{a}, {b}", (REG, REG), (a, b))

    def cmp_rr(self, address, a="eax", b="ecx", length=2):
        return self.make(address, "cmp", length, f"{a}, {b}", (REG, REG), (a, b))

    def jcc(self, address, target, mnemonic="je", length=2):
        return self.make(address, mnemonic, length, f"{target:#x}", (NEAR64,), (None,), target=target)

    def jmp(self, address, target, length=2):
        return self.make(address, "jmp", length, f"{target:#x}", (NEAR64,), (None,), target=target)

    def jmp_reg(self, address, reg="rax", length=2):
        return self.make(address, "jmp", length, reg, (REG,), (reg,))

    def call(self, address, target, length=5):
        return self.make(address, "call", length, f"{target:#x}", (NEAR64,), (None,), target=target)

    def call_mem(self, address, target, length=6):
        return self.make(address, "call", length, f"qword ptr [rip + {target:#x}]", (MEM,), (None,),
                         rip_target=target)

    def lea_rip(self, address, reg, target, length=7):
        return self.make(address, "lea", length, f"{reg}, [rip + {target:#x}]", (REG, MEM), (reg, None),
                         rip_target=target)

    def nop(self, address, length=1):
        return self.make(address, "nop", length)

    def ret(self, address):
        return self.make(address, "ret", 1)


@pytest.fixture
def asm() -> InsnBuilder:
    return InsnBuilder()


@pytest.fixture
def branch_stream(asm):
    """push; mov; cmp; je 0x1010; jmp 0x1008; ret."""
    return [
        asm.push(0x1000),
        asm.mov_rr(0x1001),
        asm.cmp_rr(0x1004),
        asm.jcc(0x1006, 0x1010),
        asm.jmp(0x1008, 0x1008),
        asm.ret(0x1010),
    ]


@pytest.fixture
def two_function_stream(asm):
    """main at 0x1000 calls helper at 0x1020; both have frame prologues."""
    return [
        asm.push(0x1000),
        asm.mov_rr(0x1001),
        asm.sub_ri(0x1004),
        asm.call(0x1008, 0x1020),
        asm.xor_rr(0x100D),
        asm.pop(0x100F),
        asm.ret(0x1010),
        asm.push(0x1020),
        asm.mov_rr(0x1021),
        asm.cmp_rr(0x1024),
        asm.jcc(0x1026, 0x102C, "jne"),
        asm.nop(0x1028, 4),
        asm.pop(0x102C),
        asm.ret(0x102D),
    ]


def build_pe(
    *,
    is_64bit: bool = True,
    code: bytes = b"\xc3",
    imports: dict[str, list[str | int]] | None = None,
    exports: list[tuple[str | None, int | str]] | None = None,
    image_base: int | None = None,
    entry_rva: int = TEXT_RVA,
) -> bytes:
    """Assemble a minimal two-section PE (.text + .rdata).

    *imports* maps a DLL name to function names or ordinals. *exports* is a
    list of ``(name, target)``; an int target is an RVA, a str target is a
    forwarder string.
    """
    if image_base is None:
        image_base = IMAGE_BASE_64 if is_64bit else IMAGE_BASE_32
    width = 8 if is_64bit else 4
    slot_fmt = "<Q" if is_64bit else "<I"
    ordinal_flag = 1 << (width * 8 - 1)

    rdata = bytearray(RDATA_SIZE)
    cursor = 0

    def place(blob: bytes, align: int = 4) -> int:
        nonlocal cursor
        cursor = (cursor + align - 1) & ~(align - 1)
        start = cursor
        rdata[start : start + len(blob)] = blob
        cursor += len(blob)
        return RDATA_RVA + start

    directories = [(0, 0)] * 16

    if imports:
        desc_size = 20 * (len(imports) + 1)
        desc_rva = place(bytes(desc_size))
        for n, (dll, names) in enumerate(imports.items()):
            dll_rva = place(dll.encode() + b"\x00")
            thunks = []
            for name in names:
                if isinstance(name, int):
                    thunks.append(ordinal_flag | name)
                else:
                    thunks.append(place(b"\x00\x00" + name.encode() + b"\x00", align=2))
            table = b"".join(struct.pack(slot_fmt, t) for t in thunks) + bytes(width)
            ilt_rva = place(table, align=width)
            iat_rva = place(table, align=width)
            struct.pack_into(
                "<IIIII", rdata, desc_rva - RDATA_RVA + 20 * n, ilt_rva, 0, 0, dll_rva, iat_rva
            )
        directories[1] = (desc_rva, desc_size)

    if exports:
        dir_rva = place(bytes(40))
        module_rva = place(b"test.dll\x00")
        function_rvas = []
        for _, target in exports:
            if isinstance(target, str):
                function_rvas.append(place(target.encode() + b"\x00"))
            else:
                function_rvas.append(target)
        funcs_rva = place(b"".join(struct.pack("<I", r) for r in function_rvas))
        named = [(i, name) for i, (name, _) in enumerate(exports) if name]
        name_rvas = [place(name.encode() + b"\x00") for _, name in named]
        names_rva = place(b"".join(struct.pack("<I", r) for r in name_rvas))
        ords_rva = place(b"".join(struct.pack("<H", i) for i, _ in named), align=2)
        struct.pack_into(
            "<IIHHIIIIIII", rdata, dir_rva - RDATA_RVA,
            0, 0, 0, 0, module_rva, 1, len(exports), len(named), funcs_rva, names_rva, ords_rva,
        )
        directories[0] = (dir_rva, RDATA_RVA + cursor - dir_rva)

    opt_size = 240 if is_64bit else 224
    header = bytearray(TEXT_RAW)
    header[0:2] = b"MZ"
    struct.pack_into("<I", header, 0x3C, 0x40)
    header[0x40:0x44] = b"PE\x00\x00"
    struct.pack_into(
        "<HHIIIHH", header, 0x44, 0x8664 if is_64bit else 0x14C, 2, 0, 0, 0, opt_size, 0x22
    )
    opt = 0x58
    struct.pack_into("<H", header, opt, 0x20B if is_64bit else 0x10B)
    struct.pack_into("<I", header, opt + 16, entry_rva)
    if is_64bit:
        struct.pack_into("<Q", header, opt + 24, image_base)
        struct.pack_into("<I", header, opt + 108, 16)
        dir_offset = opt + 112
    else:
        struct.pack_into("<I", header, opt + 28, image_base)
        struct.pack_into("<I", header, opt + 92, 16)
        dir_offset = opt + 96
    for i, (rva, size) in enumerate(directories):
        struct.pack_into("<II", header, dir_offset + 8 * i, rva, size)

    sections = opt + opt_size
    struct.pack_into(
        "<8sIIIIIIHHI", header, sections,
        b".text", max(len(code), 1), TEXT_RVA, TEXT_SIZE, TEXT_RAW, 0, 0, 0, 0, 0x60000020,
    )
    struct.pack_into(
        "<8sIIIIIIHHI", header, sections + 40,
        b".rdata", RDATA_SIZE, RDATA_RVA, RDATA_SIZE, RDATA_RAW, 0, 0, 0, 0, 0x40000040,
    )

    text = bytearray(TEXT_SIZE)
    text[: len(code)] = code
    return bytes(header + text + rdata)


@pytest.fixture
def pe_builder():
    return build_pe


@pytest.fixture
def kernel32_pe() -> bytes:
    """x64 PE importing KERNEL32.DLL!ExitProcess through a single IAT slot."""
    return build_pe(imports={"KERNEL32.DLL": ["ExitProcess"]})


# push rbp; mov rbp, rsp; sub rsp, 0x20; call +0; xor eax, eax; add rsp, 0x20; pop rbp; ret
SAMPLE_CODE = bytes.fromhex("554889e54883ec20e80000000031c04883c4205dc3")


@pytest.fixture
def sample_code() -> bytes:
    return SAMPLE_CODE


@pytest.fixture
def sample_pe_path(tmp_path):
    path = tmp_path / "sample.exe"
    path.write_bytes(
        build_pe(
            code=SAMPLE_CODE + b"\x90" * 6 + b"\xc3",
            imports={"KERNEL32.DLL": ["ExitProcess", "GetLastError"]},
            exports=[("Start", TEXT_RVA)],
        )
    )
    return path


@pytest.fixture
def sample_config() -> RevCoreConfig:
    return RevCoreConfig(
        functions=FunctionsConfig(include_call_graph=True),
        symbols=SymbolsConfig(include_strings=False),
    )
