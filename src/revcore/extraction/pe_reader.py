"""Bounds-checked PE/COFF header, import and export table reader.

Everything here works on the raw file bytes with :mod:`struct`; the buffer is
treated as untrusted. Readers return ``None`` (or stop the current walk) on
any out-of-range access instead of raising, so a truncated or hostile binary
yields whatever was collected before the fault.
"""

from __future__ import annotations

import struct
from dataclasses import dataclass

from revcore.utils.logging import get_logger

log = get_logger(__name__)

PE_SIGNATURE = 0x4550  # "PE\0\0"
PE32_MAGIC = 0x10B
PE32PLUS_MAGIC = 0x20B

E_LFANEW_OFFSET = 0x3C
COFF_HEADER_SIZE = 20
SECTION_HEADER_SIZE = 40
IMPORT_DESCRIPTOR_SIZE = 20
EXPORT_DIRECTORY_SIZE = 40

IMAGE_DIRECTORY_ENTRY_EXPORT = 0
IMAGE_DIRECTORY_ENTRY_IMPORT = 1
MAX_DATA_DIRECTORIES = 16

IMAGE_SCN_CNT_CODE = 0x00000020
IMAGE_SCN_MEM_EXECUTE = 0x20000000

MAX_STRING_LENGTH = 256
MAX_IMPORT_DESCRIPTORS = 1024
MAX_THUNKS_PER_DLL = 4096
MAX_EXPORTS = 0x10000


def read_struct(fmt: str, data: bytes, offset: int) -> tuple | None:
    """``struct.unpack_from`` that returns None instead of reading out of range."""
    if offset < 0 or offset + struct.calcsize(fmt) > len(data):
        return None
    return struct.unpack_from(fmt, data, offset)


def read_u16(data: bytes, offset: int) -> int | None:
    fields = read_struct("<H", data, offset)
    return fields[0] if fields else None


def read_u32(data: bytes, offset: int) -> int | None:
    fields = read_struct("<I", data, offset)
    return fields[0] if fields else None


def read_u64(data: bytes, offset: int) -> int | None:
    fields = read_struct("<Q", data, offset)
    return fields[0] if fields else None


def read_cstring(data: bytes, offset: int | None, limit: int = MAX_STRING_LENGTH) -> str | None:
    """Null-terminated ASCII at *offset*, truncated at *limit* bytes."""
    if offset is None or offset < 0 or offset >= len(data):
        return None
    end = data.find(b"\x00", offset, offset + limit)
    if end == -1:
        end = min(offset + limit, len(data))
    return data[offset:end].decode("ascii", errors="replace")


@dataclass(frozen=True)
class Section:
    name: str
    virtual_size: int
    virtual_address: int
    raw_size: int
    raw_pointer: int
    characteristics: int = 0

    @property
    def is_executable(self) -> bool:
        return bool(self.characteristics & (IMAGE_SCN_MEM_EXECUTE | IMAGE_SCN_CNT_CODE))

    def contains_rva(self, rva: int) -> bool:
        span = max(self.virtual_size, self.raw_size)
        return self.virtual_address <= rva < self.virtual_address + span


@dataclass(frozen=True)
class PEHeaders:
    pe_offset: int
    machine: int
    number_of_sections: int
    size_of_optional_header: int
    magic: int
    image_base: int
    entry_point_rva: int
    data_directories: tuple[tuple[int, int], ...] = ()
    sections: tuple[Section, ...] = ()

    @property
    def is_64bit(self) -> bool:
        return self.magic == PE32PLUS_MAGIC

    @property
    def optional_header_offset(self) -> int:
        return self.pe_offset + 4 + COFF_HEADER_SIZE

    @property
    def entry_point(self) -> int:
        return self.image_base + self.entry_point_rva

    def directory(self, index: int) -> tuple[int, int]:
        if 0 <= index < len(self.data_directories):
            return self.data_directories[index]
        return (0, 0)

    def section_for_rva(self, rva: int) -> Section | None:
        for section in self.sections:
            if section.contains_rva(rva):
                return section
        return None

    def rva_to_offset(self, rva: int) -> int | None:
        section = self.section_for_rva(rva)
        if section is None:
            return None
        return section.raw_pointer + (rva - section.virtual_address)


@dataclass(frozen=True)
class ImportEntry:
    dll: str
    iat_rva: int  # RVA of this IAT slot
    address: int  # absolute VA of this IAT slot
    name: str | None = None
    ordinal: int | None = None

    @property
    def display_name(self) -> str:
        if self.name:
            return self.name
        if self.ordinal is not None:
            return f"ordinal_{self.ordinal}"
        return f"imp_{self.dll}"


@dataclass(frozen=True)
class ExportEntry:
    ordinal: int
    rva: int
    name: str | None = None
    forwarder: str | None = None
    # Set from the RVA alone; the forwarder string may be unreadable.
    is_forwarder: bool = False

    @property
    def display_name(self) -> str:
        return self.name or f"ordinal_{self.ordinal}"


def parse_headers(data: bytes, expect_64bit: bool | None = None) -> PEHeaders | None:
    """Parse DOS/COFF/optional headers and the section table.

    Returns None for a missing signature, an unknown optional-header magic,
    a magic that disagrees with *expect_64bit*, or an optional header too
    short to hold the image base.
    """
    if data is None:
        return None
    pe_offset = read_u32(data, E_LFANEW_OFFSET)
    if pe_offset is None or read_u32(data, pe_offset) != PE_SIGNATURE:
        return None

    coff = read_struct("<HHIIIHH", data, pe_offset + 4)
    if coff is None:
        return None
    machine, number_of_sections, _, _, _, size_of_optional_header, _ = coff

    opt = pe_offset + 4 + COFF_HEADER_SIZE
    magic = read_u16(data, opt)
    if magic not in (PE32_MAGIC, PE32PLUS_MAGIC):
        return None
    is_64bit = magic == PE32PLUS_MAGIC
    if expect_64bit is not None and expect_64bit != is_64bit:
        log.debug("pe_bitness_mismatch", magic=hex(magic), expected_64bit=expect_64bit)
        return None

    entry_point_rva = read_u32(data, opt + 16) or 0
    if is_64bit:
        image_base = read_u64(data, opt + 24)
        rva_count = read_u32(data, opt + 108)
        directories_offset = opt + 112
    else:
        image_base = read_u32(data, opt + 28)
        rva_count = read_u32(data, opt + 92)
        directories_offset = opt + 96
    if image_base is None:
        return None

    headers = PEHeaders(
        pe_offset=pe_offset,
        machine=machine,
        number_of_sections=number_of_sections,
        size_of_optional_header=size_of_optional_header,
        magic=magic,
        image_base=image_base,
        entry_point_rva=entry_point_rva,
        data_directories=_read_directories(
            data, directories_offset, opt + size_of_optional_header, rva_count
        ),
        sections=_read_sections(data, opt + size_of_optional_header, number_of_sections),
    )
    return headers


def _read_directories(
    data: bytes, offset: int, limit: int, count: int | None
) -> tuple[tuple[int, int], ...]:
    # Trust neither NumberOfRvaAndSizes nor SizeOfOptionalHeader alone.
    if count is None:
        count = MAX_DATA_DIRECTORIES
    count = min(count, MAX_DATA_DIRECTORIES, max(0, (limit - offset) // 8))
    directories = []
    for i in range(count):
        entry = read_struct("<II", data, offset + i * 8)
        if entry is None:
            break
        directories.append(entry)
    return tuple(directories)


def _read_sections(data: bytes, offset: int, count: int) -> tuple[Section, ...]:
    sections = []
    for i in range(count):
        fields = read_struct("<8sIIIIIIHHI", data, offset + i * SECTION_HEADER_SIZE)
        if fields is None:
            break
        raw_name, vsize, vaddr, raw_size, raw_ptr, _, _, _, _, characteristics = fields
        sections.append(
            Section(
                name=raw_name.split(b"\x00", 1)[0].decode("ascii", errors="replace"),
                virtual_size=vsize,
                virtual_address=vaddr,
                raw_size=raw_size,
                raw_pointer=raw_ptr,
                characteristics=characteristics,
            )
        )
    return tuple(sections)


def read_imports(data: bytes, is_64bit: bool, headers: PEHeaders | None = None) -> list[ImportEntry]:
    """Walk the import directory, producing one entry per non-zero IAT slot."""
    headers = headers or parse_headers(data, expect_64bit=is_64bit)
    if headers is None or headers.is_64bit != is_64bit:
        return []

    import_rva, import_size = headers.directory(IMAGE_DIRECTORY_ENTRY_IMPORT)
    if import_rva == 0 or import_size == 0:
        return []
    table_offset = headers.rva_to_offset(import_rva)
    if table_offset is None:
        log.debug("import_table_unmapped", rva=hex(import_rva))
        return []

    entries: list[ImportEntry] = []
    for i in range(MAX_IMPORT_DESCRIPTORS):
        descriptor = read_struct("<IIIII", data, table_offset + i * IMPORT_DESCRIPTOR_SIZE)
        if descriptor is None:
            break
        lookup_rva, _, _, name_rva, iat_rva = descriptor
        if lookup_rva == 0:
            break
        dll = read_cstring(data, headers.rva_to_offset(name_rva)) or "unknown"
        entries.extend(_walk_thunks(data, headers, dll, lookup_rva, iat_rva, is_64bit))
    return entries


def _walk_thunks(
    data: bytes,
    headers: PEHeaders,
    dll: str,
    lookup_rva: int,
    iat_rva: int,
    is_64bit: bool,
) -> list[ImportEntry]:
    iat_offset = headers.rva_to_offset(iat_rva)
    if iat_offset is None:
        return []
    lookup_offset = headers.rva_to_offset(lookup_rva)
    width = 8 if is_64bit else 4
    read_slot = read_u64 if is_64bit else read_u32
    ordinal_flag = 1 << (width * 8 - 1)

    entries = []
    for k in range(MAX_THUNKS_PER_DLL):
        slot = read_slot(data, iat_offset + k * width)
        if not slot:
            break
        thunk = None
        if lookup_offset is not None:
            thunk = read_slot(data, lookup_offset + k * width)
        if not thunk:
            thunk = slot

        name = None
        ordinal = None
        if thunk & ordinal_flag:
            ordinal = thunk & 0xFFFF
        else:
            hint_offset = headers.rva_to_offset(thunk & 0x7FFFFFFF)
            if hint_offset is not None:
                name = read_cstring(data, hint_offset + 2) or None

        slot_rva = iat_rva + k * width
        entries.append(
            ImportEntry(
                dll=dll,
                iat_rva=slot_rva,
                address=headers.image_base + slot_rva,
                name=name,
                ordinal=ordinal,
            )
        )
    return entries


def read_exports(data: bytes, headers: PEHeaders | None = None) -> list[ExportEntry]:
    """Walk the export directory; named and ordinal-only exports alike."""
    headers = headers or parse_headers(data)
    if headers is None:
        return []

    export_rva, export_size = headers.directory(IMAGE_DIRECTORY_ENTRY_EXPORT)
    if export_rva == 0 or export_size == 0:
        return []
    offset = headers.rva_to_offset(export_rva)
    if offset is None:
        return []
    directory = read_struct("<IIHHIIIIIII", data, offset)
    if directory is None:
        return []
    (_, _, _, _, _, base, n_functions, n_names,
     functions_rva, names_rva, ordinals_rva) = directory

    functions_offset = headers.rva_to_offset(functions_rva)
    if functions_offset is None:
        return []
    names_offset = headers.rva_to_offset(names_rva)
    ordinals_offset = headers.rva_to_offset(ordinals_rva)

    names: dict[int, str] = {}
    if names_offset is not None and ordinals_offset is not None:
        for i in range(min(n_names, MAX_EXPORTS)):
            name_rva = read_u32(data, names_offset + i * 4)
            index = read_u16(data, ordinals_offset + i * 2)
            if name_rva is None or index is None:
                break
            name = read_cstring(data, headers.rva_to_offset(name_rva))
            if name:
                names.setdefault(index, name)

    entries = []
    for index in range(min(n_functions, MAX_EXPORTS)):
        rva = read_u32(data, functions_offset + index * 4)
        if rva is None:
            break
        if rva == 0:
            continue
        is_forwarder = export_rva <= rva < export_rva + export_size
        forwarder = read_cstring(data, headers.rva_to_offset(rva)) if is_forwarder else None
        entries.append(
            ExportEntry(
                ordinal=base + index,
                rva=rva,
                name=names.get(index),
                forwarder=forwarder,
                is_forwarder=is_forwarder,
            )
        )
    return entries
