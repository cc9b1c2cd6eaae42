"""Symbol table assembly from PE tables, discovered functions and strings."""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass, replace
from enum import Enum

from revcore.analysis.functions import calculate_function_size, find_functions
from revcore.analysis.patterns import find_strings
from revcore.config.defaults import DEFAULT_MIN_STRING_LENGTH, DEFAULT_STRING_SKIP_PREFIX
from revcore.errors import InvalidInputError
from revcore.extraction.instruction import Instruction
from revcore.extraction.pe_reader import PEHeaders, parse_headers, read_exports, read_imports
from revcore.utils.logging import get_logger

log = get_logger(__name__)

SymbolMap = dict[int, "Symbol"]


class SymbolType(str, Enum):
    FUNCTION = "function"
    DATA = "data"
    IMPORT = "import"
    EXPORT = "export"
    STRING = "string"


@dataclass(frozen=True)
class Symbol:
    address: int
    name: str
    symbol_type: SymbolType
    section: str | None = None
    size: int = 0
    is_imported: bool = False
    is_exported: bool = False
    source_dll: str | None = None
    annotation: str | None = None

    def __str__(self) -> str:
        return f"Symbol @ {self.address:#x}: {self.name} ({self.symbol_type.value})"


def resolve_symbols(
    instructions: Sequence[Instruction],
    binary_bytes: bytes | None,
    is_64bit: bool = True,
    include_imports: bool = True,
    include_exports: bool = True,
    include_strings: bool = False,
    *,
    string_min_length: int = DEFAULT_MIN_STRING_LENGTH,
    string_skip_prefix: int = DEFAULT_STRING_SKIP_PREFIX,
) -> SymbolMap:
    """Collect symbols keyed by address.

    Sources are applied in order (imports, exports, discovered functions,
    strings) and an address keeps whichever symbol claimed it first. A
    malformed or non-PE buffer contributes no import or export symbols.
    """
    if binary_bytes is None:
        raise InvalidInputError("Byte buffer cannot be None.")
    if not instructions:
        raise InvalidInputError("Instruction stream cannot be empty.")

    symbols: SymbolMap = {}
    headers = parse_headers(binary_bytes, expect_64bit=is_64bit)
    if headers is None:
        log.debug("pe_headers_unavailable", size=len(binary_bytes))

    if include_imports and headers is not None:
        _add_imports(binary_bytes, headers, is_64bit, symbols)
    if include_exports and headers is not None:
        _add_exports(binary_bytes, headers, symbols)
    _add_functions(instructions, symbols)
    if include_strings:
        _add_strings(binary_bytes, string_min_length, string_skip_prefix, symbols)

    log.debug("symbols_resolved", count=len(symbols), **count_by_type(symbols))
    return symbols


def _claim(symbols: SymbolMap, symbol: Symbol) -> None:
    symbols.setdefault(symbol.address, symbol)


def _section_name(headers: PEHeaders, rva: int) -> str | None:
    section = headers.section_for_rva(rva)
    return section.name if section else None


def _add_imports(data: bytes, headers: PEHeaders, is_64bit: bool, symbols: SymbolMap) -> None:
    for entry in read_imports(data, is_64bit, headers):
        _claim(
            symbols,
            Symbol(
                address=entry.address,
                name=entry.display_name,
                symbol_type=SymbolType.IMPORT,
                section=_section_name(headers, entry.iat_rva),
                size=8 if is_64bit else 4,
                is_imported=True,
                source_dll=entry.dll,
            ),
        )


def _add_exports(data: bytes, headers: PEHeaders, symbols: SymbolMap) -> None:
    for entry in read_exports(data, headers):
        if entry.is_forwarder:
            continue
        _claim(
            symbols,
            Symbol(
                address=headers.image_base + entry.rva,
                name=entry.display_name,
                symbol_type=SymbolType.EXPORT,
                section=_section_name(headers, entry.rva),
                is_exported=True,
            ),
        )


def _add_functions(instructions: Sequence[Instruction], symbols: SymbolMap) -> None:
    # Call-graph discovery stays off here, and CFGs are not needed for naming.
    functions = find_functions(
        instructions,
        include_exports=False,
        include_imports=False,
        include_call_graph=False,
        max_cfg_functions=0,
    )
    for function in functions:
        _claim(
            symbols,
            Symbol(
                address=function.address,
                name=function.name or f"sub_{function.address:X}",
                symbol_type=SymbolType.FUNCTION,
                size=calculate_function_size(instructions, function.address),
            ),
        )


def _add_strings(data: bytes, min_length: int, skip_prefix: int, symbols: SymbolMap) -> None:
    for match in find_strings(data, min_length):
        # The first page is headers; strings there are noise.
        if match.offset < skip_prefix:
            continue
        _claim(
            symbols,
            Symbol(
                address=match.offset,
                name=f"str_{match.offset:X}",
                symbol_type=SymbolType.STRING,
                size=match.length,
            ),
        )


def get_symbol_name(address: int, symbols: Mapping[int, Symbol]) -> str | None:
    symbol = symbols.get(address)
    return symbol.name if symbol else None


def find_symbol_by_name(name: str, symbols: Mapping[int, Symbol]) -> Symbol | None:
    """First symbol whose name matches *name*, ignoring case."""
    wanted = name.casefold()
    for symbol in symbols.values():
        if symbol.name.casefold() == wanted:
            return symbol
    return None


def symbols_by_type(symbols: Mapping[int, Symbol], symbol_type: SymbolType) -> list[Symbol]:
    return sorted(
        (s for s in symbols.values() if s.symbol_type is symbol_type),
        key=lambda s: s.address,
    )


def count_by_type(symbols: Mapping[int, Symbol]) -> dict[str, int]:
    counts = {t.value: 0 for t in SymbolType}
    for symbol in symbols.values():
        counts[symbol.symbol_type.value] += 1
    return counts


def annotate(symbols: Mapping[int, Symbol], address: int, note: str, name: str | None = None) -> SymbolMap:
    """Return a copy of *symbols* with a user note (and optional rename) at *address*.

    An address with no symbol gets a new ``Data`` symbol.
    """
    updated = dict(symbols)
    existing = updated.get(address)
    if existing is None:
        updated[address] = Symbol(
            address=address,
            name=name or f"data_{address:X}",
            symbol_type=SymbolType.DATA,
            annotation=note,
        )
    else:
        updated[address] = replace(existing, annotation=note, name=name or existing.name)
    return updated


def remove_annotation(symbols: Mapping[int, Symbol], address: int) -> SymbolMap:
    updated = dict(symbols)
    existing = updated.get(address)
    if existing is not None and existing.annotation is not None:
        updated[address] = replace(existing, annotation=None)
    return updated
