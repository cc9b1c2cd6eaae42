"""revcore functions / xrefs / symbols: tabular views of single analysis stages."""

from __future__ import annotations

from pathlib import Path
from typing import Optional

import typer

from revcore.analysis.symbols import SymbolType


def functions_cmd(
    binary: Path = typer.Argument(..., help="Path to a PE binary"),
    limit: int = typer.Option(50, "--limit", "-n", help="Max rows to show (0 for all)"),
) -> None:
    """List discovered functions."""
    from revcore.analysis.functions import find_functions
    from revcore.cli.app import get_context, load_binary
    from revcore.utils.formatters import console, fmt_addr, print_table

    cfg = get_context().ensure_config().functions
    loaded = load_binary(binary)
    functions = find_functions(
        loaded.instructions,
        include_exports=cfg.include_exports,
        include_imports=cfg.include_imports,
        include_prologues=cfg.include_prologues,
        include_call_graph=cfg.include_call_graph,
        binary_bytes=loaded.data,
        is_64bit=loaded.is_64bit,
        max_cfg_functions=cfg.max_cfg_functions,
    )

    shown = functions[:limit] if limit > 0 else functions
    rows = [
        {
            "address": fmt_addr(f.address),
            "name": f.name or "",
            "source": f.source.value,
            "instructions": f.instruction_count,
            "blocks": f.cfg.total_blocks if f.cfg else "-",
        }
        for f in shown
    ]
    print_table(rows, title=f"Functions ({len(functions)})")
    if len(shown) < len(functions):
        console.print(f"[dim]{len(functions) - len(shown)} more not shown[/dim]")


def xrefs_cmd(
    binary: Path = typer.Argument(..., help="Path to a PE binary"),
    to: Optional[str] = typer.Option(None, "--to", help="Only references to this address"),
    source: Optional[str] = typer.Option(None, "--from", help="Only references from this address"),
) -> None:
    """List cross-references, optionally filtered by source or target."""
    from revcore.analysis.xrefs import build_xrefs, get_incoming_refs, get_outgoing_refs
    from revcore.cli.app import get_context, load_binary
    from revcore.utils.formatters import fmt_addr, parse_address, print_error, print_table

    cfg = get_context().ensure_config().xrefs
    try:
        to_addr = parse_address(to) if to else None
        from_addr = parse_address(source) if source else None
    except ValueError as exc:
        print_error(f"Invalid address: {exc}")
        raise typer.Exit(1)

    loaded = load_binary(binary)
    xrefs = build_xrefs(
        loaded.instructions,
        image_base=loaded.image_base,
        resolve_rip_relative=cfg.resolve_rip_relative,
    )

    if from_addr is not None:
        refs = get_outgoing_refs(from_addr, xrefs)
    elif to_addr is not None:
        refs = get_incoming_refs(to_addr, xrefs)
    else:
        refs = [ref for src in sorted(xrefs) for ref in xrefs[src]]
    if from_addr is not None and to_addr is not None:
        refs = [ref for ref in refs if ref.target_address == to_addr]

    rows = [
        {
            "source": fmt_addr(ref.source_address),
            "target": fmt_addr(ref.target_address),
            "type": ref.ref_type.value,
            "instruction": ref.description or "",
        }
        for ref in refs
    ]
    print_table(rows, title=f"Cross-references ({len(rows)})")


def symbols_cmd(
    binary: Path = typer.Argument(..., help="Path to a PE binary"),
    symbol_type: Optional[SymbolType] = typer.Option(
        None, "--type", "-t", case_sensitive=False, help="Only symbols of this type"
    ),
) -> None:
    """List resolved symbols (imports, exports, functions, strings)."""
    from revcore.analysis.symbols import resolve_symbols, symbols_by_type
    from revcore.cli.app import get_context, load_binary
    from revcore.utils.formatters import fmt_addr, print_table

    cfg = get_context().ensure_config().symbols
    loaded = load_binary(binary)
    symbols = resolve_symbols(
        loaded.instructions,
        loaded.data,
        loaded.is_64bit,
        include_imports=cfg.include_imports,
        include_exports=cfg.include_exports,
        include_strings=cfg.include_strings or symbol_type is SymbolType.STRING,
        string_min_length=cfg.string_min_length,
        string_skip_prefix=cfg.string_skip_prefix,
    )

    if symbol_type is None:
        selected = [symbols[a] for a in sorted(symbols)]
    else:
        selected = symbols_by_type(symbols, symbol_type)
    rows = [
        {
            "address": fmt_addr(s.address),
            "name": s.name,
            "type": s.symbol_type.value,
            "size": s.size,
            "dll": s.source_dll or "",
        }
        for s in selected
    ]
    print_table(rows, title=f"Symbols ({len(rows)})")
