"""revcore strings / search: byte-level scans of the raw file."""

from __future__ import annotations

from pathlib import Path
from typing import Optional

import typer


def _read(binary: Path) -> bytes:
    from revcore.utils.formatters import print_error

    if not binary.is_file():
        print_error(f"File not found: {binary}")
        raise typer.Exit(1)
    return binary.read_bytes()


def strings_cmd(
    binary: Path = typer.Argument(..., help="Path to any binary file"),
    min_length: Optional[int] = typer.Option(None, "--min-length", "-m", min=1, help="Minimum run length"),
    wide: Optional[bool] = typer.Option(None, "--wide/--no-wide", help="Include UTF-16 strings"),
) -> None:
    """Extract ASCII (and wide) strings with their file offsets."""
    from revcore.analysis.patterns import find_all_strings
    from revcore.cli.app import get_context
    from revcore.utils.formatters import fmt_addr, print_table

    cfg = get_context().ensure_config().patterns
    data = _read(binary)
    matches = find_all_strings(
        data,
        min_length if min_length is not None else cfg.string_min_length,
        include_wide=cfg.include_wide_strings if wide is None else wide,
    )
    rows = [
        {
            "offset": fmt_addr(m.offset),
            "kind": "wide" if (m.description or "").startswith("Wide") else "ascii",
            "text": m.text,
        }
        for m in matches
    ]
    print_table(rows, title=f"Strings ({len(rows)})")


def search_cmd(
    binary: Path = typer.Argument(..., help="Path to any binary file"),
    pattern: str = typer.Argument(..., help='Hex byte pattern, e.g. "48 83 EC ??"'),
    nops: bool = typer.Option(False, "--nops", help="Also report NOP sleds"),
) -> None:
    """Search the raw file for a byte signature with ?? wildcards."""
    from revcore.analysis.patterns import find_byte_pattern, find_nop_sleds, parse_byte_pattern
    from revcore.cli.app import get_context
    from revcore.utils.formatters import fmt_addr, print_error, print_table

    if parse_byte_pattern(pattern) is None:
        print_error(f"Invalid byte pattern: {pattern!r}")
        raise typer.Exit(1)

    data = _read(binary)
    matches = find_byte_pattern(data, pattern, pattern)
    if nops:
        matches.extend(find_nop_sleds(data, get_context().ensure_config().patterns.nop_min_length))
        matches.sort(key=lambda m: m.offset)

    rows = [
        {
            "offset": fmt_addr(m.offset),
            "bytes": m.matched_bytes.hex(" "),
            "match": m.description or "",
        }
        for m in matches
    ]
    print_table(rows, title=f"Matches ({len(rows)})")
