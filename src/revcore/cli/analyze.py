"""revcore analyze: run the full pipeline over one PE binary."""

from __future__ import annotations

from pathlib import Path
from typing import Optional

import typer


def analyze_cmd(
    binary: Path = typer.Argument(..., help="Path to a PE binary"),
    strings: bool = typer.Option(False, "--strings", help="Also name string literals as symbols"),
    json_out: Optional[Path] = typer.Option(None, "--json", help="Write the full result as JSON"),
) -> None:
    """Find functions, build the CFG, xrefs and symbols, and scan strings."""
    from revcore.analysis.pipeline import STAGES, run_analysis
    from revcore.analysis.serialization import dumps
    from revcore.analysis.symbols import count_by_type
    from revcore.cli.app import get_context, load_binary
    from revcore.utils.formatters import (
        console,
        fmt_addr,
        print_success,
        print_summary,
        print_warning,
    )
    from revcore.utils.progress import stage_progress

    config = get_context().ensure_config()
    if strings:
        config = config.model_copy(
            update={"symbols": config.symbols.model_copy(update={"include_strings": True})}
        )

    loaded = load_binary(binary)
    console.print(f"[bold]Analyzing:[/bold] {binary}")
    with stage_progress("Analyzing", len(STAGES)) as on_stage:
        result = run_analysis(
            loaded.instructions,
            loaded.data,
            is_64bit=loaded.is_64bit,
            image_base=loaded.image_base,
            entry_address=loaded.entry_point,
            config=config,
            progress=on_stage,
        )

    symbol_counts = count_by_type(result.symbols)
    print_summary(
        loaded.name,
        {
            "sha256": result.sha256,
            "format": "PE32+" if result.is_64bit else "PE32",
            "image base": fmt_addr(result.image_base),
            "entry": fmt_addr(result.entry_address),
            "instructions": len(loaded.instructions),
            "functions": len(result.functions),
            "blocks": result.cfg.total_blocks if result.cfg else 0,
            "xref sources": len(result.xrefs),
            "symbols": ", ".join(f"{k}={v}" for k, v in symbol_counts.items() if v),
            "strings": len(result.strings),
            "stages": f"{result.completed_stages}/{result.total_stages}",
        },
    )
    for stage, error in result.errors.items():
        print_warning(f"{stage} stage failed: {error}")

    if json_out is not None:
        json_out.write_text(dumps(result))
        print_success(f"Wrote {json_out}")
