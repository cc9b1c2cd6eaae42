"""Root Typer application with subcommand registration."""

from __future__ import annotations

from pathlib import Path
from typing import TYPE_CHECKING, Optional

import typer

from revcore import RevCoreContext, __version__

if TYPE_CHECKING:
    from revcore.extraction.loader import LoadedBinary

app = typer.Typer(
    name="revcore",
    help="RevCore: CFG, xref, function, symbol and pattern analysis for PE binaries",
    no_args_is_help=True,
    rich_markup_mode="rich",
)

# Shared state across commands
_ctx = RevCoreContext()


def get_context() -> RevCoreContext:
    return _ctx


def load_binary(path: Path) -> LoadedBinary:
    """Load *path* as a PE, or print the problem and exit 1."""
    from revcore.errors import InvalidInputError
    from revcore.extraction.loader import load_pe
    from revcore.utils.formatters import print_error

    try:
        binary = load_pe(path)
    except InvalidInputError as exc:
        print_error(str(exc))
        raise typer.Exit(1)
    if not binary.instructions:
        print_error(f"No executable code decoded from {path}")
        raise typer.Exit(1)
    return binary


def _version_callback(value: bool) -> None:
    if value:
        typer.echo(f"revcore {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    config: Optional[str] = typer.Option(None, "--config", "-C", help="Path to revcore.yaml"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable verbose logging"),
    version: Optional[bool] = typer.Option(
        None, "--version", "-V", callback=_version_callback, is_eager=True
    ),
) -> None:
    """RevCore: structural analysis of x86/x64 PE binaries."""
    from revcore.config.loader import load_config
    from revcore.utils.logging import setup_logging

    _ctx.config_path = config
    _ctx.config = load_config(config)
    log_cfg = _ctx.config.logging
    setup_logging(level="DEBUG" if verbose else log_cfg.level, json_output=log_cfg.json_output)


# -- Subcommand registration --
from revcore.cli.analyze import analyze_cmd  # noqa: E402
from revcore.cli.listing import functions_cmd, symbols_cmd, xrefs_cmd  # noqa: E402
from revcore.cli.search import search_cmd, strings_cmd  # noqa: E402

app.command(name="analyze")(analyze_cmd)
app.command(name="functions")(functions_cmd)
app.command(name="xrefs")(xrefs_cmd)
app.command(name="symbols")(symbols_cmd)
app.command(name="strings")(strings_cmd)
app.command(name="search")(search_cmd)
