"""Sequential analysis driver: functions, CFG, xrefs, symbols, strings."""

from __future__ import annotations

import hashlib
import time
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from revcore.analysis.cfg import ControlFlowGraph, build_cfg
from revcore.analysis.functions import Function, find_functions
from revcore.analysis.patterns import PatternMatch, find_all_strings
from revcore.analysis.symbols import Symbol, resolve_symbols
from revcore.analysis.xrefs import CrossReference, build_xrefs
from revcore.config.models import RevCoreConfig
from revcore.errors import InvalidInputError
from revcore.extraction.instruction import Instruction
from revcore.utils.logging import binary_context, get_logger
from revcore.utils.progress import StageCallback

log = get_logger(__name__)

STAGES = ("functions", "cfg", "xrefs", "symbols", "strings")


@dataclass(frozen=True)
class AnalysisResult:
    sha256: str
    is_64bit: bool
    image_base: int
    entry_address: int
    functions: list[Function] = field(default_factory=list)
    cfg: ControlFlowGraph | None = None
    xrefs: dict[int, list[CrossReference]] = field(default_factory=dict)
    symbols: dict[int, Symbol] = field(default_factory=dict)
    strings: list[PatternMatch] = field(default_factory=list)
    completed_stages: int = 0
    errors: dict[str, str] = field(default_factory=dict)

    @property
    def total_stages(self) -> int:
        return len(STAGES)

    @property
    def is_complete(self) -> bool:
        return self.completed_stages == len(STAGES) and not self.errors


def run_analysis(
    instructions: Sequence[Instruction],
    binary_bytes: bytes,
    *,
    is_64bit: bool = True,
    image_base: int | None = None,
    entry_address: int | None = None,
    config: RevCoreConfig | None = None,
    progress: StageCallback | None = None,
) -> AnalysisResult:
    """Run every analysis stage over one binary.

    Invalid input (no instructions, no buffer) raises InvalidInputError
    before any stage runs. Any other stage failure is logged, recorded in
    ``errors`` and leaves that stage's output empty; later stages still run.
    """
    if not instructions:
        raise InvalidInputError("Instruction stream cannot be empty.")
    if binary_bytes is None:
        raise InvalidInputError("Byte buffer cannot be None.")

    config = config or RevCoreConfig()
    if image_base is None:
        image_base = config.xrefs.image_base
    entry = _resolve_entry(instructions, entry_address)
    sha256 = hashlib.sha256(binary_bytes).hexdigest()

    fn_cfg = config.functions
    sym_cfg = config.symbols
    pat_cfg = config.patterns
    steps: dict[str, Callable[[], Any]] = {
        "functions": lambda: find_functions(
            instructions,
            include_exports=fn_cfg.include_exports,
            include_imports=fn_cfg.include_imports,
            include_prologues=fn_cfg.include_prologues,
            include_call_graph=fn_cfg.include_call_graph,
            binary_bytes=binary_bytes,
            is_64bit=is_64bit,
            max_cfg_functions=fn_cfg.max_cfg_functions,
        ),
        "cfg": lambda: build_cfg(instructions, entry),
        "xrefs": lambda: build_xrefs(
            instructions,
            image_base=image_base,
            resolve_rip_relative=config.xrefs.resolve_rip_relative,
        ),
        "symbols": lambda: resolve_symbols(
            instructions,
            binary_bytes,
            is_64bit,
            include_imports=sym_cfg.include_imports,
            include_exports=sym_cfg.include_exports,
            include_strings=sym_cfg.include_strings,
            string_min_length=sym_cfg.string_min_length,
            string_skip_prefix=sym_cfg.string_skip_prefix,
        ),
        "strings": lambda: find_all_strings(
            binary_bytes,
            pat_cfg.string_min_length,
            include_wide=pat_cfg.include_wide_strings,
        ),
    }
    empty: dict[str, Any] = {
        "functions": [],
        "cfg": None,
        "xrefs": {},
        "symbols": {},
        "strings": [],
    }

    outputs: dict[str, Any] = {}
    errors: dict[str, str] = {}
    completed = 0
    with binary_context(sha256):
        for stage in STAGES:
            started = time.perf_counter()
            try:
                outputs[stage] = steps[stage]()
            except InvalidInputError:
                raise
            except Exception as exc:
                log.error("analysis_stage_failed", stage=stage, error=str(exc))
                errors[stage] = str(exc)
                outputs[stage] = empty[stage]
            else:
                completed += 1
                log.info(
                    "analysis_stage_complete",
                    stage=stage,
                    items=_count(outputs[stage]),
                    elapsed_ms=round((time.perf_counter() - started) * 1000, 1),
                )
            if progress is not None:
                progress(stage, completed, len(STAGES))

    return AnalysisResult(
        sha256=sha256,
        is_64bit=is_64bit,
        image_base=image_base,
        entry_address=entry,
        functions=outputs["functions"],
        cfg=outputs["cfg"],
        xrefs=outputs["xrefs"],
        symbols=outputs["symbols"],
        strings=outputs["strings"],
        completed_stages=completed,
        errors=errors,
    )


def analyze_file(
    path: Path | str,
    config: RevCoreConfig | None = None,
    progress: StageCallback | None = None,
) -> AnalysisResult:
    """Load a PE from disk and run the full pipeline over it."""
    from revcore.extraction.loader import load_pe

    binary = load_pe(path)
    return run_analysis(
        binary.instructions,
        binary.data,
        is_64bit=binary.is_64bit,
        image_base=binary.image_base,
        entry_address=binary.entry_point,
        config=config,
        progress=progress,
    )


def _resolve_entry(instructions: Sequence[Instruction], entry_address: int | None) -> int:
    first = instructions[0].address
    if entry_address is None:
        return first
    if any(ins.address == entry_address for ins in instructions):
        return entry_address
    log.warning("entry_not_decoded", entry=hex(entry_address), fallback=hex(first))
    return first


def _count(output: Any) -> int:
    if output is None:
        return 0
    if isinstance(output, ControlFlowGraph):
        return output.total_blocks
    return len(output)
