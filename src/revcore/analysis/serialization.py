"""Plain-dict and JSON round trips for analysis results.

Address-keyed maps use ``0x``-prefixed hex strings as keys so the output is
valid JSON; addresses inside records stay integers.
"""

from __future__ import annotations

import json
from typing import Any

from revcore.analysis.cfg import BasicBlock, ControlFlowGraph
from revcore.analysis.functions import Function, FunctionSource
from revcore.analysis.patterns import PatternMatch
from revcore.analysis.pipeline import AnalysisResult
from revcore.analysis.symbols import Symbol, SymbolType
from revcore.analysis.xrefs import CrossReference, RefType


def _key(address: int) -> str:
    return hex(address)


def _address(key: str) -> int:
    return int(key, 16)


# -- CFG ---------------------------------------------------------------------


def block_to_dict(block: BasicBlock) -> dict[str, Any]:
    return {
        "start_address": block.start_address,
        "end_address": block.end_address,
        "start_instruction_index": block.start_instruction_index,
        "end_instruction_index": block.end_instruction_index,
        "successors": list(block.successors),
        "predecessors": list(block.predecessors),
        "is_entry": block.is_entry,
        "is_exit": block.is_exit,
    }


def block_from_dict(data: dict[str, Any]) -> BasicBlock:
    return BasicBlock(
        start_address=data["start_address"],
        end_address=data["end_address"],
        start_instruction_index=data["start_instruction_index"],
        end_instruction_index=data["end_instruction_index"],
        successors=tuple(data.get("successors", ())),
        predecessors=tuple(data.get("predecessors", ())),
        is_entry=data.get("is_entry", False),
        is_exit=data.get("is_exit", False),
    )


def cfg_to_dict(cfg: ControlFlowGraph) -> dict[str, Any]:
    return {
        "entry_points": list(cfg.entry_points),
        "blocks": {_key(addr): block_to_dict(block) for addr, block in cfg.blocks.items()},
    }


def cfg_from_dict(data: dict[str, Any]) -> ControlFlowGraph:
    return ControlFlowGraph(
        blocks={_address(k): block_from_dict(v) for k, v in data.get("blocks", {}).items()},
        entry_points=tuple(data.get("entry_points", ())),
    )


# -- functions ---------------------------------------------------------------


def function_to_dict(function: Function) -> dict[str, Any]:
    return {
        "address": function.address,
        "name": function.name,
        "source": function.source.value,
        "instruction_count": function.instruction_count,
        "is_imported": function.is_imported,
        "is_exported": function.is_exported,
        "is_entry_point": function.is_entry_point,
        "cfg": cfg_to_dict(function.cfg) if function.cfg is not None else None,
    }


def function_from_dict(data: dict[str, Any]) -> Function:
    cfg = data.get("cfg")
    return Function(
        address=data["address"],
        source=FunctionSource(data["source"]),
        name=data.get("name"),
        instruction_count=data.get("instruction_count", 0),
        is_imported=data.get("is_imported", False),
        is_exported=data.get("is_exported", False),
        is_entry_point=data.get("is_entry_point", False),
        cfg=cfg_from_dict(cfg) if cfg is not None else None,
    )


# -- xrefs -------------------------------------------------------------------


def xrefs_to_dict(xrefs: dict[int, list[CrossReference]]) -> dict[str, list[dict[str, Any]]]:
    return {
        _key(source): [
            {
                "source_address": ref.source_address,
                "target_address": ref.target_address,
                "ref_type": ref.ref_type.value,
                "description": ref.description,
            }
            for ref in refs
        ]
        for source, refs in xrefs.items()
    }


def xrefs_from_dict(data: dict[str, list[dict[str, Any]]]) -> dict[int, list[CrossReference]]:
    return {
        _address(source): [
            CrossReference(
                source_address=ref["source_address"],
                target_address=ref["target_address"],
                ref_type=RefType(ref["ref_type"]),
                description=ref.get("description"),
            )
            for ref in refs
        ]
        for source, refs in data.items()
    }


# -- symbols -----------------------------------------------------------------


def symbols_to_dict(symbols: dict[int, Symbol]) -> dict[str, dict[str, Any]]:
    return {
        _key(address): {
            "address": s.address,
            "name": s.name,
            "symbol_type": s.symbol_type.value,
            "section": s.section,
            "size": s.size,
            "is_imported": s.is_imported,
            "is_exported": s.is_exported,
            "source_dll": s.source_dll,
            "annotation": s.annotation,
        }
        for address, s in symbols.items()
    }


def symbols_from_dict(data: dict[str, dict[str, Any]]) -> dict[int, Symbol]:
    return {
        _address(key): Symbol(
            address=s["address"],
            name=s["name"],
            symbol_type=SymbolType(s["symbol_type"]),
            section=s.get("section"),
            size=s.get("size", 0),
            is_imported=s.get("is_imported", False),
            is_exported=s.get("is_exported", False),
            source_dll=s.get("source_dll"),
            annotation=s.get("annotation"),
        )
        for key, s in data.items()
    }


# -- pattern matches ---------------------------------------------------------


def matches_to_list(matches: list[PatternMatch]) -> list[dict[str, Any]]:
    return [
        {
            "address": m.address,
            "offset": m.offset,
            "matched_bytes": m.matched_bytes.hex(),
            "description": m.description,
            "text": m.text,
        }
        for m in matches
    ]


def matches_from_list(data: list[dict[str, Any]]) -> list[PatternMatch]:
    return [
        PatternMatch(
            address=m["address"],
            offset=m["offset"],
            matched_bytes=bytes.fromhex(m.get("matched_bytes", "")),
            description=m.get("description"),
            text=m.get("text"),
        )
        for m in data
    ]


# -- whole result ------------------------------------------------------------


def result_to_dict(result: AnalysisResult) -> dict[str, Any]:
    return {
        "sha256": result.sha256,
        "is_64bit": result.is_64bit,
        "image_base": result.image_base,
        "entry_address": result.entry_address,
        "functions": [function_to_dict(f) for f in result.functions],
        "cfg": cfg_to_dict(result.cfg) if result.cfg is not None else None,
        "xrefs": xrefs_to_dict(result.xrefs),
        "symbols": symbols_to_dict(result.symbols),
        "strings": matches_to_list(result.strings),
        "completed_stages": result.completed_stages,
        "errors": dict(result.errors),
    }


def result_from_dict(data: dict[str, Any]) -> AnalysisResult:
    cfg = data.get("cfg")
    return AnalysisResult(
        sha256=data["sha256"],
        is_64bit=data["is_64bit"],
        image_base=data["image_base"],
        entry_address=data["entry_address"],
        functions=[function_from_dict(f) for f in data.get("functions", [])],
        cfg=cfg_from_dict(cfg) if cfg is not None else None,
        xrefs=xrefs_from_dict(data.get("xrefs", {})),
        symbols=symbols_from_dict(data.get("symbols", {})),
        strings=matches_from_list(data.get("strings", [])),
        completed_stages=data.get("completed_stages", 0),
        errors=dict(data.get("errors", {})),
    )


def dumps(result: AnalysisResult, indent: int | None = 2) -> str:
    return json.dumps(result_to_dict(result), indent=indent)


def loads(text: str) -> AnalysisResult:
    return result_from_dict(json.loads(text))
