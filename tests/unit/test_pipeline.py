"""Tests for the sequential analysis driver."""

from unittest.mock import MagicMock, patch

import pytest

from revcore.analysis.pipeline import STAGES, analyze_file, run_analysis
from revcore.analysis.symbols import SymbolType
from revcore.config.models import RevCoreConfig
from revcore.errors import InvalidInputError


def test_all_stages_complete(two_function_stream, kernel32_pe):
    result = run_analysis(two_function_stream, kernel32_pe, is_64bit=True, image_base=0x140000000)

    assert result.completed_stages == len(STAGES)
    assert result.errors == {}
    assert result.is_complete
    assert result.entry_address == 0x1000
    assert result.cfg.entry_points == (0x1000,)
    assert {f.address for f in result.functions} >= {0x1000, 0x1020}
    assert 0x1008 in result.xrefs
    assert any(s.symbol_type is SymbolType.IMPORT for s in result.symbols.values())
    assert any(m.text == "KERNEL32.DLL" for m in result.strings)
    assert len(result.sha256) == 64


def test_stage_failure_is_recorded(two_function_stream, kernel32_pe):
    with patch("revcore.analysis.pipeline.build_xrefs", side_effect=RuntimeError("xref crash")):
        result = run_analysis(two_function_stream, kernel32_pe)

    assert result.errors == {"xrefs": "xref crash"}
    assert result.xrefs == {}
    assert result.completed_stages == len(STAGES) - 1
    assert not result.is_complete
    # Later stages still ran.
    assert result.symbols


def test_invalid_input_is_raised(two_function_stream):
    with pytest.raises(InvalidInputError):
        run_analysis([], b"")
    with pytest.raises(InvalidInputError):
        run_analysis(two_function_stream, None)


def test_progress_callback(two_function_stream, kernel32_pe):
    progress = MagicMock()
    run_analysis(two_function_stream, kernel32_pe, progress=progress)
    assert progress.call_count == len(STAGES)
    progress.assert_called_with("strings", len(STAGES), len(STAGES))


def test_unknown_entry_falls_back_to_first_instruction(two_function_stream, kernel32_pe):
    result = run_analysis(two_function_stream, kernel32_pe, entry_address=0xDEAD)
    assert result.entry_address == 0x1000


def test_entry_address_used(two_function_stream, kernel32_pe):
    result = run_analysis(two_function_stream, kernel32_pe, entry_address=0x1020)
    assert result.cfg.entry_points == (0x1020,)


def test_config_is_honoured(two_function_stream, kernel32_pe):
    config = RevCoreConfig.model_validate(
        {
            "functions": {"include_prologues": False, "include_imports": False},
            "patterns": {"string_min_length": 64},
        }
    )
    result = run_analysis(two_function_stream, kernel32_pe, config=config)
    assert [f.address for f in result.functions] == [0x1000, 0x1020]
    assert result.strings == []


def test_image_base_defaults_to_config(two_function_stream, kernel32_pe):
    result = run_analysis(two_function_stream, kernel32_pe)
    assert result.image_base == 0x140000000


def test_deterministic(two_function_stream, kernel32_pe):
    assert run_analysis(two_function_stream, kernel32_pe) == run_analysis(two_function_stream, kernel32_pe)


def test_analyze_file(sample_pe_path):
    result = analyze_file(sample_pe_path)
    assert result.is_complete
    assert result.entry_address == 0x140001000
    names = {s.name for s in result.symbols.values()}
    assert {"ExitProcess", "GetLastError", "Start"} <= names
    assert result.cfg.total_blocks >= 1
