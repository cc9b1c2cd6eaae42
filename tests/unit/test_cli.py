"""Tests for CLI commands and flags."""

from typer.testing import CliRunner

from revcore.analysis.serialization import loads
from revcore.cli.app import app

runner = CliRunner()
WIDE = {"COLUMNS": "200"}


def test_version_flag():
    result = runner.invoke(app, ["--version"])
    assert result.exit_code == 0
    assert "revcore" in result.output


def test_help_shows_all_commands():
    result = runner.invoke(app, ["--help"], env=WIDE)
    assert result.exit_code == 0
    for cmd in ["analyze", "functions", "xrefs", "symbols", "strings", "search"]:
        assert cmd in result.output


def test_analyze_writes_json(sample_pe_path, tmp_path):
    out = tmp_path / "result.json"
    result = runner.invoke(app, ["analyze", str(sample_pe_path), "--json", str(out)], env=WIDE)
    assert result.exit_code == 0, result.output
    assert "5/5" in result.output

    loaded = loads(out.read_text())
    assert loaded.is_complete
    assert loaded.entry_address == 0x140001000
    assert len(loaded.sha256) == 64


def test_functions(sample_pe_path):
    result = runner.invoke(app, ["functions", str(sample_pe_path)], env=WIDE)
    assert result.exit_code == 0, result.output
    assert "_entry" in result.output
    assert "ExitProcess" in result.output


def test_symbols_filtered_by_type(sample_pe_path):
    result = runner.invoke(app, ["symbols", str(sample_pe_path), "--type", "IMPORT"], env=WIDE)
    assert result.exit_code == 0, result.output
    assert "ExitProcess" in result.output
    assert "KERNEL32.DLL" in result.output
    assert "Start" not in result.output


def test_xrefs_from_address(sample_pe_path):
    result = runner.invoke(app, ["xrefs", str(sample_pe_path), "--from", "0x140001008"], env=WIDE)
    assert result.exit_code == 0, result.output
    assert "0x14000100D" in result.output
    assert "call" in result.output


def test_xrefs_invalid_address(sample_pe_path):
    result = runner.invoke(app, ["xrefs", str(sample_pe_path), "--to", "zzz"])
    assert result.exit_code == 1


def test_strings(sample_pe_path):
    result = runner.invoke(app, ["strings", str(sample_pe_path), "--no-wide"], env=WIDE)
    assert result.exit_code == 0, result.output
    assert "ExitProcess" in result.output


def test_search(sample_pe_path):
    result = runner.invoke(app, ["search", str(sample_pe_path), "55 48 89 E5"], env=WIDE)
    assert result.exit_code == 0, result.output
    assert "0x200" in result.output
    assert "Matches (1)" in result.output


def test_search_invalid_pattern(sample_pe_path):
    result = runner.invoke(app, ["search", str(sample_pe_path), "GG"])
    assert result.exit_code == 1


def test_missing_file(tmp_path):
    result = runner.invoke(app, ["functions", str(tmp_path / "missing.exe")])
    assert result.exit_code == 1


def test_not_a_pe(tmp_path):
    path = tmp_path / "notes.txt"
    path.write_text("plain text, not an executable")
    result = runner.invoke(app, ["analyze", str(path)])
    assert result.exit_code == 1
