"""Tests for structlog setup."""

import logging

import pytest
import structlog

from revcore.analysis.pipeline import STAGES, run_analysis
from revcore.utils.logging import binary_context, get_logger, setup_logging


@pytest.fixture(autouse=True)
def restore_root_logger():
    root = logging.getLogger()
    handlers, level = list(root.handlers), root.level
    yield
    root.handlers[:] = handlers
    root.setLevel(level)


def test_setup_sets_root_level():
    setup_logging(level="DEBUG")
    assert logging.getLogger().level == logging.DEBUG
    setup_logging(level="warning")
    assert logging.getLogger().level == logging.WARNING


def test_unknown_level_falls_back_to_info():
    setup_logging(level="CHATTY")
    assert logging.getLogger().level == logging.INFO


def test_binary_context_tags_events(capsys):
    setup_logging(level="INFO", json_output=True)
    logger = get_logger("revcore.test.ctx")
    with binary_context("ab" * 32):
        logger.info("inside")
    logger.info("outside")
    inside, outside = capsys.readouterr().err.strip().splitlines()
    assert '"binary": "abababababababab"' in inside
    assert '"binary"' not in outside


def test_pipeline_binds_binary_hash(two_function_stream, kernel32_pe):
    seen = []

    def on_stage(stage, completed, total):
        seen.append(structlog.contextvars.get_contextvars().get("binary"))

    result = run_analysis(two_function_stream, kernel32_pe, progress=on_stage)
    assert seen == [result.sha256[:16]] * len(STAGES)
    assert "binary" not in structlog.contextvars.get_contextvars()


def test_json_output(capsys):
    setup_logging(level="INFO", json_output=True)
    get_logger("revcore.test").info("stage_done", stage="cfg")
    err = capsys.readouterr().err
    assert '"event": "stage_done"' in err
    assert '"stage": "cfg"' in err
