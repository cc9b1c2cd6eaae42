"""Tests for configuration loading."""

import pytest
import yaml
from pydantic import ValidationError

from revcore.config.loader import _interpolate_env, find_config_file, load_config
from revcore.config.models import RevCoreConfig


def test_default_config():
    config = RevCoreConfig()
    assert config.xrefs.image_base == 0x140000000
    assert config.xrefs.resolve_rip_relative is False
    assert config.functions.max_cfg_functions is None
    assert config.symbols.include_strings is False
    assert config.symbols.string_skip_prefix == 0x1000
    assert config.patterns.nop_min_length == 4
    assert config.logging.level == "INFO"


def test_env_interpolation(monkeypatch):
    monkeypatch.setenv("TEST_VAR_RC", "hello")
    assert _interpolate_env("${TEST_VAR_RC}") == "hello"


def test_env_interpolation_default():
    assert _interpolate_env("${NONEXISTENT_VAR_RC:fallback}") == "fallback"


def test_env_interpolation_missing():
    assert _interpolate_env("${NONEXISTENT_VAR_RC}") == ""


def test_load_config_from_file(tmp_path, monkeypatch):
    monkeypatch.setenv("RC_LOG_LEVEL", "DEBUG")
    path = tmp_path / "revcore.yaml"
    path.write_text(
        yaml.dump(
            {
                "xrefs": {"image_base": "0x400000", "resolve_rip_relative": True},
                "functions": {"max_cfg_functions": 100},
                "logging": {"level": "${RC_LOG_LEVEL:INFO}"},
            }
        )
    )

    config = load_config(path)
    assert config.xrefs.image_base == 0x400000
    assert config.xrefs.resolve_rip_relative is True
    assert config.functions.max_cfg_functions == 100
    assert config.logging.level == "DEBUG"
    # Defaults preserved
    assert config.symbols.include_imports is True


def test_load_config_missing_file():
    assert load_config("/nonexistent/path.yaml") == RevCoreConfig()


def test_empty_file_gives_defaults(tmp_path):
    path = tmp_path / "revcore.yaml"
    path.write_text("")
    assert load_config(path) == RevCoreConfig()


def test_find_config_file_explicit(tmp_path):
    path = tmp_path / "custom.yml"
    path.write_text("{}")
    assert find_config_file(path) == path
    assert find_config_file(tmp_path / "missing.yml") is None


def test_validation():
    with pytest.raises(ValidationError):
        RevCoreConfig(functions={"max_cfg_functions": -1})
    with pytest.raises(ValidationError):
        RevCoreConfig(patterns={"nop_min_length": 0})
