"""Pydantic configuration models."""

from __future__ import annotations

from pydantic import BaseModel, Field

from revcore.config.defaults import (
    DEFAULT_IMAGE_BASE,
    DEFAULT_MIN_STRING_LENGTH,
    DEFAULT_NOP_SLED_LENGTH,
    DEFAULT_STRING_SKIP_PREFIX,
)


class FunctionsConfig(BaseModel):
    include_exports: bool = True
    include_imports: bool = True
    include_prologues: bool = True
    include_call_graph: bool = True
    # None attaches a CFG to every discovered function.
    max_cfg_functions: int | None = Field(default=None, ge=0)


class XRefsConfig(BaseModel):
    image_base: int = DEFAULT_IMAGE_BASE
    resolve_rip_relative: bool = False


class SymbolsConfig(BaseModel):
    include_imports: bool = True
    include_exports: bool = True
    include_strings: bool = False
    string_min_length: int = Field(default=DEFAULT_MIN_STRING_LENGTH, ge=1)
    string_skip_prefix: int = Field(default=DEFAULT_STRING_SKIP_PREFIX, ge=0)


class PatternsConfig(BaseModel):
    nop_min_length: int = Field(default=DEFAULT_NOP_SLED_LENGTH, ge=1)
    string_min_length: int = Field(default=DEFAULT_MIN_STRING_LENGTH, ge=1)
    include_wide_strings: bool = True


class LoggingConfig(BaseModel):
    level: str = "INFO"
    json_output: bool = False


class RevCoreConfig(BaseModel):
    functions: FunctionsConfig = Field(default_factory=FunctionsConfig)
    xrefs: XRefsConfig = Field(default_factory=XRefsConfig)
    symbols: SymbolsConfig = Field(default_factory=SymbolsConfig)
    patterns: PatternsConfig = Field(default_factory=PatternsConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)
