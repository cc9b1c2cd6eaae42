"""Default configuration values and search paths."""

from __future__ import annotations

from pathlib import Path

CONFIG_FILE_NAMES = [
    "revcore.yaml",
    "revcore.yml",
    ".revcore.yaml",
    ".revcore.yml",
]

CONFIG_SEARCH_PATHS = [
    Path.cwd(),
    Path.home() / ".config" / "revcore",
    Path.home(),
]

DEFAULT_IMAGE_BASE = 0x140000000  # typical x64 PE image base
DEFAULT_MIN_STRING_LENGTH = 4
DEFAULT_NOP_SLED_LENGTH = 4
# Strings found in the first page are usually header bytes.
DEFAULT_STRING_SKIP_PREFIX = 0x1000
MAX_FUNCTION_SIZE = 0x10000
