"""RevCore: structural analysis engine for decoded x86/x64 instruction streams."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

from revcore.version import __version__

if TYPE_CHECKING:
    from revcore.config.models import RevCoreConfig


@dataclass
class RevCoreContext:
    """Lazily-loaded state shared across CLI commands."""

    config: RevCoreConfig | None = None
    config_path: str | None = None

    def ensure_config(self) -> RevCoreConfig:
        if self.config is None:
            from revcore.config.loader import load_config

            self.config = load_config(self.config_path)
        return self.config


__all__ = ["RevCoreContext", "__version__"]
