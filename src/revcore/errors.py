"""Exceptions raised across revcore."""

from __future__ import annotations


class InvalidInputError(ValueError):
    """A caller violated an analysis precondition (empty stream, missing buffer)."""
