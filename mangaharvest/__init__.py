"""Compatibility shim exposing the CLI and, lazily, the FastAPI app factory."""

from __future__ import annotations

from importlib import import_module
from typing import Any

from harvest.cli import app as cli

__all__ = ["cli", "create_app"]


def __getattr__(name: str) -> Any:
    if name == "create_app":
        return getattr(import_module("harvest.main"), name)
    raise AttributeError(f"module 'mangaharvest' has no attribute {name}")
