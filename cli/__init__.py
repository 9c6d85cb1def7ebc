"""Command-line client for the sensor analytics service."""

from importlib import import_module
from types import ModuleType


def __getattr__(name: str) -> ModuleType:
    if name == "app":
        return import_module("cli.app")
    raise AttributeError(name)

# The Typer instance stays on ``cli.app`` (the module) so tests can patch
# ``cli.app.ApiClient`` without the package attribute shadowing it.

__all__ = []
