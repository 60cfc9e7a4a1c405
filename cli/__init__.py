"""CLI package for interacting with the bucketed telemetry service."""

from importlib import import_module
from types import ModuleType


def __getattr__(name: str) -> ModuleType:
    if name == "app":
        return import_module("cli.app")
    raise AttributeError(name)

# The Typer application lives in ``cli.app``; the package root does not
# re-export it, so ``cli.app`` keeps resolving to the module and tests can
# patch attributes such as ``cli.app.ApiClient``.

__all__ = []
