"""Command line access to the site conditions service."""

from importlib import import_module
from types import ModuleType


def __getattr__(name: str) -> ModuleType:
    # ``cli.app`` resolves to the module, never the Typer instance, so that
    # ``cli.app.ApiClient`` stays patchable.
    if name == "app":
        return import_module("cli.app")
    raise AttributeError(name)


__all__ = []
