"""dependency-injector glue: a typed `inject` and wiring of modules as they are imported."""

from __future__ import annotations

__all__ = [
    "Container",
    "NotReady",
    "Provider",
    "Provide",
    "inject",
    "providers",
    "containers",
    "register_loader_containers",
]

import importlib
import importlib.abc
import importlib.machinery
import sys
import types
import typing as t

import dependency_injector.containers as containers
import dependency_injector.providers as providers
import dependency_injector.wiring as wiring
from dependency_injector.containers import Container
from dependency_injector.providers import Provider
from dependency_injector.wiring import Provide

P = t.ParamSpec("P")
TReturn = t.TypeVar("TReturn")


def inject(fn: t.Callable[P, TReturn]) -> t.Callable[P, TReturn]:
    return t.cast(t.Callable[P, TReturn], wiring.inject(fn))


class NotReady(object):
    """Placeholder for container values that are only known after boot."""

    _instance: t.ClassVar[NotReady | None] = None

    def __new__(cls) -> NotReady:
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self):
        return "<NotReady>"


class WiringImporter(object):
    """Wire containers into modules as they are imported.

    Containers are registered against package prefixes; a module is wired into
    every container whose prefix it falls under.
    """

    def __init__(self) -> None:
        self.registry: list[tuple[str, Container]] = []
        self.path_hook: t.Callable[[str], importlib.abc.PathEntryFinder] | None = None

    def register(self, container: Container, packages: t.Sequence[str]) -> None:
        for package in packages:
            if (package, container) not in self.registry:
                self.registry.append((package, container))
        self.install()

    def wire(self, module: types.ModuleType) -> None:
        for package, container in self.registry:
            if module.__name__ == package or module.__name__.startswith(f"{package}."):
                container.wire(modules=[module])

    def _loader(self, base: type[importlib.machinery.FileLoader]) -> type[importlib.machinery.FileLoader]:
        importer = self

        class WiringLoader(base):  # pyright: ignore [reportGeneralTypeIssues]
            def exec_module(self, module: types.ModuleType) -> None:
                super().exec_module(module)
                importer.wire(module)

        return WiringLoader

    def install(self) -> None:
        if self.path_hook is not None:
            return
        self.path_hook = importlib.machinery.FileFinder.path_hook(
            (importlib.machinery.ExtensionFileLoader, importlib.machinery.EXTENSION_SUFFIXES),
            (self._loader(importlib.machinery.SourceFileLoader), importlib.machinery.SOURCE_SUFFIXES),
            (self._loader(importlib.machinery.SourcelessFileLoader), importlib.machinery.BYTECODE_SUFFIXES),
        )
        sys.path_hooks.insert(0, self.path_hook)
        sys.path_importer_cache.clear()
        importlib.invalidate_caches()


_importer = WiringImporter()


def register_loader_containers(*containers: Container, packages: t.Sequence[str] = ("gradepush",)) -> None:
    """Wire `containers` into modules under `packages` imported from now on."""
    for container in containers:
        _importer.register(container, packages)
