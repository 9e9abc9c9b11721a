from __future__ import annotations

import enum
import pathlib
import re
import typing as t

import click
import pydantic as p
from click import *  # noqa: F401, F403 # pyright: ignore [reportWildcardImportFromLibrary]

# Command modules import this module as `click`: the stock API is re-exported
# and the parameter types below sit alongside it.

ComponentIdentifierPattern = re.compile(r"^(?P<map_code>[A-Z0-9]+)-(?P<mab_seq>[A-Z0-9]+)$")


class EnumType(click.ParamType):
    """Accept the values of an enum, converting to its members."""

    def __init__(self, enum: type[enum.Enum], *, extra: t.Sequence[str] = ()):
        self.enum = enum
        self.extra = tuple(extra)
        self.name = enum.__name__

    @property
    def values(self) -> list[str]:
        return [*(str(e.value) for e in self.enum), *self.extra]

    def get_metavar(self, param: click.Parameter, *args: t.Any) -> str:
        return f"[{'|'.join(self.values)}]"

    def convert(
        self, value: str | enum.Enum | None, param: click.Parameter | None, ctx: click.Context | None
    ) -> enum.Enum | str | None:
        if value is None or isinstance(value, self.enum):
            return value
        if value in self.extra:
            return value
        try:
            return self.enum(value)
        except ValueError:
            self.fail(f"{value!r} is not one of {', '.join(self.values)}", param, ctx)

    def __repr__(self) -> str:
        return self.name


class ComponentIdentifierType(click.ParamType):
    """An assessment component identifier such as `LAWS0024A6UF-001`, upper-cased."""

    name = "MAPCODE-SEQ"

    def convert(self, value: t.Any, param: click.Parameter | None, ctx: click.Context | None) -> str:
        identifier = str(value).strip().upper()
        if ComponentIdentifierPattern.match(identifier) is None:
            self.fail(f"{value!r} is not a component identifier like LAWS0024A6UF-001", param, ctx)
        return identifier


class URIParamType(click.ParamType):
    """
    Accept a URI, or a filesystem path which is promoted to a `file://` URI.

    Arguments:

        - `dir_ok`: (default `False`) a `file://` URI may name a directory
        - `file_exists`: (default `True`) a `file://` URI must name something
          that exists
    """

    name = "URI OR PATH"

    def __init__(self, dir_ok: bool = False, file_exists: bool = True):
        self.dir_ok = dir_ok
        self.file_exists = file_exists

    def convert(
        self, value: str | pathlib.Path | p.AnyUrl | None, param: click.Parameter | None, ctx: click.Context | None
    ) -> p.AnyUrl | None:
        if value is None or isinstance(value, p.AnyUrl):
            return value

        if isinstance(value, str) and "://" in value:
            u = p.AnyUrl(value)
            if u.scheme != "file":
                return u
            path = pathlib.Path(u.path or "")
        else:
            path = pathlib.Path(value)

        path = path.absolute()
        if self.file_exists and not path.exists():
            self.fail(f"{value}: no such file or directory", param, ctx)
        if path.is_dir() and not self.dir_ok:
            self.fail(f"{value}: is a directory", param, ctx)
        return p.FileUrl(path.as_uri())
