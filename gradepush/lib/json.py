"""JSON helpers used for JSONB columns and log context.

Queue payloads, provision snapshots and task payloads carry datetimes, enums and
pydantic models; `dumps` knows how to write those, `loads` is plain `json.loads`.
"""

from __future__ import annotations

import datetime
import decimal
import enum
import functools
import json as pyjson
import typing as t

import pydantic as p

JSONPrimitive = str | int | float | bool | None
JSONValue = JSONPrimitive | list["JSONValue"] | dict[str, "JSONValue"]


@functools.singledispatch
def encode(obj: t.Any) -> JSONValue:
    raise TypeError(f"{type(obj).__name__} is not JSON serializable")


@encode.register
def _(obj: datetime.date) -> str:
    # covers datetime too
    return obj.isoformat()


@encode.register
def _(obj: datetime.timedelta) -> float:
    return obj.total_seconds()


@encode.register
def _(obj: decimal.Decimal) -> str:
    return str(obj)


@encode.register
def _(obj: enum.Enum) -> JSONValue:
    return obj.value


@encode.register(set)
@encode.register(frozenset)
def _(obj: t.AbstractSet[t.Any]) -> list[t.Any]:
    return sorted(obj, key=str)


@encode.register
def _(obj: p.BaseModel) -> dict[str, JSONValue]:
    return obj.model_dump(mode="json")


class JSONEncoder(pyjson.JSONEncoder):
    def default(self, o: t.Any) -> JSONValue:
        return encode(o)


def dumps(obj: t.Any, *, cls: type[pyjson.JSONEncoder] = JSONEncoder, **kwargs: t.Any) -> str:
    return pyjson.dumps(obj, cls=cls, **kwargs)


def loads(s: str | bytes | bytearray, **kwargs: t.Any) -> t.Any:
    return pyjson.loads(s, **kwargs)
