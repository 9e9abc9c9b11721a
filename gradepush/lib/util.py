import typing as t
from collections.abc import Mapping

KT = t.TypeVar("KT")
VT = t.TypeVar("VT")
RecursiveMapping = VT | Mapping[KT, "RecursiveMapping[KT, VT]"]


def deep_update(
    d1: dict[KT, RecursiveMapping[KT, VT]], d2: Mapping[KT, RecursiveMapping[KT, VT]]
) -> dict[KT, RecursiveMapping[KT, VT]]:
    result = d1.copy()
    for k, v in d2.items():
        if isinstance(v, Mapping) and k in result and isinstance(result[k], Mapping):
            result[k] = deep_update(result[k], v)  # type: ignore
        else:
            result[k] = v
    return result


def dig(d: t.Any, *path: str, default: t.Any = None) -> t.Any:
    """Walk nested mappings, returning default as soon as a step is missing."""
    for key in path:
        if not isinstance(d, Mapping) or key not in d:
            return default
        d = t.cast(Mapping[str, t.Any], d)[key]
    return d

