import typing as t

from gradepush.lib.json import JSONEncoder as BaseJSONEncoder
from gradepush.lib.json import JSONValue

# queue bodies and roster payloads can be large
MaxStringLength = 512


class JSONEncoder(BaseJSONEncoder):
    """Encoder for log context: long strings are clipped and unknown objects become their repr()."""

    def iterencode(self, o: t.Any, _one_shot: bool = False) -> t.Iterator[str]:
        return super().iterencode(clip(o), _one_shot)

    def default(self, o: t.Any) -> JSONValue:
        try:
            return super().default(o)
        except TypeError:
            return repr(o)


def clip(value: t.Any) -> t.Any:
    if isinstance(value, str) and len(value) > MaxStringLength:
        return f"{value[:MaxStringLength]}... ({len(value)} chars)"
    if isinstance(value, dict):
        return {k: clip(v) for k, v in t.cast(dict[t.Any, t.Any], value).items()}
    if isinstance(value, (list, tuple)):
        return [clip(v) for v in t.cast(t.Iterable[t.Any], value)]
    return value
