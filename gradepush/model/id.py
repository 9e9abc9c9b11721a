"""Prefixed random identifiers for the records gradepush owns.

An id reads like `task$K4ZbM6kLx9Vd2Qp7RtGh3W`: a four-letter prefix naming
the record kind, a separator, and a 22-character shortuuid. Only the
shortuuid part is stored in the database.
"""

from __future__ import annotations

import typing as t

import pydantic as p
import pydantic_core.core_schema as core_schema
import shortuuid

KeyLength = 22
Separator = "$"


class PrefixedID(str):
    prefix: t.ClassVar[str]

    def __init_subclass__(cls, prefix: str, **kwargs: t.Any):
        super().__init_subclass__(**kwargs)
        if len(prefix) != 4:
            raise ValueError(f"{cls.__name__}: prefix must be four characters, got {prefix!r}")
        cls.prefix = prefix

    def __new__(cls, value: str | None = None) -> t.Self:
        """Validate `value` as a prefixed id, or generate a fresh one when it is None."""
        if value is None:
            return cls.from_key(shortuuid.uuid())
        head = cls.prefix + Separator
        key = value[len(head) :]
        if not value.startswith(head):
            raise ValueError(f"invalid {cls.__name__} {value!r}: must begin with {head!r}")
        if len(key) != KeyLength:
            raise ValueError(f"invalid {cls.__name__} {value!r}: key must have length {KeyLength}")
        alphabet = shortuuid.get_alphabet()
        if any(c not in alphabet for c in key):
            raise ValueError(f"invalid {cls.__name__} {value!r}: key must comprise only {alphabet}")
        return super().__new__(cls, value)

    @classmethod
    def from_key(cls, key: str) -> t.Self:
        """Wrap a stored key without validating it."""
        return str.__new__(cls, f"{cls.prefix}{Separator}{key}")

    @property
    def key(self) -> str:
        return self[len(self.prefix) + len(Separator) :]

    @classmethod
    def __get_pydantic_core_schema__(cls, src: t.Any, handler: p.GetCoreSchemaHandler) -> core_schema.CoreSchema:
        from_str = core_schema.no_info_after_validator_function(cls, core_schema.str_schema())
        return core_schema.json_or_python_schema(
            json_schema=from_str,
            python_schema=core_schema.union_schema([core_schema.is_instance_schema(cls), from_str]),
            serialization=core_schema.plain_serializer_function_ser_schema(str),
        )

    @classmethod
    def __get_pydantic_json_schema__(cls, src: t.Any, handler: p.GetJsonSchemaHandler) -> p.json_schema.JsonSchemaValue:
        return {"type": "string", "pattern": rf"^{cls.prefix}\{Separator}[0-9A-Za-z]{{{KeyLength}}}$"}

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__} {self.key}>"


# fmt: off
class OverrideRecordID(PrefixedID, prefix="ovrd"): ...
class MessageRecordID(PrefixedID, prefix="qmsg"): ...
class EnrolmentEventID(PrefixedID, prefix="enrl"): ...
class TaskID(PrefixedID, prefix="task"): ...
# fmt: on
