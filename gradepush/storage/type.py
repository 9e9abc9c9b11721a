import datetime
import enum
import typing as t

from sqlalchemy.engine import Dialect
from sqlalchemy.sql.type_api import TypeDecorator
from sqlalchemy.types import DateTime, Enum, String

from gradepush.model.id import KeyLength, PrefixedID


class PrefixedIDType(TypeDecorator[PrefixedID]):
    """Store only the shortuuid part of a prefixed id; the column type implies the prefix."""

    impl = String
    cache_ok = True

    def __init__(self, id_type: type[PrefixedID]):
        self.id_type = id_type
        super().__init__(KeyLength)

    def process_bind_param(self, value: PrefixedID | str | None, dialect: Dialect) -> str | None:
        if value is None:
            return None
        return self.id_type(value).key

    def process_result_value(self, value: str | None, dialect: Dialect) -> PrefixedID | None:
        return self.id_type.from_key(value) if value is not None else None


class UTCDateTime(TypeDecorator[datetime.datetime]):
    """Timezone-aware UTC timestamps, including on backends that store naive values."""

    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(self, value: datetime.datetime | None, dialect: Dialect) -> datetime.datetime | None:
        if value is None:
            return value
        if value.tzinfo is None:
            raise ValueError(f"naive datetime not allowed: {value!r}")
        value = value.astimezone(datetime.UTC)
        if dialect.name == "sqlite":
            return value.replace(tzinfo=None)
        return value

    def process_result_value(self, value: datetime.datetime | None, dialect: Dialect) -> datetime.datetime | None:
        if value is None:
            return value
        if value.tzinfo is None:
            return value.replace(tzinfo=datetime.UTC)
        return value.astimezone(datetime.UTC)


class ValueEnumMapper(object):
    @staticmethod
    def values_callable(en: type[enum.Enum]) -> tuple[t.Any]:
        return tuple(e.value for e in en)

    def _resolve_for_python_type(
        self, python_type: type[t.Any], matched_on: t.Any, matched_on_flattened: t.Any
    ) -> Enum | None:
        return Enum(python_type, values_callable=self.values_callable)
