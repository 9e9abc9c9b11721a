import typing as t

import pydantic as p
from pydantic_settings import BaseSettings as PydanticBaseSettings

from gradepush.model import BaseModel


class _DictInitMixin(object):
    def __init__(self, cf: dict[str, t.Any] | None = None, **kwargs: t.Any):
        # specifically allow initialization with a dict
        if cf is not None:
            kwargs = {**cf, **kwargs}
        super().__init__(**kwargs)  # pyright: ignore [reportCallIssue]


class BaseSettings(_DictInitMixin, PydanticBaseSettings, BaseModel):  # pyright: ignore [reportIncompatibleVariableOverride]
    model_config = PydanticBaseSettings.model_config | {"extra": "ignore", "env_prefix": "GRADEPUSH_"}

    def model_dump(self, *, by_alias: bool = True, **kwargs: t.Any) -> dict[str, t.Any]:
        # invert default by_alias to True
        return PydanticBaseSettings.model_dump(self, by_alias=by_alias, **kwargs)


class BaseSecrets(_DictInitMixin, PydanticBaseSettings, BaseModel):  # pyright: ignore [reportIncompatibleVariableOverride]
    model_config = PydanticBaseSettings.model_config | {"extra": "ignore", "env_prefix": "GRADEPUSH_"}

    def model_dump(self, *, by_alias: bool = True, **kwargs: t.Any) -> dict[str, t.Any]:
        return PydanticBaseSettings.model_dump(self, by_alias=by_alias, **kwargs)

    def reveal(self, field: str) -> str | None:
        """Return the plain value of a secret field, or None when unset."""
        value = getattr(self, field)
        if isinstance(value, p.Secret):
            return t.cast(str, value.get_secret_value())
        return value
