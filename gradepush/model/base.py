import datetime
import typing as t

import pydantic as p


class BaseModel(p.BaseModel):
    """Base for domain models; dumps by alias unless told otherwise."""

    def model_dump(self, *, by_alias: bool | None = True, **kwargs: t.Any) -> dict[str, t.Any]:
        return super().model_dump(by_alias=by_alias, **kwargs)

    def model_dump_json(self, *, by_alias: bool | None = True, **kwargs: t.Any) -> str:
        return super().model_dump_json(by_alias=by_alias, **kwargs)


class WithCtime(BaseModel):
    create_time: datetime.datetime


class WithMtime(BaseModel):
    update_time: datetime.datetime


class WithTimestamps(WithCtime, WithMtime): ...
