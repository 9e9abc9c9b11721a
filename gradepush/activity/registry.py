from __future__ import annotations

import typing as t

from sqlalchemy.orm import Session

from gradepush.extension.errors import UnsupportedActivityError
from gradepush.model import ActivityType

if t.TYPE_CHECKING:
    from .base import ActivityStore

TStore = t.TypeVar("TStore", bound="type[ActivityStore]")

_stores: dict[ActivityType, type[ActivityStore]] = {}


def register(cls: TStore) -> TStore:
    """Class decorator: make `cls` the store for its activity type."""
    if cls.activity_type in _stores:
        raise ValueError(f"store already registered for {cls.activity_type.value}")
    _stores[cls.activity_type] = cls
    return cls


def get_store(activity_type: ActivityType, session: Session) -> ActivityStore:
    try:
        cls = _stores[activity_type]
    except KeyError:
        raise UnsupportedActivityError(f"no store registered for {activity_type.value}") from None
    return cls(session)


def registered_types() -> frozenset[ActivityType]:
    return frozenset(_stores)
