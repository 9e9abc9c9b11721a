from __future__ import annotations

import typing as t

import annotated_types as ant
import pydantic as p

from .base import BaseSettings


class QueueEndpointSettings(BaseSettings):
    url: p.AnyUrl | None = None


class QueueSettings(BaseSettings):
    """Polling parameters for the accommodation and extenuating-circumstance queues."""

    region: str = "eu-west-2"
    endpoint_url: p.AnyUrl | None = None
    raa: QueueEndpointSettings = QueueEndpointSettings()
    ec: QueueEndpointSettings = QueueEndpointSettings()

    max_messages: t.Annotated[int, ant.Ge(1), ant.Le(10)] = 10
    visibility_timeout: int = 60
    wait_time_seconds: t.Annotated[int, ant.Ge(0), ant.Le(20)] = 5

    max_batches: int = 30
    max_messages_to_process: int = 300
    max_execution_time: int = 1800
    max_attempts: int = 2
    delay_seconds: t.Annotated[int, ant.Ge(0)] = 0
