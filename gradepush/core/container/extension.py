from __future__ import annotations

from dependency_injector.containers import DeclarativeContainer
from dependency_injector.providers import Configuration, Provider, Singleton

from ..config.extension import ExtensionSettings
from ..config.queue import QueueSettings


class ExtensionContainer(DeclarativeContainer):
    config: Configuration = Configuration()
    queue: Configuration = Configuration()

    settings: Provider[ExtensionSettings] = Singleton(ExtensionSettings, cf=config)
    queue_settings: Provider[QueueSettings] = Singleton(QueueSettings, cf=queue)
