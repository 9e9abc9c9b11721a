from __future__ import annotations

import datetime
import sys
import types
from pathlib import Path

import pydantic as p
from dependency_injector.containers import DeclarativeContainer
from dependency_injector.providers import Configuration, Container, Object, Provider, Resource, Singleton

import gradepush
from gradepush.model import BaseModel, DeploymentEnvironment

from ..config import Secrets, Settings
from ..di import NotReady, register_loader_containers
from ..provider import LoggingProvider, TimestampProvider
from .extension import ExtensionContainer
from .storage import StorageContainer
from .vendor import VendorContainer

# packages whose modules take injections
WiredPackages = ("gradepush.storage", "gradepush.extension")


class BootConfiguration(BaseModel):
    debug: bool
    env: DeploymentEnvironment
    config_root: p.AnyUrl
    secrets_path: p.AnyUrl | None = None
    override: tuple[str, ...]


class GradePushContainer(DeclarativeContainer):
    config: Configuration = Configuration()
    secrets: Configuration = Configuration()

    debug: Provider[bool] = Singleton(bool)
    env: Provider[DeploymentEnvironment] = Singleton(DeploymentEnvironment, DeploymentEnvironment.Local.value)
    root: Object[NotReady | Path] = Object(NotReady())

    logging: Provider[LoggingProvider] = Resource(LoggingProvider, config=config.logging, debug=debug)
    storage: Provider[StorageContainer] = Container(
        StorageContainer, config=config.storage, secrets=secrets, logging=logging, root=root
    )
    vendor: Provider[VendorContainer] = Container(
        VendorContainer, config=config.vendor, queue=config.queue, secrets=secrets
    )
    extension: Provider[ExtensionContainer] = Container(
        ExtensionContainer, config=config.extension, queue=config.queue
    )

    utcnow: Provider[TimestampProvider] = Object(lambda: datetime.datetime.now(datetime.UTC))

    boot_config: Provider[BootConfiguration | NotReady] = Object(NotReady())

    @staticmethod
    def boot(
        ct: GradePushContainer,
        /,
        debug: bool,
        env: DeploymentEnvironment,
        config_root: p.FileUrl,
        secrets_path: p.AnyUrl | None = None,
        override: tuple[str, ...] | None = None,
        wiring: tuple[types.ModuleType, ...] = (),
    ):
        """Load settings and secrets, start logging, and wire every gradepush module loaded so far."""
        if config_root.scheme != "file":
            raise ValueError(f"unsupported scheme for config root: {config_root.scheme}")
        boot_config = BootConfiguration(
            debug=debug, env=env, config_root=config_root, secrets_path=secrets_path, override=override or ()
        )

        settings = Settings(env=env, root=config_root, override=boot_config.override)
        ct.config.from_pydantic(settings)
        ct.secrets.from_pydantic(Secrets(env=env, root=secrets_path or config_root))
        ct.debug.override(debug)
        ct.env.override(env)
        ct.root.override(Path(gradepush.__file__).resolve().parents[1])
        ct.boot_config.override(boot_config)

        logger = ct.logging().get_logger()
        for ov in settings.override:
            k, v = ov.split("=", 1)
            logger.info("overriding configuration parameter", extra={"key": k.strip(), "value": v.strip()})

        ct.wire(packages=list(WiredPackages))
        loaded = [m for name, m in sys.modules.items() if name.startswith("gradepush.") and m is not None]
        ct.wire(modules=[*wiring, *loaded])
        register_loader_containers(ct)

        logger.debug("configuration finished", extra={"env": env.value, "config": str(config_root)})
