__all__ = [
    "ExtensionSettings",
    "LoggingSettings",
    "QueueSettings",
    "SITSSettings",
    "Secrets",
    "Settings",
]


from .extension import ExtensionSettings
from .logging import LoggingSettings
from .queue import QueueSettings
from .secrets import Secrets
from .settings import Settings
from .vendor import SITSSettings
