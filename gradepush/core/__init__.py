__all__ = [
    "BootConfiguration",
    "di",
    "GradePushContainer",
    "LoggingProvider",
    "Settings",
    "Secrets",
    "TimestampProvider",
]


from . import di
from .config import Secrets, Settings
from .container import BootConfiguration, GradePushContainer
from .provider import LoggingProvider, TimestampProvider
