__all__ = ["BootConfiguration", "GradePushContainer"]

from .gradepush import BootConfiguration, GradePushContainer
