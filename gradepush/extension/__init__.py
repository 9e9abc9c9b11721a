__all__ = [
    "ActivityNotFoundError",
    "ExtensionError",
    "MalformedEventError",
    "ProvisionConflictError",
    "ScanAlreadyQueuedError",
    "StudentNotFoundError",
    "UnsupportedActivityError",
]

from .errors import ActivityNotFoundError, ExtensionError, MalformedEventError, ProvisionConflictError, \
    ScanAlreadyQueuedError, StudentNotFoundError, UnsupportedActivityError
