import datetime
import logging.config
import sys
import typing as t

from .logging import install_trace_level, TraceLogLevelLogger

TimestampProvider = t.Callable[..., datetime.datetime]


class LoggingProvider(object):
    """Applies the logging dictConfig and hands out loggers that have `trace()`."""

    def __init__(self, config: dict[str, t.Any], debug: bool):
        install_trace_level()
        logging.config.dictConfig(config)
        logging.captureWarnings(debug)

    @staticmethod
    def get_logger(name: str | None = None, *, n_frames: int = 1) -> TraceLogLevelLogger:
        """Return the logger called `name`, or the one for the calling module."""
        install_trace_level()
        if name is None:
            name = sys._getframe(n_frames).f_globals["__name__"]  # pyright: ignore [reportPrivateUsage]
        return t.cast(TraceLogLevelLogger, logging.getLogger(name))
