import pathlib
import typing as t

import pydantic as p

from .base import BaseSettings

# logging level names, plus TRACE from gradepush.core.logging
LogLevel = t.Literal["NOTSET", "TRACE", "DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]


class FormatterSettings(BaseSettings):
    """An `ExtraFormatter` wrapping a colorlog formatter named by `base`."""

    factory: t.Literal["gradepush.lib.logging.ExtraFormatter"] = p.Field(alias="()")
    base: str = "ext://colorlog.ColoredFormatter"
    format: str
    datefmt: str | None = None
    log_colors: dict[str, str] = {}
    no_color: bool = False
    indent: bool | None = None


class StreamHandlerSettings(BaseSettings):
    handler: t.Literal["colorlog.StreamHandler"] = p.Field(alias="class")
    formatter: str
    level: LogLevel
    stream: str = "ext://sys.stderr"


class WatchedFileHandlerSettings(BaseSettings):
    """For queue workers run from cron, with the file rotated by logrotate."""

    handler: t.Literal["logging.handlers.WatchedFileHandler"] = p.Field(alias="class")
    formatter: str
    level: LogLevel
    filename: pathlib.Path

    @p.field_serializer("filename")
    def serialize_filename(self, v: pathlib.Path) -> str:
        return str(v)


HandlerSettings = t.Annotated[StreamHandlerSettings | WatchedFileHandlerSettings, p.Field(discriminator="handler")]


class LoggerSettings(BaseSettings):
    level: LogLevel = "NOTSET"
    propagate: bool = True
    handlers: list[str] | None = None


class LoggingSettings(BaseSettings):
    """A `logging.config.dictConfig` document."""

    version: t.Literal[1]
    disable_existing_loggers: bool = False
    formatters: dict[str, FormatterSettings]
    handlers: dict[str, HandlerSettings]
    root: LoggerSettings
    loggers: dict[str, LoggerSettings] = {}

    @p.model_validator(mode="after")
    def check_references(self) -> t.Self:
        for name, handler in self.handlers.items():
            if handler.formatter not in self.formatters:
                raise ValueError(f"handler {name!r} uses unknown formatter {handler.formatter!r}")
        for logger in [self.root, *self.loggers.values()]:
            for name in logger.handlers or []:
                if name not in self.handlers:
                    raise ValueError(f"unknown handler {name!r}")
        return self
