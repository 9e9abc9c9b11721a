import logging
import typing as t

# below DEBUG; used for raw queue bodies and API payloads
TRACE = 5


class TraceLogLevelLogger(logging.Logger):
    def trace(self, message: str, *args: t.Any, **kwargs: t.Any) -> None:
        if self.isEnabledFor(TRACE):
            self._log(TRACE, message, args, **kwargs)


def install_trace_level() -> None:
    if logging.getLevelName(TRACE) != "TRACE":
        logging.addLevelName(TRACE, "TRACE")
    if not issubclass(logging.getLoggerClass(), TraceLogLevelLogger):
        logging.setLoggerClass(TraceLogLevelLogger)
