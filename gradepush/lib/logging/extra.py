import logging
import sys
import textwrap
import typing as t

import pygments
from pygments.formatters import Terminal256Formatter
from pygments.lexers.data import JsonLexer  # pyright: ignore [reportMissingTypeStubs]
from pygments.style import Style

from .json import JSONEncoder
from .style import LogStyle

# attributes every LogRecord has, plus those added by formatters
ReservedKeys = frozenset(logging.LogRecord("", 0, "", 0, "", None, None).__dict__) | {
    "asctime",
    "color_message",
    "exception",
    "log_color",
    "message",
}

# identifiers that lead the context so related lines are easy to scan
LeadingKeys = ("message_id", "queue", "source_id", "task_id", "mapping_id", "activity_id", "user_id")


class ExtraFormatter(logging.Formatter):
    """Format with `base`, then append whatever was passed as `extra=` as a JSON object.

    Multi-line messages are indented to line up under the first line. The JSON is
    highlighted with pygments when stderr is a terminal and the base formatter has
    not been told `no_color`.
    """

    def __init__(
        self,
        base: type[logging.Formatter],
        format: str | None,
        datefmt: str | None = None,
        indent: bool = False,
        pyg_style: type[Style] = LogStyle,
        style: t.Literal["%", "{", "$"] = "%",
        validate: bool = True,
        **kwargs: t.Any,
    ):
        self.base = base(format, datefmt=datefmt, style=style, validate=validate, **kwargs)
        self.indent = indent
        self.pyg_style = pyg_style

    def format(self, record: logging.LogRecord) -> str:
        self._align_lines(record)
        message = self.base.format(record)

        context = self.context(record)
        if not context:
            return message
        return f"{message} {self._render(context)}"

    @staticmethod
    def context(record: logging.LogRecord) -> dict[str, t.Any]:
        extra = {k: v for k, v in record.__dict__.items() if k not in ReservedKeys}
        ordered = {k: extra.pop(k) for k in LeadingKeys if k in extra}
        ordered.update(sorted(extra.items()))
        return ordered

    def _align_lines(self, record: logging.LogRecord) -> None:
        msg = record.getMessage()
        if "\n" not in msg:
            return
        first, rest = msg.split("\n", 1)
        prefix = self.base.format(record).split(first, 1)[0]
        record.msg = f"{first}\n{textwrap.indent(rest, ' ' * len(prefix))}"
        record.args = None

    def _render(self, context: dict[str, t.Any]) -> str:
        js = JSONEncoder(indent=4 if self.indent else None).encode(context)
        if getattr(self.base, "no_color", False) or not sys.stderr.isatty():
            return js
        hl = pygments.highlight  # pyright: ignore [reportUnknownMemberType, reportUnknownVariableType]
        return hl(js, JsonLexer(), Terminal256Formatter[str](style=self.pyg_style), None).strip()

    def __getattr__(self, name: str) -> t.Any:
        return getattr(self.base, name)
