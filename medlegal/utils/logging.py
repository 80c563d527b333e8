"""Logger factory shared by every module.

Call sites pass structured context through ``extra=``; ``ContextFormatter``
appends those fields to the line as ``key=value`` pairs so stage failures
can be traced by document id.
"""

import json
import logging
import sys
from typing import Optional

# Attributes every LogRecord carries; anything else came from ``extra=``
_RESERVED_ATTRS = set(vars(logging.makeLogRecord({}))) | {"message", "asctime", "taskName"}

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(funcName)s:%(lineno)d - %(message)s"


class ContextFormatter(logging.Formatter):
    """Formatter that renders ``extra`` fields after the message."""

    def format(self, record: logging.LogRecord) -> str:
        line = super().format(record)
        context = {
            key: value for key, value in vars(record).items()
            if key not in _RESERVED_ATTRS and not key.startswith("_")
        }
        if not context:
            return line
        rendered = " ".join(f"{key}={json.dumps(value, default=str)}" for key, value in context.items())
        return f"{line} | {rendered}"


def get_logger(name: str, level: Optional[str] = None) -> logging.Logger:
    """Return the named logger, attaching a stdout handler on first use.

    Args:
        name: Logger name, usually the calling module's ``__name__``
        level: Level name such as ``DEBUG``; defaults to ``INFO``
    """
    logger = logging.getLogger(name)
    numeric_level = getattr(logging, (level or "INFO").upper())
    logger.setLevel(numeric_level)

    if not logger.handlers:
        handler = logging.StreamHandler(sys.stdout)
        handler.setLevel(numeric_level)
        handler.setFormatter(ContextFormatter(fmt=LOG_FORMAT, datefmt="%Y-%m-%d %H:%M:%S"))
        logger.addHandler(handler)

    return logger
