"""Central logging configuration utilities.

Converge is a library first: adapters and domain code never mutate global
logging, they only emit through `LoggingPort` or module loggers. A host
application (or a script built on `converge.main`) calls `configure_logging`
once to wire separate stdout/stderr sinks and to stamp every record with the
id of the poll session that produced it.

Poll sessions run concurrently on one event loop, so the session id lives in
a contextvar: each asyncio task sees its own value.
"""

from __future__ import annotations

import contextvars
import logging
import sys
from typing import Optional

# Poll session id (set by StatusPoller for the duration of one session)
session_id_var: contextvars.ContextVar[str] = contextvars.ContextVar(
    "poll_session_id", default="-"
)

DEFAULT_FORMAT = "[%(asctime)s] %(levelname)s %(name)s %(session_id)s: %(message)s"


def coerce_level(level: int | str | None) -> int:
    if level is None:
        return logging.INFO
    if isinstance(level, int):
        return level
    key = str(level).upper().strip()
    mapping = logging.getLevelNamesMapping()
    return mapping.get(key, logging.INFO)


class _SessionIdFilter(logging.Filter):
    """Inject poll session id from contextvar into every log record."""

    def filter(self, record: logging.LogRecord) -> bool:  # pragma: no cover - simple
        record.session_id = session_id_var.get()
        return True


class _MaxLevelFilter(logging.Filter):
    def __init__(self, max_level: int):
        super().__init__()
        self.max_level = max_level

    def filter(self, record: logging.LogRecord) -> bool:  # pragma: no cover
        return record.levelno <= self.max_level


class _MinLevelFilter(logging.Filter):
    def __init__(self, min_level: int):
        super().__init__()
        self.min_level = min_level

    def filter(self, record: logging.LogRecord) -> bool:  # pragma: no cover
        return record.levelno >= self.min_level


def configure_logging(
    level: int | str | None = None,
    fmt: Optional[str] = None,
    quiet_botocore: bool = True,
) -> None:
    """Configure root logger with separate stdout/stderr sinks & session id.

    Notes
    -----
    * DEBUG/INFO go to stdout, WARNING and above to stderr.
    * botocore/urllib3 are chatty at DEBUG; they are held at WARNING unless
      `quiet_botocore` is False.
    """
    numeric_level = coerce_level(level)
    fmt = fmt or DEFAULT_FORMAT

    root = logging.getLogger()
    root.setLevel(numeric_level)

    # Clear existing handlers to avoid duplication on repeated calls
    for h in list(root.handlers):
        root.removeHandler(h)

    formatter = logging.Formatter(fmt)
    sid_filter = _SessionIdFilter()

    stdout_handler = logging.StreamHandler(stream=sys.stdout)
    stdout_handler.setLevel(logging.DEBUG)
    stdout_handler.addFilter(_MaxLevelFilter(logging.INFO))
    stdout_handler.addFilter(sid_filter)
    stdout_handler.setFormatter(formatter)

    stderr_handler = logging.StreamHandler(stream=sys.stderr)
    stderr_handler.setLevel(logging.WARNING)
    stderr_handler.addFilter(_MinLevelFilter(logging.WARNING))
    stderr_handler.addFilter(sid_filter)
    stderr_handler.setFormatter(formatter)

    root.addHandler(stdout_handler)
    root.addHandler(stderr_handler)

    if quiet_botocore:
        for name in ("botocore", "boto3", "urllib3"):
            logging.getLogger(name).setLevel(logging.WARNING)

    logging.getLogger("converge").debug(
        "Logging configured level=%s quiet_botocore=%s", numeric_level, quiet_botocore
    )
