import logging
from converge.core.interfaces.logging import LoggingPort
from converge.core.logging_config import coerce_level


class LoggingAdapter(LoggingPort):
    """Concrete logging adapter.

    Delegates to Python's logging. It does NOT add its own handlers so that
    `configure_logging` (or the host application) controls sinks. The poll
    session id is injected by the root handler filter; we simply emit.
    """

    def __init__(self, name: str = "converge", log_level: int | str = logging.INFO):
        self.logger = logging.getLogger(name)
        self.logger.setLevel(coerce_level(log_level))
        # Library logs bubble up to whatever handlers the host installed
        self.logger.propagate = True
        self.logger.debug("Initialized logger name=%s level=%s", name, self.logger.level)

    def info(self, msg: str, *args):
        self.logger.info(msg, *args)

    def warning(self, msg: str, *args):
        self.logger.warning(msg, *args)

    def error(self, msg: str, *args):
        self.logger.error(msg, *args)

    def debug(self, msg: str, *args):
        self.logger.debug(msg, *args)
