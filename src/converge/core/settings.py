# Logging adapter for library-wide logging
from converge.adapters.logging_adapter import LoggingAdapter

from pydantic import field_validator
from pydantic_settings import BaseSettings
from rich import print

from converge.core.interfaces.logging import LoggingPort

# using pydantic_settings to manage environment variables
# and do automatic type casting in a central place
class ConvergeSettings(BaseSettings):
    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "case_sensitive": True,
        "extra": "ignore"
    }
    CONVERGE_LOG_LEVEL: str = "INFO"
    CONVERGE_AWS_REGION: str | None = None
    CONVERGE_AWS_PROFILE: str | None = None
    # Seconds between two refresh calls of one poll session
    CONVERGE_POLL_INTERVAL: float = 5.0
    # Consecutive "not found" observations tolerated right after a mutating call
    CONVERGE_NOT_FOUND_CHECKS: int = 20
    CONVERGE_CREATE_TIMEOUT: float = 30 * 60  # seconds
    CONVERGE_UPDATE_TIMEOUT: float = 30 * 60  # seconds
    CONVERGE_DELETE_TIMEOUT: float = 30 * 60  # seconds
    # Transport retries for throttled AWS calls (never applied to status polling)
    CONVERGE_TRANSPORT_RETRY_ATTEMPTS: int = 4
    CONVERGE_TRANSPORT_RETRY_WAIT_INITIAL: float = 0.5
    CONVERGE_TRANSPORT_RETRY_WAIT_MAX: float = 8.0

    def print_settings(self, logger: LoggingPort):
        """Prints the settings for debugging purposes"""
        logger.debug("Converge Settings:")
        print(self)

    @field_validator("CONVERGE_LOG_LEVEL", mode="before")
    def normalize_log_level(cls, value: str) -> str:
        """Accept lower case level names from the environment."""
        return str(value).upper().strip()


app_settings = ConvergeSettings()

logger: LoggingPort = LoggingAdapter("converge", app_settings.CONVERGE_LOG_LEVEL)


if app_settings.CONVERGE_LOG_LEVEL == "DEBUG":
    app_settings.print_settings(logger)
