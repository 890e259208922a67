import logging
from typing import Any, Awaitable, Callable, Sequence, Type

from tenacity import (
    AsyncRetrying,
    before_sleep_log,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from converge.core.exceptions import ThrottlingError

_log = logging.getLogger("converge.retry")


class TenacityRetryAdapter:
    """Tenacity-based retry adapter implementing RetryPort.

    Exponential backoff for throttled AWS calls. Call-time kwargs can override
    default policy parameters (attempts, wait_initial, wait_max, exception_types).
    """

    def __init__(
        self,
        attempts: int = 4,
        wait_initial: float = 0.5,
        wait_max: float = 8.0,
        exception_types: Sequence[Type[Exception]] = (ThrottlingError,),
    ) -> None:
        self.attempts = attempts
        self.wait_initial = wait_initial
        self.wait_max = wait_max
        self.exception_types = tuple(exception_types)

    @classmethod
    def from_app_settings(cls, settings) -> "TenacityRetryAdapter":
        return cls(
            attempts=settings.CONVERGE_TRANSPORT_RETRY_ATTEMPTS,
            wait_initial=settings.CONVERGE_TRANSPORT_RETRY_WAIT_INITIAL,
            wait_max=settings.CONVERGE_TRANSPORT_RETRY_WAIT_MAX,
        )

    async def execute(self, func: Callable[..., Awaitable[Any]], *args, **kwargs) -> Any:
        attempts = kwargs.pop("attempts", self.attempts)
        wait_initial = kwargs.pop("wait_initial", self.wait_initial)
        wait_max = kwargs.pop("wait_max", self.wait_max)
        exception_types = tuple(kwargs.pop("exception_types", self.exception_types))

        retrying = AsyncRetrying(
            stop=stop_after_attempt(attempts),
            wait=wait_exponential(multiplier=wait_initial, max=wait_max),
            retry=retry_if_exception_type(exception_types),
            before_sleep=before_sleep_log(_log, logging.WARNING),
            reraise=True,
        )
        async for attempt in retrying:  # pragma: no cover - control flow instrumentation
            with attempt:
                return await func(*args, **kwargs)
