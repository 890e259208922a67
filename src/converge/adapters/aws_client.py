"""Shared plumbing for boto3-backed RemoteResourceClient adapters.

boto3 clients are blocking; every call is dispatched with `asyncio.to_thread`
so concurrent poll sessions keep sharing one event loop. Throttled calls are
retried through the injected RetryPort; every other API failure surfaces as a
TransportError (or is interpreted as absence by the caller).
"""

from __future__ import annotations

import asyncio
from typing import Any, Callable, Optional

from botocore.exceptions import BotoCoreError, ClientError

from converge.core.exceptions import ThrottlingError, TransportError
from converge.core.interfaces.resource_client import RemoteResourceClient
from converge.core.interfaces.retry import RetryPort
from converge.core.settings import logger

THROTTLING_ERROR_CODES = frozenset(
    {
        "Throttling",
        "ThrottlingException",
        "ThrottledException",
        "RequestThrottledException",
        "TooManyRequestsException",
        "RequestLimitExceeded",
        "SlowDown",
    }
)


def error_code(exc: BaseException) -> Optional[str]:
    """Return the AWS error code of a botocore ClientError, else None."""
    if isinstance(exc, ClientError):
        return exc.response.get("Error", {}).get("Code")
    return None


def error_message(exc: BaseException) -> str:
    if isinstance(exc, ClientError):
        return exc.response.get("Error", {}).get("Message") or str(exc)
    return str(exc)


class BotoResourceClient(RemoteResourceClient):
    """Base adapter holding the boto3 client, retry port and poll defaults."""

    def __init__(
        self,
        client: Any,
        retry: Optional[RetryPort] = None,
        poll_interval: float = 5.0,
        not_found_checks: int = 20,
    ) -> None:
        self._client = client
        self._retry = retry
        self.poll_interval = poll_interval
        # Absence tolerated right after create/update (eventual consistency)
        self.not_found_checks = not_found_checks

    async def _call(self, operation: str, **params: Any) -> dict:
        """Invoke one boto3 operation, retrying only throttled attempts."""
        return await self._dispatch(operation, getattr(self._client, operation), **params)

    async def _paginate(self, operation: str, **params: Any) -> list[dict]:
        """Collect every page of a paginated boto3 operation.

        A throttled page restarts the whole listing on retry.
        """

        def collect() -> list[dict]:
            paginator = self._client.get_paginator(operation)
            return list(paginator.paginate(**params))

        return await self._dispatch(operation, collect)

    async def _dispatch(self, operation: str, func: Callable[..., Any], **params: Any) -> Any:
        async def invoke() -> Any:
            try:
                return await asyncio.to_thread(func, **params)
            except ClientError as exc:
                code = error_code(exc)
                if code in THROTTLING_ERROR_CODES:
                    logger.debug(f"[aws:{operation}] throttled code={code}")
                    raise ThrottlingError(
                        f"{operation}: {error_message(exc)}", operation=operation, error_code=code
                    ) from exc
                raise

        if self._retry is not None:
            return await self._retry.execute(invoke, exception_types=(ThrottlingError,))
        return await invoke()

    def _transport_error(
        self,
        action: str,
        exc: Exception,
        operation: str,
        resource_id: Optional[str] = None,
    ) -> TransportError:
        target = f" ({resource_id})" if resource_id else ""
        return TransportError(
            f"{action} {self.resource_name}{target}: {error_message(exc)}",
            operation=operation,
            error_code=error_code(exc),
            resource_id=resource_id,
        )


# Exceptions an adapter turns into TransportError after inspecting error codes
API_ERRORS = (ClientError, BotoCoreError)
