"""StatusPoller: drives one poll session until the remote status converges.

A single parameterized state machine serves create, update and delete waits;
the operation is described entirely by its `PollSpec`:

    Pending -> Pending    status in pending set, deadline not exceeded
    Pending -> Succeeded  status in target set, or absence reached the
                          not-found threshold while the target set is empty
    Pending -> Failed     status in neither set, or transport error
    Pending -> NotFound   absence reached the threshold, target set non-empty
    Pending -> TimedOut   deadline exceeded

The poller is purely observational: it never issues mutating calls and never
retries a failed refresh. Each session owns its not-found counter and last
snapshot, so any number of sessions may run concurrently on one loop.
"""

from __future__ import annotations

import asyncio
import uuid
from typing import Awaitable, Callable, Optional

from converge.core.config import PollSpec
from converge.core.exceptions import (
    ConvergeError,
    PartialFailureDiagnostic,
    PollTimeoutError,
    ResourceNotFoundError,
    TerminalStatusError,
    TransportError,
)
from converge.core.interfaces.refresh import RefreshFunc
from converge.core.logging_config import session_id_var
from converge.core.models.resource import PollOutcome, PollResult, RemoteResource
from converge.core.settings import logger

Clock = Callable[[], float]
Sleep = Callable[[float], Awaitable[None]]


class _DeadlineExceeded(Exception):
    """Internal signal: the session deadline expired during a refresh call."""


class StatusPoller:
    """Poll-until-converged loop.

    Args:
        clock: Monotonic clock in seconds (defaults to the event loop clock)
        sleep: Async sleep function (defaults to asyncio.sleep)
    """

    def __init__(self, clock: Optional[Clock] = None, sleep: Optional[Sleep] = None) -> None:
        self._clock = clock
        self._sleep = sleep or asyncio.sleep

    async def poll(self, spec: PollSpec, refresh: RefreshFunc) -> PollOutcome:
        """Run one poll session and return its single terminal outcome."""
        token = session_id_var.set(uuid.uuid4().hex[:8])
        try:
            return await self._run(spec, refresh)
        finally:
            session_id_var.reset(token)

    async def wait(
        self,
        spec: PollSpec,
        refresh: RefreshFunc,
        resource_id: Optional[str] = None,
    ) -> Optional[RemoteResource]:
        """Run one poll session and raise for every non-success outcome.

        Returns the converged resource, or None when the session waited for
        absence. Attached sub-errors of a converged resource are logged as a
        warning, not raised.
        """
        outcome = await self.poll(spec, refresh)
        error = outcome_error(outcome, spec, resource_id)
        if error is not None:
            raise error

        diagnostic = partial_failure(outcome)
        if diagnostic is not None:
            logger.warning(
                f"[poll] converged with attached errors resource_id={diagnostic.resource_id} errors={diagnostic}"
            )
        return outcome.resource

    async def _run(self, spec: PollSpec, refresh: RefreshFunc) -> PollOutcome:
        clock = self._clock or asyncio.get_running_loop().time
        started = clock()
        deadline = started + spec.timeout
        last: Optional[RemoteResource] = None
        not_found = 0
        attempts = 0

        def finish(
            result: PollResult,
            resource: Optional[RemoteResource] = None,
            cause: Optional[ConvergeError] = None,
        ) -> PollOutcome:
            outcome = PollOutcome(
                result=result,
                resource=resource,
                cause=cause,
                diagnostics=list(resource.errors) if resource else [],
                attempts=attempts,
                elapsed=clock() - started,
            )
            logger.debug(
                f"[poll] finished result={outcome.result} attempts={outcome.attempts} elapsed={outcome.elapsed:.2f}s"
            )
            return outcome

        logger.debug(
            f"[poll] start pending={sorted(spec.pending)} target={sorted(spec.target)} "
            f"interval={spec.interval}s timeout={spec.timeout}s not_found_checks={spec.not_found_checks}"
        )

        if spec.delay:
            await self._sleep(min(spec.delay, spec.timeout))

        while True:
            remaining = deadline - clock()
            if remaining <= 0:
                logger.warning(
                    f"[poll] deadline exceeded after {attempts} attempts last_status={last.status if last else None}"
                )
                return finish(PollResult.timed_out, last)

            attempts += 1
            try:
                resource = await self._refresh(refresh, remaining)
            except _DeadlineExceeded:
                logger.warning(f"[poll] deadline exceeded during refresh attempt={attempts}")
                return finish(PollResult.timed_out, last)
            except Exception as exc:
                logger.debug(f"[poll] refresh error attempt={attempts} err={exc!r}")
                return finish(PollResult.failed, last, _as_transport_error(exc))

            if resource is None:
                not_found += 1
                if not_found >= spec.not_found_checks:
                    if spec.waits_for_absence:
                        return finish(PollResult.succeeded)
                    return finish(PollResult.not_found)
                logger.debug(
                    f"[poll] resource absent check={not_found}/{spec.not_found_checks}"
                )
            else:
                not_found = 0
                last = resource
                if resource.status in spec.target:
                    return finish(PollResult.succeeded, resource)
                if resource.status not in spec.pending:
                    diagnostic = partial_failure_of(resource)
                    error = TerminalStatusError(
                        resource.status,
                        expected=spec.target,
                        diagnostic=str(diagnostic) if diagnostic else None,
                        resource_id=resource.id,
                    )
                    return finish(PollResult.failed, resource, error)
                logger.debug(
                    f"[poll] pending status={resource.status} resource_id={resource.id} attempt={attempts}"
                )

            remaining = deadline - clock()
            if remaining > 0:
                await self._sleep(min(spec.interval, remaining))

    async def _refresh(self, refresh: RefreshFunc, remaining: float) -> Optional[RemoteResource]:
        # The deadline bounds the refresh call too, not only the sleep
        try:
            async with asyncio.timeout(remaining) as scope:
                return await refresh()
        except TimeoutError:
            if scope.expired():
                raise _DeadlineExceeded from None
            raise


def _as_transport_error(exc: Exception) -> TransportError:
    if isinstance(exc, TransportError):
        return exc
    error = TransportError(str(exc) or type(exc).__name__)
    error.__cause__ = exc
    return error


def partial_failure_of(resource: Optional[RemoteResource]) -> Optional[PartialFailureDiagnostic]:
    if resource is None or not resource.errors:
        return None
    return PartialFailureDiagnostic(resource.errors, resource_id=resource.id)


def partial_failure(outcome: PollOutcome) -> Optional[PartialFailureDiagnostic]:
    """Advisory diagnostic of an outcome (sub-errors of the last snapshot)."""
    return partial_failure_of(outcome.resource)


def outcome_error(
    outcome: PollOutcome,
    spec: PollSpec,
    resource_id: Optional[str] = None,
) -> Optional[ConvergeError]:
    """Translate a non-success outcome into the matching ConvergeError.

    Aggregated sub-error text is carried as `diagnostic` whenever a snapshot
    was observed, so callers can surface it instead of a bare status.
    """
    if outcome.result == PollResult.succeeded:
        return None

    if outcome.result == PollResult.failed:
        error = outcome.cause
        if not isinstance(error, ConvergeError):
            error = TransportError(str(error))
        if error.resource_id is None:
            error.resource_id = resource_id
        return error

    if outcome.result == PollResult.not_found:
        return ResourceNotFoundError(resource_id, checks=spec.not_found_checks)

    last = outcome.resource
    return PollTimeoutError(
        spec.timeout,
        last_status=last.status if last else None,
        diagnostic=outcome.diagnostic_message,
        resource_id=resource_id or (last.id if last else None),
    )
