"""Unit tests for the StatusPoller state machine.

Sessions run on a fake clock: time only advances when the poller sleeps, so
"tick n" is exactly the n-th interval.
"""

import asyncio

import pytest

from converge.core.config import PollSpec
from converge.core.exceptions import (
    PartialFailureDiagnostic,
    PollTimeoutError,
    ResourceNotFoundError,
    TerminalStatusError,
    TransportError,
)
from converge.core.logging_config import session_id_var
from converge.core.models.resource import PollResult, RemoteResource
from converge.core.services.status_poller import StatusPoller, partial_failure


# --- Test Fixtures ---

@pytest.fixture
def create_spec():
    """Creation wait: 1 tick interval, 5 tick deadline, 2 not-found checks."""
    return PollSpec(
        pending={"creating", "modifying"},
        target={"active"},
        interval=1,
        timeout=5,
        not_found_checks=2,
    )


@pytest.fixture
def delete_spec():
    """Deletion wait: empty target means waiting for absence."""
    return PollSpec(
        pending={"active", "deleting"},
        target=set(),
        interval=1,
        timeout=5,
        not_found_checks=2,
    )


# --- Scenarios ---

class TestScenarios:
    """Reference refresh sequences."""

    async def test_creating_then_active_succeeds_on_third_tick(self, poller, scripted, create_spec):
        refresh = scripted(["creating", "creating", "active"])

        outcome = await poller.poll(create_spec, refresh)

        assert outcome.result == PollResult.succeeded
        assert outcome.resource.status == "active"
        assert outcome.attempts == 3
        assert refresh.calls == [0, 1, 2]

    async def test_always_creating_times_out_at_tick_five(self, poller, scripted, clock, create_spec):
        refresh = scripted(["creating"] * 5)

        outcome = await poller.poll(create_spec, refresh)

        assert outcome.result == PollResult.timed_out
        assert outcome.attempts == 5
        assert clock.now == 5
        assert outcome.resource is refresh.returned[-1]

    async def test_deletion_wait_succeeds_without_resource(self, poller, scripted, delete_spec):
        refresh = scripted(["active", None, None])

        outcome = await poller.poll(delete_spec, refresh)

        assert outcome.result == PollResult.succeeded
        assert outcome.resource is None
        assert outcome.attempts == 3


# --- Properties ---

class TestTargetAndPending:

    async def test_target_on_first_call_succeeds_immediately(self, poller, scripted, clock, create_spec):
        outcome = await poller.poll(create_spec, scripted(["active"]))

        assert outcome.succeeded
        assert outcome.attempts == 1
        assert clock.sleeps == []

    async def test_terminal_status_fails_within_one_interval(self, poller, scripted, clock, create_spec):
        refresh = scripted(["creating", "failed", "active"])

        outcome = await poller.poll(create_spec, refresh)

        assert outcome.result == PollResult.failed
        assert isinstance(outcome.cause, TerminalStatusError)
        assert outcome.cause.status == "failed"
        assert outcome.resource.status == "failed"
        assert clock.now == 1
        assert len(refresh.calls) == 2

    async def test_terminal_status_prefers_sub_error_text(self, poller, resource, create_spec):
        failed = resource("failed", errors=[("InvalidSource", "source table has no primary key")])

        async def refresh():
            return failed

        outcome = await poller.poll(create_spec, refresh)

        assert outcome.result == PollResult.failed
        assert "InvalidSource: source table has no primary key" in str(outcome.cause)
        assert outcome.cause.resource_id == failed.id

    async def test_status_outside_both_sets_fails_deletion_wait(self, poller, scripted, delete_spec):
        outcome = await poller.poll(delete_spec, scripted(["deleting", "needs_attention"]))

        assert outcome.result == PollResult.failed
        assert outcome.cause.status == "needs_attention"

    async def test_sleep_is_clamped_to_the_deadline(self, poller, scripted, clock):
        spec = PollSpec(pending={"creating"}, target={"active"}, interval=4, timeout=10)

        outcome = await poller.poll(spec, scripted(["creating"]))

        assert outcome.result == PollResult.timed_out
        assert clock.sleeps == [4, 4, 2]
        assert clock.now == 10


class TestAbsence:

    async def test_absence_below_threshold_is_transient(self, poller, scripted, create_spec):
        outcome = await poller.poll(create_spec, scripted([None, "creating", "active"]))

        assert outcome.succeeded
        assert outcome.resource.status == "active"

    async def test_absence_with_target_returns_not_found(self, poller, scripted, create_spec):
        refresh = scripted([None, None, "active"])

        outcome = await poller.poll(create_spec, refresh)

        assert outcome.result == PollResult.not_found
        assert outcome.resource is None
        assert len(refresh.calls) == 2

    async def test_counter_resets_on_real_observation(self, poller, scripted):
        spec = PollSpec(pending={"deleting"}, target=set(), interval=1, timeout=60, not_found_checks=3)
        refresh = scripted([None, None, "deleting", None, None, None])

        outcome = await poller.poll(spec, refresh)

        assert outcome.succeeded
        assert outcome.resource is None
        assert outcome.attempts == 6

    async def test_absence_never_confirmed_times_out(self, poller, scripted):
        spec = PollSpec(pending={"deleting"}, target=set(), interval=1, timeout=4, not_found_checks=3)
        refresh = scripted([None, None, "deleting"])

        outcome = await poller.poll(spec, refresh)

        assert outcome.result == PollResult.timed_out
        assert outcome.resource.status == "deleting"


class TestTransportErrors:

    async def test_transport_error_is_terminal_and_not_retried(self, poller, scripted, clock, create_spec):
        boom = ConnectionError("connection reset by peer")
        refresh = scripted(["creating", boom, "active"])

        outcome = await poller.poll(create_spec, refresh)

        assert outcome.result == PollResult.failed
        assert isinstance(outcome.cause, TransportError)
        assert outcome.cause.__cause__ is boom
        assert "connection reset" in str(outcome.cause)
        assert outcome.resource.status == "creating"
        assert len(refresh.calls) == 2

    async def test_transport_error_instances_pass_through(self, poller, scripted, create_spec):
        error = TransportError("AccessDenied", operation="describe_integrations", error_code="AccessDenied")

        outcome = await poller.poll(create_spec, scripted([error]))

        assert outcome.cause is error

    async def test_timeout_error_raised_by_refresh_is_transport_error(self, create_spec):
        async def refresh():
            raise TimeoutError("read timed out")

        outcome = await StatusPoller().poll(create_spec, refresh)

        assert outcome.result == PollResult.failed
        assert isinstance(outcome.cause, TransportError)


class TestDiagnostics:

    async def test_sub_errors_on_success_are_advisory(self, poller, resource, create_spec):
        active = resource("active", errors=[("E1", "first"), ("E2", "second")])

        async def refresh():
            return active

        outcome = await poller.poll(create_spec, refresh)

        assert outcome.succeeded
        assert outcome.diagnostic_message == "E1: first; E2: second"
        diagnostic = partial_failure(outcome)
        assert isinstance(diagnostic, PartialFailureDiagnostic)
        assert len(diagnostic.errors) == 2

    async def test_clean_success_has_no_diagnostic(self, poller, scripted, create_spec):
        outcome = await poller.poll(create_spec, scripted(["active"]))

        assert outcome.diagnostic_message is None
        assert partial_failure(outcome) is None


class TestDeadlineAndCancellation:

    async def test_deadline_bounds_a_hanging_refresh(self):
        spec = PollSpec(pending={"creating"}, target={"active"}, interval=1, timeout=0.05)

        async def refresh():
            await asyncio.sleep(10)

        outcome = await asyncio.wait_for(StatusPoller().poll(spec, refresh), timeout=2)

        assert outcome.result == PollResult.timed_out
        assert outcome.attempts == 1

    async def test_cancellation_propagates_from_sleep(self):
        spec = PollSpec(pending={"creating"}, target={"active"}, interval=30, timeout=60)
        calls = []

        async def refresh():
            calls.append(1)
            return RemoteResource(id="i-1", status="creating")

        task = asyncio.create_task(StatusPoller().poll(spec, refresh))
        await asyncio.sleep(0.05)
        task.cancel()

        with pytest.raises(asyncio.CancelledError):
            await task
        assert calls == [1]

    async def test_initial_delay_postpones_first_refresh(self, poller, scripted):
        spec = PollSpec(pending={"creating"}, target={"active"}, interval=1, timeout=10, delay=2)
        refresh = scripted(["active"])

        await poller.poll(spec, refresh)

        assert refresh.calls == [2]


class TestSessions:

    async def test_session_id_is_scoped_to_the_session(self, poller, create_spec):
        seen = []

        async def refresh():
            seen.append(session_id_var.get())
            return RemoteResource(id="i-1", status="active")

        await poller.poll(create_spec, refresh)

        assert seen[0] != "-"
        assert session_id_var.get() == "-"

    async def test_concurrent_sessions_keep_their_own_counters(self, create_spec, delete_spec, scripted):
        creating = scripted(["creating", "active"])
        deleting = scripted(["active", None, None])

        created, deleted = await asyncio.gather(
            StatusPoller(sleep=lambda s: asyncio.sleep(0)).poll(create_spec, creating),
            StatusPoller(sleep=lambda s: asyncio.sleep(0)).poll(delete_spec, deleting),
        )

        assert created.succeeded and created.resource.status == "active"
        assert deleted.succeeded and deleted.resource is None


class TestWait:

    async def test_wait_returns_converged_resource(self, poller, scripted, create_spec):
        resource = await poller.wait(create_spec, scripted(["creating", "active"]))

        assert resource.status == "active"

    async def test_wait_returns_none_for_absence(self, poller, scripted, delete_spec):
        assert await poller.wait(delete_spec, scripted([None])) is None

    async def test_wait_raises_timeout_with_last_status_and_errors(self, poller, resource, create_spec):
        creating = resource("creating", errors=[("Lag", "replication lagging")])

        async def refresh():
            return creating

        with pytest.raises(PollTimeoutError) as excinfo:
            await poller.wait(create_spec, refresh, resource_id="arn:x")

        assert excinfo.value.last_status == "creating"
        assert excinfo.value.resource_id == "arn:x"
        assert "Lag: replication lagging" in str(excinfo.value)

    async def test_wait_raises_not_found(self, poller, scripted, create_spec):
        with pytest.raises(ResourceNotFoundError) as excinfo:
            await poller.wait(create_spec, scripted([None]), resource_id="arn:missing")

        assert excinfo.value.checks == 2
        assert excinfo.value.resource_id == "arn:missing"

    async def test_wait_raises_terminal_status(self, poller, scripted, create_spec):
        with pytest.raises(TerminalStatusError):
            await poller.wait(create_spec, scripted(["failed"]))

    async def test_wait_raises_transport_error_with_resource_id(self, poller, scripted, create_spec):
        with pytest.raises(TransportError) as excinfo:
            await poller.wait(create_spec, scripted([OSError("network unreachable")]), resource_id="arn:x")

        assert excinfo.value.resource_id == "arn:x"
