"""Shared fixtures: a deterministic clock and scripted refresh functions."""

from typing import Any, Iterable, Optional

import pytest

from converge.core.models.resource import RemoteResource, ResourceError
from converge.core.services.status_poller import StatusPoller


class FakeClock:
    """Clock whose time only moves when the poller sleeps."""

    def __init__(self) -> None:
        self.now = 0.0
        self.sleeps: list[float] = []

    def __call__(self) -> float:
        return self.now

    async def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds


def make_resource(status: str, resource_id: str = "arn:aws:redshift:us-east-1:123456789012:integration:abc", errors=()) -> RemoteResource:
    return RemoteResource(
        id=resource_id,
        status=status,
        errors=[ResourceError(code=c, message=m) for c, m in errors],
    )


class ScriptedRefresh:
    """Refresh function replaying a script.

    Items: a status string (resource observed), a RemoteResource, None
    (absence) or an exception instance (raised). The last item repeats once
    the script is exhausted.
    """

    def __init__(self, script: Iterable[Any], clock: Optional[FakeClock] = None) -> None:
        self.script = list(script)
        self.clock = clock
        self.calls: list[float] = []
        self.returned: list[Optional[RemoteResource]] = []

    async def __call__(self) -> Optional[RemoteResource]:
        index = min(len(self.calls), len(self.script) - 1)
        self.calls.append(self.clock() if self.clock else 0.0)
        item = self.script[index]
        if isinstance(item, BaseException):
            raise item
        if isinstance(item, str):
            item = make_resource(item)
        self.returned.append(item)
        return item


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def poller(clock):
    return StatusPoller(clock=clock, sleep=clock.sleep)


@pytest.fixture
def scripted(clock):
    """Factory: scripted(["creating", "active"]) -> ScriptedRefresh on the fake clock."""
    def factory(script: Iterable[Any]) -> ScriptedRefresh:
        return ScriptedRefresh(script, clock)
    return factory


@pytest.fixture
def resource():
    """Factory building RemoteResource snapshots."""
    return make_resource
