"""ResourceManager: runs the create/read/update/delete lifecycle of one resource kind.

Responsibilities:
1. Issue exactly one mutating call through the RemoteResourceClient port.
2. Run one poll session with the PollSpec the client declares for that operation.
3. Raise the ConvergeError matching a non-success outcome, tagged with the
   resource id so callers can still record a half-created resource.
"""

from __future__ import annotations

from typing import Any, Optional

from converge.core.config import ResourceTimeouts
from converge.core.exceptions import ConvergeError, ResourceNotFoundError
from converge.core.interfaces.resource_client import Operation, RemoteResourceClient
from converge.core.models.resource import RemoteResource
from converge.core.services.status_poller import StatusPoller
from converge.core.settings import logger


class ResourceManager:
    """Orchestrates resource lifecycle: mutate once, then wait for convergence.

    Attributes:
        timeouts: Immutable per-operation deadlines
    """

    def __init__(
        self,
        client: RemoteResourceClient,
        timeouts: Optional[ResourceTimeouts] = None,
        poller: Optional[StatusPoller] = None,
    ) -> None:
        self._client = client
        self.timeouts = timeouts or ResourceTimeouts()
        self._poller = poller or StatusPoller()

    @property
    def _name(self) -> str:
        return self._client.resource_name

    async def create(self, desired: Any) -> RemoteResource:
        resource_id = await self._client.create(desired)
        logger.info(f"[resource:create] created {self._name} resource_id={resource_id}; waiting")

        try:
            resource = await self._wait(Operation.create, resource_id)
        except ConvergeError as exc:
            # The resource exists remotely; the id lets callers taint it
            exc.resource_id = resource_id
            logger.error(f"[resource:create] waiting for {self._name} resource_id={resource_id} failed: {exc}")
            raise

        if resource is None:
            raise ResourceNotFoundError(resource_id)
        return resource

    async def read(self, resource_id: str) -> Optional[RemoteResource]:
        resource = await self._client.find(resource_id)
        if resource is None:
            logger.warning(f"[resource:read] {self._name} resource_id={resource_id} not found, removing from state")
        return resource

    async def update(self, resource_id: str, desired: Any) -> RemoteResource:
        await self._client.update(resource_id, desired)
        logger.debug(f"[resource:update] modify issued for {self._name} resource_id={resource_id}; waiting")

        try:
            resource = await self._wait(Operation.update, resource_id)
        except ConvergeError as exc:
            logger.error(f"[resource:update] waiting for {self._name} resource_id={resource_id} failed: {exc}")
            raise

        if resource is None:
            raise ResourceNotFoundError(resource_id)
        return resource

    async def delete(self, resource_id: str) -> None:
        try:
            await self._client.delete(resource_id)
        except ResourceNotFoundError:
            logger.debug(f"[resource:delete] {self._name} resource_id={resource_id} already gone")
            return

        logger.debug(f"[resource:delete] delete issued for {self._name} resource_id={resource_id}; waiting")
        try:
            await self._wait(Operation.delete, resource_id)
        except ConvergeError as exc:
            logger.error(f"[resource:delete] waiting for {self._name} resource_id={resource_id} failed: {exc}")
            raise

    async def _wait(self, operation: Operation, resource_id: str) -> Optional[RemoteResource]:
        timeout = getattr(self.timeouts, operation.value)
        spec = self._client.poll_spec(operation, timeout)

        async def refresh() -> Optional[RemoteResource]:
            return await self._client.find(resource_id)

        return await self._poller.wait(spec, refresh, resource_id=resource_id)
