"""RemoteResourceClient: hexagonal port for one kind of remote resource.

Adapters map their settings model onto a vendor API. Every method performs at
most one logical mutation; waiting for convergence is left to the
ResourceManager, which asks the adapter for the `PollSpec` of each operation.
"""
from __future__ import annotations

from abc import ABC, abstractmethod
from enum import StrEnum
from typing import Any, Optional

from converge.core.config import PollSpec
from converge.core.models.resource import RemoteResource


class Operation(StrEnum):
    create = "create"
    update = "update"
    delete = "delete"


class RemoteResourceClient(ABC):
    """Port abstraction for create/find/update/delete of one resource kind."""

    resource_name: str = "resource"

    @abstractmethod
    async def create(self, desired: Any) -> str:
        """Issue the create call and return the new resource identifier."""
        raise NotImplementedError

    @abstractmethod
    async def find(self, resource_id: str) -> Optional[RemoteResource]:
        """Return the current snapshot or None if the resource does not exist.

        Raises TransportError for any other API failure.
        """
        raise NotImplementedError

    @abstractmethod
    async def update(self, resource_id: str, desired: Any) -> None:
        """Issue the modify call (no-op when nothing changed)."""
        raise NotImplementedError

    @abstractmethod
    async def delete(self, resource_id: str) -> None:
        """Issue the delete call.

        Raises ResourceNotFoundError when the resource is already gone.
        """
        raise NotImplementedError

    @abstractmethod
    def poll_spec(self, operation: Operation, timeout: float) -> PollSpec:
        """Return the poll session description to run after `operation`."""
        raise NotImplementedError
