from enum import StrEnum
from typing import Any, List, Optional

from pydantic import BaseModel, Field


class ResourceError(BaseModel):
    """One sub-error record attached to a remote resource (e.g. an
    integration's `Errors` list)."""

    code: str = ""
    message: str = ""

    model_config = {"frozen": True}

    def __str__(self) -> str:
        return f"{self.code}: {self.message}"


class RemoteResource(BaseModel):
    """Snapshot of a remote resource as observed by one refresh call.

    Owned by the remote system; the poller only ever reads it. `attributes`
    keeps the raw API payload so adapters can map it back into their own
    settings models without a second describe call.
    """

    id: str
    status: str
    errors: List[ResourceError] = Field(default_factory=list)
    attributes: dict[str, Any] = Field(default_factory=dict)

    model_config = {"frozen": True}


class PollResult(StrEnum):
    succeeded = "succeeded"
    timed_out = "timed_out"
    failed = "failed"
    not_found = "not_found"


class PollOutcome(BaseModel):
    """Terminal result of one poll session.

    Notes:
    - `resource` is the last observed snapshot, or None when the session ended
      on absence (successful deletion, not-found) or never observed anything.
    - `cause` is only set for `failed` outcomes: a TransportError or a
      TerminalStatusError.
    - `diagnostics` are the sub-errors of the last observed resource. They are
      advisory: a `succeeded` outcome may still carry some.
    """

    result: PollResult
    resource: Optional[RemoteResource] = None
    cause: Optional[Exception] = None
    diagnostics: List[ResourceError] = Field(default_factory=list)
    attempts: int = 0
    elapsed: float = 0.0

    model_config = {"frozen": True, "arbitrary_types_allowed": True}

    @property
    def succeeded(self) -> bool:
        return self.result == PollResult.succeeded

    @property
    def diagnostic_message(self) -> Optional[str]:
        """Aggregated sub-error text, one message per sub-error."""
        if not self.diagnostics:
            return None
        return "; ".join(str(e) for e in self.diagnostics)
