"""Configuration models for core domain components.

Pydantic-based, immutable value objects passed per call instead of
package-level status lists:

- `PollSpec` describes one poll session (status sets, interval, deadline,
  not-found threshold).
- `ResourceTimeouts` holds the per-operation deadlines of a resource manager.
"""

from typing import FrozenSet

from pydantic import BaseModel, Field, model_validator


class PollSpec(BaseModel):
    """Immutable description of one poll session.

    Attributes:
        pending: Statuses meaning "still transitioning, keep polling"
        target: Statuses meaning "done"; empty means "wait for absence"
        interval: Seconds between refresh calls
        timeout: Overall deadline of the session in seconds
        not_found_checks: Consecutive absence observations needed before absence is final
        delay: Seconds to wait before the first refresh call
    """

    pending: FrozenSet[str] = Field(
        default_factory=frozenset,
        description="Statuses that keep the session polling",
    )

    target: FrozenSet[str] = Field(
        default_factory=frozenset,
        description="Statuses that end the session successfully (empty: wait for absence)",
    )

    interval: float = Field(
        default=5.0,
        gt=0,
        description="Interval in seconds between refresh calls",
    )

    timeout: float = Field(
        default=30 * 60,
        gt=0,
        description="Maximum time in seconds the session may take",
    )

    not_found_checks: int = Field(
        default=20,
        ge=1,
        description="Consecutive not-found observations before absence is treated as final",
    )

    delay: float = Field(
        default=0.0,
        ge=0,
        description="Seconds to wait before the first refresh call",
    )

    model_config = {
        "frozen": True,
        "extra": "forbid",
    }

    @model_validator(mode="after")
    def _disjoint_sets(self) -> "PollSpec":
        overlap = self.pending & self.target
        if overlap:
            raise ValueError(f"statuses both pending and target: {sorted(overlap)}")
        return self

    @property
    def waits_for_absence(self) -> bool:
        return not self.target


class ResourceTimeouts(BaseModel):
    """Per-operation deadlines (seconds) of a ResourceManager."""

    create: float = Field(default=30 * 60, gt=0)
    update: float = Field(default=30 * 60, gt=0)
    delete: float = Field(default=30 * 60, gt=0)

    model_config = {
        "frozen": True,
        "extra": "forbid",
    }

    @classmethod
    def from_app_settings(cls, settings) -> "ResourceTimeouts":
        """Factory method to construct timeouts from a ConvergeSettings instance."""
        return cls(
            create=settings.CONVERGE_CREATE_TIMEOUT,
            update=settings.CONVERGE_UPDATE_TIMEOUT,
            delete=settings.CONVERGE_DELETE_TIMEOUT,
        )
