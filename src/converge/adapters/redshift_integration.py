"""Redshift zero-ETL integration adapter (`aws_redshift_integration`).

Maps `IntegrationSettings` onto the Redshift CreateIntegration /
DescribeIntegrations / ModifyIntegration / DeleteIntegration API and declares
the poll session each mutating call is followed by.
"""

from __future__ import annotations

from enum import StrEnum
from typing import ClassVar, Optional

from pydantic import BaseModel, field_validator

from converge.adapters.aws_client import API_ERRORS, BotoResourceClient, error_code
from converge.core.config import PollSpec
from converge.core.exceptions import ConvergeError, ResourceNotFoundError, TransportError
from converge.core.interfaces.resource_client import Operation
from converge.core.models.resource import RemoteResource, ResourceError
from converge.core.settings import logger

INTEGRATION_NOT_FOUND = "IntegrationNotFoundFault"


class IntegrationStatus(StrEnum):
    active = "active"
    creating = "creating"
    deleting = "deleting"
    failed = "failed"
    modifying = "modifying"
    needs_attention = "needs_attention"
    syncing = "syncing"


# (pending, target) per operation; an empty target waits for absence
_POLL_TABLE = {
    Operation.create: (
        {IntegrationStatus.creating, IntegrationStatus.modifying},
        {IntegrationStatus.active},
    ),
    Operation.update: (
        {IntegrationStatus.modifying},
        {IntegrationStatus.active},
    ),
    Operation.delete: (
        {IntegrationStatus.deleting, IntegrationStatus.active},
        set(),
    ),
}


class IntegrationSettings(BaseModel):
    """Desired state of one integration.

    `source_arn`, `target_arn`, `kms_key_id` and `additional_encryption_context`
    cannot be modified in place; changing them requires a new integration.
    `kms_key_id` is computed by AWS when left unset.
    """

    integration_name: str
    source_arn: str
    target_arn: str
    description: Optional[str] = None
    kms_key_id: Optional[str] = None
    additional_encryption_context: Optional[dict[str, str]] = None

    REPLACE_FIELDS: ClassVar[tuple[str, ...]] = (
        "source_arn",
        "target_arn",
        "kms_key_id",
        "additional_encryption_context",
    )

    model_config = {"frozen": True, "extra": "forbid"}

    @field_validator("source_arn", "target_arn")
    def ensure_arn(cls, value: str) -> str:
        if not value.startswith("arn:"):
            raise ValueError(f"not an ARN: {value!r}")
        return value

    @classmethod
    def from_resource(
        cls,
        resource: RemoteResource,
        prior: Optional["IntegrationSettings"] = None,
    ) -> "IntegrationSettings":
        """Map a described integration back into settings.

        An empty encryption context from the API stays None when the prior
        settings had none, so an unset map does not show up as a change.
        """
        attrs = resource.attributes
        context = attrs.get("AdditionalEncryptionContext")
        if not context and (prior is None or prior.additional_encryption_context is None):
            context = None
        return cls(
            integration_name=attrs.get("IntegrationName", ""),
            source_arn=attrs["SourceArn"],
            target_arn=attrs["TargetArn"],
            description=attrs.get("Description"),
            kms_key_id=attrs.get("KMSKeyId"),
            additional_encryption_context=context,
        )

    def replacement_fields(self, current: "IntegrationSettings") -> list[str]:
        changed = []
        for name in self.REPLACE_FIELDS:
            wanted = getattr(self, name)
            if name == "kms_key_id" and wanted is None:
                continue
            if wanted != getattr(current, name):
                changed.append(name)
        return changed

    def modify_params(self, current: "IntegrationSettings") -> dict:
        params = {}
        if self.integration_name != current.integration_name:
            params["IntegrationName"] = self.integration_name
        if (self.description or "") != (current.description or ""):
            params["Description"] = self.description or ""
        return params


def integration_error(item: dict) -> ResourceError:
    return ResourceError(code=item.get("ErrorCode") or "", message=item.get("ErrorMessage") or "")


def integration_to_resource(item: dict) -> RemoteResource:
    return RemoteResource(
        id=item["IntegrationArn"],
        status=item.get("Status") or "",
        errors=[integration_error(e) for e in item.get("Errors") or []],
        attributes=item,
    )


class RedshiftIntegrationClient(BotoResourceClient):
    """boto3 `redshift` client adapter; resource ids are integration ARNs."""

    resource_name = "Redshift Integration"

    async def create(self, desired: IntegrationSettings) -> str:
        params = {
            "IntegrationName": desired.integration_name,
            "SourceArn": desired.source_arn,
            "TargetArn": desired.target_arn,
        }
        if desired.description is not None:
            params["Description"] = desired.description
        if desired.kms_key_id is not None:
            params["KMSKeyId"] = desired.kms_key_id
        if desired.additional_encryption_context:
            params["AdditionalEncryptionContext"] = dict(desired.additional_encryption_context)

        try:
            out = await self._call("create_integration", **params)
        except API_ERRORS as exc:
            raise self._transport_error("creating", exc, "create_integration", desired.integration_name) from exc

        arn = (out or {}).get("IntegrationArn")
        if not arn:
            raise TransportError(
                f"creating {self.resource_name} ({desired.integration_name}): empty output",
                operation="create_integration",
            )
        return arn

    async def find(self, resource_id: str) -> Optional[RemoteResource]:
        try:
            pages = await self._paginate("describe_integrations", IntegrationArn=resource_id)
        except API_ERRORS as exc:
            if error_code(exc) == INTEGRATION_NOT_FOUND:
                return None
            raise self._transport_error("reading", exc, "describe_integrations", resource_id) from exc

        integrations = [
            item
            for page in pages
            for item in page.get("Integrations") or []
            if item.get("IntegrationArn")
        ]

        if not integrations:
            return None
        if len(integrations) > 1:
            raise TransportError(
                f"reading {self.resource_name} ({resource_id}): expected 1 result, got {len(integrations)}",
                operation="describe_integrations",
                resource_id=resource_id,
            )
        return integration_to_resource(integrations[0])

    async def update(self, resource_id: str, desired: IntegrationSettings) -> None:
        resource = await self.find(resource_id)
        if resource is None:
            raise ResourceNotFoundError(resource_id)

        current = IntegrationSettings.from_resource(resource, prior=desired)
        replace = desired.replacement_fields(current)
        if replace:
            raise ConvergeError(
                f"updating {self.resource_name}: {', '.join(replace)} cannot be changed in place",
                resource_id=resource_id,
            )

        params = desired.modify_params(current)
        if not params:
            logger.debug(f"[redshift:update] no modifiable changes resource_id={resource_id}")
            return

        try:
            out = await self._call("modify_integration", IntegrationArn=resource_id, **params)
        except API_ERRORS as exc:
            raise self._transport_error("updating", exc, "modify_integration", resource_id) from exc

        if not (out or {}).get("IntegrationArn"):
            raise TransportError(
                f"updating {self.resource_name} ({resource_id}): empty output",
                operation="modify_integration",
                resource_id=resource_id,
            )

    async def delete(self, resource_id: str) -> None:
        try:
            await self._call("delete_integration", IntegrationArn=resource_id)
        except API_ERRORS as exc:
            if error_code(exc) == INTEGRATION_NOT_FOUND:
                raise ResourceNotFoundError(resource_id) from exc
            raise self._transport_error("deleting", exc, "delete_integration", resource_id) from exc

    def poll_spec(self, operation: Operation, timeout: float) -> PollSpec:
        pending, target = _POLL_TABLE[operation]
        return PollSpec(
            pending=frozenset(s.value for s in pending),
            target=frozenset(s.value for s in target),
            interval=self.poll_interval,
            timeout=timeout,
            not_found_checks=1 if not target else self.not_found_checks,
        )
