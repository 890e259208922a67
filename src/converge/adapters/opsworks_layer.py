"""OpsWorks layer adapter (the `aws_opsworks_*_layer` family).

All layer resource types share one API; they differ only in the typed
attributes packed into the `Attributes` map, described by a `LayerType`
(see `opsworks_layer_types`). Layers have no transitional status: a layer
that can be described is reported as `available`.
"""

from __future__ import annotations

import json
from typing import Any, ClassVar, FrozenSet, List, Mapping, Optional

from pydantic import BaseModel, Field, field_validator

from converge.adapters.aws_client import API_ERRORS, BotoResourceClient, error_code
from converge.core.config import PollSpec
from converge.core.exceptions import ConvergeError, ResourceNotFoundError, TransportError
from converge.core.interfaces.resource_client import Operation
from converge.core.models.layer import LayerType, decode_attributes, encode_attributes
from converge.core.models.resource import RemoteResource
from converge.core.settings import logger

LAYER_NOT_FOUND = "ResourceNotFoundException"
LAYER_STATUS_AVAILABLE = "available"


def normalize_json(value: str) -> str:
    return json.dumps(json.loads(value), sort_keys=True, separators=(",", ":"))


class EbsVolume(BaseModel):
    mount_point: str
    number_of_disks: int
    size: int
    encrypted: bool = False
    iops: int = 0
    raid_level: str = ""
    type: str = "standard"

    model_config = {"frozen": True}

    @field_validator("raid_level")
    def ensure_numeric_raid_level(cls, value: str) -> str:
        if value and not value.isdigit():
            raise ValueError(f"raid_level must be a RAID level number, got {value!r}")
        return value

    def to_api(self) -> dict:
        item = {
            "MountPoint": self.mount_point,
            "NumberOfDisks": self.number_of_disks,
            "Size": self.size,
            "Encrypted": self.encrypted,
            "VolumeType": self.type,
        }
        if self.iops:
            item["Iops"] = self.iops
        if self.raid_level:
            item["RaidLevel"] = int(self.raid_level)
        return item

    @classmethod
    def from_api(cls, item: dict) -> "EbsVolume":
        raid_level = item.get("RaidLevel")
        return cls(
            mount_point=item.get("MountPoint", ""),
            number_of_disks=item.get("NumberOfDisks", 0),
            size=item.get("Size", 0),
            encrypted=bool(item.get("Encrypted", False)),
            iops=item.get("Iops") or 0,
            raid_level=str(raid_level) if raid_level is not None else "",
            type=item.get("VolumeType") or "standard",
        )


def _expand(model: BaseModel, fields: Mapping[str, str]) -> dict:
    """Model fields under their API names; unset (falsy) values are omitted."""
    return {api: getattr(model, name) for name, api in fields.items() if getattr(model, name)}


def _flatten(item: Optional[Mapping[str, Any]], fields: Mapping[str, str]) -> dict:
    item = item or {}
    return {name: item[api] for name, api in fields.items() if item.get(api) is not None}


class CloudWatchLogStream(BaseModel):
    """One log file shipped to CloudWatch Logs by the instances of a layer."""

    file: str
    log_group_name: str
    batch_count: int = Field(default=1000, le=10000)
    batch_size: int = Field(default=32768, le=1048576)
    buffer_duration: int = Field(default=5000, ge=5000)
    datetime_format: Optional[str] = None
    encoding: str = "utf_8"
    file_fingerprint_lines: str = "1"
    initial_position: str = "start_of_file"
    multiline_start_pattern: Optional[str] = None
    time_zone: Optional[str] = None

    model_config = {"frozen": True}

    API_FIELDS: ClassVar[dict[str, str]] = {
        "batch_count": "BatchCount",
        "batch_size": "BatchSize",
        "buffer_duration": "BufferDuration",
        "datetime_format": "DatetimeFormat",
        "encoding": "Encoding",
        "file": "File",
        "file_fingerprint_lines": "FileFingerprintLines",
        "initial_position": "InitialPosition",
        "log_group_name": "LogGroupName",
        "multiline_start_pattern": "MultiLineStartPattern",
        "time_zone": "TimeZone",
    }


class CloudWatchConfiguration(BaseModel):
    enabled: bool = False
    log_streams: List[CloudWatchLogStream] = Field(default_factory=list)

    model_config = {"frozen": True}

    def to_api(self) -> dict:
        item: dict[str, Any] = {"Enabled": self.enabled}
        if self.log_streams:
            item["LogStreams"] = [_expand(s, CloudWatchLogStream.API_FIELDS) for s in self.log_streams]
        return item

    @classmethod
    def from_api(cls, item: dict) -> "CloudWatchConfiguration":
        return cls(
            enabled=bool(item.get("Enabled", False)),
            log_streams=[
                CloudWatchLogStream(**_flatten(s, CloudWatchLogStream.API_FIELDS))
                for s in item.get("LogStreams") or []
            ],
        )


class AutoScalingThresholds(BaseModel):
    """Thresholds that trigger one direction of load-based scaling."""

    alarms: List[str] = Field(default_factory=list, max_length=5)
    cpu_threshold: Optional[float] = None
    ignore_metrics_time: Optional[int] = Field(default=None, ge=1, le=100)
    instance_count: int = 1
    load_threshold: Optional[float] = None
    memory_threshold: Optional[float] = None
    thresholds_wait_time: Optional[int] = Field(default=None, ge=1, le=100)

    model_config = {"frozen": True}

    API_FIELDS: ClassVar[dict[str, str]] = {
        "alarms": "Alarms",
        "cpu_threshold": "CpuThreshold",
        "ignore_metrics_time": "IgnoreMetricsTime",
        "instance_count": "InstanceCount",
        "load_threshold": "LoadThreshold",
        "memory_threshold": "MemoryThreshold",
        "thresholds_wait_time": "ThresholdsWaitTime",
    }

    def to_api(self) -> dict:
        return _expand(self, self.API_FIELDS)

    @classmethod
    def from_api(cls, item: Optional[dict]):
        return cls(**_flatten(item, cls.API_FIELDS))


class DownScalingThresholds(AutoScalingThresholds):
    cpu_threshold: Optional[float] = 30.0
    ignore_metrics_time: Optional[int] = Field(default=10, ge=1, le=100)
    thresholds_wait_time: Optional[int] = Field(default=10, ge=1, le=100)


class UpScalingThresholds(AutoScalingThresholds):
    cpu_threshold: Optional[float] = 80.0
    ignore_metrics_time: Optional[int] = Field(default=5, ge=1, le=100)
    thresholds_wait_time: Optional[int] = Field(default=5, ge=1, le=100)


class LoadBasedAutoScaling(BaseModel):
    """Load-based auto scaling of a layer (SetLoadBasedAutoScaling)."""

    enable: bool = False
    downscaling: DownScalingThresholds = Field(default_factory=DownScalingThresholds)
    upscaling: UpScalingThresholds = Field(default_factory=UpScalingThresholds)

    model_config = {"frozen": True}

    def to_api(self, layer_id: str) -> dict:
        return {
            "LayerId": layer_id,
            "Enable": self.enable,
            "DownScaling": self.downscaling.to_api(),
            "UpScaling": self.upscaling.to_api(),
        }

    @classmethod
    def from_api(cls, item: dict) -> "LoadBasedAutoScaling":
        return cls(
            enable=bool(item.get("Enable", False)),
            downscaling=DownScalingThresholds.from_api(item.get("DownScaling")),
            upscaling=UpScalingThresholds.from_api(item.get("UpScaling")),
        )


class LayerSettings(BaseModel):
    """Desired state of one layer, common fields plus typed `attributes`."""

    stack_id: str
    name: Optional[str] = None
    short_name: Optional[str] = None
    attributes: dict[str, Any] = Field(default_factory=dict)
    auto_assign_elastic_ips: bool = False
    auto_assign_public_ips: bool = False
    auto_healing: bool = True
    cloudwatch_configuration: Optional[CloudWatchConfiguration] = None
    custom_configure_recipes: List[str] = Field(default_factory=list)
    custom_deploy_recipes: List[str] = Field(default_factory=list)
    custom_setup_recipes: List[str] = Field(default_factory=list)
    custom_shutdown_recipes: List[str] = Field(default_factory=list)
    custom_undeploy_recipes: List[str] = Field(default_factory=list)
    custom_instance_profile_arn: Optional[str] = None
    custom_json: Optional[str] = None
    custom_security_group_ids: FrozenSet[str] = Field(default_factory=frozenset)
    drain_elb_on_shutdown: bool = True
    instance_shutdown_timeout: int = 120
    install_updates_on_boot: bool = True
    system_packages: FrozenSet[str] = Field(default_factory=frozenset)
    use_ebs_optimized_instances: bool = False
    ebs_volumes: List[EbsVolume] = Field(default_factory=list)
    elastic_load_balancer: Optional[str] = None
    load_based_auto_scaling: Optional[LoadBasedAutoScaling] = None

    model_config = {"extra": "forbid"}

    @field_validator("custom_json")
    def ensure_json(cls, value: Optional[str]) -> Optional[str]:
        if not value:
            return None
        try:
            return normalize_json(value)
        except ValueError as exc:
            raise ValueError(f"custom_json contains invalid JSON: {exc}") from exc

    def layer_name(self, layer_type: LayerType) -> str:
        name = self.name or layer_type.default_layer_name
        if not name:
            raise ConvergeError(f"OpsWorks {layer_type.type_name} layer requires a name")
        return name

    def layer_short_name(self, layer_type: LayerType) -> str:
        if not layer_type.custom_short_name:
            return layer_type.type_name
        if not self.short_name:
            raise ConvergeError(f"OpsWorks {layer_type.type_name} layer requires a short_name")
        return self.short_name

    def api_params(self, layer_type: LayerType) -> dict:
        """Layer fields as CreateLayer/UpdateLayer parameters (no ids)."""
        params = {
            "Name": self.layer_name(layer_type),
            "Shortname": self.layer_short_name(layer_type),
            "Attributes": encode_attributes(layer_type, self.attributes),
            "AutoAssignElasticIps": self.auto_assign_elastic_ips,
            "AutoAssignPublicIps": self.auto_assign_public_ips,
            "EnableAutoHealing": self.auto_healing,
            "CustomRecipes": {
                "Configure": list(self.custom_configure_recipes),
                "Deploy": list(self.custom_deploy_recipes),
                "Setup": list(self.custom_setup_recipes),
                "Shutdown": list(self.custom_shutdown_recipes),
                "Undeploy": list(self.custom_undeploy_recipes),
            },
            "CustomSecurityGroupIds": sorted(self.custom_security_group_ids),
            "Packages": sorted(self.system_packages),
            "InstallUpdatesOnBoot": self.install_updates_on_boot,
            "UseEbsOptimizedInstances": self.use_ebs_optimized_instances,
            "LifecycleEventConfiguration": {
                "Shutdown": {
                    "DelayUntilElbConnectionsDrained": self.drain_elb_on_shutdown,
                    "ExecutionTimeout": self.instance_shutdown_timeout,
                },
            },
            "VolumeConfigurations": [v.to_api() for v in self.ebs_volumes],
        }
        if self.custom_instance_profile_arn:
            params["CustomInstanceProfileArn"] = self.custom_instance_profile_arn
        if self.custom_json:
            params["CustomJson"] = self.custom_json
        if self.cloudwatch_configuration is not None:
            params["CloudWatchLogsConfiguration"] = self.cloudwatch_configuration.to_api()
        return params

    @classmethod
    def from_resource(
        cls,
        layer_type: LayerType,
        resource: RemoteResource,
        prior: Optional["LayerSettings"] = None,
        elastic_load_balancer: Optional[str] = None,
        load_based_auto_scaling: Optional[LoadBasedAutoScaling] = None,
    ) -> "LayerSettings":
        """Map a described layer back into settings.

        Write-only attributes are taken from `prior`: the API only returns
        placeholders for them.
        """
        layer = resource.attributes
        attributes = decode_attributes(layer_type, layer.get("Attributes"))
        if prior is not None:
            for key, attr in layer_type.attributes.items():
                if attr.write_only and key in prior.attributes:
                    attributes[key] = prior.attributes[key]

        recipes = layer.get("CustomRecipes") or {}
        shutdown = (layer.get("LifecycleEventConfiguration") or {}).get("Shutdown") or {}
        custom_json = layer.get("CustomJson")
        cloudwatch = layer.get("CloudWatchLogsConfiguration")

        return cls(
            stack_id=layer.get("StackId", ""),
            name=layer.get("Name"),
            short_name=layer.get("Shortname") if layer_type.custom_short_name else None,
            attributes=attributes,
            auto_assign_elastic_ips=bool(layer.get("AutoAssignElasticIps", False)),
            auto_assign_public_ips=bool(layer.get("AutoAssignPublicIps", False)),
            auto_healing=bool(layer.get("EnableAutoHealing", False)),
            cloudwatch_configuration=CloudWatchConfiguration.from_api(cloudwatch) if cloudwatch else None,
            custom_configure_recipes=recipes.get("Configure") or [],
            custom_deploy_recipes=recipes.get("Deploy") or [],
            custom_setup_recipes=recipes.get("Setup") or [],
            custom_shutdown_recipes=recipes.get("Shutdown") or [],
            custom_undeploy_recipes=recipes.get("Undeploy") or [],
            custom_instance_profile_arn=layer.get("CustomInstanceProfileArn"),
            custom_json=custom_json or None,
            custom_security_group_ids=frozenset(layer.get("CustomSecurityGroupIds") or []),
            drain_elb_on_shutdown=bool(shutdown.get("DelayUntilElbConnectionsDrained", False)),
            instance_shutdown_timeout=shutdown.get("ExecutionTimeout") or 0,
            install_updates_on_boot=bool(layer.get("InstallUpdatesOnBoot", False)),
            system_packages=frozenset(layer.get("Packages") or []),
            use_ebs_optimized_instances=bool(layer.get("UseEbsOptimizedInstances", False)),
            ebs_volumes=[EbsVolume.from_api(v) for v in layer.get("VolumeConfigurations") or []],
            elastic_load_balancer=elastic_load_balancer,
            load_based_auto_scaling=load_based_auto_scaling,
        )


def layer_to_resource(layer: dict) -> RemoteResource:
    return RemoteResource(id=layer["LayerId"], status=LAYER_STATUS_AVAILABLE, attributes=layer)


class OpsWorksLayerClient(BotoResourceClient):
    """boto3 `opsworks` client adapter for one layer type; ids are layer ids."""

    resource_name = "OpsWorks Layer"

    def __init__(
        self,
        client: Any,
        layer_type: LayerType,
        retry=None,
        poll_interval: float = 5.0,
        not_found_checks: int = 20,
    ) -> None:
        super().__init__(client, retry=retry, poll_interval=poll_interval, not_found_checks=not_found_checks)
        self.layer_type = layer_type

    async def create(self, desired: LayerSettings) -> str:
        params = desired.api_params(self.layer_type)
        name = params["Name"]

        ecs_cluster_arn = desired.attributes.get("ecs_cluster_arn")
        if ecs_cluster_arn:
            try:
                await self._call(
                    "register_ecs_cluster", EcsClusterArn=ecs_cluster_arn, StackId=desired.stack_id
                )
            except API_ERRORS as exc:
                raise self._transport_error(
                    f"registering ECS Cluster ({ecs_cluster_arn}) for", exc, "register_ecs_cluster", name
                ) from exc

        logger.debug(f"[opsworks:create] creating layer type={self.layer_type.type_name} name={name}")
        try:
            out = await self._call(
                "create_layer", StackId=desired.stack_id, Type=self.layer_type.type_name, **params
            )
        except API_ERRORS as exc:
            raise self._transport_error("creating", exc, "create_layer", name) from exc

        layer_id = (out or {}).get("LayerId")
        if not layer_id:
            raise TransportError(f"creating {self.resource_name} ({name}): empty output", operation="create_layer")

        if desired.elastic_load_balancer:
            await self._attach_load_balancer(layer_id, desired.elastic_load_balancer)
        if desired.load_based_auto_scaling is not None:
            await self._set_load_based_auto_scaling(layer_id, desired.load_based_auto_scaling)
        return layer_id

    async def find(self, resource_id: str) -> Optional[RemoteResource]:
        try:
            out = await self._call("describe_layers", LayerIds=[resource_id])
        except API_ERRORS as exc:
            if error_code(exc) == LAYER_NOT_FOUND:
                return None
            raise self._transport_error("reading", exc, "describe_layers", resource_id) from exc

        layers = (out or {}).get("Layers") or []
        if not layers:
            return None
        if len(layers) > 1:
            raise TransportError(
                f"reading {self.resource_name} ({resource_id}): expected 1 result, got {len(layers)}",
                operation="describe_layers",
                resource_id=resource_id,
            )
        return layer_to_resource(layers[0])

    async def find_elastic_load_balancer(self, layer_id: str) -> Optional[str]:
        try:
            out = await self._call("describe_elastic_load_balancers", LayerIds=[layer_id])
        except API_ERRORS as exc:
            raise self._transport_error(
                "reading load balancers of", exc, "describe_elastic_load_balancers", layer_id
            ) from exc

        balancers = (out or {}).get("ElasticLoadBalancers") or []
        if not balancers:
            return None
        if len(balancers) > 1:
            raise TransportError(
                f"reading load balancers of {self.resource_name} ({layer_id}): expected 1 result, got {len(balancers)}",
                operation="describe_elastic_load_balancers",
                resource_id=layer_id,
            )
        return balancers[0].get("ElasticLoadBalancerName")

    async def find_load_based_auto_scaling(self, layer_id: str) -> Optional[LoadBasedAutoScaling]:
        try:
            out = await self._call("describe_load_based_auto_scaling", LayerIds=[layer_id])
        except API_ERRORS as exc:
            raise self._transport_error(
                "reading load-based auto scaling of", exc, "describe_load_based_auto_scaling", layer_id
            ) from exc

        configurations = (out or {}).get("LoadBasedAutoScalingConfigurations") or []
        if not configurations:
            return None
        if len(configurations) > 1:
            raise TransportError(
                f"reading load-based auto scaling of {self.resource_name} ({layer_id}): "
                f"expected 1 result, got {len(configurations)}",
                operation="describe_load_based_auto_scaling",
                resource_id=layer_id,
            )
        return LoadBasedAutoScaling.from_api(configurations[0])

    async def read_settings(
        self, layer_id: str, prior: Optional[LayerSettings] = None
    ) -> Optional[LayerSettings]:
        resource = await self.find(layer_id)
        if resource is None:
            return None
        balancer = await self.find_elastic_load_balancer(layer_id)
        scaling = await self.find_load_based_auto_scaling(layer_id)
        return LayerSettings.from_resource(
            self.layer_type,
            resource,
            prior=prior,
            elastic_load_balancer=balancer,
            load_based_auto_scaling=scaling,
        )

    async def update(self, resource_id: str, desired: LayerSettings) -> None:
        current = await self.read_settings(resource_id, prior=desired)
        if current is None:
            raise ResourceNotFoundError(resource_id)

        replace = [
            key
            for key in sorted(self.layer_type.force_new_keys)
            if desired.attributes.get(key) != current.attributes.get(key)
        ]
        if desired.stack_id != current.stack_id:
            replace.insert(0, "stack_id")
        if replace:
            raise ConvergeError(
                f"updating {self.resource_name}: {', '.join(replace)} cannot be changed in place",
                resource_id=resource_id,
            )

        wanted = desired.api_params(self.layer_type)
        existing = current.api_params(self.layer_type)
        changes = {k: v for k, v in wanted.items() if existing.get(k) != v}
        for key in ("CustomInstanceProfileArn", "CustomJson"):
            if key in existing and key not in wanted:
                changes[key] = ""
        # Write-only values read back as placeholders; resend them whenever set
        if any(desired.attributes.get(k) is not None for k in self.layer_type.write_only_keys):
            changes["Attributes"] = wanted["Attributes"]

        if changes:
            logger.debug(f"[opsworks:update] layer_id={resource_id} changed={sorted(changes)}")
            try:
                await self._call("update_layer", LayerId=resource_id, **changes)
            except API_ERRORS as exc:
                raise self._transport_error("updating", exc, "update_layer", resource_id) from exc

        if desired.elastic_load_balancer != current.elastic_load_balancer:
            if current.elastic_load_balancer:
                await self._detach_load_balancer(resource_id, current.elastic_load_balancer)
            if desired.elastic_load_balancer:
                await self._attach_load_balancer(resource_id, desired.elastic_load_balancer)

        scaling = desired.load_based_auto_scaling
        if scaling is not None and (
            current.load_based_auto_scaling is None
            or scaling.to_api(resource_id) != current.load_based_auto_scaling.to_api(resource_id)
        ):
            await self._set_load_based_auto_scaling(resource_id, scaling)

    async def delete(self, resource_id: str) -> None:
        ecs_cluster_arn = None
        if "ecs_cluster_arn" in self.layer_type.attributes:
            resource = await self.find(resource_id)
            if resource is not None:
                ecs_cluster_arn = (resource.attributes.get("Attributes") or {}).get("EcsClusterArn")

        try:
            await self._call("delete_layer", LayerId=resource_id)
        except API_ERRORS as exc:
            if error_code(exc) == LAYER_NOT_FOUND:
                raise ResourceNotFoundError(resource_id) from exc
            raise self._transport_error("deleting", exc, "delete_layer", resource_id) from exc

        if ecs_cluster_arn:
            try:
                await self._call("deregister_ecs_cluster", EcsClusterArn=ecs_cluster_arn)
            except API_ERRORS as exc:
                raise self._transport_error(
                    f"deregistering ECS Cluster ({ecs_cluster_arn}) of", exc, "deregister_ecs_cluster", resource_id
                ) from exc

    def poll_spec(self, operation: Operation, timeout: float) -> PollSpec:
        if operation == Operation.delete:
            return PollSpec(
                pending=frozenset({LAYER_STATUS_AVAILABLE}),
                target=frozenset(),
                interval=self.poll_interval,
                timeout=timeout,
                not_found_checks=1,
            )
        return PollSpec(
            target=frozenset({LAYER_STATUS_AVAILABLE}),
            interval=self.poll_interval,
            timeout=timeout,
            not_found_checks=self.not_found_checks,
        )

    async def _attach_load_balancer(self, layer_id: str, name: str) -> None:
        try:
            await self._call("attach_elastic_load_balancer", ElasticLoadBalancerName=name, LayerId=layer_id)
        except API_ERRORS as exc:
            raise self._transport_error(
                f"attaching load balancer ({name}) to", exc, "attach_elastic_load_balancer", layer_id
            ) from exc

    async def _detach_load_balancer(self, layer_id: str, name: str) -> None:
        try:
            await self._call("detach_elastic_load_balancer", ElasticLoadBalancerName=name, LayerId=layer_id)
        except API_ERRORS as exc:
            raise self._transport_error(
                f"detaching load balancer ({name}) from", exc, "detach_elastic_load_balancer", layer_id
            ) from exc

    async def _set_load_based_auto_scaling(self, layer_id: str, scaling: LoadBasedAutoScaling) -> None:
        try:
            await self._call("set_load_based_auto_scaling", **scaling.to_api(layer_id))
        except API_ERRORS as exc:
            raise self._transport_error(
                "setting load-based auto scaling of", exc, "set_load_based_auto_scaling", layer_id
            ) from exc
