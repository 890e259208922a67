# main.py
import boto3

from converge.adapters.opsworks_layer import OpsWorksLayerClient
from converge.adapters.opsworks_layer_types import LAYER_TYPES
from converge.adapters.redshift_integration import RedshiftIntegrationClient
from converge.adapters.retry_tenacity import TenacityRetryAdapter
from converge.core.config import ResourceTimeouts
from converge.core.logging_config import configure_logging
from converge.core.managers.resource_manager import ResourceManager
from converge.core.settings import ConvergeSettings, app_settings


# main lives at the outermost layer (not in core)
# Instantiates the concrete adapters and wires them into managers.
# Host applications either call these factories or assemble the pieces
# themselves.

def _boto3_client(service: str, settings: ConvergeSettings, session=None):
    session = session or boto3.session.Session(
        profile_name=settings.CONVERGE_AWS_PROFILE,
        region_name=settings.CONVERGE_AWS_REGION,
    )
    return session.client(service)


def redshift_integration_manager(
    settings: ConvergeSettings = app_settings, session=None
) -> ResourceManager:
    client = RedshiftIntegrationClient(
        _boto3_client("redshift", settings, session),
        retry=TenacityRetryAdapter.from_app_settings(settings),
        poll_interval=settings.CONVERGE_POLL_INTERVAL,
        not_found_checks=settings.CONVERGE_NOT_FOUND_CHECKS,
    )
    return ResourceManager(client, timeouts=ResourceTimeouts.from_app_settings(settings))


def opsworks_layer_manager(
    resource_type: str, settings: ConvergeSettings = app_settings, session=None
) -> ResourceManager:
    """Manager for one `aws_opsworks_*_layer` resource type."""
    try:
        layer_type = LAYER_TYPES[resource_type]
    except KeyError:
        raise ValueError(f"unknown OpsWorks layer resource type: {resource_type}") from None

    client = OpsWorksLayerClient(
        _boto3_client("opsworks", settings, session),
        layer_type,
        retry=TenacityRetryAdapter.from_app_settings(settings),
        poll_interval=settings.CONVERGE_POLL_INTERVAL,
        not_found_checks=settings.CONVERGE_NOT_FOUND_CHECKS,
    )
    return ResourceManager(client, timeouts=ResourceTimeouts.from_app_settings(settings))


def setup_logging(settings: ConvergeSettings = app_settings) -> None:
    # Central logging configuration for scripts embedding converge
    configure_logging(settings.CONVERGE_LOG_LEVEL)
