"""Tests for throttling retries of boto3 calls (transport layer only)."""

from unittest.mock import MagicMock

import pytest
from botocore.exceptions import ClientError

from converge.adapters.redshift_integration import RedshiftIntegrationClient
from converge.adapters.retry_tenacity import TenacityRetryAdapter
from converge.core.exceptions import ThrottlingError, TransportError

ARN = "arn:aws:redshift:us-west-2:123456789012:integration:a1b2c3"


def client_error(code):
    return ClientError({"Error": {"Code": code, "Message": "Rate exceeded"}}, "DescribeIntegrations")


@pytest.fixture
def retry():
    return TenacityRetryAdapter(attempts=3, wait_initial=0, wait_max=0)


class TestTenacityRetryAdapter:

    async def test_retries_throttling_until_success(self, retry):
        calls = []

        async def flaky():
            calls.append(1)
            if len(calls) < 3:
                raise ThrottlingError("slow down")
            return "ok"

        assert await retry.execute(flaky) == "ok"
        assert len(calls) == 3

    async def test_gives_up_after_attempts(self, retry):
        calls = []

        async def throttled():
            calls.append(1)
            raise ThrottlingError("slow down")

        with pytest.raises(ThrottlingError):
            await retry.execute(throttled)
        assert len(calls) == 3

    async def test_other_errors_are_not_retried(self, retry):
        calls = []

        async def broken():
            calls.append(1)
            raise TransportError("access denied")

        with pytest.raises(TransportError):
            await retry.execute(broken)
        assert len(calls) == 1

    async def test_call_time_overrides(self, retry):
        calls = []

        async def throttled():
            calls.append(1)
            raise ThrottlingError("slow down")

        with pytest.raises(ThrottlingError):
            await retry.execute(throttled, attempts=1)
        assert len(calls) == 1


class TestBotoCallRetries:

    async def test_throttled_describe_is_retried(self, retry):
        boto = MagicMock()
        pages = boto.get_paginator.return_value.paginate
        pages.side_effect = [
            client_error("ThrottlingException"),
            [{"Integrations": [{"IntegrationArn": ARN, "Status": "active"}]}],
        ]
        adapter = RedshiftIntegrationClient(boto, retry=retry)

        resource = await adapter.find(ARN)

        assert resource.status == "active"
        assert pages.call_count == 2

    async def test_exhausted_throttling_surfaces_transport_error(self, retry):
        boto = MagicMock()
        pages = boto.get_paginator.return_value.paginate
        pages.side_effect = client_error("Throttling")
        adapter = RedshiftIntegrationClient(boto, retry=retry)

        with pytest.raises(ThrottlingError) as excinfo:
            await adapter.find(ARN)

        assert isinstance(excinfo.value, TransportError)
        assert excinfo.value.error_code == "Throttling"
        assert pages.call_count == 3

    async def test_without_retry_port_throttling_fails_fast(self):
        boto = MagicMock()
        pages = boto.get_paginator.return_value.paginate
        pages.side_effect = client_error("ThrottlingException")

        with pytest.raises(ThrottlingError):
            await RedshiftIntegrationClient(boto).find(ARN)
        assert pages.call_count == 1
