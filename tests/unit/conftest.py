"""Unit test fixtures using moto."""

import asyncio
from collections.abc import Awaitable
from unittest.mock import patch

import pytest
from moto import mock_aws

from zae_metrics import InMemoryRepository, MetricCounter
from zae_metrics.repository import Repository

# 2024-06-15T12:00:00Z
FIXED_NOW = 1718452800.0


@pytest.fixture
def aws_credentials(monkeypatch):
    """Mock AWS credentials for moto."""
    monkeypatch.setenv("AWS_ACCESS_KEY_ID", "testing")
    monkeypatch.setenv("AWS_SECRET_ACCESS_KEY", "testing")
    monkeypatch.setenv("AWS_SECURITY_TOKEN", "testing")
    monkeypatch.setenv("AWS_SESSION_TOKEN", "testing")
    monkeypatch.setenv("AWS_DEFAULT_REGION", "us-east-1")
    # moto only intercepts requests to the default endpoint
    monkeypatch.delenv("AWS_ENDPOINT_URL", raising=False)


@pytest.fixture
def mock_dynamodb(aws_credentials):
    """Mock DynamoDB for tests."""
    with mock_aws():
        yield


def _patch_aiobotocore_response():
    """
    Patch aiobotocore to work with moto's sync responses.

    Moto returns botocore.awsrequest.AWSResponse which has sync content,
    but aiobotocore expects async content. This patch wraps the response
    handling to convert sync content to async.

    See: https://github.com/aio-libs/aiobotocore/discussions/1300
    """
    from aiobotocore import endpoint

    original_convert = endpoint.convert_to_response_dict

    async def patched_convert(http_response, operation_model):
        if hasattr(http_response, "_content") and not isinstance(http_response._content, Awaitable):
            fut: asyncio.Future[bytes] = asyncio.Future()
            fut.set_result(http_response.content)
            http_response._content = fut
        return await original_convert(http_response, operation_model)

    return patch.object(endpoint, "convert_to_response_dict", patched_convert)


@pytest.fixture
async def repo(mock_dynamodb):
    """Create a Repository on a mocked table."""
    with _patch_aiobotocore_response():
        repository = Repository(table_name="test-feature-usage", region="us-east-1")
        await repository.create_table()
        async with repository:
            yield repository


@pytest.fixture
async def counter(repo):
    """Create a MetricCounter on the mocked table with a fixed clock."""
    yield MetricCounter(repo, clock=lambda: FIXED_NOW)


@pytest.fixture
def memory_repo() -> InMemoryRepository:
    """Create an empty in-memory store."""
    return InMemoryRepository()


@pytest.fixture
def memory_counter(memory_repo: InMemoryRepository) -> MetricCounter:
    """Create a MetricCounter on the in-memory store with a fixed clock."""
    return MetricCounter(memory_repo, clock=lambda: FIXED_NOW)
