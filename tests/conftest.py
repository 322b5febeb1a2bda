"""Shared test fixtures."""

from __future__ import annotations

import sys
from pathlib import Path

import pytest

PROJECT_ROOT = Path(__file__).resolve().parent.parent
CDK_DIR = PROJECT_ROOT / "cdk"
LAMBDA_DIR = PROJECT_ROOT / "lambda"

# cdk/ holds the `stacks` package, lambda/ holds the function handler
sys.path.insert(0, str(CDK_DIR))
sys.path.insert(0, str(LAMBDA_DIR))


@pytest.fixture
def environments() -> list[dict]:
    return [
        {
            "branchName": "main",
            "environment": "prod",
            "appName": "demo",
            "accountNumber": "123",
        },
        {
            "branchName": "develop",
            "environment": "dev",
            "appName": "demo",
            "accountNumber": "456",
            "region": "eu-west-1",
        },
    ]


@pytest.fixture
def globals_() -> dict:
    return {"region": "us-east-1"}


@pytest.fixture
def resolved(environments, globals_):
    from stacks.context import resolve_context

    return resolve_context("main", environments, globals_)


@pytest.fixture
def lambda_context():
    """Create a fake Lambda context object."""

    class FakeContext:
        aws_request_id: str = "test-request-id-001"
        function_name: str = "resources-api-prod-getResources"
        memory_limit_in_mb: int = 1024

        def get_remaining_time_in_millis(self) -> int:
            return 30000

    return FakeContext()
