"""
Pytest configuration and fixtures for vmsdbg tests.
"""

import pytest

from vmsdbg import VMServiceClient
from vm_stubs import FakeTransportFactory


@pytest.fixture
def transports() -> FakeTransportFactory:
    return FakeTransportFactory()


@pytest.fixture
def client(transports: FakeTransportFactory) -> VMServiceClient:
    return VMServiceClient(transport_factory=transports)
