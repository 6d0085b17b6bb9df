import pytest

from tests.fakes import FakeClientFactory


@pytest.fixture
def client_factory():
    return FakeClientFactory()
