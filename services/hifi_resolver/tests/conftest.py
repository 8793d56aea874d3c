import pytest

from services.hifi_resolver.tests.fakes import ProxyCluster


@pytest.fixture
def cluster() -> ProxyCluster:
    return ProxyCluster()
