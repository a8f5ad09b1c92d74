import pytest

from canary_reconciler.models import Canary
from canary_reconciler.status import CanaryStatusStore

from fakes import FakeKubeClient, make_canary


@pytest.fixture
def kube():
    return FakeKubeClient()


@pytest.fixture
def store(kube):
    return CanaryStatusStore(kube, attempts=3)


@pytest.fixture
def add_canary(kube):
    """Store a canary built from keyword arguments and return its model."""
    def _add(**kwargs) -> Canary:
        return Canary.from_object(kube.add(make_canary(**kwargs)))
    return _add
