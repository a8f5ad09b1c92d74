import pytest
from fastapi.testclient import TestClient

from canary_reconciler.app import create_app
from canary_reconciler.config import settings
from canary_reconciler.factory import ControllerFactory

from fakes import make_canary, make_workload


@pytest.fixture
def client(kube):
    return TestClient(create_app(kube_client=kube))


def test_health(client):
    r = client.get("/health")
    assert r.status_code == 200
    assert r.json()["status"] == "healthy"


def test_app_is_titled_from_settings(client):
    assert client.app.title == settings.APP_NAME


def test_canary_status(kube, client):
    kube.add(make_canary(phase="Progressing", weight=30, failed_checks=1))
    r = client.get("/api/canaries/test/podinfo")
    assert r.status_code == 200
    body = r.json()
    assert body["phase"] == "Progressing"
    assert body["canaryWeight"] == 30
    assert body["failedChecks"] == 1
    assert body["target"] == "podinfo"


def test_unknown_canary(client):
    r = client.get("/api/canaries/test/missing")
    assert r.status_code == 404


def test_readiness(kube, client):
    kube.add(make_canary(phase="Progressing"))
    kube.add(make_workload("podinfo", replicas=3, updated=1))
    kube.add(make_workload("podinfo-primary"))

    r = client.get("/api/canaries/test/podinfo/readiness")
    assert r.status_code == 200
    body = r.json()
    assert body["primary"] == {"ready": True, "retriable": True, "reason": None}
    assert body["canary"]["ready"] is False
    assert body["canary"]["retriable"] is True
    assert "1 out of 3" in body["canary"]["reason"]
    # read-only
    assert kube.patches == []
    assert kube.status_writes == []


def test_readiness_missing_primary(kube, client):
    kube.add(make_canary())
    kube.add(make_workload("podinfo"))
    r = client.get("/api/canaries/test/podinfo/readiness")
    assert r.status_code == 404


def test_readiness_configuration_error(kube):
    class InplaceFactory(ControllerFactory):
        def controller(self, canary, kind=None):
            return super().controller(canary, "inplace")

    kube.add(make_canary())
    client = TestClient(create_app(kube_client=kube, factory=InplaceFactory(kube)))
    r = client.get("/api/canaries/test/podinfo/readiness")
    assert r.status_code == 409
    assert "inplace" in r.json()["detail"]
