from unittest.mock import MagicMock

import pytest
from kubernetes.client.rest import ApiException

from canary_reconciler.kube_client import MERGE_PATCH, KubeClient

from fakes import make_workload


@pytest.fixture
def client(monkeypatch):
    monkeypatch.setattr("canary_reconciler.kube_client.config.load_kube_config", lambda **kwargs: None)
    monkeypatch.setattr("canary_reconciler.kube_client.client.ApiClient", MagicMock())
    dynamic = MagicMock()
    monkeypatch.setattr("canary_reconciler.kube_client.DynamicClient", lambda api_client: dynamic)
    return KubeClient(in_cluster=False)


def test_scale_workload_patches_only_replicas(client):
    workload = make_workload("podinfo", replicas=2)
    patched = make_workload("podinfo", replicas=5)
    resource = client.dynamic.resources.get.return_value
    resource.patch.return_value.to_dict.return_value = patched

    result = client.scale_workload(workload, 5)

    client.dynamic.resources.get.assert_called_with(api_version="apps/v1", kind="Deployment")
    resource.patch.assert_called_once_with(
        body={"spec": {"replicas": 5}}, name="podinfo", namespace="test", content_type=MERGE_PATCH
    )
    assert result is workload
    assert workload["spec"]["replicas"] == 5


def test_get_object_propagates_not_found(client):
    client.dynamic.resources.get.return_value.get.side_effect = ApiException(status=404, reason="Not Found")
    with pytest.raises(ApiException) as exc:
        client.get_object("Deployment", "apps/v1", "missing", "test")
    assert exc.value.status == 404


def test_scale_subresource(client):
    scale = MagicMock()
    client.dynamic.resources.get.return_value.subresources = {"scale": scale}
    client.scale_subresource("CloneSet", "apps.kruise.io/v1alpha1", "web", "test", 3)
    scale.patch.assert_called_once_with(
        body={"spec": {"replicas": 3}}, name="web", namespace="test", content_type=MERGE_PATCH
    )


def test_scale_subresource_missing(client):
    client.dynamic.resources.get.return_value.subresources = {}
    with pytest.raises(ApiException) as exc:
        client.scale_subresource("CronJob", "batch/v1", "job", "test", 1)
    assert exc.value.status == 405


def test_list_revisions(client):
    client.dynamic.resources.get.return_value.get.return_value.to_dict.return_value = {
        "items": [{"metadata": {"name": "web-v1", "namespace": "test"}, "revision": 1, "data": {}}]
    }
    revisions = client.list_revisions("test", "controller.oam.dev/component=web")
    assert [(r.name, r.revision) for r in revisions] == [("web-v1", 1)]
