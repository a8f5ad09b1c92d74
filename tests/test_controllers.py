import pytest

from canary_reconciler.config import settings
from canary_reconciler.daemonset import DaemonSetController
from canary_reconciler.deployment import DeploymentController
from canary_reconciler.errors import (
    BaselineNotFoundError,
    ConfigurationError,
    KIND_INVALID_SENTINEL,
    TrackerKindInvalidError,
    WorkloadNotReadyError,
    WorkloadStalledError,
)
from canary_reconciler.models import CanaryPhase, CanaryStatus
from canary_reconciler.service import ServiceController

from fakes import make_template, make_workload


class _Tracker:
    def __init__(self, refs=None, changed=False, error=None):
        self.refs = refs or {}
        self.changed = changed
        self.error = error

    def get_config_refs(self, canary):
        if self.error:
            raise self.error
        return self.refs

    def has_config_changed(self, canary):
        if self.error:
            raise self.error
        return self.changed


@pytest.fixture
def deployments(kube):
    kube.add(make_workload("podinfo", replicas=2))
    kube.add(make_workload("podinfo-primary", replicas=7))


def _controller(kube, store, cls=DeploymentController, tracker=None):
    return cls(kube, store, tracker, ["app", "name"])


# Deployment

def test_initialize_scales_target_to_zero(kube, store, add_canary, deployments):
    canary = add_canary()
    _controller(kube, store).initialize(canary)
    assert kube.scales == [("podinfo", 0)]
    assert kube.stored("Deployment", "podinfo")["spec"]["replicas"] == 0


def test_initialize_twice_on_initialized_canary_does_not_scale(kube, store, add_canary, deployments):
    canary = add_canary(phase="Initialized")
    controller = _controller(kube, store)
    controller.initialize(canary)
    controller.initialize(canary)
    assert kube.scales == []


def test_initialize_requires_ready_primary(kube, store, add_canary):
    kube.add(make_workload("podinfo"))
    kube.add(make_workload("podinfo-primary", replicas=3, updated=1))
    canary = add_canary()
    with pytest.raises(WorkloadNotReadyError) as exc:
        _controller(kube, store).initialize(canary)
    assert exc.value.retriable is True
    assert kube.scales == []


def test_initialize_skip_analysis_ignores_primary_readiness(kube, store, add_canary):
    kube.add(make_workload("podinfo"))
    kube.add(make_workload("podinfo-primary", observed_generation=None))
    canary = add_canary(skip_analysis=True)
    _controller(kube, store).initialize(canary)
    assert kube.scales == [("podinfo", 0)]


def test_missing_primary(kube, store, add_canary):
    kube.add(make_workload("podinfo"))
    with pytest.raises(BaselineNotFoundError):
        _controller(kube, store).is_primary_ready(add_canary())


def test_is_canary_ready(kube, store, add_canary, deployments):
    assert _controller(kube, store).is_canary_ready(add_canary()) is True


def test_is_canary_ready_reports_stalled_workload(kube, store, add_canary):
    conditions = [{"type": "Progressing", "status": "False", "reason": "ProgressDeadlineExceeded"}]
    kube.add(make_workload("podinfo", conditions=conditions))
    with pytest.raises(WorkloadStalledError) as exc:
        _controller(kube, store).is_canary_ready(add_canary())
    assert exc.value.retriable is False


def test_workloads_are_fetched_once(kube, store, add_canary, deployments):
    canary = add_canary()
    controller = _controller(kube, store)
    controller.is_canary_ready(canary)
    kube.stored("Deployment", "podinfo")["status"]["updatedReplicas"] = 0
    assert controller.is_canary_ready(canary) is True


def test_scale_from_zero(kube, store, add_canary, deployments):
    canary = add_canary(canary_replicas=3)
    _controller(kube, store).scale_from_zero(canary)
    assert kube.scales == [("podinfo", 3)]


def test_finalize_restores_primary(kube, store, add_canary, deployments):
    _controller(kube, store).finalize(add_canary(max_replicas=5))
    assert kube.scales == [("podinfo-primary", 5)]


def test_scale_merge_patch_only_touches_replicas(kube, store, add_canary, deployments):
    controller = _controller(kube, store)
    controller.target(add_canary())
    controller.scale("podinfo", 4)
    assert kube.patches == [("podinfo", {"spec": {"replicas": 4}})]


def test_scale_unknown_resource(kube, store, add_canary, deployments):
    controller = _controller(kube, store)
    controller.target(add_canary())
    with pytest.raises(ConfigurationError, match="unknown resource"):
        controller.scale("other", 1)


def test_promote_sets_weight_and_refreshes_canary(kube, store, add_canary, deployments):
    canary = add_canary(phase="Progressing", weight=50)
    _controller(kube, store).promote(canary)
    assert canary.status.canary_weight == 100
    assert kube.stored("Canary", "podinfo", api_version=canary.api_version)["status"]["canaryWeight"] == 100


def test_promote_is_idempotent(kube, store, add_canary, deployments):
    canary = add_canary(phase="Promoting", weight=100)
    _controller(kube, store).promote(canary)
    assert kube.status_writes == []


def test_sync_status_attaches_tracked_configs(kube, store, add_canary, deployments):
    canary = add_canary()
    tracker = _Tracker(refs={"configmap/podinfo-config": "5d4c"})
    updated = _controller(kube, store, tracker=tracker).sync_status(
        canary, CanaryStatus(phase=CanaryPhase.INITIALIZED)
    )
    assert updated.status.tracked_configs == {"configmap/podinfo-config": "5d4c"}
    assert updated.status.phase == CanaryPhase.INITIALIZED


@pytest.mark.parametrize(
    "error",
    [TrackerKindInvalidError("StatefulSet"), RuntimeError(f"{KIND_INVALID_SENTINEL} StatefulSet")],
)
def test_kind_invalid_tracker_error_means_no_configs(kube, store, add_canary, deployments, error):
    canary = add_canary()
    controller = _controller(kube, store, tracker=_Tracker(error=error))
    updated = controller.sync_status(canary, CanaryStatus(iterations=1))
    assert updated.status.tracked_configs is None
    assert controller.have_dependencies_changed(canary) is False


def test_other_tracker_errors_propagate(kube, store, add_canary, deployments):
    controller = _controller(kube, store, tracker=_Tracker(error=RuntimeError("configmap forbidden")))
    with pytest.raises(RuntimeError):
        controller.sync_status(add_canary(), CanaryStatus(iterations=1))
    with pytest.raises(RuntimeError):
        controller.have_dependencies_changed(add_canary())


def test_sentinel_value():
    assert KIND_INVALID_SENTINEL == "TargetRef.Kind invalid:"
    assert str(TrackerKindInvalidError("Foo")) == "TargetRef.Kind invalid: Foo"


def test_have_dependencies_changed(kube, store, add_canary, deployments):
    controller = _controller(kube, store, tracker=_Tracker(changed=True))
    assert controller.have_dependencies_changed(add_canary()) is True


def test_has_target_changed_compares_spec_hash(kube, store, add_canary, deployments):
    canary = add_canary()
    controller = _controller(kube, store)
    assert controller.has_target_changed(canary) is True

    synced = controller.sync_status(canary, CanaryStatus(phase=CanaryPhase.INITIALIZED))
    assert controller.has_target_changed(synced) is False

    kube.stored("Deployment", "podinfo")["spec"]["template"] = make_template(image="podinfo:6.1.0")
    assert _controller(kube, store).has_target_changed(synced) is True


def test_get_metadata_picks_first_present_label(kube, store, add_canary):
    kube.add(make_workload("podinfo", labels={"name": "podinfo", "app": "podinfo"}))
    label, ports = _controller(kube, store).get_metadata(add_canary())
    assert label == "app"
    assert ports == {}


def test_get_metadata_discovers_ports(kube, store, add_canary):
    template = make_template(ports=[
        {"name": "http", "containerPort": 9898},
        {"name": "grpc", "containerPort": 9999},
        {"containerPort": 8080},
    ])
    kube.add(make_workload("podinfo", template=template))
    _, ports = _controller(kube, store).get_metadata(add_canary(port_discovery=True, service_port=9898))
    assert ports == {"grpc": 9999, "tcp-podinfo-8080": 8080}


def test_get_metadata_requires_selector_label(kube, store, add_canary):
    kube.add(make_workload("podinfo", labels={"team": "x"}))
    with pytest.raises(ConfigurationError, match="must contain one of"):
        _controller(kube, store).get_metadata(add_canary())


# DaemonSet

def test_daemonset_scaled_by_node_selector(kube, store, add_canary):
    kube.add(make_workload("agent", kind="DaemonSet"))
    canary = add_canary(target="agent", kind="DaemonSet")
    controller = _controller(kube, store, cls=DaemonSetController)

    controller.scale_to_zero(canary)
    pod_spec = kube.stored("DaemonSet", "agent")["spec"]["template"]["spec"]
    assert pod_spec["nodeSelector"] == {settings.SCALE_TO_ZERO_NODE_SELECTOR: "true"}

    controller.scale_from_zero(canary)
    pod_spec = kube.stored("DaemonSet", "agent")["spec"]["template"]["spec"]
    assert "nodeSelector" not in pod_spec


def test_daemonset_keeps_existing_node_selector(kube, store, add_canary):
    template = make_template()
    template["spec"]["nodeSelector"] = {"kubernetes.io/os": "linux"}
    kube.add(make_workload("agent", kind="DaemonSet", template=template))
    canary = add_canary(target="agent", kind="DaemonSet")
    controller = _controller(kube, store, cls=DaemonSetController)

    controller.scale_to_zero(canary)
    controller.scale_from_zero(canary)
    pod_spec = kube.stored("DaemonSet", "agent")["spec"]["template"]["spec"]
    assert pod_spec["nodeSelector"] == {"kubernetes.io/os": "linux"}


# Service

def test_service_controller_is_inert(kube, store, add_canary):
    kube.add({"apiVersion": "v1", "kind": "Service", "metadata": {"name": "podinfo", "namespace": "test"},
              "spec": {"ports": [{"port": 80}]}})
    canary = add_canary(kind="Service", api_version="v1")
    controller = _controller(kube, store, cls=ServiceController)

    controller.initialize(canary)
    controller.is_primary_ready(canary)
    assert controller.is_canary_ready(canary) is True
    assert controller.get_metadata(canary) == ("", {})
    controller.scale_to_zero(canary)
    controller.finalize(canary)
    assert kube.scales == []
    assert kube.patches == []
