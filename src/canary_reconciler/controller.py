"""
Controller capability interface.

A controller orchestrates one canary rollout for one workload kind. Instances
are created per canary per reconciliation tick: the baseline and target
workloads are fetched at most once per instance and cached, since informer
caches may lag behind the API server.
"""
import logging
from abc import ABC, abstractmethod
from typing import Any, Callable, Dict, List, Optional, Tuple

from canary_reconciler.config import settings
from canary_reconciler.errors import ConfigurationError, is_kind_invalid
from canary_reconciler.kube_types import WorkloadView, compute_hash, nested_get
from canary_reconciler.models import Canary, CanaryPhase, CanaryStatus
from canary_reconciler.readiness import Readiness, evaluate
from canary_reconciler.resolver import get_target
from canary_reconciler.status import CanaryStatusStore
from canary_reconciler.tracker import ConfigTracker, NopTracker

logger = logging.getLogger(__name__)


def discover_ports(canary: Canary, template: Optional[Dict[str, Any]]) -> Dict[str, int]:
    """
    Collect the named container ports of a pod template.

    The canary service port and target port are skipped since the service
    already exposes them.

    Args:
        canary: The canary resource
        template: Pod template (``spec.template`` of the workload)

    Returns:
        Mapping of port name to container port
    """
    service = canary.spec.service
    ports: Dict[str, int] = {}
    for container in nested_get(template, "spec", "containers") or []:
        for port in container.get("ports") or []:
            number = port.get("containerPort")
            if number is None or number == service.port:
                continue
            target = service.target_port
            if target is not None and (number == target or port.get("name") == target):
                continue
            name = port.get("name") or f"tcp-{container.get('name')}-{number}"
            ports[name] = int(number)
    return ports


class Controller(ABC):
    """Lifecycle operations the scheduling loop and the router drive for a canary."""

    def __init__(self, kube_client, status_store: Optional[CanaryStatusStore] = None,
                 config_tracker: Optional[ConfigTracker] = None, labels: Optional[List[str]] = None):
        self.kube_client = kube_client
        self.status_store = status_store or CanaryStatusStore(kube_client)
        self.config_tracker = config_tracker or NopTracker()
        self.labels = labels if labels is not None else settings.selector_labels
        self._target: Optional[Dict[str, Any]] = None
        self._primary: Optional[Dict[str, Any]] = None

    # workloads

    def target(self, canary: Canary) -> Dict[str, Any]:
        """The canary (new version) workload, fetched once."""
        if self._target is None:
            self._target = get_target(self.kube_client, canary)
        return self._target

    def primary(self, canary: Canary) -> Dict[str, Any]:
        """
        The baseline workload, resolved once.

        The target is fetched along with it, so once the baseline name is
        known both workloads can be scaled by name.
        """
        if self._primary is None:
            self.target(canary)
            self._primary = self.resolve_primary(canary)
        return self._primary

    @abstractmethod
    def resolve_primary(self, canary: Canary) -> Dict[str, Any]:
        ...

    def scaler(self, canary: Canary) -> Callable[[str, int], None]:
        """
        Resolve the baseline and the target, then hand out ``scale`` for a router.

        Args:
            canary: The canary whose workloads the router scales

        Returns:
            The bound ``scale`` method
        """
        self.primary(canary)
        return self.scale

    def scale(self, name: str, replicas: int) -> None:
        """
        Scale the baseline or the target workload by name.

        Only workloads this controller has already resolved can be scaled,
        see ``primary`` and ``scaler``.

        Raises:
            ConfigurationError: if ``name`` is neither the baseline nor the target
        """
        for role, workload in (("source/primary", self._primary), ("target/canary", self._target)):
            if workload is not None and workload["metadata"]["name"] == name:
                logger.info(f"Going to scale the {role} resource {name}")
                self._scale_workload(workload, replicas)
                return
        raise ConfigurationError(f"cannot scale an unknown resource {name}")

    def _scale_workload(self, workload: Dict[str, Any], replicas: int) -> None:
        self.kube_client.scale_workload(workload, replicas)

    # readiness

    def _evaluate(self, workload: Dict[str, Any], canary: Canary) -> Readiness:
        return evaluate(WorkloadView.from_object(workload), canary.progress_deadline())

    def primary_readiness(self, canary: Canary) -> Readiness:
        return self._evaluate(self.primary(canary), canary)

    def canary_readiness(self, canary: Canary) -> Readiness:
        return self._evaluate(self.target(canary), canary)

    def is_primary_ready(self, canary: Canary) -> None:
        """Raise a ReadinessError unless the baseline is ready."""
        self.primary_readiness(canary).raise_for_status()

    def is_canary_ready(self, canary: Canary) -> bool:
        """
        Check the canary workload.

        Returns:
            True when ready

        Raises:
            ReadinessError: with ``retriable`` telling whether polling should continue
        """
        self.canary_readiness(canary).raise_for_status()
        return True

    # lifecycle

    @abstractmethod
    def initialize(self, canary: Canary) -> None:
        ...

    def promote(self, canary: Canary) -> None:
        """Set the canary weight to 100 and refresh the caller's copy."""
        if canary.status.canary_weight == 100:
            return
        self.set_status_weight(canary, 100)
        canary.refresh(Canary.from_object(self.kube_client.get_canary(canary.name, canary.namespace)))

    def scale_to_zero(self, canary: Canary) -> None:
        pass

    def scale_from_zero(self, canary: Canary) -> None:
        pass

    def finalize(self, canary: Canary) -> None:
        """Restore the baseline to the maximum replica count."""
        self._scale_workload(self.primary(canary), canary.spec.analysis.max_replicas)

    def has_target_changed(self, canary: Canary) -> bool:
        return canary.status.last_applied_spec != self.spec_hash(canary)

    def have_dependencies_changed(self, canary: Canary) -> bool:
        try:
            return self.config_tracker.has_config_changed(canary)
        except Exception as e:
            if is_kind_invalid(e):
                return False
            raise

    # metadata

    def get_metadata(self, canary: Canary) -> Tuple[str, Dict[str, int]]:
        """
        Pick the selector label and discover extra ports of the target.

        Returns:
            The first configured label key present on the target, and the
            discovered ports (empty unless port discovery is enabled)
        """
        workload = self.target(canary)
        labels = nested_get(workload, "metadata", "labels") or {}
        label = next((key for key in self.labels if key in labels), None)
        if label is None:
            raise ConfigurationError(
                f"workload {workload['metadata']['name']}.{workload['metadata'].get('namespace')} "
                f"meta data label must contain one of {self.labels}"
            )
        ports: Dict[str, int] = {}
        if canary.spec.service.port_discovery:
            ports = discover_ports(canary, nested_get(workload, "spec", "template"))
        return label, ports

    # status

    def spec_hash(self, canary: Canary) -> str:
        spec = self.target(canary).get("spec") or {}
        return compute_hash(spec.get("template", spec))

    def _config_refs(self, canary: Canary) -> Optional[Dict[str, str]]:
        try:
            return self.config_tracker.get_config_refs(canary)
        except Exception as e:
            if is_kind_invalid(e):
                return None
            logger.error(f"GetConfigRefs failed for canary {canary.display_name}: {e}")
            raise

    def sync_status(self, canary: Canary, status: CanaryStatus) -> Canary:
        """
        Merge ``status`` into the stored canary status.

        The tracked config references and the target spec hash are recorded
        alongside the delta.
        """
        configs = self._config_refs(canary)

        def attach_configs(current: Dict[str, Any]) -> None:
            current["trackedConfigs"] = configs

        return self.status_store.sync_status(canary, status, self.spec_hash(canary), attach_configs)

    def set_status_failed_checks(self, canary: Canary, value: int) -> Canary:
        return self.status_store.set_failed_checks(canary, value)

    def set_status_weight(self, canary: Canary, value: int) -> Canary:
        return self.status_store.set_weight(canary, value)

    def set_status_iterations(self, canary: Canary, value: int) -> Canary:
        return self.status_store.set_iterations(canary, value)

    def set_status_phase(self, canary: Canary, phase: CanaryPhase) -> Canary:
        return self.status_store.set_phase(canary, phase)
