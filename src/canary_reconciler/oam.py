"""
Controller for OAM component rollouts.

The target is a workload pinned to a fixed component revision and the
baseline is the workload of the previous revision. Promotion swaps them:
the target is scaled up to the maximum while the baseline is scaled away.
"""
import logging
from typing import Any, Dict

from kubernetes.client.rest import ApiException

from canary_reconciler.controller import Controller
from canary_reconciler.errors import is_not_found
from canary_reconciler.kube_types import WorkloadView, nested_get
from canary_reconciler.models import Canary, CanaryPhase
from canary_reconciler.readiness import Readiness, evaluate_deployment, evaluate_generic
from canary_reconciler.resolver import BaselineResolver

logger = logging.getLogger(__name__)


class OAMRolloutController(Controller):

    def resolve_primary(self, canary: Canary) -> Dict[str, Any]:
        target = None if canary.spec.source_ref is not None else self.target(canary)
        return BaselineResolver(self.kube_client).resolve(canary, target)

    def source_name(self, canary: Canary) -> str:
        return self.primary(canary)["metadata"]["name"]

    def _evaluate(self, workload: Dict[str, Any], canary: Canary) -> Readiness:
        deadline = canary.progress_deadline()
        kind = workload.get("kind")
        if kind == "Deployment":
            return evaluate_deployment(WorkloadView.from_object(workload), deadline)
        if kind == "PodSpecWorkload":
            return self._evaluate_pod_spec_workload(workload, deadline)
        return evaluate_generic(WorkloadView.from_object(workload))

    def _evaluate_pod_spec_workload(self, workload: Dict[str, Any], deadline: int) -> Readiness:
        """Evaluate the Deployment a PodSpecWorkload renders to."""
        name = workload["metadata"]["name"]
        namespace = workload["metadata"].get("namespace")
        deploy_name = None
        for res in nested_get(workload, "status", "resources") or []:
            if res.get("kind") == "Deployment":
                deploy_name = res.get("name")
        if not deploy_name:
            return Readiness(ready=False, reason=f"Deployment not found for PodSpecWorkload {name}",
                             workload=f"{name}.{namespace}")
        try:
            deploy = self.kube_client.get_object("Deployment", "apps/v1", deploy_name, namespace)
        except ApiException as e:
            if is_not_found(e):
                return Readiness(ready=False, reason=f"Deployment {deploy_name} of PodSpecWorkload {name} not found",
                                 workload=f"{name}.{namespace}")
            raise
        return evaluate_deployment(WorkloadView.from_object(deploy), deadline)

    def initialize(self, canary: Canary) -> None:
        """
        Swap in the baseline for the start of the rollout.

        The target is scaled to zero and the baseline to the maximum replica
        count. Nothing happens once the canary has left the initializing phases.
        """
        if not canary.is_initializing():
            return
        if not canary.spec.skip_analysis:
            self.is_primary_ready(canary)

        target_name = canary.spec.target_ref.name
        self.scale(self.target(canary)["metadata"]["name"], 0)
        logger.info(f"Scaling down canary resource {target_name}.{canary.namespace} to zero succeeded")

        source = self.source_name(canary)
        self.scale(source, canary.spec.analysis.max_replicas)
        logger.info(
            f"Scaling primary resource {source}.{canary.namespace} to "
            f"{canary.spec.analysis.max_replicas} succeeded (canary {canary.display_name})"
        )

    def scale_to_zero(self, canary: Canary) -> None:
        # promotion retires the baseline; anything else is a rollback
        if canary.is_promoted():
            self.scale(self.source_name(canary), 0)
        else:
            self.scale(self.source_name(canary), canary.spec.analysis.max_replicas)

    def has_target_changed(self, canary: Canary) -> bool:
        # the target is pinned to one revision; report a change once so the
        # canary can leave Initialized
        return canary.status.phase == CanaryPhase.INITIALIZED

    def finalize(self, canary: Canary) -> None:
        self.scale(self.source_name(canary), canary.spec.analysis.max_replicas)
