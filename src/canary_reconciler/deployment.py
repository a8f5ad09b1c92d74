"""
Controller for Deployment targets.

The baseline is the ``<target>-primary`` Deployment unless the canary pins it
with ``spec.sourceRef``. The target is parked at zero replicas between
rollouts and scaled up when a new revision shows up.
"""
import logging
from typing import Any, Dict

from kubernetes.client.rest import ApiException

from canary_reconciler.controller import Controller
from canary_reconciler.errors import BaselineNotFoundError, is_not_found
from canary_reconciler.models import Canary
from canary_reconciler.resolver import BaselineResolver

logger = logging.getLogger(__name__)


class DeploymentController(Controller):
    """Deployment-like workloads with a separate primary copy."""

    def resolve_primary(self, canary: Canary) -> Dict[str, Any]:
        if canary.spec.source_ref is not None:
            return BaselineResolver(self.kube_client).resolve(canary)
        ref = canary.spec.target_ref
        name = f"{ref.name}-primary"
        try:
            return self.kube_client.get_object(ref.kind, ref.api_version, name, canary.target_namespace)
        except ApiException as e:
            if is_not_found(e):
                raise BaselineNotFoundError(
                    f"primary {ref.kind} {name}.{canary.target_namespace} not found"
                ) from e
            raise

    def initialize(self, canary: Canary) -> None:
        """
        Verify the primary and park the target at zero replicas.

        Only runs while the canary is initializing, so repeated calls on an
        initialized canary are no-ops.
        """
        if not canary.is_initializing():
            return
        if not canary.spec.skip_analysis:
            self.is_primary_ready(canary)
        self.scale_to_zero(canary)
        logger.info(f"Scaled down target {canary.spec.target_ref.name}.{canary.target_namespace} to zero")

    def scale_to_zero(self, canary: Canary) -> None:
        self._scale_workload(self.target(canary), 0)

    def scale_from_zero(self, canary: Canary) -> None:
        replicas = max(1, canary.spec.analysis.canary_replicas)
        self._scale_workload(self.target(canary), replicas)
