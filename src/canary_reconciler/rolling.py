"""
Controller for generic rolling-update workloads.

The workload kind is only known through discovery, so replicas are changed
through the ``scale`` sub-resource. There is no cold start: the rollout has
already begun once the canary is initialized.
"""
import logging
from typing import Any, Dict

from canary_reconciler.controller import Controller
from canary_reconciler.models import Canary, CanaryPhase, CanaryStatus
from canary_reconciler.resolver import BaselineResolver

logger = logging.getLogger(__name__)


class RollingController(Controller):

    def resolve_primary(self, canary: Canary) -> Dict[str, Any]:
        target = None if canary.spec.source_ref is not None else self.target(canary)
        return BaselineResolver(self.kube_client).resolve(canary, target)

    def _scale_workload(self, workload: Dict[str, Any], replicas: int) -> None:
        metadata = workload["metadata"]
        self.kube_client.scale_subresource(
            workload["kind"], workload["apiVersion"], metadata["name"], metadata.get("namespace"), replicas
        )
        workload.setdefault("spec", {})["replicas"] = int(replicas)

    def initialize(self, canary: Canary) -> None:
        primary = self.primary(canary)
        if canary.is_initializing() and not canary.spec.skip_analysis:
            self.is_primary_ready(canary)
        if canary.is_initialized():
            logger.info(
                f"Canary {canary.display_name} initialized against {primary['metadata']['name']}, "
                "moving to Progressing"
            )
            canary.refresh(self.sync_status(canary, CanaryStatus(phase=CanaryPhase.PROGRESSING)))

    def has_target_changed(self, canary: Canary) -> bool:
        return False
