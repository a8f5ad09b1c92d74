"""
Controller for DaemonSet targets.

Daemon sets have no replica count. They are scaled to zero by adding a node
selector no node carries and scaled back by removing it.
"""
import copy
import logging
from typing import Any, Dict, Optional

from canary_reconciler.config import settings
from canary_reconciler.deployment import DeploymentController
from canary_reconciler.kube_types import create_merge_patch

logger = logging.getLogger(__name__)


class DaemonSetController(DeploymentController):

    def __init__(self, *args, scale_to_zero_key: Optional[str] = None, **kwargs):
        super().__init__(*args, **kwargs)
        self.scale_to_zero_key = scale_to_zero_key or settings.SCALE_TO_ZERO_NODE_SELECTOR

    def _scale_workload(self, workload: Dict[str, Any], replicas: int) -> None:
        desired = copy.deepcopy(workload)
        pod_spec = desired.setdefault("spec", {}).setdefault("template", {}).setdefault("spec", {})
        selector = dict(pod_spec.get("nodeSelector") or {})
        if replicas > 0:
            selector.pop(self.scale_to_zero_key, None)
        else:
            selector[self.scale_to_zero_key] = "true"
        if selector:
            pod_spec["nodeSelector"] = selector
        else:
            pod_spec.pop("nodeSelector", None)

        patch = create_merge_patch(workload, desired)
        name = workload["metadata"]["name"]
        if not patch:
            logger.debug(f"DaemonSet {name} already {'scheduled' if replicas > 0 else 'parked'}")
            return
        patched = self.kube_client.patch_object(workload, patch)
        workload.clear()
        workload.update(patched)
        logger.info(f"✅ {'Restored' if replicas > 0 else 'Parked'} DaemonSet {name}.{workload['metadata'].get('namespace')}")
