"""
SMI TrafficSplit router.
"""
import copy
import logging
from typing import Any, Dict, Optional, Tuple

from kubernetes.client.rest import ApiException

from canary_reconciler.config import settings
from canary_reconciler.errors import ConfigurationError, is_not_found
from canary_reconciler.kube_types import create_merge_patch
from canary_reconciler.models import Canary

logger = logging.getLogger(__name__)

KIND = "TrafficSplit"


class TrafficSplitRouter:
    """Routes traffic with a TrafficSplit named after the apex service."""

    def __init__(self, kube_client, api_version: Optional[str] = None):
        self.kube_client = kube_client
        self.api_version = api_version or settings.TRAFFIC_SPLIT_API_VERSION

    def _build(self, canary: Canary, primary_weight: int, canary_weight: int) -> Dict[str, Any]:
        apex, primary, canary_name = canary.service_names()
        return {
            "apiVersion": self.api_version,
            "kind": KIND,
            "metadata": {
                "name": apex,
                "namespace": canary.namespace,
                "ownerReferences": [{
                    "apiVersion": canary.api_version,
                    "kind": canary.kind,
                    "name": canary.name,
                    "controller": True,
                    "blockOwnerDeletion": True,
                }],
            },
            "spec": {
                "service": apex,
                "backends": [
                    {"service": primary, "weight": primary_weight},
                    {"service": canary_name, "weight": canary_weight},
                ],
            },
        }

    def _get(self, canary: Canary) -> Dict[str, Any]:
        apex, _, _ = canary.service_names()
        return self.kube_client.get_object(KIND, self.api_version, apex, canary.namespace)

    def reconcile(self, canary: Canary) -> None:
        """Create the TrafficSplit with all traffic on the primary when it does not exist."""
        try:
            self._get(canary)
            return
        except ApiException as e:
            if not is_not_found(e):
                raise
        self.kube_client.create_object(self._build(canary, 100, 0))
        logger.info(f"✅ TrafficSplit {canary.service_names()[0]}.{canary.namespace} created")

    def set_routes(self, canary: Canary, primary_weight: int, canary_weight: int, mirrored: bool = False) -> None:
        current = self._get(canary)
        desired = copy.deepcopy(current)
        desired["spec"] = self._build(canary, primary_weight, canary_weight)["spec"]
        patch = create_merge_patch(current, desired)
        if not patch:
            return
        self.kube_client.patch_object(current, patch)
        logger.info(
            f"TrafficSplit {canary.service_names()[0]}.{canary.namespace} updated, "
            f"primary weight: {primary_weight}, canary weight: {canary_weight}"
        )

    def get_routes(self, canary: Canary) -> Tuple[int, int, bool]:
        """
        Read the backend weights.

        Returns:
            Tuple of (primary weight, canary weight, mirrored); mirroring is
            not supported by TrafficSplit and always reported as False
        """
        apex, primary, canary_name = canary.service_names()
        split = self._get(canary)
        weights = {b.get("service"): int(b.get("weight") or 0)
                   for b in (split.get("spec") or {}).get("backends") or []}
        if primary not in weights or canary_name not in weights:
            raise ConfigurationError(
                f"TrafficSplit {apex}.{canary.namespace} does not contain routes for {primary} and {canary_name}"
            )
        return weights[primary], weights[canary_name], False

    def finalize(self, canary: Canary) -> None:
        pass
