"""
Controller selection by workload kind.
"""
import logging
from typing import List, Optional

from canary_reconciler.controller import Controller
from canary_reconciler.daemonset import DaemonSetController
from canary_reconciler.deployment import DeploymentController
from canary_reconciler.errors import ConfigurationError
from canary_reconciler.models import Canary
from canary_reconciler.oam import OAMRolloutController
from canary_reconciler.rolling import RollingController
from canary_reconciler.service import ServiceController
from canary_reconciler.status import CanaryStatusStore
from canary_reconciler.tracker import ConfigTracker, NopTracker

logger = logging.getLogger(__name__)

CONTROLLERS = {
    "Deployment": DeploymentController,
    "DaemonSet": DaemonSetController,
    "Service": ServiceController,
    "rolling": RollingController,
    "oam": OAMRolloutController,
}


class ControllerFactory:
    """Builds a fresh controller for each canary reconciliation."""

    def __init__(self, kube_client, config_tracker: Optional[ConfigTracker] = None,
                 labels: Optional[List[str]] = None, status_store: Optional[CanaryStatusStore] = None):
        self.kube_client = kube_client
        self.config_tracker = config_tracker or NopTracker()
        self.labels = labels
        self.status_store = status_store or CanaryStatusStore(kube_client)

    def controller(self, canary: Canary, kind: Optional[str] = None) -> Controller:
        """
        Create the controller for a canary.

        Args:
            canary: The canary resource
            kind: Workload kind or strategy name; defaults to the target kind

        Returns:
            A controller instance bound to no other canary

        Raises:
            ConfigurationError: for the unimplemented ``inplace`` strategy
        """
        kind = kind or canary.spec.target_ref.kind
        if kind == "inplace":
            raise ConfigurationError("inplace strategy not implemented")
        cls = CONTROLLERS.get(kind)
        if cls is None:
            # unknown kinds are handled as Deployments
            logger.info(f"No controller for kind {kind!r}, using the Deployment controller for {canary.display_name}")
            cls = DeploymentController
        return cls(self.kube_client, self.status_store, self.config_tracker, self.labels)
