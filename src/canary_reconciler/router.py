"""
Traffic-weight coordination.

``OAMRouteWrapper`` wraps a mesh router and keeps the replica counts of the
baseline and canary workloads in line with the traffic weights it sets.
"""
import logging
import math
from typing import Callable, Protocol, Tuple

from kubernetes.client.rest import ApiException

from canary_reconciler.errors import CanaryError, RouteScaleError
from canary_reconciler.models import Canary

logger = logging.getLogger(__name__)

Scaler = Callable[[str, int], None]


class Router(Protocol):
    def reconcile(self, canary: Canary) -> None:
        ...

    def set_routes(self, canary: Canary, primary_weight: int, canary_weight: int, mirrored: bool) -> None:
        ...

    def get_routes(self, canary: Canary) -> Tuple[int, int, bool]:
        ...

    def finalize(self, canary: Canary) -> None:
        ...


def split_replicas(canary_weight: int, max_replicas: int, canary_replicas: int = 0) -> Tuple[int, int]:
    """
    Compute the replica split implied by a traffic weight.

    Args:
        canary_weight: Percentage of traffic routed to the canary
        max_replicas: Total replicas shared by baseline and canary
        canary_replicas: Explicit canary replica count, used verbatim when positive

    Returns:
        Tuple of (primary replicas, canary replicas)
    """
    if canary_replicas > 0:
        canary = canary_replicas
    else:
        canary = math.ceil(canary_weight * max_replicas / 100)
    # a canary receiving traffic keeps at least one replica
    if canary == 0 and canary_weight != 0:
        canary = 1
    primary = max(0, max_replicas - canary)
    # the baseline is only drained once it receives no traffic
    if primary == 0 and canary_weight != 100:
        primary = 1
    return primary, canary


class OAMRouteWrapper:
    """Mesh router wrapper that also scales the baseline and canary workloads."""

    def __init__(self, inner_router: Router, scale: Scaler, source_name: str):
        """
        Args:
            inner_router: Router owning the traffic split resource
            scale: Callback scaling a workload by name, usually a controller's ``scale``
            source_name: Name of the baseline workload
        """
        self.inner_router = inner_router
        self._scale = scale
        self.source_name = source_name

    def reconcile(self, canary: Canary) -> None:
        self.inner_router.reconcile(canary)

    def set_routes(self, canary: Canary, primary_weight: int, canary_weight: int, mirrored: bool = False) -> None:
        """
        Apply a traffic split and the matching replica counts.

        A promoted canary always gets all the traffic and a failed one none,
        whatever weights are passed in.
        """
        logger.info(
            f"New traffic split of canary {canary.display_name}, "
            f"primary weight: {primary_weight}, canary weight: {canary_weight}"
        )
        analysis = canary.spec.analysis
        target_name = canary.spec.target_ref.name

        if canary.is_promoted():
            self._set_inner_routes(canary, 0, 100, mirrored)
            # the baseline is scaled down by the controller's scale_to_zero
            self.scale(canary, target_name, analysis.max_replicas)
            logger.info(f"Promoted canary workload {target_name}.{canary.namespace} to {analysis.max_replicas} replicas")
        elif canary.is_failed():
            self._set_inner_routes(canary, 100, 0, mirrored)
            self.scale(canary, self.source_name, analysis.max_replicas)
            logger.info(f"Restored primary workload {self.source_name}.{canary.namespace} "
                        f"to {analysis.max_replicas} replicas")
            self.scale(canary, target_name, 0)
            logger.info(f"Rolled back canary workload {target_name}.{canary.namespace} to 0 replicas")
        else:
            self._set_inner_routes(canary, primary_weight, canary_weight, mirrored)
            primary_replicas, canary_replicas = split_replicas(
                canary_weight, analysis.max_replicas, analysis.canary_replicas
            )
            self.scale(canary, target_name, canary_replicas)
            self.scale(canary, self.source_name, primary_replicas)

    def get_routes(self, canary: Canary) -> Tuple[int, int, bool]:
        return self.inner_router.get_routes(canary)

    def finalize(self, canary: Canary) -> None:
        pass

    def _set_inner_routes(self, canary: Canary, primary_weight: int, canary_weight: int, mirrored: bool) -> None:
        try:
            self.inner_router.set_routes(canary, primary_weight, canary_weight, mirrored)
        except (ApiException, CanaryError) as e:
            logger.error(
                f"❌ Adjusting router {canary.display_name} failed, primary weight: {primary_weight}, "
                f"canary weight: {canary_weight}: {e}"
            )
            raise

    def scale(self, canary: Canary, name: str, replicas: int) -> None:
        try:
            self._scale(name, replicas)
        except (ApiException, CanaryError) as e:
            err = RouteScaleError(
                f"adjust replicas of {name}.{canary.namespace} failed, replicas: {replicas}: {e}",
                name, canary.namespace, replicas,
            )
            if isinstance(e, CanaryError):
                err.retriable = e.retriable
            raise err from e
