"""
Reconciliation core of a progressive-delivery (canary) controller.
"""
from canary_reconciler.factory import ControllerFactory
from canary_reconciler.models import Canary, CanaryPhase, CanaryStatus
from canary_reconciler.router import OAMRouteWrapper
from canary_reconciler.traffic_split import TrafficSplitRouter

__all__ = ["Canary", "CanaryPhase", "CanaryStatus", "ControllerFactory", "OAMRouteWrapper", "TrafficSplitRouter"]
