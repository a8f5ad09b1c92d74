"""
Controller for Service targets.

Service canaries shift traffic between two existing services; there is no
workload to scale or wait for.
"""
from typing import Any, Dict, Tuple

from canary_reconciler.controller import Controller
from canary_reconciler.models import Canary
from canary_reconciler.readiness import Readiness


class ServiceController(Controller):

    def resolve_primary(self, canary: Canary) -> Dict[str, Any]:
        return self.target(canary)

    def primary_readiness(self, canary: Canary) -> Readiness:
        return Readiness(ready=True, workload=canary.display_name)

    def canary_readiness(self, canary: Canary) -> Readiness:
        return Readiness(ready=True, workload=canary.display_name)

    def initialize(self, canary: Canary) -> None:
        pass

    def get_metadata(self, canary: Canary) -> Tuple[str, Dict[str, int]]:
        return "", {}

    def finalize(self, canary: Canary) -> None:
        pass
