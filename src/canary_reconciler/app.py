# app.py
"""
Read-only diagnostics API for canary rollouts.
"""
import logging
from typing import Any, Dict, Optional

from fastapi import FastAPI, HTTPException
from kubernetes.client.rest import ApiException
from pydantic import BaseModel

from canary_reconciler.config import settings
from canary_reconciler.errors import ConfigurationError, NotFoundError, is_not_found
from canary_reconciler.factory import ControllerFactory
from canary_reconciler.kube_client import KubeClient
from canary_reconciler.models import Canary
from canary_reconciler.readiness import Readiness

logging.basicConfig(level=settings.LOG_LEVEL.upper())
logger = logging.getLogger(__name__)


# -----------------------------------------------------------------------------
# Models
# -----------------------------------------------------------------------------
class ReadinessOut(BaseModel):
    ready: bool
    retriable: bool
    reason: Optional[str] = None


class CanaryReadinessOut(BaseModel):
    primary: ReadinessOut
    canary: ReadinessOut


def _verdict(readiness: Readiness) -> ReadinessOut:
    return ReadinessOut(ready=readiness.ready, retriable=readiness.retriable, reason=readiness.reason)


def create_app(kube_client=None, factory: Optional[ControllerFactory] = None) -> FastAPI:
    """
    Build the diagnostics app.

    Args:
        kube_client: Workload accessor (a KubeClient is created from settings when omitted)
        factory: Controller factory (defaults to one over ``kube_client``)

    Returns:
        The FastAPI application
    """
    if kube_client is None:
        kube_client = KubeClient(in_cluster=settings.K8S_IN_CLUSTER, context=settings.K8S_CONTEXT)
    factory = factory or ControllerFactory(kube_client)

    app = FastAPI(title=settings.APP_NAME, version="0.1.0")

    def load_canary(namespace: str, name: str) -> Canary:
        try:
            return Canary.from_object(kube_client.get_canary(name, namespace))
        except ApiException as e:
            if is_not_found(e):
                raise HTTPException(status_code=404, detail=f"canary {name}.{namespace} not found")
            logger.error(f"❌ Failed to read canary {name}.{namespace}: {e}")
            raise HTTPException(status_code=502, detail=str(e.reason))

    # -------------------------------------------------------------------------
    # Routes
    # -------------------------------------------------------------------------
    @app.get("/health")
    async def health():
        return {"status": "healthy"}

    @app.get("/api/canaries/{namespace}/{name}")
    def get_canary(namespace: str, name: str) -> Dict[str, Any]:
        """Current rollout status of a canary."""
        canary = load_canary(namespace, name)
        status = canary.status
        return {
            "name": canary.name,
            "namespace": canary.namespace,
            "target": canary.spec.target_ref.name,
            "phase": status.phase.value,
            "canaryWeight": status.canary_weight,
            "failedChecks": status.failed_checks,
            "iterations": status.iterations,
            "trackedConfigs": status.tracked_configs,
            "lastTransitionTime": status.last_transition_time,
        }

    @app.get("/api/canaries/{namespace}/{name}/readiness", response_model=CanaryReadinessOut)
    def get_readiness(namespace: str, name: str):
        """Point-in-time readiness of the primary and canary workloads."""
        canary = load_canary(namespace, name)
        try:
            controller = factory.controller(canary)
            return CanaryReadinessOut(
                primary=_verdict(controller.primary_readiness(canary)),
                canary=_verdict(controller.canary_readiness(canary)),
            )
        except NotFoundError as e:
            raise HTTPException(status_code=404, detail=str(e))
        except ConfigurationError as e:
            raise HTTPException(status_code=409, detail=str(e))
        except ApiException as e:
            logger.error(f"❌ Readiness of canary {canary.display_name} failed: {e}")
            raise HTTPException(status_code=502, detail=str(e.reason))

    return app
