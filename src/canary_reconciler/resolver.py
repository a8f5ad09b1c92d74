"""
Baseline (primary) workload resolution.
"""
import logging
from typing import Any, Dict, Optional

from kubernetes.client.rest import ApiException

from canary_reconciler.config import settings
from canary_reconciler.errors import BaselineNotFoundError, ConfigurationError, NotFoundError, is_not_found
from canary_reconciler.kube_types import Revision
from canary_reconciler.models import Canary

logger = logging.getLogger(__name__)


def get_target(kube_client, canary: Canary) -> Dict[str, Any]:
    """Fetch the canary's target workload."""
    ref = canary.spec.target_ref
    try:
        return kube_client.get_object(ref.kind, ref.api_version, ref.name, canary.target_namespace)
    except ApiException as e:
        if is_not_found(e):
            raise NotFoundError(f"target workload {ref.name}.{canary.target_namespace} not found") from e
        raise


class BaselineResolver:
    """Finds the workload running the previous version of a canary's component."""

    def __init__(self, kube_client, component_label: Optional[str] = None,
                 revision_component_label: Optional[str] = None):
        self.kube_client = kube_client
        self.component_label = component_label or settings.COMPONENT_LABEL
        self.revision_component_label = revision_component_label or settings.REVISION_COMPONENT_LABEL

    def resolve(self, canary: Canary, target: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        """
        Resolve the baseline workload of a canary.

        An explicit ``spec.sourceRef`` wins; otherwise the component's revision
        history is searched from newest to oldest, skipping the target itself.

        Args:
            canary: The canary resource
            target: Already fetched target workload (optional)

        Returns:
            The baseline workload object

        Raises:
            BaselineNotFoundError: if no live baseline workload exists
        """
        ref = canary.spec.source_ref
        if ref is not None:
            namespace = ref.namespace or canary.namespace
            try:
                return self.kube_client.get_object(ref.kind, ref.api_version, ref.name, namespace)
            except ApiException as e:
                logger.error(f"Failed to locate the baseline from sourceRef {ref.kind}/{ref.name}: {e}")
                raise BaselineNotFoundError(
                    f"baseline not found: {ref.kind} {ref.name}.{namespace} for canary {canary.display_name}"
                ) from e
        return self._from_revisions(canary, target or get_target(self.kube_client, canary))

    def _from_revisions(self, canary: Canary, target: Dict[str, Any]) -> Dict[str, Any]:
        target_ref = canary.spec.target_ref
        namespace = canary.target_namespace
        labels = (target.get("metadata") or {}).get("labels") or {}
        component = labels.get(self.component_label)
        if not component:
            raise ConfigurationError(
                f"workload {target_ref.name}.{namespace} has no {self.component_label} label"
            )

        revisions = self.kube_client.list_revisions(namespace, f"{self.revision_component_label}={component}")
        # newest first; equal revision numbers ordered by name
        ordered = sorted(revisions, key=lambda r: (-r.revision, r.name))
        for rev in ordered:
            if rev.name == target_ref.name:
                continue
            try:
                workload = self.kube_client.get_object(target_ref.kind, target_ref.api_version, rev.name, namespace)
            except ApiException as e:
                if not is_not_found(e):
                    raise
                workload = self._from_embedded(rev, target, namespace)
                if workload is None:
                    continue
            logger.info(
                f"Resolved baseline of component {component} to {workload['metadata']['name']} "
                f"(revision {rev.revision})"
            )
            return workload

        raise BaselineNotFoundError(f"baseline workload not found for component {component}")

    def _from_embedded(self, rev: Revision, target: Dict[str, Any], namespace: str) -> Optional[Dict[str, Any]]:
        """Fetch the workload named inside a revision whose own name has no live workload."""
        embedded = rev.embedded_workload()
        metadata = embedded.get("metadata") or {}
        name = metadata.get("name")
        if not name:
            raise ConfigurationError(
                f"the workload in revision {rev.name} has no name and the revision name matches no workload"
            )
        kind = embedded.get("kind") or target.get("kind")
        api_version = embedded.get("apiVersion") or target.get("apiVersion")
        try:
            return self.kube_client.get_object(kind, api_version, name, metadata.get("namespace") or namespace)
        except ApiException as e:
            if not is_not_found(e):
                raise
            logger.info(f"Workload {name} declared by revision {rev.name} not found, trying older revisions")
            return None
