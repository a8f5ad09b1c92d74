"""
Kubernetes client for workload and canary operations.
"""
import copy
import logging
from typing import Any, Dict, List, Optional

from kubernetes import client, config
from kubernetes.client.rest import ApiException
from kubernetes.dynamic import DynamicClient

from canary_reconciler.config import settings
from canary_reconciler.kube_types import Revision, create_merge_patch

logger = logging.getLogger(__name__)

MERGE_PATCH = "application/merge-patch+json"


class KubeClient:
    """Generic accessor for arbitrarily-kinded workloads and canary resources."""

    def __init__(self, in_cluster: bool = True, context: Optional[str] = None,
                 canary_api_version: Optional[str] = None):
        """
        Initialize Kubernetes client.

        Args:
            in_cluster: Whether running inside cluster (default: True)
            context: Kubernetes context name (optional)
            canary_api_version: apiVersion of the Canary resource
        """
        self.in_cluster = in_cluster
        self.canary_api_version = canary_api_version or settings.CANARY_API_VERSION

        try:
            if in_cluster:
                config.load_incluster_config()
            else:
                if context:
                    config.load_kube_config(context=context)
                else:
                    config.load_kube_config()

            self.dynamic = DynamicClient(client.ApiClient())
            logger.info("✅ Kubernetes dynamic client initialized")

        except Exception as e:
            logger.error(f"❌ Failed to initialize Kubernetes client: {e}")
            raise

    def _resource(self, api_version: str, kind: str):
        # discovery maps apiVersion/kind to the concrete resource name and group
        return self.dynamic.resources.get(api_version=api_version, kind=kind)

    def get_object(self, kind: str, api_version: str, name: str, namespace: str) -> Dict[str, Any]:
        """
        Get an object of any kind.

        Args:
            kind: Resource kind
            api_version: Resource apiVersion
            name: Object name
            namespace: Object namespace

        Returns:
            The object as a plain dict
        """
        try:
            obj = self._resource(api_version, kind).get(name=name, namespace=namespace)
            return obj.to_dict()
        except ApiException as e:
            logger.debug(f"Failed to get {kind} {name}.{namespace}: {e.status} {e.reason}")
            raise

    def list_objects(self, kind: str, api_version: str, namespace: str,
                     label_selector: Optional[str] = None) -> List[Dict[str, Any]]:
        """
        List objects of any kind in a namespace.

        Args:
            kind: Resource kind
            api_version: Resource apiVersion
            namespace: Target namespace
            label_selector: Optional label selector for filtering

        Returns:
            List of objects as plain dicts
        """
        try:
            result = self._resource(api_version, kind).get(namespace=namespace, label_selector=label_selector)
            items = result.to_dict().get("items") or []
            logger.debug(f"Retrieved {len(items)} {kind} objects from namespace {namespace}")
            return items
        except ApiException as e:
            logger.error(f"Failed to list {kind} in {namespace}: {e}")
            raise

    def create_object(self, body: Dict[str, Any]) -> Dict[str, Any]:
        metadata = body.get("metadata") or {}
        try:
            obj = self._resource(body["apiVersion"], body["kind"]).create(
                body=body, namespace=metadata.get("namespace")
            )
            logger.info(f"✅ Created {body['kind']} {metadata.get('name')}.{metadata.get('namespace')}")
            return obj.to_dict()
        except ApiException as e:
            logger.error(f"Failed to create {body['kind']} {metadata.get('name')}: {e}")
            raise

    def patch_object(self, obj: Dict[str, Any], patch: Dict[str, Any]) -> Dict[str, Any]:
        """
        Apply a JSON merge patch to an object.

        Args:
            obj: The object to patch (its apiVersion, kind and metadata identify it)
            patch: RFC 7386 merge patch

        Returns:
            The patched object as returned by the API server
        """
        metadata = obj.get("metadata") or {}
        name, namespace = metadata.get("name"), metadata.get("namespace")
        try:
            patched = self._resource(obj["apiVersion"], obj["kind"]).patch(
                body=patch, name=name, namespace=namespace, content_type=MERGE_PATCH
            )
            return patched.to_dict()
        except ApiException as e:
            logger.error(f"Failed to patch {obj.get('kind')} {name}.{namespace}: {e}")
            raise

    def scale_workload(self, workload: Dict[str, Any], replicas: int) -> Dict[str, Any]:
        """
        Set ``spec.replicas`` on a workload with a merge patch.

        The patch is the diff between the pre-read snapshot and the snapshot
        with only the replica count changed, so status fields written by the
        orchestrator in the meantime are left alone. The given dict is updated
        in place with the server's response.

        Args:
            workload: Previously read workload object
            replicas: Desired replica count

        Returns:
            The patched workload
        """
        desired = copy.deepcopy(workload)
        desired.setdefault("spec", {})["replicas"] = int(replicas)
        patch = create_merge_patch(workload, desired)
        metadata = workload.get("metadata") or {}
        logger.info(
            f"Scaling {workload.get('apiVersion')}, Kind={workload.get('kind')} "
            f"{metadata.get('name')}.{metadata.get('namespace')} to {replicas} replicas"
        )
        patched = self.patch_object(workload, patch)
        workload.clear()
        workload.update(patched)
        logger.info(
            f"✅ Scaled {patched.get('apiVersion')}, Kind={patched.get('kind')} "
            f"{metadata.get('name')}, target replicas = {replicas}"
        )
        return workload

    def scale_subresource(self, kind: str, api_version: str, name: str, namespace: str,
                          replicas: int) -> None:
        """
        Scale a workload through its ``scale`` sub-resource.

        Args:
            kind: Workload kind
            api_version: Workload apiVersion
            name: Workload name
            namespace: Workload namespace
            replicas: Desired replica count
        """
        try:
            scale = self._resource(api_version, kind).subresources["scale"]
            scale.patch(
                body={"spec": {"replicas": int(replicas)}},
                name=name,
                namespace=namespace,
                content_type=MERGE_PATCH,
            )
            logger.info(f"✅ Scaled {api_version}/{kind} {name}.{namespace} to {replicas} via scale subresource")
        except KeyError:
            raise ApiException(status=405, reason=f"{api_version}/{kind} has no scale subresource")
        except ApiException as e:
            logger.error(f"Scaling {name}.{namespace} to {replicas} by scale subresource failed: {e}")
            raise

    def list_revisions(self, namespace: str, label_selector: str) -> List[Revision]:
        """
        List controller revisions matching a label selector.

        Args:
            namespace: Target namespace
            label_selector: Label selector, e.g. ``controller.oam.dev/component=web``

        Returns:
            List of Revision objects
        """
        items = self.list_objects("ControllerRevision", "apps/v1", namespace, label_selector)
        return [Revision.from_object(item) for item in items]

    def get_canary(self, name: str, namespace: str) -> Dict[str, Any]:
        return self.get_object("Canary", self.canary_api_version, name, namespace)

    def replace_canary_status(self, canary: Dict[str, Any]) -> Dict[str, Any]:
        """
        Write the status sub-resource of a canary.

        The body must carry the ``metadata.resourceVersion`` it was read with;
        a concurrent writer makes the API server answer 409.

        Args:
            canary: Full canary object with the desired status

        Returns:
            The canary as stored by the API server
        """
        metadata = canary.get("metadata") or {}
        try:
            status = self._resource(self.canary_api_version, "Canary").subresources["status"]
            updated = status.replace(body=canary, name=metadata.get("name"), namespace=metadata.get("namespace"))
            return updated.to_dict()
        except ApiException as e:
            if e.status != 409:
                logger.error(f"Failed to update status of canary {metadata.get('name')}: {e}")
            raise
