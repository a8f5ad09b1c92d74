"""
Type definitions for Kubernetes objects.

Workloads are read through the dynamic client as plain dictionaries so any
orchestrator-defined kind can be handled. ``WorkloadView`` extracts the fixed
set of fields the reconciler needs from that tree, with every field optional.
"""
import hashlib
import json
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from canary_reconciler.errors import ConfigurationError

_MISSING = object()


def nested_get(obj: Optional[Dict[str, Any]], *path: str) -> Any:
    """Return the value at ``path`` inside a nested dict, or None."""
    current: Any = obj
    for key in path:
        if not isinstance(current, dict):
            return None
        current = current.get(key)
    return current


def _int(value: Any) -> Optional[int]:
    if value is None or isinstance(value, bool):
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def parse_time(value: Any) -> Optional[datetime]:
    """Parse an RFC 3339 timestamp as serialised by the API server."""
    if value is None:
        return None
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=timezone.utc)
    try:
        parsed = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    except ValueError:
        return None
    return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)


def compute_hash(obj: Any) -> str:
    """Stable short hash of a JSON-serialisable object."""
    data = json.dumps(obj, sort_keys=True, separators=(",", ":"), default=str)
    return hashlib.sha256(data.encode()).hexdigest()[:16]


def create_merge_patch(before: Dict[str, Any], after: Dict[str, Any]) -> Dict[str, Any]:
    """Compute an RFC 7386 JSON merge patch turning ``before`` into ``after``."""
    patch: Dict[str, Any] = {}
    for key in before.keys() - after.keys():
        patch[key] = None
    for key, value in after.items():
        old = before.get(key, _MISSING)
        if old == value:
            continue
        if isinstance(old, dict) and isinstance(value, dict):
            patch[key] = create_merge_patch(old, value)
        else:
            patch[key] = value
    return patch


@dataclass
class Condition:
    """Workload status condition."""
    type: str
    status: str
    reason: str = ""
    message: str = ""
    last_update_time: Optional[datetime] = None
    last_transition_time: Optional[datetime] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Condition":
        return cls(
            type=data.get("type", ""),
            status=str(data.get("status", "")),
            reason=data.get("reason") or "",
            message=data.get("message") or "",
            last_update_time=parse_time(data.get("lastUpdateTime")),
            last_transition_time=parse_time(data.get("lastTransitionTime")),
        )


@dataclass
class WorkloadView:
    """Named, presence-checked fields of an arbitrary workload object."""
    kind: str
    api_version: str
    name: str
    namespace: str
    generation: int = 0
    labels: Dict[str, str] = field(default_factory=dict)
    replicas: Optional[int] = None
    observed_generation: Optional[int] = None
    status_replicas: Optional[int] = None
    updated_replicas: Optional[int] = None
    available_replicas: Optional[int] = None
    conditions: List[Condition] = field(default_factory=list)
    template: Optional[Dict[str, Any]] = None

    @classmethod
    def from_object(cls, obj: Dict[str, Any]) -> "WorkloadView":
        metadata = obj.get("metadata") or {}
        spec = obj.get("spec") or {}
        status = obj.get("status") or {}
        kind = obj.get("kind", "")

        if kind == "DaemonSet":
            # daemon sets report scheduling counters instead of replica counts
            replicas = _int(status.get("desiredNumberScheduled"))
            status_replicas = _int(status.get("currentNumberScheduled"))
            updated = _int(status.get("updatedNumberScheduled"))
            available = _int(status.get("numberAvailable"))
        else:
            replicas = _int(spec.get("replicas"))
            status_replicas = _int(status.get("replicas"))
            updated = _int(status.get("updatedReplicas"))
            available = _int(status.get("availableReplicas"))

        template = spec.get("template")
        return cls(
            kind=kind,
            api_version=obj.get("apiVersion", ""),
            name=metadata.get("name", ""),
            namespace=metadata.get("namespace", ""),
            generation=_int(metadata.get("generation")) or 0,
            labels=dict(metadata.get("labels") or {}),
            replicas=replicas,
            observed_generation=_int(status.get("observedGeneration")),
            status_replicas=status_replicas,
            updated_replicas=updated,
            available_replicas=available,
            conditions=[Condition.from_dict(c) for c in status.get("conditions") or []],
            template=template if isinstance(template, dict) else None,
        )

    def condition(self, condition_type: str) -> Optional[Condition]:
        for c in self.conditions:
            if c.type == condition_type:
                return c
        return None

    @property
    def display_name(self) -> str:
        return f"{self.name}.{self.namespace}"


@dataclass
class Revision:
    """Immutable, numbered snapshot of a component's workload definition."""
    name: str
    namespace: str
    revision: int
    labels: Dict[str, str]
    data: Any = None

    @classmethod
    def from_object(cls, obj: Dict[str, Any]) -> "Revision":
        metadata = obj.get("metadata") or {}
        return cls(
            name=metadata.get("name", ""),
            namespace=metadata.get("namespace", ""),
            revision=_int(obj.get("revision")) or 0,
            labels=dict(metadata.get("labels") or {}),
            data=obj.get("data"),
        )

    def embedded_workload(self) -> Dict[str, Any]:
        """
        Unpack the workload definition stored in the revision.

        The revision data holds a component whose ``spec.workload`` is the
        workload object, either inline or as a JSON document.

        Returns:
            The workload object as a dict

        Raises:
            ConfigurationError: if the revision carries no workload
        """
        data = self.data
        try:
            if isinstance(data, (bytes, str)):
                data = json.loads(data)
            workload = nested_get(data, "spec", "workload")
            if isinstance(workload, (bytes, str)):
                workload = json.loads(workload)
        except ValueError as e:
            raise ConfigurationError(
                f"failed to unpack revision {self.name} with revision {self.revision}: {e}"
            ) from e
        if not isinstance(workload, dict):
            raise ConfigurationError(
                f"revision {self.name} with revision {self.revision} has no embedded workload"
            )
        return workload
