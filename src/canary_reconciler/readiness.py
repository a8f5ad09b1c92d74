"""
Workload readiness evaluation.

Every check is a single point-in-time evaluation of a workload's status;
polling is left to the caller.
"""
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional

from canary_reconciler.errors import WorkloadNotReadyError, WorkloadStalledError
from canary_reconciler.kube_types import WorkloadView

PROGRESS_DEADLINE_EXCEEDED = "ProgressDeadlineExceeded"
MINIMUM_REPLICAS_UNAVAILABLE = "MinimumReplicasUnavailable"

# kinds whose status carries Progressing/Available conditions
CONDITION_KINDS = frozenset({"Deployment"})


@dataclass(frozen=True)
class Readiness:
    """Verdict of a readiness evaluation."""
    ready: bool
    retriable: bool = True
    reason: Optional[str] = None
    workload: str = ""

    def raise_for_status(self) -> None:
        """Raise the matching ReadinessError if the workload is not ready."""
        if self.ready:
            return
        if self.retriable:
            raise WorkloadNotReadyError(self.workload, self.reason or "workload not ready")
        raise WorkloadStalledError(self.workload, self.reason or "workload stalled")


def _ready(view: WorkloadView) -> Readiness:
    return Readiness(ready=True, workload=view.display_name)


def _waiting(view: WorkloadView, reason: str, retriable: bool = True) -> Readiness:
    return Readiness(ready=False, retriable=retriable, reason=reason, workload=view.display_name)


def _fatal(view: WorkloadView, reason: str) -> Readiness:
    return Readiness(ready=False, retriable=False, reason=reason, workload=view.display_name)


def _is_stalled(view: WorkloadView, deadline: int, now: datetime) -> bool:
    """Available=False/MinimumReplicasUnavailable for longer than the deadline."""
    available = view.condition("Available")
    if available is None or available.status != "False" or available.reason != MINIMUM_REPLICAS_UNAVAILABLE:
        return False
    since = available.last_transition_time or available.last_update_time
    if since is None:
        return False
    return since + timedelta(seconds=deadline) < now


def evaluate_deployment(view: WorkloadView, deadline: int, now: Optional[datetime] = None) -> Readiness:
    """
    Readiness of a workload exposing Progressing and Available conditions.

    Args:
        view: Workload fields
        deadline: Progress deadline in seconds
        now: Evaluation time (defaults to the current UTC time)

    Returns:
        Readiness verdict
    """
    now = now or datetime.now(timezone.utc)
    if view.observed_generation is None:
        return _fatal(view, f"{view.kind} {view.name} is not a well-formed workload, "
                            "status.observedGeneration not found")
    if view.generation > view.observed_generation:
        return _waiting(view, "waiting for rollout to finish: observed generation behind desired generation")

    updated = view.updated_replicas or 0
    current = view.status_replicas or 0
    available = view.available_replicas or 0

    progressing = view.condition("Progressing")
    if progressing is not None and progressing.reason == PROGRESS_DEADLINE_EXCEEDED:
        return _fatal(view, f"{view.kind} {view.name!r} exceeded its progress deadline")
    if view.replicas is not None and updated < view.replicas:
        return _waiting(
            view,
            f"waiting for rollout to finish: {updated} out of {view.replicas} new replicas have been updated",
            retriable=not _is_stalled(view, deadline, now),
        )
    if current > updated:
        return _waiting(view, f"waiting for rollout to finish: {current - updated} old replicas "
                              "are pending termination")
    if available < updated:
        return _waiting(view, f"waiting for rollout to finish: {available} of {updated} updated "
                              "replicas are available")
    return _ready(view)


def evaluate_generic(view: WorkloadView) -> Readiness:
    """Readiness of a workload that only reports generation and replica counters."""
    if view.observed_generation is None:
        return _fatal(view, f"kind:{view.kind} is not a well-formed workload, "
                            "status.observedGeneration not found")
    if view.generation > view.observed_generation:
        return _waiting(view, "waiting for rollout to finish: observed generation behind desired generation")

    updated = view.updated_replicas or 0
    current = view.status_replicas or 0

    # no progress deadline check here: generic kinds expose no stall condition
    if view.replicas is not None and updated < view.replicas:
        return _waiting(view, f"waiting for rollout to finish: {updated} out of {view.replicas} "
                              "new replicas have been updated")
    if current > updated:
        return _waiting(view, f"waiting for rollout to finish: {current - updated} old replicas "
                              "are pending termination")
    if view.available_replicas is not None and view.available_replicas < updated:
        return _waiting(view, f"waiting for rollout to finish: {view.available_replicas} of {updated} "
                              "updated replicas are available")
    return _ready(view)


def evaluate(view: WorkloadView, deadline: int, now: Optional[datetime] = None) -> Readiness:
    """Evaluate readiness with the algorithm matching the workload kind."""
    if view.kind in CONDITION_KINDS:
        return evaluate_deployment(view, deadline, now)
    return evaluate_generic(view)
