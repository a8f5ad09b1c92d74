"""
Error taxonomy for the canary reconciler.

Every error carries a ``retriable`` flag so the scheduling loop can tell a
condition that resolves with time from one that should drive the canary
towards the Failed phase.
"""
from typing import Optional

from kubernetes.client.rest import ApiException

# Message prefix emitted by config trackers for unsupported target kinds.
KIND_INVALID_SENTINEL = "TargetRef.Kind invalid:"


class CanaryError(Exception):
    """Base class for errors raised by the reconciliation core."""

    retriable = False


class NotFoundError(CanaryError):
    """A referenced workload or revision does not exist."""


class BaselineNotFoundError(NotFoundError):
    """The primary/baseline workload of a canary could not be located."""


class ReadinessError(CanaryError):
    """A workload is not ready."""

    def __init__(self, workload: str, reason: str, retriable: bool):
        super().__init__(reason)
        self.workload = workload
        self.reason = reason
        self.retriable = retriable


class WorkloadNotReadyError(ReadinessError):
    """The workload has not converged yet; poll again later."""

    def __init__(self, workload: str, reason: str, retriable: bool = True):
        super().__init__(workload, reason, retriable)


class WorkloadStalledError(ReadinessError):
    """The workload exceeded its progress deadline or is malformed."""

    def __init__(self, workload: str, reason: str):
        super().__init__(workload, reason, retriable=False)


class StatusConflictError(CanaryError):
    """Canary status could not be written before the retry budget ran out."""

    retriable = True


class ConfigurationError(CanaryError):
    """The canary or one of its workloads is misconfigured."""


class PhaseTransitionError(ConfigurationError):
    """A status write tried to move the phase backwards."""


class RouteScaleError(CanaryError):
    """Scaling a workload failed while applying a traffic split."""

    retriable = True

    def __init__(self, message: str, name: str, namespace: str, replicas: int):
        super().__init__(message)
        self.name = name
        self.namespace = namespace
        self.replicas = replicas


class TrackerKindInvalidError(CanaryError):
    """The config tracker does not support the canary target kind."""

    def __init__(self, kind: str):
        super().__init__(f"{KIND_INVALID_SENTINEL} {kind}")
        self.kind = kind


def is_kind_invalid(err: Optional[BaseException]) -> bool:
    """Return True for errors meaning "no configs to track" rather than a failure.

    Trackers outside this package only signal the condition through the
    message text, so the substring match is kept next to the typed check.
    """
    if err is None:
        return False
    if isinstance(err, TrackerKindInvalidError):
        return True
    return KIND_INVALID_SENTINEL in str(err)


def is_not_found(err: BaseException) -> bool:
    return isinstance(err, ApiException) and err.status == 404


def is_conflict(err: BaseException) -> bool:
    return isinstance(err, ApiException) and err.status == 409
