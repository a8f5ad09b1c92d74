"""
Canary status persistence.

The status sub-resource is never overwritten blindly: every write re-reads
the canary, merges a delta into the fresh copy and submits it with the
resourceVersion it was read with. Conflicts with concurrent writers are
retried a bounded number of times.
"""
import logging
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Optional

from tenacity import RetryCallState, RetryError, Retrying, retry_if_exception, stop_after_attempt

from canary_reconciler.config import settings
from canary_reconciler.errors import StatusConflictError, is_conflict
from canary_reconciler.models import Canary, CanaryPhase, CanaryStatus, check_transition

logger = logging.getLogger(__name__)

StatusMutator = Callable[[Dict[str, Any]], None]

# same bounds as Settings.STATUS_UPDATE_ATTEMPTS
MIN_ATTEMPTS = 3
MAX_ATTEMPTS = 5


def _now() -> str:
    return datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


def merge_status(current: Dict[str, Any], delta: Dict[str, Any]) -> None:
    """Merge a status delta into ``current``, validating any phase change."""
    if "phase" in delta:
        check_transition(CanaryPhase(current.get("phase") or ""), CanaryPhase(delta["phase"]))
    current.update(delta)


class CanaryStatusStore:
    """Read-modify-write access to the status of canary resources."""

    def __init__(self, kube_client, attempts: Optional[int] = None):
        if attempts is None:
            attempts = settings.STATUS_UPDATE_ATTEMPTS
        if not MIN_ATTEMPTS <= attempts <= MAX_ATTEMPTS:
            raise ValueError(f"status update attempts must be between {MIN_ATTEMPTS} and {MAX_ATTEMPTS}, got {attempts}")
        self.kube_client = kube_client
        self.attempts = attempts

    def _write(self, canary: Canary, mutate: StatusMutator) -> Dict[str, Any]:
        obj = self.kube_client.get_canary(canary.name, canary.namespace)
        if not isinstance(obj.get("status"), dict):
            obj["status"] = {}
        mutate(obj["status"])
        return self.kube_client.replace_canary_status(obj)

    def update(self, canary: Canary, mutate: StatusMutator) -> Canary:
        """
        Apply ``mutate`` to a freshly read copy of the canary status and persist it.

        Args:
            canary: The canary to update (only its identity is used)
            mutate: Callback editing the status dict in place

        Returns:
            The canary as stored after the write

        Raises:
            StatusConflictError: if every attempt raced with another writer
        """
        def log_conflict(retry_state: RetryCallState) -> None:
            logger.warning(
                f"Status update of canary {canary.display_name} conflicted "
                f"(attempt {retry_state.attempt_number}/{self.attempts}), retrying"
            )

        # only 409 is retried; any other error propagates from the attempt unchanged
        retrying = Retrying(
            stop=stop_after_attempt(self.attempts),
            retry=retry_if_exception(is_conflict),
            before_sleep=log_conflict,
            reraise=False,
        )
        try:
            updated = retrying(self._write, canary, mutate)
        except RetryError as e:
            raise StatusConflictError(
                f"canary {canary.display_name} status update failed after {self.attempts} attempts"
            ) from e.last_attempt.exception()
        return Canary.from_object(updated)

    def sync_status(self, canary: Canary, status: CanaryStatus, spec_hash: Optional[str] = None,
                    mutate: Optional[StatusMutator] = None) -> Canary:
        """
        Merge the fields set on ``status`` into the persisted status.

        Args:
            canary: The canary to update
            status: Status whose explicitly set fields form the delta
            spec_hash: Hash of the target spec to record as lastAppliedSpec
            mutate: Extra edits applied after the delta

        Returns:
            The canary as stored after the write
        """
        delta = status.delta()
        if spec_hash is not None:
            delta["lastAppliedSpec"] = spec_hash

        def apply(current: Dict[str, Any]) -> None:
            merge_status(current, delta)
            current["lastTransitionTime"] = _now()
            if mutate is not None:
                mutate(current)

        return self.update(canary, apply)

    def _set(self, canary: Canary, delta: Dict[str, Any]) -> Canary:
        def apply(current: Dict[str, Any]) -> None:
            merge_status(current, delta)
            current["lastTransitionTime"] = _now()

        return self.update(canary, apply)

    def set_failed_checks(self, canary: Canary, value: int) -> Canary:
        return self._set(canary, {"failedChecks": int(value)})

    def set_weight(self, canary: Canary, value: int) -> Canary:
        # validate the 0..100 range before touching the API server
        weight = CanaryStatus(canary_weight=value).canary_weight
        return self._set(canary, {"canaryWeight": weight})

    def set_iterations(self, canary: Canary, value: int) -> Canary:
        return self._set(canary, {"iterations": int(value)})

    def set_phase(self, canary: Canary, phase: CanaryPhase) -> Canary:
        return self._set(canary, {"phase": CanaryPhase(phase).value})
