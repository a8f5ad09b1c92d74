"""
Canary resource model.
"""
from enum import Enum
from typing import Any, Dict, Optional, Tuple, Union

from pydantic import BaseModel, Field
from pydantic.alias_generators import to_camel

from canary_reconciler.config import settings
from canary_reconciler.errors import PhaseTransitionError


class CanaryPhase(str, Enum):
    EMPTY = ""
    INITIALIZING = "Initializing"
    INITIALIZED = "Initialized"
    WAITING = "Waiting"
    PROGRESSING = "Progressing"
    WAITING_PROMOTION = "WaitingPromotion"
    PROMOTING = "Promoting"
    FINALISING = "Finalising"
    SUCCEEDED = "Succeeded"
    FAILED = "Failed"
    TERMINATING = "Terminating"
    TERMINATED = "Terminated"


P = CanaryPhase

# Forward moves of the rollout state machine. Terminating is reachable from
# every phase except Terminated and is added below.
_TRANSITIONS = {
    P.EMPTY: {P.INITIALIZING, P.INITIALIZED, P.FAILED},
    P.INITIALIZING: {P.INITIALIZED, P.FAILED},
    P.INITIALIZED: {P.WAITING, P.PROGRESSING, P.FAILED},
    P.WAITING: {P.PROGRESSING, P.FAILED},
    P.PROGRESSING: {P.WAITING_PROMOTION, P.PROMOTING, P.FAILED},
    P.WAITING_PROMOTION: {P.PROMOTING, P.FAILED},
    P.PROMOTING: {P.FINALISING, P.FAILED},
    P.FINALISING: {P.SUCCEEDED, P.FAILED},
    # a new target revision restarts the analysis
    P.SUCCEEDED: {P.PROGRESSING},
    P.FAILED: {P.PROGRESSING},
    P.TERMINATING: {P.TERMINATED},
    P.TERMINATED: set(),
}

PROMOTED_PHASES = frozenset({P.PROMOTING, P.FINALISING, P.SUCCEEDED})
FINISHED_PHASES = PROMOTED_PHASES | {P.FAILED, P.TERMINATING, P.TERMINATED}


def check_transition(current: CanaryPhase, new: CanaryPhase) -> None:
    """Raise PhaseTransitionError unless ``current -> new`` is a legal move."""
    current, new = CanaryPhase(current), CanaryPhase(new)
    if current == new:
        return
    if new == P.TERMINATING and current != P.TERMINATED:
        return
    if new not in _TRANSITIONS[current]:
        raise PhaseTransitionError(f"canary phase cannot move from {current.value!r} to {new.value!r}")


class _Model(BaseModel):
    class Config:
        alias_generator = to_camel
        populate_by_name = True


class ObjectReference(_Model):
    kind: str
    api_version: str
    name: str
    namespace: str = ""


class ObjectMeta(_Model):
    name: str
    namespace: str = ""
    resource_version: Optional[str] = None
    generation: int = 0
    labels: Dict[str, str] = Field(default_factory=dict)
    annotations: Dict[str, str] = Field(default_factory=dict)


class CanaryService(_Model):
    name: Optional[str] = None
    port: int = 0
    target_port: Optional[Union[int, str]] = None
    port_discovery: bool = False


class CanaryAnalysis(_Model):
    interval: str = ""
    threshold: int = 0
    step_weight: int = 0
    max_weight: int = 0
    step_replicas: int = 0
    max_replicas: int = 0
    canary_replicas: int = 0


class CanarySpec(_Model):
    target_ref: ObjectReference
    source_ref: Optional[ObjectReference] = None
    service: CanaryService = Field(default_factory=CanaryService)
    analysis: CanaryAnalysis = Field(default_factory=CanaryAnalysis)
    progress_deadline_seconds: Optional[int] = None
    skip_analysis: bool = False
    provider: str = ""


class CanaryStatus(_Model):
    phase: CanaryPhase = CanaryPhase.EMPTY
    canary_weight: int = Field(default=0, ge=0, le=100)
    failed_checks: int = 0
    iterations: int = 0
    tracked_configs: Optional[Dict[str, str]] = None
    last_applied_spec: str = ""
    last_transition_time: Optional[str] = None

    def delta(self) -> Dict[str, Any]:
        """Fields explicitly set on this status, keyed by their API names."""
        return self.model_dump(by_alias=True, exclude_unset=True, mode="json")


class Canary(_Model):
    api_version: str = settings.CANARY_API_VERSION
    kind: str = "Canary"
    metadata: ObjectMeta
    spec: CanarySpec
    status: CanaryStatus = Field(default_factory=CanaryStatus)

    @classmethod
    def from_object(cls, obj: Dict[str, Any]) -> "Canary":
        return cls.model_validate(obj)

    @property
    def name(self) -> str:
        return self.metadata.name

    @property
    def namespace(self) -> str:
        return self.metadata.namespace

    @property
    def target_namespace(self) -> str:
        return self.spec.target_ref.namespace or self.metadata.namespace

    @property
    def display_name(self) -> str:
        return f"{self.name}.{self.namespace}"

    def progress_deadline(self) -> int:
        if self.spec.progress_deadline_seconds is not None:
            return self.spec.progress_deadline_seconds
        return settings.PROGRESS_DEADLINE_SECONDS

    def analysis_threshold(self) -> int:
        return self.spec.analysis.threshold if self.spec.analysis.threshold > 0 else 1

    def service_names(self) -> Tuple[str, str, str]:
        """Return the apex, primary and canary service names."""
        apex = self.spec.service.name or self.spec.target_ref.name
        return apex, f"{apex}-primary", f"{apex}-canary"

    def is_initializing(self) -> bool:
        return self.status.phase in (P.EMPTY, P.INITIALIZING)

    def is_initialized(self) -> bool:
        return self.status.phase == P.INITIALIZED

    def is_promoted(self) -> bool:
        return self.status.phase in PROMOTED_PHASES

    def is_failed(self) -> bool:
        # the controller rolls back once enough checks have failed
        return self.status.phase == P.FAILED or self.status.failed_checks >= self.analysis_threshold()

    def is_finished(self) -> bool:
        return self.status.phase in FINISHED_PHASES

    def refresh(self, other: "Canary") -> None:
        """Replace this canary's contents with ``other`` in place."""
        for name in type(self).model_fields:
            setattr(self, name, getattr(other, name))
