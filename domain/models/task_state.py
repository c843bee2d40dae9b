# domain/models/task_state.py
from dataclasses import dataclass
from typing import Any, ClassVar, Dict, Mapping, Optional

from domain.models.state_type import StateType

class StateNames:
    """Display names of the task states with fixed names"""
    UNSTARTED = "Unstarted"
    STARTED = "Started"
    COMPLETED = "Completed"
    SUCCEEDED = "Succeeded"
    TIMED_OUT = "TimedOut"
    FAILED = "Failed"
    REJECTED = "Rejected"
    DISCARDED = "Discarded"
    ABANDONED = "Abandoned"

    # Arbitrary names for use with the *_as transitions
    SKIPPED = "Skipped"
    LOGIC_FLAWED = "LogicFlawed"
    FATAL = "FATAL"

def error_to_text(error: Any) -> Optional[str]:
    """Render an error (exception, text or serialized error object) as serializable text"""
    if error is None:
        return None
    if isinstance(error, str):
        return error
    if isinstance(error, BaseException):
        return _format_error(type(error).__name__, str(error))
    if isinstance(error, Mapping):
        # Serialized error objects, e.g. {"name": "TypeError", "message": "..."}
        return _format_error(str(error.get("name") or "Error"), str(error.get("message") or ""))
    return str(error)

def _format_error(error_type: str, message: str) -> str:
    return f"{error_type}: {message}" if message else error_type

@dataclass(frozen=True)
class TaskState:
    """Immutable state of a task; the concrete subclass fixes its kind"""
    name: str
    error: Optional[str] = None
    reason: Optional[str] = None

    kind: ClassVar[StateType]

    def __post_init__(self):
        object.__setattr__(self, "error", error_to_text(self.error))

    @property
    def unstarted(self) -> bool:
        return self.kind is StateType.UNSTARTED

    @property
    def started(self) -> bool:
        return self.kind is StateType.STARTED

    @property
    def failed(self) -> bool:
        return self.kind is StateType.FAILED

    @property
    def timed_out(self) -> bool:
        return self.kind is StateType.TIMED_OUT

    @property
    def completed(self) -> bool:
        return self.kind is StateType.COMPLETED

    @property
    def rejected(self) -> bool:
        return self.kind is StateType.REJECTED

    @property
    def incomplete(self) -> bool:
        return not self.completed and not self.rejected

    @property
    def finalised(self) -> bool:
        return self.completed or self.rejected

    def is_rejected(self) -> bool:
        """True only for the plain Rejected sub-variant"""
        return self.rejected and self.name == StateNames.REJECTED

    def is_discarded(self) -> bool:
        return self.rejected and self.name == StateNames.DISCARDED

    def is_abandoned(self) -> bool:
        return self.rejected and self.name == StateNames.ABANDONED

    def to_dict(self) -> Dict[str, Any]:
        data = {"name": self.name, "kind": self.kind.value}
        if self.error is not None:
            data["error"] = self.error
        if self.reason is not None:
            data["reason"] = self.reason
        return data

    def __str__(self) -> str:
        class_name = type(self).__name__
        return class_name if class_name == self.name else f"{class_name}: {self.name}"

@dataclass(frozen=True)
class UnstartedState(TaskState):
    kind: ClassVar[StateType] = StateType.UNSTARTED

@dataclass(frozen=True)
class StartedState(TaskState):
    kind: ClassVar[StateType] = StateType.STARTED

@dataclass(frozen=True)
class FailedState(TaskState):
    kind: ClassVar[StateType] = StateType.FAILED

@dataclass(frozen=True)
class TimedOutState(TaskState):
    kind: ClassVar[StateType] = StateType.TIMED_OUT

@dataclass(frozen=True)
class CompletedState(TaskState):
    kind: ClassVar[StateType] = StateType.COMPLETED

@dataclass(frozen=True)
class RejectedState(TaskState):
    kind: ClassVar[StateType] = StateType.REJECTED

UNSTARTED = UnstartedState(StateNames.UNSTARTED)
STARTED = StartedState(StateNames.STARTED)
COMPLETED = CompletedState(StateNames.COMPLETED)
SUCCEEDED = CompletedState(StateNames.SUCCEEDED)

_STATE_CLASSES = {
    StateType.UNSTARTED: UnstartedState,
    StateType.STARTED: StartedState,
    StateType.FAILED: FailedState,
    StateType.TIMED_OUT: TimedOutState,
    StateType.COMPLETED: CompletedState,
    StateType.REJECTED: RejectedState,
}

def completed_state(name: str = StateNames.COMPLETED) -> CompletedState:
    if name == StateNames.COMPLETED:
        return COMPLETED
    if name == StateNames.SUCCEEDED:
        return SUCCEEDED
    return CompletedState(name)

def timed_out_state(error: Any = None, name: str = StateNames.TIMED_OUT) -> TimedOutState:
    return TimedOutState(name, error=error)

def failed_state(error: Any, name: str = StateNames.FAILED) -> FailedState:
    return FailedState(name, error=error)

def rejected_state(reason: Optional[str], error: Any = None,
                   name: str = StateNames.REJECTED) -> RejectedState:
    return RejectedState(name, error=error, reason=reason)

def discarded_state(reason: Optional[str], error: Any = None) -> RejectedState:
    return rejected_state(reason, error, StateNames.DISCARDED)

def abandoned_state(reason: Optional[str], error: Any = None) -> RejectedState:
    return rejected_state(reason, error, StateNames.ABANDONED)

def to_task_state(name: Optional[str], kind: Any, error: Any = None,
                  reason: Optional[str] = None) -> TaskState:
    """Build the state variant for the given kind (unknown kinds become Unstarted)"""
    try:
        state_type = StateType(kind)
    except ValueError:
        state_type = StateType.UNSTARTED

    if state_type is StateType.UNSTARTED:
        return UNSTARTED if not name or name == StateNames.UNSTARTED else UnstartedState(name)
    if state_type is StateType.STARTED:
        return STARTED if not name or name == StateNames.STARTED else StartedState(name)
    if state_type is StateType.COMPLETED:
        return completed_state(name or StateNames.COMPLETED)

    default_names = {
        StateType.FAILED: StateNames.FAILED,
        StateType.TIMED_OUT: StateNames.TIMED_OUT,
        StateType.REJECTED: StateNames.REJECTED,
    }
    state_class = _STATE_CLASSES[state_type]
    return state_class(name or default_names[state_type], error=error,
                       reason=reason if state_type is StateType.REJECTED else None)

def kind_from_flags(name: Optional[str], data: Mapping[str, Any]) -> StateType:
    if data.get("rejected"):
        return StateType.REJECTED
    if data.get("completed"):
        return StateType.COMPLETED
    if data.get("timedOut") or data.get("timed_out"):
        return StateType.TIMED_OUT
    if data.get("error"):
        return StateType.FAILED
    if name == StateNames.STARTED:
        return StateType.STARTED
    return StateType.UNSTARTED
