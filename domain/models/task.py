# domain/models/task.py
import weakref
from functools import cmp_to_key
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, List, Optional, Sequence, Union

from domain.errors import TaskDefinitionError, TaskTimeoutError
from domain.models.outcome import ReturnMode
from domain.models.state_type import compare_state_types
from domain.models.task_definition import TaskDefinition
from domain.models.task_like import TaskLike, TaskStateLike
from domain.models.task_state import (
    UNSTARTED, STARTED, StateNames, TaskState,
    abandoned_state, completed_state, discarded_state, failed_state, rejected_state, timed_out_state,
)

DateLike = Union[datetime, str, None]

def utc_now() -> datetime:
    return datetime.now(timezone.utc)

def to_datetime(value: DateLike) -> Optional[datetime]:
    """Convert a datetime or ISO 8601 text to a datetime, reading naive values as UTC"""
    if value is None:
        return None
    if isinstance(value, str):
        value = datetime.fromisoformat(value)
    elif not isinstance(value, datetime):
        raise TypeError(f"Cannot convert {value!r} to a datetime")
    return value if value.tzinfo is not None else value.replace(tzinfo=timezone.utc)

_by_state_type = cmp_to_key(lambda a, b: compare_state_types(a.kind, b.kind))

class Task:
    """Mutable execution record of a task definition and its sub-tasks.

    Every transition walks the task tree depth-first (this node, its unfinalised
    slaves, then its sub-tasks left to right) and returns the number of nodes whose
    state actually changed. A transition blocked by its guard is a silent no-op.

    ``parent`` and ``factory`` are weak references: callers must keep the root task
    alive for as long as they use any of its sub-tasks.
    """

    def __init__(self, definition: TaskDefinition, parent: Optional["Task"] = None,
                 factory: Any = None, return_mode: Optional[ReturnMode] = None):
        if not isinstance(definition, TaskDefinition):
            raise TaskDefinitionError(f"Cannot create a task without a valid task definition ({definition!r})")
        if parent is not None:
            if not isinstance(parent, Task):
                raise TaskDefinitionError(
                    f"Cannot create a sub-task ({definition.name}) with an invalid parent task ({parent!r})")
            if definition.parent is not parent.definition:
                raise TaskDefinitionError(
                    f"Cannot create a sub-task ({definition.name}) of task ({parent.name}) from a definition "
                    f"that is not one of its sub-task definitions")
        elif definition.parent is not None:
            raise TaskDefinitionError(
                f"Cannot create a top-level task ({definition.name}) from a sub-task definition")

        self._definition = definition
        self._parent = weakref.ref(parent) if parent is not None else None
        self._factory = weakref.ref(factory) if factory is not None else None
        self._return_mode = ReturnMode(return_mode) if return_mode is not None else None
        self._execute: Optional[Callable] = None

        self._state: TaskState = UNSTARTED
        self._attempts = 0
        self._total_attempts = 0
        self._began: Optional[datetime] = None
        self._ended: Optional[datetime] = None
        self._took: Optional[timedelta] = None
        self._result: Any = None
        self._error: Any = None
        self._slave_tasks: List[Task] = []

        self._sub_tasks = [Task(d, self, factory) for d in definition.sub_task_defs]

    # Structure

    @property
    def definition(self) -> TaskDefinition:
        return self._definition

    @property
    def name(self) -> str:
        return self._definition.name

    @property
    def executable(self) -> bool:
        return self._definition.executable

    @property
    def parent(self) -> Optional["Task"]:
        return self._parent() if self._parent is not None else None

    @property
    def factory(self) -> Any:
        return self._factory() if self._factory is not None else None

    @property
    def sub_tasks(self) -> List["Task"]:
        return list(self._sub_tasks)

    @property
    def slave_tasks(self) -> List["Task"]:
        return list(self._slave_tasks)

    def get_sub_task(self, name: str) -> Optional["Task"]:
        return next((t for t in self._sub_tasks if t.name == name), None)

    def root(self) -> "Task":
        task = self
        while task.parent is not None:
            task = task.parent
        return task

    def is_root_task(self) -> bool:
        return self.parent is None

    def is_sub_task(self) -> bool:
        return self.parent is not None

    def is_super_task(self) -> bool:
        return len(self._sub_tasks) > 0

    def is_master_task(self) -> bool:
        return len(self._slave_tasks) > 0

    def for_each(self, callback: Callable[["Task"], Any]) -> None:
        """Invoke the callback on this task and then on every descendant, depth-first"""
        callback(self)
        for sub_task in self._sub_tasks:
            sub_task.for_each(callback)

    # Execution

    @property
    def return_mode(self) -> ReturnMode:
        """Own return mode, else the parent's, else the factory's, else NORMAL"""
        if self._return_mode is not None:
            return self._return_mode
        if self.parent is not None:
            return self.parent.return_mode
        factory_mode = getattr(self.factory, "return_mode", None)
        return ReturnMode(factory_mode) if factory_mode is not None else ReturnMode.NORMAL

    @property
    def execute(self) -> Optional[Callable]:
        return self._execute

    def bind_execute(self, execute: Callable) -> None:
        if not self.executable:
            raise TaskDefinitionError(f"Cannot bind an execute function to non-executable task ({self.name})")
        self._execute = execute

    # State

    @property
    def state(self) -> TaskState:
        """Own state, or while this master is unstarted, the least advanced state of its slaves"""
        if self._slave_tasks and self._state.unstarted:
            return min((s.state for s in self._slave_tasks), key=_by_state_type)
        return self._state

    @property
    def attempts(self) -> int:
        return self._attempts

    @property
    def total_attempts(self) -> int:
        return self._total_attempts

    @property
    def began(self) -> Optional[datetime]:
        return self._began

    @property
    def ended(self) -> Optional[datetime]:
        return self._ended

    @property
    def took(self) -> Optional[timedelta]:
        return self._took

    @property
    def result(self) -> Any:
        return self._result

    @property
    def error(self) -> Any:
        return self._error

    @property
    def unstarted(self) -> bool:
        return self.state.unstarted

    @property
    def started(self) -> bool:
        return self.state.started

    @property
    def failed(self) -> bool:
        return self.state.failed

    @property
    def timed_out(self) -> bool:
        return self.state.timed_out

    @property
    def completed(self) -> bool:
        return self.state.completed

    @property
    def rejected(self) -> bool:
        return self.state.rejected

    @property
    def incomplete(self) -> bool:
        return self.state.incomplete

    @property
    def finalised(self) -> bool:
        return self.state.finalised

    def is_rejected(self) -> bool:
        return self.state.is_rejected()

    def is_discarded(self) -> bool:
        return self.state.is_discarded()

    def is_abandoned(self) -> bool:
        return self.state.is_abandoned()

    def is_fully_finalised(self) -> bool:
        """True if this task and all of its descendants are finalised"""
        return self.finalised and all(t.is_fully_finalised() for t in self._sub_tasks)

    # Transition engine

    def _apply(self, visit: Callable[["Task"], bool], recursive: bool) -> int:
        count = 1 if visit(self) else 0
        for slave in self._slave_tasks:
            if not slave.finalised:
                count += slave._apply(visit, False)
        if recursive:
            for sub_task in self._sub_tasks:
                count += sub_task._apply(visit, True)
        return count

    def _set_state(self, state: TaskState) -> bool:
        observed = self.state
        self._state = state
        return self.state != observed

    def _mark_began(self, began: datetime) -> None:
        self._began = began
        if self._took is not None:
            # A previously measured duration no longer applies to the new start
            self._took = None
            self._ended = None
        elif self._ended is not None:
            self._took = self._ended - began

    def _mark_ended(self, ended: datetime) -> None:
        self._ended = ended
        if self._began is not None:
            self._took = ended - self._began

    def _adjust_attempts(self, delta: int) -> bool:
        if self.finalised:
            return False
        if delta < 0:
            if self._attempts <= 0:
                return False
            self._attempts -= 1
        else:
            self._attempts += 1
            self._total_attempts += 1
        return True

    def start(self, date: DateLike = None, recursive: bool = False) -> int:
        """Start this task (and its descendants if recursive), counting a new attempt"""
        began = to_datetime(date) or utc_now()

        def visit(task: Task) -> bool:
            if not task.unstarted:
                return False
            task._set_state(STARTED)
            task._mark_began(began)
            task._adjust_attempts(+1)
            return True

        return self._apply(visit, recursive)

    def reset(self, recursive: bool = False) -> int:
        """Unconditionally return to Unstarted, keeping attempts and timing"""
        def visit(task: Task) -> bool:
            task._result = None
            task._error = None
            return task._set_state(UNSTARTED)

        return self._apply(visit, recursive)

    def complete(self, result: Any = None, override_timed_out: bool = False, recursive: bool = False) -> int:
        return self.complete_as(StateNames.COMPLETED, result, override_timed_out, recursive)

    def succeed(self, result: Any = None, override_timed_out: bool = False, recursive: bool = False) -> int:
        return self.complete_as(StateNames.SUCCEEDED, result, override_timed_out, recursive)

    def complete_as(self, state_name: str, result: Any = None, override_timed_out: bool = False,
                    recursive: bool = False) -> int:
        """Complete with a named Completed state; a timed out task needs override_timed_out"""
        new_state = completed_state(state_name)

        def visit(task: Task) -> bool:
            if task.rejected or (task.timed_out and not override_timed_out):
                return False
            if task is self:
                task._result = result
            task._error = None
            return task._set_state(new_state)

        return self._apply(visit, recursive)

    def timeout(self, error: Any = None, override_completed: bool = False, override_unstarted: bool = False,
                reverse_attempt: bool = False, recursive: bool = False) -> int:
        return self.timeout_as(StateNames.TIMED_OUT, error, override_completed, override_unstarted,
                               reverse_attempt, recursive)

    def timeout_as(self, state_name: str, error: Any = None, override_completed: bool = False,
                   override_unstarted: bool = False, reverse_attempt: bool = False,
                   recursive: bool = False) -> int:
        """Record a time out; completed or unstarted tasks are only timed out when overridden"""
        if error is None:
            error = TaskTimeoutError(f"Task ({self.name}) timed out")
        new_state = timed_out_state(error, state_name)

        def visit(task: Task) -> bool:
            if task.rejected:
                return False
            if task.completed and not override_completed:
                return False
            if task.unstarted and not override_unstarted:
                return False
            was_started = task.started
            task._error = error
            changed = task._set_state(new_state)
            if reverse_attempt and was_started:
                task._adjust_attempts(-1)
            return changed

        return self._apply(visit, recursive)

    def fail(self, error: Any, recursive: bool = False) -> int:
        return self.fail_as(StateNames.FAILED, error, recursive)

    def fail_as(self, state_name: str, error: Any, recursive: bool = False) -> int:
        """Fail any task that is not already rejected"""
        if error is None:
            raise ValueError(f"Cannot change task ({self.name}) state to failed without an error")
        new_state = failed_state(error, state_name)

        def visit(task: Task) -> bool:
            if task.rejected:
                return False
            task._error = error
            return task._set_state(new_state)

        return self._apply(visit, recursive)

    def reject(self, reason: Optional[str], error: Any = None, recursive: bool = False) -> int:
        return self.reject_as(StateNames.REJECTED, reason, error, recursive)

    def reject_as(self, state_name: str, reason: Optional[str], error: Any = None,
                  recursive: bool = False) -> int:
        return self._reject_with(rejected_state(reason, error, state_name), error, recursive)

    def discard(self, reason: Optional[str], error: Any = None, recursive: bool = False) -> int:
        return self._reject_with(discarded_state(reason, error), error, recursive)

    def abandon(self, reason: Optional[str], error: Any = None, recursive: bool = False) -> int:
        return self._reject_with(abandoned_state(reason, error), error, recursive)

    def _reject_with(self, new_state: TaskState, error: Any, recursive: bool) -> int:
        def visit(task: Task) -> bool:
            if task.rejected:
                return False
            task._error = error
            return task._set_state(new_state)

        return self._apply(visit, recursive)

    def discard_if_over_attempted(self, max_attempts: int, recursive: bool = False) -> int:
        """Discard every visited task whose attempts exceed max_attempts"""
        def visit(task: Task) -> bool:
            if task.rejected or task.attempts <= max_attempts:
                return False
            reason = (f"Number of attempts ({task.attempts}) has exceeded the maximum number of "
                      f"attempts ({max_attempts})")
            return task._set_state(discarded_state(reason))

        return self._apply(visit, recursive)

    def increment_attempts(self, recursive: bool = False) -> int:
        return self._apply(lambda task: task._adjust_attempts(+1), recursive)

    def decrement_attempts(self, recursive: bool = False) -> int:
        return self._apply(lambda task: task._adjust_attempts(-1), recursive)

    # Timing

    def began_at(self, date: DateLike = None, recursive: bool = False) -> int:
        began = to_datetime(date) or utc_now()

        def visit(task: Task) -> bool:
            task._mark_began(began)
            return True

        return self._apply(visit, recursive)

    def ended_at(self, date: DateLike = None, recursive: bool = False) -> int:
        ended = to_datetime(date) or utc_now()

        def visit(task: Task) -> bool:
            task._mark_ended(ended)
            return True

        return self._apply(visit, recursive)

    # Master/slave

    def set_slave_tasks(self, slave_tasks: Optional[Sequence["Task"]]) -> "Task":
        """Make this task the master of the given tasks.

        While the master's own state is unstarted its state follows its slaves' least
        advanced state, and its attempts and timing are taken from them here.
        """
        slaves = list(slave_tasks or [])
        for slave in slaves:
            if not isinstance(slave, Task) or slave.definition is not self._definition:
                raise TaskDefinitionError(
                    f"Cannot set slave tasks of master task ({self.name}) to tasks that do not share its definition")
            if slave is self or self._is_slave_of(slave):
                raise TaskDefinitionError(
                    f"Cannot set slave tasks of master task ({self.name}) to itself or to one of its own masters")
        self._slave_tasks = slaves

        if slaves and self._state.unstarted:
            self._attempts = min(s.attempts for s in slaves)
            self._total_attempts = min(s.total_attempts for s in slaves)
            begun = [s for s in slaves if s.began is not None]
            if begun:
                latest = max(begun, key=lambda s: s.began)
                self._began, self._ended, self._took = latest.began, latest.ended, latest.took

        for sub_task in self._sub_tasks:
            sub_task.set_slave_tasks([s.get_sub_task(sub_task.name) for s in slaves])
        return self

    def _is_slave_of(self, task: "Task") -> bool:
        """True if this task is a slave of the given task, directly or through its slaves"""
        seen = set()
        pending = list(task._slave_tasks)
        while pending:
            slave = pending.pop()
            if slave is self:
                return True
            if id(slave) not in seen:
                seen.add(id(slave))
                pending.extend(slave._slave_tasks)
        return False

    # Snapshots

    def restore(self, state: TaskState, attempts: int = 0, total_attempts: int = 0,
                began: DateLike = None, ended: DateLike = None, took: Optional[timedelta] = None) -> None:
        """Overwrite this node's bookkeeping verbatim, bypassing the transition guards"""
        self._state = state
        self._attempts = attempts
        self._total_attempts = total_attempts
        self._began = to_datetime(began)
        self._ended = to_datetime(ended)
        self._took = took

    def to_task_like(self) -> TaskLike:
        return TaskLike(
            name=self.name,
            executable=self.executable,
            state=TaskStateLike(**self.state.to_dict()),
            attempts=self._attempts,
            total_attempts=self._total_attempts,
            began=self._began,
            ended=self._ended,
            took=self._took,
            sub_tasks=[t.to_task_like() for t in self._sub_tasks],
        )

    def to_dict(self) -> dict:
        return self.to_task_like().to_dict()

    def __repr__(self) -> str:
        return (f"Task(name={self.name!r}, state={str(self.state)!r}, attempts={self._attempts}, "
                f"sub_tasks={[t.name for t in self._sub_tasks]})")
