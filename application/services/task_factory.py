# application/services/task_factory.py
import inspect
from dataclasses import dataclass
from typing import Any, Callable, Iterable, List, Optional, Sequence, Tuple

from application.services.task_revival import revive_tasks
from domain.errors import FinalisedError, TaskDefinitionError
from domain.models.outcome import Failure, ReturnMode, Success
from domain.models.task import Task
from domain.models.task_definition import TaskDefinition
from domain.models.task_like import TaskLike, to_task_like
from domain.models.task_state import error_to_text
from shared.logging import logger, log_task_execution

@dataclass
class TaskFactoryConfig:
    return_mode: ReturnMode = ReturnMode.NORMAL

class TaskFactory:
    """Creates tasks from definitions and wires up their execute adapters"""

    def __init__(self, config: Optional[TaskFactoryConfig] = None):
        self.config = config or TaskFactoryConfig()

    @classmethod
    def from_settings(cls, settings) -> "TaskFactory":
        return cls(TaskFactoryConfig(return_mode=settings.return_mode))

    @property
    def return_mode(self) -> ReturnMode:
        return self.config.return_mode

    def create_task(self, definition: TaskDefinition, return_mode: Optional[ReturnMode] = None) -> Task:
        """Create a new top-level task (and all of its sub-tasks) from a root definition"""
        if not isinstance(definition, TaskDefinition):
            raise TaskDefinitionError(f"Cannot create a task without a valid task definition ({definition!r})")
        task = Task(definition, factory=self, return_mode=return_mode)
        task.for_each(self._bind_execute_if_executable)
        return task

    def create_master_task(self, definition: TaskDefinition, slave_tasks: Sequence[Task],
                           return_mode: Optional[ReturnMode] = None) -> Task:
        """Create a task that aggregates and drives slave tasks sharing its definition"""
        slaves = list(slave_tasks or [])
        if not slaves:
            raise TaskDefinitionError(f"Cannot create a master task ({definition.name}) without slave tasks")
        if any(not isinstance(s, Task) or s.definition is not definition for s in slaves):
            raise TaskDefinitionError(
                f"Cannot create a master task ({definition.name}) with mismatched slave tasks "
                f"({[getattr(s, 'name', s) for s in slaves]})")
        master = self.create_task(definition, return_mode)
        master.set_slave_tasks(slaves)
        return master

    def reconstruct_task(self, task_like: Any) -> Task:
        """Rebuild a non-executable task from a snapshot, copying its bookkeeping verbatim"""
        snapshot = to_task_like(task_like)
        if snapshot is None:
            raise ValueError(f"Cannot reconstruct a task from a non-task-like value ({task_like!r})")

        definition = TaskDefinition(snapshot.name)
        _define_sub_tasks(definition, snapshot)
        task = Task(definition, factory=self)
        _copy_snapshot(task, snapshot)
        return task

    def revive_tasks(self, definitions: Iterable[TaskDefinition], prior_tasks: Any,
                     only_recreate_existing: bool = False) -> Tuple[List[Task], List[Task]]:
        return revive_tasks(self, definitions, prior_tasks, only_recreate_existing)

    def _bind_execute_if_executable(self, task: Task) -> None:
        if task.executable:
            task.bind_execute(self.generate_execute(task, task.definition.execute))

    def generate_execute(self, task: Task, body: Callable) -> Callable:
        """Wrap a task body so that executing it drives the task's state.

        The body is called as ``body(task, *args, **kwargs)``. The outcome is shaped by
        the task's return mode: NORMAL returns or raises, SUCCESS_OR_FAILURE returns a
        Success or Failure, and PROMISE always returns a coroutine. An awaitable result
        is always handed back as a coroutine that settles the task once awaited.
        """
        def execute(*args, **kwargs):
            mode = task.return_mode
            if task.is_fully_finalised():
                error = FinalisedError(f"Cannot execute task ({task.name}), since it is already finalised "
                                       f"({task.state})")
                logger.warning("Task already finalised", task_name=task.name, task_state=str(task.state))
                return _shape_failure(mode, error)

            task.start()
            try:
                result = body(task, *args, **kwargs)
            except Exception as error:
                _settle_failure(task, error)
                return _shape_failure(mode, error)

            if inspect.isawaitable(result):
                return _settle_awaitable(task, result, mode)

            _settle_success(task, result)
            return _shape_success(mode, result)

        execute.__name__ = f"execute_{task.name}"
        return execute

def _define_sub_tasks(definition: TaskDefinition, snapshot: TaskLike) -> None:
    for sub_snapshot in snapshot.sub_tasks:
        _define_sub_tasks(definition.define_sub_task(sub_snapshot.name), sub_snapshot)

def _copy_snapshot(task: Task, snapshot: TaskLike) -> None:
    state = snapshot.state.to_task_state() if snapshot.state is not None else task.state
    task.restore(state, snapshot.attempts, snapshot.total_attempts, snapshot.began, snapshot.ended, snapshot.took)
    for sub_task, sub_snapshot in zip(task.sub_tasks, snapshot.sub_tasks):
        _copy_snapshot(sub_task, sub_snapshot)

def _execution_time_ms(task: Task) -> int:
    return int(task.took.total_seconds() * 1000) if task.took is not None else 0

def _settle_success(task: Task, result: Any) -> None:
    if task.started or task.unstarted:
        task.complete(result)
    task.ended_at()
    log_task_execution(task.name, _execution_time_ms(task), True, task.attempts, str(task.state))

def _settle_failure(task: Task, error: BaseException) -> None:
    if not (task.rejected or task.failed or task.timed_out):
        task.fail(error)
    task.ended_at()
    log_task_execution(task.name, _execution_time_ms(task), False, task.attempts, str(task.state),
                       error_to_text(error))

def _shape_success(mode: ReturnMode, result: Any) -> Any:
    if mode is ReturnMode.SUCCESS_OR_FAILURE:
        return Success(result)
    if mode is ReturnMode.PROMISE:
        return _resolved(result)
    return result

def _shape_failure(mode: ReturnMode, error: BaseException) -> Any:
    if mode is ReturnMode.SUCCESS_OR_FAILURE:
        return Failure(error)
    if mode is ReturnMode.PROMISE:
        return _rejected(error)
    raise error

async def _resolved(value: Any) -> Any:
    return value

async def _rejected(error: BaseException) -> Any:
    raise error

async def _settle_awaitable(task: Task, awaitable: Any, mode: ReturnMode) -> Any:
    try:
        result = await awaitable
    except Exception as error:
        _settle_failure(task, error)
        if mode is ReturnMode.SUCCESS_OR_FAILURE:
            return Failure(error)
        raise
    _settle_success(task, result)
    return Success(result) if mode is ReturnMode.SUCCESS_OR_FAILURE else result
