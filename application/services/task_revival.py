# application/services/task_revival.py
"""
Revival of tasks across invocations.

Rebuilds live tasks for the currently active task definitions from the task
snapshots persisted by a prior invocation. Failed and timed out work is reset to
Unstarted so that it is attempted again, finalised work is preserved, and prior
tasks that are no longer defined are abandoned.
"""

from typing import Any, Dict, Iterable, List, Mapping, Tuple

from domain.errors import TaskDefinitionError
from domain.models.task import Task
from domain.models.task_definition import TaskDefinition
from domain.models.task_like import TaskLike, to_task_like
from domain.models.task_state import UNSTARTED, TaskState
from shared.logging import logger, log_task_abandoned, log_task_revival

def collect_snapshots(prior_tasks: Any) -> Dict[str, TaskLike]:
    """Recognise the task snapshots among prior tasks, keyed by task name.

    A mapping only contributes entries that are task-like under their own key;
    any other iterable contributes each task-like item (first one wins per name).
    Anything unrecognised is ignored.
    """
    snapshots: Dict[str, TaskLike] = {}
    if prior_tasks is None:
        return snapshots

    if isinstance(prior_tasks, Mapping):
        for key, value in prior_tasks.items():
            snapshot = to_task_like(value)
            if snapshot is not None and snapshot.name == key:
                snapshots[key] = snapshot
            else:
                logger.debug("Ignored non-task entry", key=str(key))
        return snapshots

    if isinstance(prior_tasks, (str, bytes)):
        return snapshots

    for value in prior_tasks:
        snapshot = to_task_like(value)
        if snapshot is None:
            logger.debug("Ignored non-task value", value_type=type(value).__name__)
            continue
        snapshots.setdefault(snapshot.name, snapshot)
    return snapshots

def revived_state(prior_state: TaskState) -> TaskState:
    """State a revived node starts from, given the state it was persisted in"""
    if prior_state.failed or prior_state.timed_out:
        return UNSTARTED
    return prior_state

def reconcile_task(factory, definition: TaskDefinition, snapshot: TaskLike) -> Task:
    """Create a fresh task from the definition, carrying over the snapshot's bookkeeping"""
    task = factory.create_task(definition)
    _reconcile(task, snapshot)
    return task

def _reconcile(task: Task, snapshot: TaskLike) -> None:
    prior_state = snapshot.state.to_task_state() if snapshot.state is not None else UNSTARTED
    task.restore(revived_state(prior_state), snapshot.attempts, snapshot.total_attempts,
                 snapshot.began, snapshot.ended, snapshot.took)

    for sub_snapshot in snapshot.sub_tasks:
        sub_task = task.get_sub_task(sub_snapshot.name)
        if sub_task is None:
            logger.warning("Dropped prior sub-task that is no longer defined",
                           task_name=task.name,
                           sub_task_name=sub_snapshot.name,
                           sub_task_names=[t.name for t in task.sub_tasks])
            continue
        _reconcile(sub_task, sub_snapshot)

    # A completed task cannot stand over unfinished sub-tasks
    if task.completed and not all(t.is_fully_finalised() for t in task.sub_tasks):
        task.reset()

def _ensure_distinct_root_definitions(definitions: List[TaskDefinition]) -> None:
    names = set()
    for definition in definitions:
        if not isinstance(definition, TaskDefinition):
            raise TaskDefinitionError(f"Cannot revive tasks from an invalid task definition ({definition!r})")
        if definition.parent is not None:
            raise TaskDefinitionError(
                f"Cannot revive a top-level task from sub-task definition ({definition.name})")
        if definition.name in names:
            raise TaskDefinitionError(f"Cannot revive tasks from duplicate task definitions ({definition.name})")
        names.add(definition.name)

def revive_tasks(factory, definitions: Iterable[TaskDefinition], prior_tasks: Any,
                 only_recreate_existing: bool = False) -> Tuple[List[Task], List[Task]]:
    """Revive the active tasks and abandon the prior tasks that are no longer defined.

    Returns the active tasks (in definition order) and the abandoned tasks.
    """
    active_definitions = list(definitions or [])
    _ensure_distinct_root_definitions(active_definitions)
    snapshots = collect_snapshots(prior_tasks)

    active_tasks: List[Task] = []
    skipped_names: List[str] = []
    for definition in active_definitions:
        snapshot = snapshots.get(definition.name)
        if snapshot is not None:
            active_tasks.append(reconcile_task(factory, definition, snapshot))
        elif only_recreate_existing:
            skipped_names.append(definition.name)
        else:
            active_tasks.append(factory.create_task(definition))

    active_names = [d.name for d in active_definitions]
    abandoned_tasks: List[Task] = []
    for name, snapshot in snapshots.items():
        if name in active_names:
            continue
        try:
            task = factory.reconstruct_task(snapshot)
        except ValueError as error:
            logger.warning("Skipped prior task that cannot be reconstructed", task_name=name, error=str(error))
            continue
        reason = f"Abandoned prior task ({name}), since it is no longer one of the active tasks {active_names}"
        task.abandon(reason, recursive=True)
        log_task_abandoned(name, reason)
        abandoned_tasks.append(task)

    log_task_revival([t.name for t in active_tasks], [t.name for t in abandoned_tasks], skipped_names)
    return active_tasks, abandoned_tasks
