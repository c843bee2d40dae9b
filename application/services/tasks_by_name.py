# application/services/tasks_by_name.py
from typing import Any, Iterable, List, MutableMapping, Optional, Sequence, Tuple

from application.services.task_revival import revive_tasks
from domain.models.task import Task
from domain.models.task_definition import TaskDefinition
from domain.models.task_like import is_task_like, to_task_like
from shared.logging import logger

def get_task(tasks_by_name: Optional[MutableMapping[str, Any]], task_name: str) -> Optional[Any]:
    """Return the entry stored under the task name, if it is a task (or task-like) of that name"""
    if not tasks_by_name:
        return None
    task = tasks_by_name.get(task_name)
    return task if is_task_like(task, task_name) else None

def get_sub_task(tasks_by_name: Optional[MutableMapping[str, Any]], task_name: str,
                 sub_task_names: Sequence[str]) -> Optional[Any]:
    """Follow a path of sub-task names down from the named task"""
    current = get_task(tasks_by_name, task_name)
    for name in sub_task_names:
        if current is None:
            return None
        if isinstance(current, Task):
            current = current.get_sub_task(name)
        else:
            current = to_task_like(current).get_sub_task(name)
    return current

def get_tasks(tasks_by_name: Optional[MutableMapping[str, Any]]) -> List[Any]:
    if not tasks_by_name:
        return []
    return [task for name, task in tasks_by_name.items() if is_task_like(task, name)]

def get_tasks_and_sub_tasks(tasks_by_name: Optional[MutableMapping[str, Any]]) -> List[Any]:
    """Flatten every stored task and its sub-tasks, depth-first"""
    flattened: List[Any] = []

    def add_task_like(task_like):
        flattened.append(task_like)
        for sub_task_like in task_like.sub_tasks:
            add_task_like(sub_task_like)

    for task in get_tasks(tasks_by_name):
        if isinstance(task, Task):
            task.for_each(flattened.append)
        else:
            add_task_like(to_task_like(task))
    return flattened

def set_task(tasks_by_name: MutableMapping[str, Any], task_name: str, task: Any) -> Any:
    if not is_task_like(task, task_name):
        raise ValueError(f"Cannot store {task!r} under task name ({task_name}), since it is not a task of that name")
    tasks_by_name[task_name] = task
    return task

def replace_tasks_with_revived(tasks_by_name: MutableMapping[str, Any], definitions: Iterable[TaskDefinition],
                               factory, only_recreate_existing: bool = False) -> Tuple[List[Task], List[Task]]:
    """Revive the tasks held in the mapping and store the results back under their names"""
    active_tasks, abandoned_tasks = revive_tasks(factory, definitions, tasks_by_name, only_recreate_existing)
    for task in active_tasks + abandoned_tasks:
        set_task(tasks_by_name, task.name, task)
    logger.debug("Replaced tasks with revived tasks",
                 task_names=[t.name for t in active_tasks + abandoned_tasks])
    return active_tasks, abandoned_tasks
