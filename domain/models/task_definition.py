# domain/models/task_definition.py
import weakref
from typing import Callable, List, Optional, Sequence

from domain.errors import TaskDefinitionError

class TaskDefinition:
    """Immutable blueprint of a task and its sub-tasks.

    A root definition with a body defines executable tasks; a root definition
    without one only ever comes from reconstructing a snapshot. Sub-task
    definitions are internal (state tracking only) unless given a body.
    """

    def __init__(self, name: str, execute: Optional[Callable] = None,
                 parent: Optional["TaskDefinition"] = None):
        task_name = _validate_name(name, "task definition")

        if execute is not None and not callable(execute):
            raise TaskDefinitionError(
                f"Cannot create a task definition ({task_name}) with an invalid execute function")

        if parent is not None:
            if not isinstance(parent, TaskDefinition):
                raise TaskDefinitionError(
                    f"Cannot create a sub-task definition ({task_name}) with a parent that is not a task definition")
            if not _are_names_distinct(parent.sub_task_names + [task_name]):
                raise TaskDefinitionError(
                    f"Cannot add a sub-task definition ({task_name}) with a duplicate name to "
                    f"task definition ({parent.name}) with sub-task definitions {parent.sub_task_names}")

        self._name = task_name
        self._execute = execute
        self._sub_task_defs: List[TaskDefinition] = []
        self._parent = None

        if parent is not None:
            # Must be checked before linking to the parent
            ensure_all_definitions_distinct(parent, self)
            self._parent = weakref.ref(parent)
            parent._sub_task_defs.append(self)

    @property
    def name(self) -> str:
        return self._name

    @property
    def execute(self) -> Optional[Callable]:
        return self._execute

    @property
    def executable(self) -> bool:
        return self._execute is not None

    @property
    def parent(self) -> Optional["TaskDefinition"]:
        return self._parent() if self._parent is not None else None

    @property
    def sub_task_defs(self) -> List["TaskDefinition"]:
        return list(self._sub_task_defs)

    @property
    def sub_task_names(self) -> List[str]:
        return [d.name for d in self._sub_task_defs]

    def is_executable(self) -> bool:
        return self.executable

    def is_internal(self) -> bool:
        return not self.executable

    def get_sub_task_def(self, name: str) -> Optional["TaskDefinition"]:
        return next((d for d in self._sub_task_defs if d.name == name), None)

    def define_sub_task(self, name: str, execute: Optional[Callable] = None) -> "TaskDefinition":
        """Add a sub-task definition, executable only if given a body"""
        return TaskDefinition(name, execute, self)

    def define_sub_tasks(self, names: Sequence[str]) -> List["TaskDefinition"]:
        """Add several internal sub-task definitions at once"""
        if isinstance(names, str) or not all(isinstance(n, str) for n in names):
            raise TaskDefinitionError(f"Cannot create sub-task definitions with non-string names {names!r}")
        if any(not n.strip() for n in names):
            raise TaskDefinitionError(f"Cannot create sub-task definitions with blank names {names!r}")
        new_names = [n.strip() for n in names]
        if not _are_names_distinct(self.sub_task_names + new_names):
            raise TaskDefinitionError(
                f"Cannot add sub-task definitions {new_names} with duplicate names to task definition "
                f"({self.name}) with sub-task definitions {self.sub_task_names}")
        return [TaskDefinition(n, None, self) for n in new_names]

    def root(self) -> "TaskDefinition":
        return get_root_definition(self)

    def __repr__(self) -> str:
        return f"TaskDefinition(name={self._name!r}, executable={self.executable}, sub_tasks={self.sub_task_names})"

def define_task(name: str, execute: Callable) -> TaskDefinition:
    """Define a new top-level, executable task.

    The body is invoked by the task's execute adapter as ``execute(task, *args, **kwargs)``.
    """
    if execute is None:
        raise TaskDefinitionError(f"Cannot create a top-level task definition ({name}) without an execute function")
    return TaskDefinition(name, execute, None)

def get_root_definition(definition: TaskDefinition) -> TaskDefinition:
    visited = []
    current = definition
    while current.parent is not None:
        if any(current is v for v in visited):
            raise TaskDefinitionError(
                f"Task definition hierarchy is not acyclic, since ({current.name}) is recursively a parent of itself")
        visited.append(current)
        current = current.parent
    return current

def ensure_all_definitions_distinct(parent: Optional[TaskDefinition],
                                    proposed: Optional[TaskDefinition]) -> None:
    """Raise if any definition would appear more than once in the combined hierarchy"""
    seen = set()

    def visit(definition):
        if id(definition) in seen:
            raise TaskDefinitionError(
                f"Task definition hierarchy is not acyclic, since ({definition.name}) appears more than once")
        seen.add(id(definition))
        for sub_task_def in definition._sub_task_defs:
            visit(sub_task_def)

    if parent is not None:
        visit(get_root_definition(parent))
    if proposed is not None:
        visit(get_root_definition(proposed))

def _validate_name(name, what: str) -> str:
    if not isinstance(name, str):
        raise TaskDefinitionError(f"Cannot create a {what} with a non-string name ({name!r})")
    if not name.strip():
        raise TaskDefinitionError(f"Cannot create a {what} with a blank name ({name!r})")
    return name.strip()

def _are_names_distinct(names: List[str]) -> bool:
    return len(names) == len(set(names))
