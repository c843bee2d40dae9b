# domain/models/task_like.py
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator

from domain.models.state_type import StateType
from domain.models.task_state import TaskState, error_to_text, kind_from_flags, to_task_state
from shared.logging import logger

class TaskStateLike(BaseModel):
    """Plain-data form of a task state"""
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    name: Optional[str] = None
    kind: Optional[StateType] = None
    error: Optional[str] = None
    reason: Optional[str] = None

    # Legacy flag-based shape, only consulted when kind is absent
    completed: Optional[bool] = None
    timed_out: Optional[bool] = Field(default=None, alias="timedOut")
    rejected: Optional[bool] = None

    @field_validator("error", mode="before")
    @classmethod
    def error_as_text(cls, value: Any) -> Optional[str]:
        return error_to_text(value)

    @model_validator(mode="after")
    def derive_kind_from_flags(self) -> "TaskStateLike":
        if self.kind is None:
            self.kind = kind_from_flags(self.name, self.model_dump(by_alias=True, exclude_none=True))
        self.completed = self.timed_out = self.rejected = None
        return self

    def to_task_state(self) -> TaskState:
        return to_task_state(self.name, self.kind, self.error, self.reason)

class TaskLike(BaseModel):
    """Plain-data snapshot of a task and its sub-tasks, as persisted between invocations"""
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    name: str = Field(..., description="Task name, unique among its siblings")
    executable: Optional[bool] = None
    state: Optional[TaskStateLike] = None
    attempts: int = Field(default=0, ge=0)
    total_attempts: int = Field(default=0, ge=0, alias="totalAttempts")
    began: Optional[datetime] = None
    ended: Optional[datetime] = None
    took: Optional[timedelta] = None
    sub_tasks: List["TaskLike"] = Field(default_factory=list, alias="subTasks")

    @field_validator("name")
    @classmethod
    def name_must_not_be_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("name must not be blank")
        return value.strip()

    @field_validator("began", "ended")
    @classmethod
    def naive_dates_are_utc(cls, value: Optional[datetime]) -> Optional[datetime]:
        if value is not None and value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value

    @field_validator("sub_tasks", mode="before")
    @classmethod
    def drop_malformed_sub_tasks(cls, value: Any) -> Any:
        if not isinstance(value, (list, tuple)):
            return value
        sub_tasks = []
        for item in value:
            sub_task = to_task_like(item)
            if sub_task is None:
                logger.warning("Dropped malformed sub-task snapshot", sub_task=repr(item)[:200])
                continue
            sub_tasks.append(sub_task)
        return sub_tasks

    def get_sub_task(self, name: str) -> Optional["TaskLike"]:
        return next((s for s in self.sub_tasks if s.name == name), None)

    def to_dict(self) -> Dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)

TaskLike.model_rebuild()

def to_task_like(value: Any) -> Optional[TaskLike]:
    """Recognise a task, task-like model or plain mapping as a snapshot; None if it is not one"""
    if isinstance(value, TaskLike):
        return value
    if hasattr(value, "to_task_like"):
        return value.to_task_like()
    if not isinstance(value, dict):
        return None
    try:
        return TaskLike.model_validate(value)
    except ValidationError:
        return None

def is_task_like(value: Any, name: Optional[str] = None) -> bool:
    task_like = to_task_like(value)
    return task_like is not None and (name is None or task_like.name == name)
