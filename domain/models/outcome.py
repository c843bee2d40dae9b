# domain/models/outcome.py
from dataclasses import dataclass
from enum import Enum
from typing import Any

class ReturnMode(str, Enum):
    """How a task's execute adapter hands back its body's value or error"""
    NORMAL = "NORMAL"
    SUCCESS_OR_FAILURE = "SUCCESS_OR_FAILURE"
    PROMISE = "PROMISE"

@dataclass(frozen=True)
class Success:
    """Value returned by a successful execution"""
    value: Any = None

    def is_success(self) -> bool:
        return True

    def is_failure(self) -> bool:
        return False

    def get(self) -> Any:
        return self.value

@dataclass(frozen=True)
class Failure:
    """Error raised by a failed execution"""
    error: BaseException

    def is_success(self) -> bool:
        return False

    def is_failure(self) -> bool:
        return True

    def get(self) -> Any:
        raise self.error
