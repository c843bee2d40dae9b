# domain/models/state_type.py
from enum import Enum
from typing import Any, Tuple

class StateType(str, Enum):
    UNSTARTED = "UNSTARTED"
    STARTED = "STARTED"
    FAILED = "FAILED"
    TIMED_OUT = "TIMED_OUT"
    COMPLETED = "COMPLETED"
    REJECTED = "REJECTED"

# Ascending "advancement" order, not temporal order
STATE_TYPE_ORDER: Tuple[StateType, ...] = (
    StateType.UNSTARTED,
    StateType.STARTED,
    StateType.FAILED,
    StateType.TIMED_OUT,
    StateType.COMPLETED,
    StateType.REJECTED,
)

def state_type_position(kind: Any) -> int:
    """Position of the given kind in the advancement order, or -1 if unknown"""
    try:
        return STATE_TYPE_ORDER.index(StateType(kind))
    except ValueError:
        return -1

def compare_state_types(a: Any, b: Any) -> int:
    """Negative if a is less advanced than b, zero if equal, positive if more advanced"""
    return state_type_position(a) - state_type_position(b)
