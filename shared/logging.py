# shared/logging.py
import structlog
import logging
import sys
from typing import List, Optional

_SHARED_PROCESSORS = [
    structlog.stdlib.filter_by_level,
    structlog.stdlib.add_logger_name,
    structlog.stdlib.add_log_level,
    structlog.stdlib.PositionalArgumentsFormatter(),
    structlog.processors.TimeStamper(fmt="iso"),
    structlog.processors.StackInfoRenderer(),
    structlog.processors.format_exc_info,
    structlog.processors.UnicodeDecoder(),
]

def _configure(renderer) -> None:
    structlog.configure(
        processors=_SHARED_PROCESSORS + [renderer],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

# Structured JSON logging by default
_configure(structlog.processors.JSONRenderer())

logger = structlog.get_logger()

logging.basicConfig(
    format="%(message)s",
    stream=sys.stdout,
    level=logging.INFO,
)

def setup_logging(level: str = "INFO", json_logs: bool = True):
    """Setup logging configuration"""
    log_level = getattr(logging, level.upper())
    logging.getLogger().setLevel(log_level)

    if not json_logs:
        # Human-readable output for development
        _configure(structlog.dev.ConsoleRenderer())

def log_task_execution(
    task_name: str,
    execution_time_ms: int,
    success: bool,
    attempts: int = 0,
    state: Optional[str] = None,
    error_message: Optional[str] = None
):
    """Log the outcome of one execution of a task"""
    extra_data = {
        "task_name": task_name,
        "execution_time_ms": execution_time_ms,
        "success": success,
        "attempts": attempts,
    }

    if state:
        extra_data["task_state"] = state

    if error_message:
        extra_data["error_message"] = error_message
        logger.error("Task execution failed", **extra_data)
    else:
        logger.info("Task execution completed", **extra_data)

def log_task_revival(
    active_task_names: List[str],
    abandoned_task_names: List[str],
    skipped_task_names: Optional[List[str]] = None
):
    """Log the outcome of reviving tasks from prior snapshots"""
    logger.info("Tasks revived",
               active_tasks=active_task_names,
               abandoned_tasks=abandoned_task_names,
               skipped_tasks=skipped_task_names or [])

def log_task_abandoned(task_name: str, reason: str):
    """Log a prior task that is no longer active"""
    logger.warning("Task abandoned", task_name=task_name, reason=reason)
