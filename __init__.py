"""
Retryable Tasks - Task lifecycle tracking across retried invocations

Tracks the state of hierarchical tasks through repeated invocations of a host
process and revives them from the snapshots persisted by a prior invocation.

Features:
- Immutable task definitions with executable tasks and internal sub-tasks
- Task state machine with guarded, recursive transitions
- Master tasks that aggregate and drive slave tasks
- Revival of tasks from persisted task-like snapshots
- Persistent snapshot store with PostgreSQL backend
"""

__version__ = "1.0.0"
__author__ = "Retryable Tasks Team"
