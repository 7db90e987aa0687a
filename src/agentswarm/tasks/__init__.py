"""Task primitives."""

from .base import Task, TaskPriority, TaskResult, TaskStatus, TaskType
from .queue import TaskQueue
from .runner import TaskRunner

__all__ = [
    "Task",
    "TaskPriority",
    "TaskQueue",
    "TaskResult",
    "TaskRunner",
    "TaskStatus",
    "TaskType",
]
