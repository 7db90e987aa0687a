"""Priority queue holding tasks that have not been dispatched yet."""

from __future__ import annotations

from collections import deque
from typing import Deque, Dict, List, Optional

from ..errors import InvalidTransitionError, QueueFullError, TaskNotFoundError
from .base import (
    PRIORITY_ORDER,
    Task,
    TaskPriority,
    TaskStatus,
    can_transition,
    utcnow,
)


class TaskQueue:
    """Four FIFO sub-queues drained strictly CRITICAL -> HIGH -> MEDIUM -> LOW.

    Dequeued tasks move to an *active* set; tasks reaching a terminal status
    move on to a *completed* set. All status changes go through
    :meth:`update_status`, which refuses to move a task backwards.
    """

    def __init__(self, max_size: int = 0) -> None:
        self.max_size = max_size
        self._queues: Dict[TaskPriority, Deque[Task]] = {
            priority: deque() for priority in PRIORITY_ORDER
        }
        self._active: Dict[str, Task] = {}
        self._completed: Dict[str, Task] = {}

    def enqueue(self, task: Task) -> None:
        if self.max_size and self.size >= self.max_size:
            raise QueueFullError(f"Task queue is full ({self.max_size} pending tasks)")
        self._queues[task.priority].append(task)

    def requeue(self, task: Task) -> None:
        """Put an active, still pending task back at the head of its level."""

        self._active.pop(task.id, None)
        self._queues[task.priority].appendleft(task)

    def dequeue(self) -> Optional[Task]:
        for priority in PRIORITY_ORDER:
            queue = self._queues[priority]
            if queue:
                task = queue.popleft()
                self._active[task.id] = task
                return task
        return None

    def peek(self) -> Optional[Task]:
        for priority in PRIORITY_ORDER:
            queue = self._queues[priority]
            if queue:
                return queue[0]
        return None

    def get_task(self, task_id: str) -> Optional[Task]:
        task = self._active.get(task_id)
        if task is not None:
            return task
        for queue in self._queues.values():
            for queued in queue:
                if queued.id == task_id:
                    return queued
        return self._completed.get(task_id)

    def update_status(self, task_id: str, status: TaskStatus) -> Task:
        task = self.get_task(task_id)
        if task is None:
            raise TaskNotFoundError(task_id)
        if not can_transition(task.status, status):
            raise InvalidTransitionError(
                f"Task {task_id} cannot move from {task.status.value} to {status.value}"
            )
        task.status = status
        task.updated_at = utcnow()
        if status.is_terminal:
            task.completed_at = task.updated_at
            self._active.pop(task_id, None)
            self._discard_queued(task_id)
            self._completed[task_id] = task
        return task

    def remove_task(self, task_id: str) -> bool:
        """Drop a task that has not started running. Returns False otherwise."""

        task = self.get_task(task_id)
        if task is None or task.status not in (TaskStatus.PENDING, TaskStatus.ASSIGNED):
            return False
        if self._active.pop(task_id, None) is not None:
            return True
        return self._discard_queued(task_id)

    def _discard_queued(self, task_id: str) -> bool:
        for queue in self._queues.values():
            for queued in queue:
                if queued.id == task_id:
                    queue.remove(queued)
                    return True
        return False

    def pending_tasks(self) -> List[Task]:
        tasks: List[Task] = []
        for priority in PRIORITY_ORDER:
            tasks.extend(self._queues[priority])
        return tasks

    def active_tasks(self) -> List[Task]:
        return list(self._active.values())

    def completed_tasks(self) -> List[Task]:
        return list(self._completed.values())

    @property
    def size(self) -> int:
        return sum(len(queue) for queue in self._queues.values())

    def __len__(self) -> int:
        return self.size

    def stats(self) -> Dict[str, object]:
        return {
            "pending": self.size,
            "active": len(self._active),
            "completed": len(self._completed),
            "by_priority": {
                priority.value.lower(): len(self._queues[priority]) for priority in PRIORITY_ORDER
            },
        }

    def clear(self) -> None:
        for queue in self._queues.values():
            queue.clear()
        self._active.clear()

    def clear_completed(self) -> None:
        self._completed.clear()
