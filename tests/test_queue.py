import pytest

from agentswarm.errors import InvalidTransitionError, QueueFullError, TaskNotFoundError
from agentswarm.tasks.base import Task, TaskPriority, TaskStatus
from agentswarm.tasks.queue import TaskQueue


def _task(title, priority=TaskPriority.MEDIUM):
    return Task(title=title, description=title, priority=priority)


def test_dequeue_respects_priority_then_fifo():
    queue = TaskQueue()
    order = [
        ("low-1", TaskPriority.LOW),
        ("high-1", TaskPriority.HIGH),
        ("medium-1", TaskPriority.MEDIUM),
        ("critical-1", TaskPriority.CRITICAL),
        ("high-2", TaskPriority.HIGH),
        ("low-2", TaskPriority.LOW),
        ("critical-2", TaskPriority.CRITICAL),
    ]
    for title, priority in order:
        queue.enqueue(_task(title, priority))

    drained = [queue.dequeue().title for _ in range(len(order))]
    assert queue.dequeue() is None

    assert drained == ["critical-1", "critical-2", "high-1", "high-2", "medium-1", "low-1", "low-2"]


def test_low_critical_medium_scenario():
    queue = TaskQueue()
    for title, priority in (("a", TaskPriority.LOW), ("b", TaskPriority.CRITICAL), ("c", TaskPriority.MEDIUM)):
        queue.enqueue(_task(title, priority))

    assert [queue.dequeue().priority for _ in range(3)] == [
        TaskPriority.CRITICAL,
        TaskPriority.MEDIUM,
        TaskPriority.LOW,
    ]
    assert queue.dequeue() is None


def test_dequeue_moves_task_to_active_and_terminal_status_completes_it():
    queue = TaskQueue()
    task = _task("work")
    queue.enqueue(task)
    assert queue.peek() is task

    assert queue.dequeue() is task
    assert queue.active_tasks() == [task]
    assert queue.size == 0

    queue.update_status(task.id, TaskStatus.ASSIGNED)
    queue.update_status(task.id, TaskStatus.IN_PROGRESS)
    queue.update_status(task.id, TaskStatus.COMPLETED)

    assert queue.active_tasks() == []
    assert queue.completed_tasks() == [task]
    assert task.completed_at is not None
    assert queue.get_task(task.id) is task


def test_status_never_moves_backwards():
    queue = TaskQueue()
    task = _task("work")
    queue.enqueue(task)
    queue.dequeue()
    queue.update_status(task.id, TaskStatus.ASSIGNED)
    queue.update_status(task.id, TaskStatus.IN_PROGRESS)

    with pytest.raises(InvalidTransitionError):
        queue.update_status(task.id, TaskStatus.PENDING)
    with pytest.raises(InvalidTransitionError):
        queue.update_status(task.id, TaskStatus.CANCELLED)

    queue.update_status(task.id, TaskStatus.FAILED)
    with pytest.raises(InvalidTransitionError):
        queue.update_status(task.id, TaskStatus.COMPLETED)


def test_update_status_unknown_task():
    with pytest.raises(TaskNotFoundError):
        TaskQueue().update_status("missing", TaskStatus.ASSIGNED)


def test_remove_task_only_before_running():
    queue = TaskQueue()
    queued, assigned, running = _task("queued"), _task("assigned"), _task("running")
    for task in (queued, assigned, running):
        queue.enqueue(task)

    assert queue.remove_task(queued.id) is True
    assert queue.get_task(queued.id) is None

    queue.dequeue()
    queue.update_status(assigned.id, TaskStatus.ASSIGNED)
    assert queue.remove_task(assigned.id) is True

    queue.dequeue()
    queue.update_status(running.id, TaskStatus.ASSIGNED)
    queue.update_status(running.id, TaskStatus.IN_PROGRESS)
    assert queue.remove_task(running.id) is False
    assert queue.remove_task("missing") is False


def test_requeue_returns_task_to_front_of_its_level():
    queue = TaskQueue()
    first, second = _task("first"), _task("second")
    queue.enqueue(first)
    queue.enqueue(second)

    taken = queue.dequeue()
    queue.requeue(taken)

    assert queue.active_tasks() == []
    assert [task.title for task in queue.pending_tasks()] == ["first", "second"]


def test_max_size_applies_backpressure():
    queue = TaskQueue(max_size=1)
    queue.enqueue(_task("one"))
    with pytest.raises(QueueFullError):
        queue.enqueue(_task("two"))


def test_stats_counts_by_priority():
    queue = TaskQueue()
    queue.enqueue(_task("a", TaskPriority.HIGH))
    queue.enqueue(_task("b", TaskPriority.LOW))
    queue.enqueue(_task("c", TaskPriority.LOW))
    queue.dequeue()

    stats = queue.stats()
    assert stats["pending"] == 2
    assert stats["active"] == 1
    assert stats["by_priority"] == {"critical": 0, "high": 0, "medium": 0, "low": 2}
