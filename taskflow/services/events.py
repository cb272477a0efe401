"""
Task lifecycle events.

Every operation that mutates a task's assignment or status describes what
happened with one ``TaskEvent``. The Bulk Notifier is the single consumer
that turns events into notification rows.
"""

from __future__ import annotations

from dataclasses import dataclass, field

TASK_ASSIGNED = "ASSIGNED"
TASK_STATUS_CHANGED = "STATUS_CHANGED"
TASK_COMPLETED = "COMPLETED"

TASK_EVENT_KINDS = {TASK_ASSIGNED, TASK_STATUS_CHANGED, TASK_COMPLETED}


@dataclass(frozen=True)
class TaskEvent:
    kind: str
    task_id: int
    # ASSIGNED: the users that were just assigned
    user_ids: tuple[int, ...] = field(default_factory=tuple)
    old_status: str | None = None
    new_status: str | None = None

    def __post_init__(self):
        if self.kind not in TASK_EVENT_KINDS:
            raise ValueError(f"Unknown task event kind: {self.kind}")

    @classmethod
    def assigned(cls, task_id: int, user_ids) -> "TaskEvent":
        return cls(kind=TASK_ASSIGNED, task_id=task_id, user_ids=tuple(user_ids))

    @classmethod
    def status_changed(cls, task_id: int, old_status: str, new_status: str) -> "TaskEvent":
        """Status change; a change to COMPLETED is reported as a completion."""
        kind = TASK_COMPLETED if new_status == "COMPLETED" else TASK_STATUS_CHANGED
        return cls(kind=kind, task_id=task_id, old_status=old_status, new_status=new_status)

    @classmethod
    def completed(cls, task_id: int, old_status: str | None = None) -> "TaskEvent":
        return cls(kind=TASK_COMPLETED, task_id=task_id, old_status=old_status, new_status="COMPLETED")
