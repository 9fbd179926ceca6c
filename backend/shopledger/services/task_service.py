# Overview: Task assignment with an admin approval step.

from __future__ import annotations

from ..extensions import db
from ..models import Task, User
from ..validation import NotFoundError, ValidationError, coerce_date
from shopledger.time_utils import utcnow
from . import activity_service as activity
from .concurrency import run_with_retry
from .permission_service import PermissionDeniedError, is_admin, require_action


class TaskError(Exception):
    """Raised for illegal task transitions."""
    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.details = details or {}


TASK_PENDING = "PENDING"
TASK_WAITING_APPROVAL = "WAITING_APPROVAL"
TASK_COMPLETED = "COMPLETED"
TASK_STATUSES = {TASK_PENDING, TASK_WAITING_APPROVAL, TASK_COMPLETED}

PRIORITY_WEIGHTS = {
    "VERY_HIGH": 5,
    "HIGH": 4,
    "MEDIUM": 3,
    "LOW": 2,
    "VERY_LOW": 1,
}

# Allowed transitions: (from, to) -> admin-only action code (None = assignee)
TRANSITIONS = {
    "request_approval": (TASK_PENDING, TASK_WAITING_APPROVAL, None),
    "approve": (TASK_WAITING_APPROVAL, TASK_COMPLETED, "APPROVE_TASK"),
    "reject": (TASK_WAITING_APPROVAL, TASK_PENDING, "REJECT_TASK"),
    "complete": (TASK_PENDING, TASK_COMPLETED, "COMPLETE_TASK"),
    "reopen": (TASK_COMPLETED, TASK_PENDING, "REOPEN_TASK"),
}


def _sort_key(task: Task):
    return (
        0 if task.status != TASK_COMPLETED else 1,
        -PRIORITY_WEIGHTS.get(task.priority, 0),
        task.due_date,
        task.id,
    )


def visible_tasks_query(actor: User):
    query = db.session.query(Task)
    if not is_admin(actor):
        query = query.filter(
            db.or_(Task.assigned_to_user_id == actor.id, Task.created_by_user_id == actor.id)
        )
    return query


def list_tasks(actor: User, status: str | None = None) -> list[Task]:
    """Open tasks first, then by priority (high first), then by due date."""
    query = visible_tasks_query(actor)
    if status:
        query = query.filter(Task.status == status)
    return sorted(query.all(), key=_sort_key)


def get_task(actor: User, task_id: int) -> Task:
    task = visible_tasks_query(actor).filter(Task.id == task_id).first()
    if not task:
        raise NotFoundError(f"Task {task_id} not found")
    return task


def create_task(
    actor: User,
    *,
    title: str,
    assigned_to_user_id: int | None,
    due_date,
    description: str | None = None,
    priority: str = "MEDIUM",
) -> Task:
    """
    Create a task. PERSONNEL can only assign tasks to themselves and are
    assigned automatically when no assignee is given.
    """
    title = (title or "").strip()
    if not title:
        raise ValidationError("title is required")
    if not due_date:
        raise ValidationError("due_date is required")
    due = coerce_date("due_date", due_date)
    if priority not in PRIORITY_WEIGHTS:
        raise ValidationError(f"priority must be one of {', '.join(PRIORITY_WEIGHTS)}")

    if not is_admin(actor):
        if assigned_to_user_id not in (None, actor.id):
            raise PermissionDeniedError("Personnel can only assign tasks to themselves")
        assigned_to_user_id = actor.id
    if assigned_to_user_id is None:
        raise ValidationError("assigned_to_user_id is required")

    assignee = db.session.get(User, assigned_to_user_id)
    if not assignee or not assignee.is_active:
        raise ValidationError("Assignee not found")

    def _op():
        task = Task(
            title=title,
            description=description,
            assigned_to_user_id=assignee.id,
            assigned_to_name=assignee.display_name,
            created_by_user_id=actor.id,
            created_by_name=actor.display_name,
            due_date=due,
            priority=priority,
            status=TASK_PENDING,
        )
        db.session.add(task)
        db.session.flush()
        activity.log_activity(
            actor, activity.ACTION_CREATE, activity.ENTITY_TASK,
            f"Created task '{task.title}' for {assignee.display_name}",
            {"task_id": task.id, "assigned_to_user_id": assignee.id},
        )
        db.session.commit()
        return task

    return run_with_retry(_op)


def transition_task(actor: User, task_id: int, transition: str, note: str | None = None) -> Task:
    """
    Apply a named state transition.

    request_approval is for the assignee; every other transition is admin
    only. reject requires a note, which is stored as admin_note.
    """
    if transition not in TRANSITIONS:
        raise TaskError(f"Unknown transition: {transition}")
    from_status, to_status, action = TRANSITIONS[transition]
    if action is not None:
        require_action(actor, action, resource=f"task:{task_id}")
    if transition == "reject" and not (note or "").strip():
        raise ValidationError("A note is required when rejecting a task")

    def _op():
        task = get_task(actor, task_id)
        if action is None and task.assigned_to_user_id != actor.id and not is_admin(actor):
            raise PermissionDeniedError("Only the assignee can request approval")
        if task.status != from_status:
            raise TaskError(
                f"Cannot {transition.replace('_', ' ')} a task in status {task.status}",
                details={"task_id": task.id, "status": task.status},
            )
        old_status = task.status
        task.status = to_status
        if to_status == TASK_COMPLETED:
            task.completed_at = utcnow()
        else:
            task.completed_at = None
        if transition == "reject":
            task.admin_note = note.strip()
        elif note and action is not None:
            task.admin_note = note.strip()

        activity.log_activity(
            actor, activity.ACTION_STATUS_CHANGE, activity.ENTITY_TASK,
            f"Task '{task.title}' {old_status} -> {to_status}",
            {"task_id": task.id, "transition": transition},
        )
        db.session.commit()
        return task

    return run_with_retry(_op)


def request_approval(actor: User, task_id: int) -> Task:
    return transition_task(actor, task_id, "request_approval")


def approve_task(actor: User, task_id: int) -> Task:
    return transition_task(actor, task_id, "approve")


def reject_task(actor: User, task_id: int, note: str) -> Task:
    return transition_task(actor, task_id, "reject", note)


def complete_task(actor: User, task_id: int) -> Task:
    return transition_task(actor, task_id, "complete")


def reopen_task(actor: User, task_id: int) -> Task:
    return transition_task(actor, task_id, "reopen")


def delete_task(actor: User, task_id: int) -> None:
    require_action(actor, "DELETE_TASK", resource=f"task:{task_id}")

    def _op():
        task = get_task(actor, task_id)
        title = task.title
        db.session.delete(task)
        activity.log_activity(
            actor, activity.ACTION_DELETE, activity.ENTITY_TASK,
            f"Deleted task '{title}'",
            {"task_id": task_id},
        )
        db.session.commit()

    run_with_retry(_op)
