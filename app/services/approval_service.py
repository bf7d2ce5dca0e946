"""
Approbation des tâches publiques créées par des non-leaders.

PENDING -> APPROVED | REJECTED, les deux issues sont définitives.
"""

from typing import Optional

from sqlalchemy.orm import Session

from app.core.database import transaction
from app.core.errors import ForbiddenError, InvalidStateError
from app.models.task import ApprovalStatus, Task, TaskVisibility
from app.services import notification_service
from app.services.audit_service import record_audit
from app.services.membership_service import MembershipContext
from app.services.task_service import ensure_not_archived, get_task_in_parish, log_activity


def _load_pending(db: Session, task_id: int, ctx: MembershipContext) -> Task:
    ctx.require_member()
    if not ctx.is_leader:
        raise ForbiddenError("Only parish leaders can review tasks.")

    # un leader doit pouvoir charger une tâche qui lui est encore invisible
    task = get_task_in_parish(db, task_id, ctx.parish_id)
    ensure_not_archived(task)
    if task.visibility != TaskVisibility.PUBLIC.value:
        raise InvalidStateError("Only public tasks can be reviewed.", code="not_public")
    if task.approval_status != ApprovalStatus.PENDING.value:
        raise InvalidStateError("Task is not pending approval.", code="not_pending")
    return task


def _decide(db: Session, task: Task, ctx: MembershipContext, decision: str, reason: Optional[str]) -> Task:
    with transaction(db):
        updated = db.query(Task).filter(
            Task.id == task.id,
            Task.approval_status == ApprovalStatus.PENDING.value
        ).update({"approval_status": decision}, synchronize_session=False)
        if updated != 1:
            raise InvalidStateError("Task is not pending approval.", code="not_pending")
        db.expire(task)

        details = {"reason": reason} if reason else None
        description = "approved the task" if decision == ApprovalStatus.APPROVED.value else "rejected the task"
        log_activity(db, task, ctx.user_id, decision.lower(), description, details)

    db.refresh(task)
    return task


def approve_task(db: Session, task_id: int, ctx: MembershipContext) -> Task:
    task = _load_pending(db, task_id, ctx)
    task = _decide(db, task, ctx, ApprovalStatus.APPROVED.value, None)

    record_audit(ctx.user_id, "task.approved", task.id)
    notification_service.emit(notification_service.TASK_APPROVED, task, ctx.user_id,
                              recipient_ids=[task.created_by_id, task.owner_id])
    return task


def reject_task(db: Session, task_id: int, ctx: MembershipContext, reason: Optional[str] = None) -> Task:
    reason = (reason or "").strip() or None
    task = _load_pending(db, task_id, ctx)
    task = _decide(db, task, ctx, ApprovalStatus.REJECTED.value, reason)

    record_audit(ctx.user_id, "task.rejected", task.id, {"reason": reason})
    notification_service.emit(notification_service.TASK_REJECTED, task, ctx.user_id,
                              recipient_ids=[task.created_by_id, task.owner_id], reason=reason)
    return task
