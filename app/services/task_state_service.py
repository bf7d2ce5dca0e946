"""
Machine à états des tâches.

    OPEN -> IN_PROGRESS -> DONE -> (reopen) OPEN
    IN_PROGRESS -> OPEN
    tout statut non archivé -> ARCHIVED -> (unarchive) statut précédent

Chaque transition relit la tâche, vérifie les capacités puis écrit avec un
compare-and-set sur le statut observé : si une autre requête a changé le
statut entre-temps, la transition échoue sans rien modifier.
"""

import logging
from datetime import datetime
from typing import List, Optional, Tuple

from sqlalchemy.orm import Session

from app.core.database import transaction
from app.core.errors import ForbiddenError, InvalidStateError
from app.models.hours_entry import HoursEntry
from app.models.task import Task, TaskStatus
from app.services import notification_service
from app.services.audit_service import record_audit
from app.services.hours_service import credit_hours, get_participant_ids, validate_hours_request
from app.services.membership_service import MembershipContext
from app.services.task_service import (
    ensure_not_archived,
    get_visible_task,
    get_volunteer_ids,
    log_activity,
)

logger = logging.getLogger(__name__)


def _compare_and_set(db: Session, task: Task, expected_status: str, values: dict) -> None:
    values = {**values, "updated_at": datetime.utcnow()}
    updated = db.query(Task).filter(
        Task.id == task.id,
        Task.status == expected_status
    ).update(values, synchronize_session=False)

    if updated != 1:
        raise InvalidStateError("Task was changed by someone else, reload and retry.", code="conflict")
    db.expire(task)


def start_task(db: Session, task_id: int, ctx: MembershipContext) -> Task:
    task, caps = get_visible_task(db, task_id, ctx)
    ensure_not_archived(task)
    if not caps.can_manage_status:
        raise ForbiddenError("You cannot change the status of this task.")
    if task.status != TaskStatus.OPEN.value:
        raise InvalidStateError("Only open tasks can be started.", code="invalid_transition")

    with transaction(db):
        _compare_and_set(db, task, TaskStatus.OPEN.value, {
            "status": TaskStatus.IN_PROGRESS.value,
            "in_progress_at": datetime.utcnow(),
        })
        log_activity(db, task, ctx.user_id, "started", "started work on the task")

    db.refresh(task)
    record_audit(ctx.user_id, "task.started", task.id)
    return task


def complete_task(
    db: Session,
    task_id: int,
    ctx: MembershipContext,
    mode: str = "estimated",
    manual_hours: Optional[float] = None,
    credited_user_id: Optional[int] = None
) -> Tuple[Task, List[HoursEntry]]:
    """
    Passe la tâche à DONE et crédite les heures du lot de complétion.

    Statut, heures et activité sont écrits dans une seule transaction. Le
    pool est relu après le compare-and-set, sous le verrou de la ligne tâche
    que join_task et leave_task prennent aussi.
    """
    with transaction(db):
        task, caps = get_visible_task(db, task_id, ctx, lock=True)
        ensure_not_archived(task)
        if not caps.can_manage_status:
            raise ForbiddenError("You cannot change the status of this task.")

        observed = task.status
        if observed not in (TaskStatus.OPEN.value, TaskStatus.IN_PROGRESS.value):
            raise InvalidStateError("Task is already done.", code="invalid_transition")

        _compare_and_set(db, task, observed, {
            "status": TaskStatus.DONE.value,
            "completed_at": datetime.utcnow(),
            "completed_by_id": ctx.user_id,
        })
        volunteer_ids = get_volunteer_ids(db, task.id)
        participants = get_participant_ids(task, volunteer_ids)
        validate_hours_request(mode, manual_hours, credited_user_id, participants + [ctx.user_id])

        entries = credit_hours(
            db, task, ctx.user_id, volunteer_ids,
            mode=mode, manual_hours=manual_hours, credited_user_id=credited_user_id
        )
        credited = {entry.user_id: entry.hours for entry in entries}
        log_activity(db, task, ctx.user_id, "completed", "marked the task done",
                     {"hours_mode": mode, "credited": credited})

    db.refresh(task)
    for entry in entries:
        db.refresh(entry)

    logger.info(f"Task {task.id} completed by {ctx.user_id}, {len(entries)} hours entries")
    record_audit(ctx.user_id, "task.completed", task.id, {
        "hours_mode": mode,
        "entries": len(entries),
        "hours": sum(entry.hours for entry in entries),
    })
    notification_service.emit(
        notification_service.TASK_COMPLETED, task, ctx.user_id,
        recipient_ids=participants + [task.created_by_id],
        hours_mode=mode
    )
    return task, entries


def reopen_task(db: Session, task_id: int, ctx: MembershipContext) -> Task:
    """
    Remet la tâche à OPEN depuis DONE ou IN_PROGRESS.

    Les heures déjà créditées restent : l'historique n'est jamais annulé.
    """
    task, caps = get_visible_task(db, task_id, ctx)
    ensure_not_archived(task)
    if not caps.can_manage_status:
        raise ForbiddenError("You cannot change the status of this task.")

    observed = task.status
    if observed == TaskStatus.DONE.value:
        values = {"status": TaskStatus.OPEN.value, "completed_at": None, "completed_by_id": None}
        action, description = "reopened", "reopened the task"
    elif observed == TaskStatus.IN_PROGRESS.value:
        values = {"status": TaskStatus.OPEN.value, "in_progress_at": None}
        action, description = "marked_open", "moved the task back to open"
    else:
        raise InvalidStateError("Task is already open.", code="invalid_transition")

    with transaction(db):
        _compare_and_set(db, task, observed, values)
        log_activity(db, task, ctx.user_id, action, description)

    db.refresh(task)
    record_audit(ctx.user_id, f"task.{action}", task.id, {"from_status": observed})
    return task


def _require_leader_or_creator(task: Task, ctx: MembershipContext) -> None:
    if not (ctx.is_leader or ctx.user_id == task.created_by_id):
        raise ForbiddenError("Only parish leaders or the task creator can archive tasks.")


def archive_task(db: Session, task_id: int, ctx: MembershipContext) -> Task:
    task, _ = get_visible_task(db, task_id, ctx)
    ensure_not_archived(task)
    _require_leader_or_creator(task, ctx)

    observed = task.status
    with transaction(db):
        _compare_and_set(db, task, observed, {
            "status": TaskStatus.ARCHIVED.value,
            "archived_from_status": observed,
            "archived_at": datetime.utcnow(),
        })
        log_activity(db, task, ctx.user_id, "archived", "archived the task")

    db.refresh(task)
    record_audit(ctx.user_id, "task.archived", task.id, {"from_status": observed})
    return task


def unarchive_task(db: Session, task_id: int, ctx: MembershipContext) -> Task:
    task, _ = get_visible_task(db, task_id, ctx)
    if task.status != TaskStatus.ARCHIVED.value:
        raise InvalidStateError("Task is not archived.", code="invalid_transition")
    _require_leader_or_creator(task, ctx)

    restored = task.archived_from_status or TaskStatus.OPEN.value
    with transaction(db):
        _compare_and_set(db, task, TaskStatus.ARCHIVED.value, {
            "status": restored,
            "archived_from_status": None,
            "archived_at": None,
        })
        log_activity(db, task, ctx.user_id, "unarchived", "restored the task")

    db.refresh(task)
    record_audit(ctx.user_id, "task.unarchived", task.id, {"to_status": restored})
    return task
