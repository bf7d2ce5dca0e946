"""
Gestion du responsable et du pool de bénévoles d'une tâche.

Deux modèles :
- un seul responsable (volunteers_needed <= 1) : assign / claim / unassign
  écrasent le champ owner
- pool (volunteers_needed > 1) : join / leave / remove, la taille du pool ne
  dépasse jamais volunteers_needed. L'owner d'une tâche pool est un référent
  et n'occupe pas de place.
"""

import logging
from datetime import datetime
from typing import Optional

from sqlalchemy import func, insert, literal, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.core.database import transaction
from app.core.errors import (
    CapacityError,
    ForbiddenError,
    InputValidationError,
    InvalidStateError,
    NotFoundError,
)
from app.models.task import Task, TaskVolunteer
from app.services import notification_service
from app.services.audit_service import record_audit
from app.services.membership_service import (
    MembershipContext,
    is_active_group_member,
    is_parish_member,
)
from app.services.permission_service import TaskSnapshot, is_task_coordinator
from app.services.task_service import (
    ensure_not_archived,
    get_task_in_parish,
    get_visible_task,
    has_joined,
    log_activity,
)

logger = logging.getLogger(__name__)


def _ensure_single_assignee(task: Task) -> None:
    if task.is_pool:
        raise InvalidStateError(
            "This task uses a volunteer pool, volunteers join instead.",
            code="pool_task"
        )


def _check_member(db: Session, task: Task, user_id: int, label: str) -> None:
    if not is_parish_member(db, task.parish_id, user_id):
        raise InputValidationError(f"{label} must be a parish member.")
    if task.group_id is not None and not is_active_group_member(db, task.group_id, user_id):
        raise InputValidationError(f"{label} must be a member of the task's group.")


# ============ UN SEUL RESPONSABLE ============

def assign_task(db: Session, task_id: int, ctx: MembershipContext, user_id: Optional[int]) -> Task:
    """Définit (ou efface avec None) le responsable unique de la tâche"""
    task, caps = get_visible_task(db, task_id, ctx)
    ensure_not_archived(task)
    _ensure_single_assignee(task)

    if user_id == ctx.user_id and not caps.can_assign_others:
        if not caps.can_assign_to_self:
            raise ForbiddenError("You cannot take this task.")
    elif user_id is None and task.owner_id == ctx.user_id:
        pass
    elif not caps.can_assign_others:
        raise ForbiddenError("Only coordinators or parish leaders can assign others.")

    if user_id is not None:
        _check_member(db, task, user_id, "Assignee")

    previous_owner = task.owner_id
    with transaction(db):
        task.owner_id = user_id
        if user_id is None:
            log_activity(db, task, ctx.user_id, "unassigned", "removed the assignee",
                         {"previous_owner_id": previous_owner})
        else:
            log_activity(db, task, ctx.user_id, "assigned", "assigned the task",
                         {"owner_id": user_id, "previous_owner_id": previous_owner})

    db.refresh(task)
    record_audit(ctx.user_id, "task.assigned" if user_id else "task.unassigned", task.id,
                 {"owner_id": user_id, "previous_owner_id": previous_owner})
    if user_id is not None:
        notification_service.emit(notification_service.TASK_ASSIGNED, task, ctx.user_id,
                                  recipient_ids=[user_id])
    return task


def claim_task(db: Session, task_id: int, ctx: MembershipContext) -> Task:
    task, caps = get_visible_task(db, task_id, ctx)
    ensure_not_archived(task)
    _ensure_single_assignee(task)
    if not caps.can_assign_to_self:
        raise ForbiddenError("You cannot take this task.")

    with transaction(db):
        updated = db.query(Task).filter(
            Task.id == task.id,
            Task.owner_id.is_(None)
        ).update({"owner_id": ctx.user_id}, synchronize_session=False)
        if updated != 1:
            raise InvalidStateError("Someone already took this task.", code="already_assigned")
        db.expire(task)
        log_activity(db, task, ctx.user_id, "claimed", "took the task")

    db.refresh(task)
    record_audit(ctx.user_id, "task.claimed", task.id)
    notification_service.emit(notification_service.TASK_ASSIGNED, task, ctx.user_id,
                              recipient_ids=[task.created_by_id])
    return task


def unassign_task(db: Session, task_id: int, ctx: MembershipContext) -> Task:
    task, _ = get_visible_task(db, task_id, ctx)
    if task.owner_id is None:
        raise InvalidStateError("Task has no assignee.", code="not_assigned")
    return assign_task(db, task_id, ctx, None)


# ============ POOL DE BÉNÉVOLES ============

def insert_volunteer_if_room(db: Session, task_id: int, user_id: int, capacity: int) -> bool:
    """
    INSERT ... SELECT conditionné par la taille du pool.

    Le comptage et l'insertion forment une seule instruction SQL.
    """
    pool_size = select(func.count(TaskVolunteer.id)).where(
        TaskVolunteer.task_id == task_id
    ).scalar_subquery()
    stmt = insert(TaskVolunteer.__table__).from_select(
        ["task_id", "user_id", "created_at"],
        select(literal(task_id), literal(user_id), literal(datetime.utcnow())).where(pool_size < capacity)
    )
    return db.execute(stmt).rowcount == 1


def join_task(db: Session, task_id: int, ctx: MembershipContext) -> TaskVolunteer:
    """
    Ajoute l'acteur au pool.

    La tâche est verrouillée (SELECT ... FOR UPDATE) et l'insertion n'a lieu
    que si le pool a encore de la place : deux inscriptions simultanées ne
    peuvent pas dépasser la capacité. La contrainte unique (task_id, user_id)
    bloque les doublons.
    """
    try:
        task, caps = get_visible_task(db, task_id, ctx, lock=True)
        ensure_not_archived(task)
        if not task.is_pool:
            raise InvalidStateError("This task has a single assignee.", code="single_assignee_task")
        if not caps.can_volunteer:
            raise ForbiddenError("You cannot volunteer for this task.")

        joined = db.query(TaskVolunteer.id).filter(
            TaskVolunteer.task_id == task.id,
            TaskVolunteer.user_id == ctx.user_id
        ).first()
        if joined:
            raise InvalidStateError("You already volunteered for this task.", code="already_volunteered")

        if not insert_volunteer_if_room(db, task.id, ctx.user_id, task.volunteers_needed):
            raise CapacityError("This opportunity is full.")

        log_activity(db, task, ctx.user_id, "volunteer_joined", "volunteered for the task")
        db.commit()
    except IntegrityError:
        db.rollback()
        raise InvalidStateError("You already volunteered for this task.", code="already_volunteered")
    except Exception:
        db.rollback()
        raise

    volunteer = db.query(TaskVolunteer).filter(
        TaskVolunteer.task_id == task.id,
        TaskVolunteer.user_id == ctx.user_id
    ).one()
    pool_size = db.query(TaskVolunteer).filter(TaskVolunteer.task_id == task.id).count()

    record_audit(ctx.user_id, "task.volunteer_joined", task.id, {"pool_size": pool_size})
    notification_service.emit(notification_service.TASK_VOLUNTEER_JOINED, task, ctx.user_id,
                              recipient_ids=[task.owner_id, task.coordinator_id, task.created_by_id])
    return volunteer


def _remove_from_pool(db: Session, task: Task, ctx: MembershipContext, user_id: int) -> None:
    volunteer = db.query(TaskVolunteer).filter(
        TaskVolunteer.task_id == task.id,
        TaskVolunteer.user_id == user_id
    ).first()
    if not volunteer:
        raise NotFoundError("Volunteer not found")

    with transaction(db):
        db.delete(volunteer)
        if user_id == ctx.user_id:
            log_activity(db, task, ctx.user_id, "volunteer_left", "left the task")
        else:
            log_activity(db, task, ctx.user_id, "volunteer_removed", "removed a volunteer",
                         {"user_id": user_id})

    action = "task.volunteer_left" if user_id == ctx.user_id else "task.volunteer_removed"
    record_audit(ctx.user_id, action, task.id, {"user_id": user_id})


def leave_task(db: Session, task_id: int, ctx: MembershipContext) -> None:
    # pas de contrôle de visibilité : quitter son propre créneau est toujours permis,
    # mais sans créneau la tâche reste introuvable
    ctx.require_member()
    task = get_task_in_parish(db, task_id, ctx.parish_id, lock=True)
    if not has_joined(db, task.id, ctx.user_id):
        raise NotFoundError("Task not found")
    ensure_not_archived(task)
    _remove_from_pool(db, task, ctx, ctx.user_id)


def remove_volunteer(db: Session, task_id: int, ctx: MembershipContext, user_id: int) -> None:
    if user_id == ctx.user_id:
        return leave_task(db, task_id, ctx)

    task, caps = get_visible_task(db, task_id, ctx)
    ensure_not_archived(task)
    if not caps.can_manage:
        raise ForbiddenError("You cannot remove volunteers from this task.")
    _remove_from_pool(db, task, ctx, user_id)


# ============ COORDINATION ============

def update_coordinator(db: Session, task_id: int, ctx: MembershipContext, coordinator_id: Optional[int]) -> Task:
    """Le coordinateur n'occupe pas de place dans le pool"""
    task, _ = get_visible_task(db, task_id, ctx)
    ensure_not_archived(task)
    if not (ctx.is_leader or ctx.is_group_coordinator(task.group_id)):
        raise ForbiddenError("Only parish leaders or group coordinators can set the coordinator.")
    if coordinator_id is not None and not is_parish_member(db, task.parish_id, coordinator_id):
        raise InputValidationError("Coordinator must be a parish member.")

    with transaction(db):
        task.coordinator_id = coordinator_id
        log_activity(db, task, ctx.user_id, "coordinator_updated", "updated the coordinator",
                     {"coordinator_id": coordinator_id})

    db.refresh(task)
    record_audit(ctx.user_id, "task.coordinator_updated", task.id, {"coordinator_id": coordinator_id})
    return task


def set_open_to_volunteers(db: Session, task_id: int, ctx: MembershipContext, open_to_volunteers: bool) -> Task:
    """N'affecte que les futures inscriptions, jamais le pool existant"""
    task, _ = get_visible_task(db, task_id, ctx)
    ensure_not_archived(task)
    if not (ctx.is_leader or is_task_coordinator(TaskSnapshot.from_task(task), ctx)):
        raise ForbiddenError("Only parish leaders or coordinators can open a task to volunteers.")

    with transaction(db):
        task.open_to_volunteers = open_to_volunteers
        log_activity(db, task, ctx.user_id, "open_to_volunteers_updated",
                     "opened the task to volunteers" if open_to_volunteers else "closed the task to volunteers")

    db.refresh(task)
    record_audit(ctx.user_id, "task.open_to_volunteers_updated", task.id,
                 {"open_to_volunteers": open_to_volunteers})
    return task
