"""Task service"""

import logging
from datetime import datetime
from typing import List, Optional, Set, Tuple

from sqlalchemy import func, or_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.core.database import transaction
from app.core.errors import (
    ForbiddenError,
    InputValidationError,
    InvalidStateError,
    NotFoundError,
)
from app.models.activity import TaskActivity, TaskComment
from app.models.hours_entry import HoursEntry
from app.models.task import ApprovalStatus, Task, TaskStatus, TaskVisibility, TaskVolunteer
from app.models.user import User
from app.models.week import Week
from app.services.audit_service import record_audit
from app.services.membership_service import (
    MembershipContext,
    is_active_group_member,
    is_parish_member,
)
from app.services.permission_service import (
    TaskCapabilities,
    TaskSnapshot,
    resolve_capabilities,
)

logger = logging.getLogger(__name__)

STATUS_FILTERS = {
    "open": TaskStatus.OPEN.value,
    "in_progress": TaskStatus.IN_PROGRESS.value,
    "done": TaskStatus.DONE.value,
}


# ============ CHARGEMENT ============

def get_task_in_parish(db: Session, task_id: int, parish_id: int, lock: bool = False) -> Task:
    query = db.query(Task).filter(Task.id == task_id, Task.parish_id == parish_id)
    if lock:
        query = query.with_for_update()
    task = query.first()
    if not task:
        raise NotFoundError("Task not found")
    return task


def has_joined(db: Session, task_id: int, user_id: int) -> bool:
    return db.query(TaskVolunteer.id).filter(
        TaskVolunteer.task_id == task_id,
        TaskVolunteer.user_id == user_id
    ).first() is not None


def get_volunteer_ids(db: Session, task_id: int) -> List[int]:
    rows = db.query(TaskVolunteer.user_id).filter(
        TaskVolunteer.task_id == task_id
    ).order_by(TaskVolunteer.created_at.asc(), TaskVolunteer.id.asc()).all()
    return [user_id for (user_id,) in rows]


def capabilities_for(db: Session, task: Task, ctx: MembershipContext) -> TaskCapabilities:
    return resolve_capabilities(
        TaskSnapshot.from_task(task),
        ctx,
        has_joined=has_joined(db, task.id, ctx.user_id)
    )


def get_visible_task(
    db: Session,
    task_id: int,
    ctx: MembershipContext,
    lock: bool = False
) -> Tuple[Task, TaskCapabilities]:
    """
    Charge une tâche et les capacités de l'acteur.

    Une tâche invisible lève NotFound, exactement comme une tâche inexistante.
    """
    ctx.require_member()
    task = get_task_in_parish(db, task_id, ctx.parish_id, lock=lock)
    caps = capabilities_for(db, task, ctx)
    if not caps.visible:
        raise NotFoundError("Task not found")
    return task, caps


def ensure_not_archived(task: Task) -> None:
    if task.status == TaskStatus.ARCHIVED.value:
        raise InvalidStateError("Task is archived.", code="archived")


def log_activity(
    db: Session,
    task: Task,
    actor_id: int,
    action: str,
    description: str,
    details: Optional[dict] = None
) -> TaskActivity:
    activity = TaskActivity(
        task_id=task.id,
        actor_id=actor_id,
        action=action,
        description=description,
        details=details
    )
    db.add(activity)
    return activity


def _get_week(db: Session, week_id: int, parish_id: int) -> Week:
    week = db.query(Week).filter(Week.id == week_id, Week.parish_id == parish_id).first()
    if not week:
        raise NotFoundError("Week not found")
    return week


def _check_assignee(db: Session, parish_id: int, group_id: Optional[int], user_id: int) -> None:
    if not is_parish_member(db, parish_id, user_id):
        raise InputValidationError("Assignee must be a parish member.")
    if group_id is not None and not is_active_group_member(db, group_id, user_id):
        raise InputValidationError("Assignee must be a member of the selected group.")


# ============ CRÉATION / ÉDITION ============

def create_task(db: Session, ctx: MembershipContext, data) -> Task:
    """
    Crée une tâche pour la semaine demandée.

    - owner: l'acteur par défaut pour une tâche à un seul responsable, personne
      pour une tâche à plusieurs bénévoles
    - assigner quelqu'un d'autre demande un leader ou un coordinateur du groupe
    - une tâche PUBLIC créée par un non-leader attend une approbation
    """
    ctx.require_member()
    _get_week(db, data.week_id, ctx.parish_id)

    if data.group_id is not None and not (ctx.is_leader or ctx.is_group_member(data.group_id)):
        raise ForbiddenError("You must be a member of the selected group.")

    owner_id = data.owner_id
    if owner_id is not None and owner_id != ctx.user_id:
        if not (ctx.is_leader or ctx.is_group_coordinator(data.group_id)):
            raise ForbiddenError("Only group coordinators or parish leaders can assign others.")
    if owner_id is None and data.volunteers_needed <= 1:
        owner_id = ctx.user_id
    if owner_id is not None:
        _check_assignee(db, ctx.parish_id, data.group_id, owner_id)

    visibility = data.visibility
    if visibility == TaskVisibility.PRIVATE.value or ctx.is_leader:
        approval_status = ApprovalStatus.APPROVED.value
    else:
        approval_status = ApprovalStatus.PENDING.value

    with transaction(db):
        task = Task(
            parish_id=ctx.parish_id,
            week_id=data.week_id,
            group_id=data.group_id,
            title=data.title,
            notes=data.notes,
            estimated_hours=data.estimated_hours,
            volunteers_needed=data.volunteers_needed,
            visibility=visibility,
            approval_status=approval_status,
            open_to_volunteers=data.open_to_volunteers,
            owner_id=owner_id,
            created_by_id=ctx.user_id,
            status=TaskStatus.OPEN.value
        )
        db.add(task)
        db.flush()
        log_activity(db, task, ctx.user_id, "created", "created the task")

    db.refresh(task)
    record_audit(ctx.user_id, "task.created", task.id, {"approval_status": approval_status})
    return task


def update_task(db: Session, task_id: int, ctx: MembershipContext, data) -> Task:
    task, caps = get_visible_task(db, task_id, ctx)
    ensure_not_archived(task)
    if not caps.can_manage:
        raise ForbiddenError("You cannot edit this task.")

    changes = data.model_dump(exclude_unset=True)
    for key in ("volunteers_needed", "visibility", "open_to_volunteers"):
        if key in changes and changes[key] is None:
            changes.pop(key)

    if "title" in changes and not (changes["title"] or "").strip():
        raise InputValidationError("Title is required")

    if "volunteers_needed" in changes:
        pool_size = len(get_volunteer_ids(db, task.id))
        if changes["volunteers_needed"] < pool_size:
            raise InvalidStateError(
                f"{pool_size} volunteers already joined this task.",
                code="pool_too_small"
            )
        if task.is_pool and changes["volunteers_needed"] <= 1 and pool_size > 0:
            raise InvalidStateError("Remove volunteers before making this a single-assignee task.")

    if "group_id" in changes and changes["group_id"] != task.group_id:
        new_group = changes["group_id"]
        if new_group is not None and not (ctx.is_leader or ctx.is_group_member(new_group)):
            raise ForbiddenError("You must be a member of the selected group.")
        if new_group is not None and task.owner_id is not None:
            _check_assignee(db, ctx.parish_id, new_group, task.owner_id)

    previous_visibility = task.visibility
    if changes.get("visibility", previous_visibility) != previous_visibility:
        if task.approval_status == ApprovalStatus.REJECTED.value:
            raise InvalidStateError("Rejected tasks cannot change visibility.", code="rejected")

    with transaction(db):
        for field, value in changes.items():
            setattr(task, field, value)

        if task.visibility != previous_visibility:
            # repasser en PUBLIC sans être leader renvoie en approbation
            if task.visibility == TaskVisibility.PRIVATE.value or ctx.is_leader:
                task.approval_status = ApprovalStatus.APPROVED.value
            else:
                task.approval_status = ApprovalStatus.PENDING.value

        log_activity(db, task, ctx.user_id, "updated", "updated the task", {"fields": sorted(changes)})

    db.refresh(task)
    record_audit(ctx.user_id, "task.updated", task.id, {"fields": sorted(changes)})
    return task


def defer_task(db: Session, task_id: int, ctx: MembershipContext, week_id: int) -> Task:
    task, caps = get_visible_task(db, task_id, ctx)
    ensure_not_archived(task)
    if not caps.can_manage:
        raise ForbiddenError("You cannot defer this task.")
    if task.status == TaskStatus.DONE.value:
        raise InvalidStateError("Completed tasks cannot be deferred.")
    _get_week(db, week_id, ctx.parish_id)

    # une copie reportée par source et par semaine (contrainte unique)
    if task.rolled_from_task_id is not None and week_id != task.week_id:
        sibling = db.query(Task.id).filter(
            Task.rolled_from_task_id == task.rolled_from_task_id,
            Task.week_id == week_id
        ).first()
        if sibling:
            raise InvalidStateError("This task was already rolled over into that week.", code="already_rolled_over")

    previous_week = task.week_id
    try:
        with transaction(db):
            task.week_id = week_id
            log_activity(db, task, ctx.user_id, "deferred", "moved the task to another week",
                         {"from_week_id": previous_week, "to_week_id": week_id})
    except IntegrityError:
        raise InvalidStateError("This task was already rolled over into that week.", code="already_rolled_over")

    db.refresh(task)
    record_audit(ctx.user_id, "task.deferred", task.id, {"to_week_id": week_id})
    return task


def delete_task(db: Session, task_id: int, ctx: MembershipContext) -> None:
    task, caps = get_visible_task(db, task_id, ctx)
    if not caps.can_delete:
        raise ForbiddenError("You cannot delete this task.")

    # les heures créditées sont de l'historique : on archive à la place
    credited = db.query(HoursEntry.id).filter(HoursEntry.task_id == task.id).first()
    if credited:
        raise InvalidStateError("Task has credited hours, archive it instead.", code="has_hours")

    with transaction(db):
        db.query(TaskVolunteer).filter(TaskVolunteer.task_id == task.id).delete()
        db.query(TaskComment).filter(TaskComment.task_id == task.id).delete()
        db.query(TaskActivity).filter(TaskActivity.task_id == task.id).delete()
        db.query(Task).filter(Task.rolled_from_task_id == task.id).update(
            {Task.rolled_from_task_id: None}, synchronize_session=False
        )
        db.delete(task)

    logger.info(f"Task {task_id} deleted by user {ctx.user_id}")
    record_audit(ctx.user_id, "task.deleted", task_id)


# ============ LECTURE ============

def _joined_task_ids(db: Session, task_ids: List[int], user_id: int) -> Set[int]:
    if not task_ids:
        return set()
    rows = db.query(TaskVolunteer.task_id).filter(
        TaskVolunteer.user_id == user_id,
        TaskVolunteer.task_id.in_(task_ids)
    ).all()
    return {task_id for (task_id,) in rows}


def _pool_sizes(db: Session, task_ids: List[int]) -> dict:
    if not task_ids:
        return {}
    rows = db.query(TaskVolunteer.task_id, func.count(TaskVolunteer.id)).filter(
        TaskVolunteer.task_id.in_(task_ids)
    ).group_by(TaskVolunteer.task_id).all()
    return dict(rows)


def list_tasks(
    db: Session,
    ctx: MembershipContext,
    week_id: int,
    status_filter: str = "all",
    ownership: str = "all",
    group_id: Optional[int] = None,
    query_text: Optional[str] = None
) -> dict:
    ctx.require_member()

    query = db.query(Task).filter(
        Task.parish_id == ctx.parish_id,
        Task.week_id == week_id,
        Task.status != TaskStatus.ARCHIVED.value
    )

    if status_filter in STATUS_FILTERS:
        query = query.filter(Task.status == STATUS_FILTERS[status_filter])

    if ownership == "mine":
        query = query.filter(Task.owner_id == ctx.user_id)

    if group_id:
        query = query.filter(Task.group_id == group_id)

    if query_text:
        pattern = f"%{query_text}%"
        query = query.filter(or_(Task.title.ilike(pattern), Task.notes.ilike(pattern)))

    tasks = query.order_by(Task.status.asc(), Task.created_at.asc(), Task.id.asc()).all()
    ids = [task.id for task in tasks]
    joined = _joined_task_ids(db, ids, ctx.user_id)
    sizes = _pool_sizes(db, ids)

    items = []
    summary = {"total": 0, "open": 0, "in_progress": 0, "done": 0}
    for task in tasks:
        caps = resolve_capabilities(TaskSnapshot.from_task(task), ctx, has_joined=task.id in joined)
        if not caps.visible:
            continue
        summary["total"] += 1
        summary[task.status.lower()] += 1
        items.append({
            "task": task,
            "capabilities": caps,
            "has_volunteered": task.id in joined,
            "volunteer_count": sizes.get(task.id, 0),
        })

    return {
        "week_id": week_id,
        "tasks": items,
        "summary": summary,
        "filtered_count": len(items),
    }


def list_pending_tasks(db: Session, ctx: MembershipContext) -> List[Task]:
    ctx.require_member()
    if not ctx.is_leader:
        raise ForbiddenError("Only parish leaders can review pending tasks.")

    return db.query(Task).filter(
        Task.parish_id == ctx.parish_id,
        Task.visibility == TaskVisibility.PUBLIC.value,
        Task.approval_status == ApprovalStatus.PENDING.value,
        Task.status != TaskStatus.ARCHIVED.value
    ).order_by(Task.created_at.asc()).all()


def get_task_detail(db: Session, task_id: int, ctx: MembershipContext) -> dict:
    task, caps = get_visible_task(db, task_id, ctx)

    volunteers = db.query(User).join(
        TaskVolunteer, TaskVolunteer.user_id == User.id
    ).filter(TaskVolunteer.task_id == task.id).order_by(TaskVolunteer.created_at.asc()).all()

    comments = db.query(TaskComment).filter(
        TaskComment.task_id == task.id,
        TaskComment.deleted_at.is_(None)
    ).order_by(TaskComment.created_at.asc(), TaskComment.id.asc()).all()

    activities = db.query(TaskActivity).filter(
        TaskActivity.task_id == task.id
    ).order_by(TaskActivity.created_at.asc(), TaskActivity.id.asc()).all()

    return {
        "task": task,
        "capabilities": caps,
        "has_volunteered": any(v.id == ctx.user_id for v in volunteers),
        "volunteers": volunteers,
        "comments": comments,
        "activities": activities,
    }


# ============ COMMENTAIRES ============

def add_comment(db: Session, task_id: int, ctx: MembershipContext, body: str) -> TaskComment:
    task, _ = get_visible_task(db, task_id, ctx)
    body = (body or "").strip()
    if not body:
        raise InputValidationError("Comment is required.")

    with transaction(db):
        comment = TaskComment(task_id=task.id, author_id=ctx.user_id, body=body)
        db.add(comment)

    db.refresh(comment)
    return comment


def delete_comment(db: Session, task_id: int, comment_id: int, ctx: MembershipContext) -> None:
    task, caps = get_visible_task(db, task_id, ctx)
    comment = db.query(TaskComment).filter(
        TaskComment.id == comment_id,
        TaskComment.task_id == task.id,
        TaskComment.deleted_at.is_(None)
    ).first()
    if not comment:
        raise NotFoundError("Comment not found")
    if comment.author_id != ctx.user_id and not caps.can_manage:
        raise ForbiddenError("You cannot delete this comment.")

    with transaction(db):
        comment.deleted_at = datetime.utcnow()
