from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session
from typing import List, Optional

from app.core.database import get_db
from app.core.errors import ForbiddenError
from app.routers.deps import get_membership_context
from app.schemas.task import (
    ActivityResponse,
    AssignRequest,
    CommentCreate,
    CommentResponse,
    CompleteTaskRequest,
    CompleteTaskResponse,
    CoordinatorRequest,
    DeferRequest,
    OpenToVolunteersRequest,
    RejectRequest,
    RolloverRequest,
    RolloverResponse,
    TaskCreate,
    TaskDetailResponse,
    TaskListResponse,
    TaskResponse,
    TaskUpdate,
)
from app.services import (
    approval_service,
    rollover_service,
    task_service,
    task_state_service,
    volunteer_service,
)
from app.services.membership_service import MembershipContext
from app.services.week_service import get_or_create_week

router = APIRouter(prefix="/tasks", tags=["tasks"])


# ============ CRUD ============

@router.post("", response_model=TaskResponse, status_code=status.HTTP_201_CREATED)
def create_task(
    task_data: TaskCreate,
    db: Session = Depends(get_db),
    ctx: MembershipContext = Depends(get_membership_context)
):
    return task_service.create_task(db, ctx, task_data)


@router.get("", response_model=TaskListResponse)
def list_tasks(
    db: Session = Depends(get_db),
    ctx: MembershipContext = Depends(get_membership_context),
    week_id: Optional[int] = Query(None),
    status_filter: str = Query("all"),
    ownership: str = Query("all"),
    group_id: Optional[int] = Query(None),
    q: Optional[str] = Query(None)
):
    # semaine courante si non précisée
    if week_id is None:
        week_id = get_or_create_week(db, ctx.parish_id).id

    return task_service.list_tasks(
        db, ctx, week_id,
        status_filter=status_filter,
        ownership=ownership,
        group_id=group_id,
        query_text=q
    )


@router.get("/pending", response_model=List[TaskResponse])
def pending_tasks(
    db: Session = Depends(get_db),
    ctx: MembershipContext = Depends(get_membership_context)
):
    return task_service.list_pending_tasks(db, ctx)


@router.post("/rollover", response_model=RolloverResponse)
def rollover(
    request: RolloverRequest,
    db: Session = Depends(get_db),
    ctx: MembershipContext = Depends(get_membership_context)
):
    if not ctx.is_leader:
        raise ForbiddenError("Only parish leaders can roll tasks over.")

    created = rollover_service.rollover_open_tasks(
        db, ctx.parish_id, request.from_week_id, request.to_week_id, actor_id=ctx.user_id
    )
    return RolloverResponse(created=created)


@router.get("/{task_id}", response_model=TaskDetailResponse)
def get_task(
    task_id: int,
    db: Session = Depends(get_db),
    ctx: MembershipContext = Depends(get_membership_context)
):
    return task_service.get_task_detail(db, task_id, ctx)


@router.put("/{task_id}", response_model=TaskResponse)
def update_task(
    task_id: int,
    task_data: TaskUpdate,
    db: Session = Depends(get_db),
    ctx: MembershipContext = Depends(get_membership_context)
):
    return task_service.update_task(db, task_id, ctx, task_data)


@router.delete("/{task_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_task(
    task_id: int,
    db: Session = Depends(get_db),
    ctx: MembershipContext = Depends(get_membership_context)
):
    task_service.delete_task(db, task_id, ctx)


@router.post("/{task_id}/defer", response_model=TaskResponse)
def defer_task(
    task_id: int,
    request: DeferRequest,
    db: Session = Depends(get_db),
    ctx: MembershipContext = Depends(get_membership_context)
):
    return task_service.defer_task(db, task_id, ctx, request.week_id)


# ============ STATUTS ============

@router.post("/{task_id}/start", response_model=TaskResponse)
def start_task(
    task_id: int,
    db: Session = Depends(get_db),
    ctx: MembershipContext = Depends(get_membership_context)
):
    return task_state_service.start_task(db, task_id, ctx)


@router.post("/{task_id}/complete", response_model=CompleteTaskResponse)
def complete_task(
    task_id: int,
    request: CompleteTaskRequest,
    db: Session = Depends(get_db),
    ctx: MembershipContext = Depends(get_membership_context)
):
    task, entries = task_state_service.complete_task(
        db, task_id, ctx,
        mode=request.mode,
        manual_hours=request.hours,
        credited_user_id=request.credited_user_id
    )
    return {"task": task, "hours_entries": entries}


@router.post("/{task_id}/reopen", response_model=TaskResponse)
def reopen_task(
    task_id: int,
    db: Session = Depends(get_db),
    ctx: MembershipContext = Depends(get_membership_context)
):
    return task_state_service.reopen_task(db, task_id, ctx)


@router.post("/{task_id}/archive", response_model=TaskResponse)
def archive_task(
    task_id: int,
    db: Session = Depends(get_db),
    ctx: MembershipContext = Depends(get_membership_context)
):
    return task_state_service.archive_task(db, task_id, ctx)


@router.post("/{task_id}/unarchive", response_model=TaskResponse)
def unarchive_task(
    task_id: int,
    db: Session = Depends(get_db),
    ctx: MembershipContext = Depends(get_membership_context)
):
    return task_state_service.unarchive_task(db, task_id, ctx)


# ============ RESPONSABLE / POOL ============

@router.post("/{task_id}/assign", response_model=TaskResponse)
def assign_task(
    task_id: int,
    request: AssignRequest,
    db: Session = Depends(get_db),
    ctx: MembershipContext = Depends(get_membership_context)
):
    return volunteer_service.assign_task(db, task_id, ctx, request.user_id)


@router.post("/{task_id}/claim", response_model=TaskResponse)
def claim_task(
    task_id: int,
    db: Session = Depends(get_db),
    ctx: MembershipContext = Depends(get_membership_context)
):
    return volunteer_service.claim_task(db, task_id, ctx)


@router.post("/{task_id}/unassign", response_model=TaskResponse)
def unassign_task(
    task_id: int,
    db: Session = Depends(get_db),
    ctx: MembershipContext = Depends(get_membership_context)
):
    return volunteer_service.unassign_task(db, task_id, ctx)


@router.post("/{task_id}/volunteers", status_code=status.HTTP_201_CREATED)
def join_task(
    task_id: int,
    db: Session = Depends(get_db),
    ctx: MembershipContext = Depends(get_membership_context)
):
    volunteer = volunteer_service.join_task(db, task_id, ctx)
    return {"task_id": volunteer.task_id, "user_id": volunteer.user_id}


@router.delete("/{task_id}/volunteers/me", status_code=status.HTTP_204_NO_CONTENT)
def leave_task(
    task_id: int,
    db: Session = Depends(get_db),
    ctx: MembershipContext = Depends(get_membership_context)
):
    volunteer_service.leave_task(db, task_id, ctx)


@router.delete("/{task_id}/volunteers/{user_id}", status_code=status.HTTP_204_NO_CONTENT)
def remove_volunteer(
    task_id: int,
    user_id: int,
    db: Session = Depends(get_db),
    ctx: MembershipContext = Depends(get_membership_context)
):
    volunteer_service.remove_volunteer(db, task_id, ctx, user_id)


@router.put("/{task_id}/coordinator", response_model=TaskResponse)
def update_coordinator(
    task_id: int,
    request: CoordinatorRequest,
    db: Session = Depends(get_db),
    ctx: MembershipContext = Depends(get_membership_context)
):
    return volunteer_service.update_coordinator(db, task_id, ctx, request.coordinator_id)


@router.put("/{task_id}/open-to-volunteers", response_model=TaskResponse)
def update_open_to_volunteers(
    task_id: int,
    request: OpenToVolunteersRequest,
    db: Session = Depends(get_db),
    ctx: MembershipContext = Depends(get_membership_context)
):
    return volunteer_service.set_open_to_volunteers(db, task_id, ctx, request.open_to_volunteers)


# ============ APPROBATION ============

@router.post("/{task_id}/approve", response_model=TaskResponse)
def approve_task(
    task_id: int,
    db: Session = Depends(get_db),
    ctx: MembershipContext = Depends(get_membership_context)
):
    return approval_service.approve_task(db, task_id, ctx)


@router.post("/{task_id}/reject", response_model=TaskResponse)
def reject_task(
    task_id: int,
    request: RejectRequest,
    db: Session = Depends(get_db),
    ctx: MembershipContext = Depends(get_membership_context)
):
    return approval_service.reject_task(db, task_id, ctx, request.reason)


# ============ COMMENTAIRES ============

@router.post("/{task_id}/comments", response_model=CommentResponse, status_code=status.HTTP_201_CREATED)
def add_comment(
    task_id: int,
    request: CommentCreate,
    db: Session = Depends(get_db),
    ctx: MembershipContext = Depends(get_membership_context)
):
    return task_service.add_comment(db, task_id, ctx, request.body)


@router.delete("/{task_id}/comments/{comment_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_comment(
    task_id: int,
    comment_id: int,
    db: Session = Depends(get_db),
    ctx: MembershipContext = Depends(get_membership_context)
):
    task_service.delete_comment(db, task_id, comment_id, ctx)


@router.get("/{task_id}/activity", response_model=List[ActivityResponse])
def task_activity(
    task_id: int,
    db: Session = Depends(get_db),
    ctx: MembershipContext = Depends(get_membership_context)
):
    return task_service.get_task_detail(db, task_id, ctx)["activities"]
