"""Pydantic schemas for task request/response validation."""

from pydantic import BaseModel, ConfigDict, Field
from datetime import datetime
from typing import Optional, List, Literal, Any

# Schemas tâches

Visibility = Literal["PUBLIC", "PRIVATE"]
HoursMode = Literal["estimated", "manual", "skip"]


class TaskCreate(BaseModel):
    title: str = Field(..., min_length=1)
    notes: Optional[str] = None
    week_id: int
    group_id: Optional[int] = None
    owner_id: Optional[int] = None
    estimated_hours: Optional[float] = Field(None, ge=0)
    volunteers_needed: int = Field(1, ge=1)
    visibility: Visibility = "PUBLIC"
    open_to_volunteers: bool = False


class TaskUpdate(BaseModel):
    title: Optional[str] = None
    notes: Optional[str] = None
    group_id: Optional[int] = None
    estimated_hours: Optional[float] = Field(None, ge=0)
    volunteers_needed: Optional[int] = Field(None, ge=1)
    visibility: Optional[Visibility] = None


class TaskResponse(BaseModel):
    id: int
    parish_id: int
    week_id: int
    group_id: Optional[int]
    title: str
    notes: Optional[str]
    estimated_hours: Optional[float]
    volunteers_needed: int
    status: str
    visibility: str
    approval_status: str
    open_to_volunteers: bool
    owner_id: Optional[int]
    coordinator_id: Optional[int]
    created_by_id: int
    completed_by_id: Optional[int]
    rolled_from_task_id: Optional[int]
    in_progress_at: Optional[datetime]
    completed_at: Optional[datetime]
    archived_at: Optional[datetime]
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class CapabilitiesResponse(BaseModel):
    can_manage: bool
    can_delete: bool
    can_manage_status: bool
    can_start_work: bool
    can_assign_to_self: bool
    can_assign_others: bool
    can_volunteer: bool

    model_config = ConfigDict(from_attributes=True)


class TaskListItem(BaseModel):
    task: TaskResponse
    capabilities: CapabilitiesResponse
    has_volunteered: bool
    volunteer_count: int


class TaskSummary(BaseModel):
    total: int
    open: int
    in_progress: int
    done: int


class TaskListResponse(BaseModel):
    week_id: int
    tasks: List[TaskListItem]
    summary: TaskSummary
    filtered_count: int


# Actions

class CompleteTaskRequest(BaseModel):
    mode: HoursMode = "estimated"
    hours: Optional[float] = None  # mode manual uniquement
    credited_user_id: Optional[int] = None


class HoursEntryResponse(BaseModel):
    id: int
    task_id: int
    user_id: int
    hours: float
    mode: str
    batch_id: str
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class CompleteTaskResponse(BaseModel):
    task: TaskResponse
    hours_entries: List[HoursEntryResponse]


class AssignRequest(BaseModel):
    user_id: Optional[int] = None


class CoordinatorRequest(BaseModel):
    coordinator_id: Optional[int] = None


class OpenToVolunteersRequest(BaseModel):
    open_to_volunteers: bool


class RejectRequest(BaseModel):
    reason: Optional[str] = None


class DeferRequest(BaseModel):
    week_id: int


class RolloverRequest(BaseModel):
    from_week_id: int
    to_week_id: int


class RolloverResponse(BaseModel):
    created: int


# Détail, commentaires, activité

class VolunteerResponse(BaseModel):
    id: int
    username: str
    display_name: str

    model_config = ConfigDict(from_attributes=True)


class CommentCreate(BaseModel):
    body: str


class CommentResponse(BaseModel):
    id: int
    task_id: int
    author_id: int
    body: str
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class ActivityResponse(BaseModel):
    id: int
    actor_id: int
    action: str
    description: str
    details: Optional[dict[str, Any]]
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class TaskDetailResponse(BaseModel):
    task: TaskResponse
    capabilities: CapabilitiesResponse
    has_volunteered: bool
    volunteers: List[VolunteerResponse]
    comments: List[CommentResponse]
    activities: List[ActivityResponse]
