"""
Visibilité et capacités d'un acteur sur une tâche.

Fonctions pures : aucune requête DB, tout vient du snapshot de la tâche et du
MembershipContext. Chaque capacité est calculée séparément pour le modèle
"un seul responsable" et pour le modèle "pool de bénévoles".
"""

from dataclasses import dataclass
from typing import Optional

from app.models.task import ApprovalStatus, TaskStatus, TaskVisibility
from app.services.membership_service import MembershipContext


@dataclass(frozen=True)
class TaskSnapshot:
    id: int
    parish_id: int
    group_id: Optional[int]
    status: str
    visibility: str
    approval_status: str
    volunteers_needed: int
    open_to_volunteers: bool
    owner_id: Optional[int]
    coordinator_id: Optional[int]
    created_by_id: int

    @classmethod
    def from_task(cls, task) -> "TaskSnapshot":
        return cls(
            id=task.id,
            parish_id=task.parish_id,
            group_id=task.group_id,
            status=task.status,
            visibility=task.visibility,
            approval_status=task.approval_status,
            volunteers_needed=task.volunteers_needed or 1,
            open_to_volunteers=bool(task.open_to_volunteers),
            owner_id=task.owner_id,
            coordinator_id=task.coordinator_id,
            created_by_id=task.created_by_id,
        )

    @property
    def is_pool(self) -> bool:
        return self.volunteers_needed > 1

    @property
    def is_public(self) -> bool:
        return self.visibility == TaskVisibility.PUBLIC.value

    @property
    def is_approved(self) -> bool:
        return self.approval_status == ApprovalStatus.APPROVED.value

    @property
    def is_archived(self) -> bool:
        return self.status == TaskStatus.ARCHIVED.value


@dataclass(frozen=True)
class TaskCapabilities:
    visible: bool = False
    can_manage: bool = False
    can_delete: bool = False
    can_manage_status: bool = False
    can_start_work: bool = False
    can_assign_to_self: bool = False
    can_assign_others: bool = False
    can_volunteer: bool = False


HIDDEN = TaskCapabilities()


def is_task_coordinator(task: TaskSnapshot, ctx: MembershipContext) -> bool:
    # coordinateur nommé de la tâche ou coordinateur actif de son groupe
    return task.coordinator_id == ctx.user_id or ctx.is_group_coordinator(task.group_id)


def is_visible(task: TaskSnapshot, ctx: MembershipContext) -> bool:
    if ctx.user_id in (task.owner_id, task.created_by_id):
        return True
    if not task.is_public:
        return False
    if not task.is_approved:
        return False
    if task.group_id is None:
        return True
    return ctx.is_group_member(task.group_id) or ctx.is_leader


def _can_manage_status(task: TaskSnapshot, ctx: MembershipContext, has_joined: bool) -> bool:
    if task.is_archived:
        return False
    if ctx.is_leader or is_task_coordinator(task, ctx):
        return True
    if not task.is_public:
        return ctx.user_id == task.created_by_id
    if task.is_pool:
        if ctx.user_id == task.owner_id:
            return True
        return has_joined and task.open_to_volunteers
    return ctx.user_id == task.owner_id


def _passes_group_gate(task: TaskSnapshot, ctx: MembershipContext) -> bool:
    return task.group_id is None or ctx.is_group_member(task.group_id)


def _can_assign_to_self(task: TaskSnapshot, ctx: MembershipContext, elevated: bool) -> bool:
    return (
        ctx.is_member
        and task.is_public
        and task.is_approved
        and task.status == TaskStatus.OPEN.value
        and not task.is_pool
        and task.owner_id is None
        and _passes_group_gate(task, ctx)
        and (task.open_to_volunteers or elevated)
    )


def _can_volunteer(task: TaskSnapshot, ctx: MembershipContext, elevated: bool) -> bool:
    return (
        ctx.is_member
        and task.is_public
        and task.is_approved
        and task.status not in (TaskStatus.DONE.value, TaskStatus.ARCHIVED.value)
        and task.is_pool
        and _passes_group_gate(task, ctx)
        and (task.open_to_volunteers or elevated)
    )


def resolve_capabilities(
    task: TaskSnapshot,
    ctx: MembershipContext,
    has_joined: bool = False
) -> TaskCapabilities:
    """
    Calcule les capacités de l'acteur sur la tâche.

    Si la tâche n'est pas visible, aucune capacité n'est calculée : l'appelant
    doit alors se comporter comme si la tâche n'existait pas.
    """
    if not is_visible(task, ctx):
        return HIDDEN

    coordinator = is_task_coordinator(task, ctx)
    elevated = ctx.is_leader or coordinator
    is_owner = ctx.user_id == task.owner_id
    is_creator = ctx.user_id == task.created_by_id

    can_manage_status = _can_manage_status(task, ctx, has_joined)

    return TaskCapabilities(
        visible=True,
        can_manage=elevated or is_owner or is_creator,
        can_delete=ctx.is_leader or is_creator,
        can_manage_status=can_manage_status,
        can_start_work=can_manage_status and task.status == TaskStatus.OPEN.value,
        can_assign_to_self=_can_assign_to_self(task, ctx, elevated),
        can_assign_others=ctx.is_member and task.is_public and elevated,
        can_volunteer=_can_volunteer(task, ctx, elevated),
    )
