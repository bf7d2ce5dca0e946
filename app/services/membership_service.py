"""
Résolution du contexte d'appartenance d'un acteur.

Le contexte est résolu une seule fois par requête puis passé explicitement
à toutes les règles de permission du moteur.
"""

from dataclasses import dataclass, field
from typing import Dict, Optional

from sqlalchemy.orm import Session

from app.core.errors import UnauthorizedError
from app.models.parish import (
    Group,
    GroupMembership,
    GroupMembershipStatus,
    GroupRole,
    Membership,
    ParishRole,
)

LEADER_ROLES = {ParishRole.ADMIN.value, ParishRole.SHEPHERD.value}


@dataclass(frozen=True)
class MembershipContext:
    user_id: int
    parish_id: int
    parish_role: Optional[str] = None
    # group_id -> rôle, uniquement les appartenances ACTIVE
    group_roles: Dict[int, str] = field(default_factory=dict)

    @property
    def is_member(self) -> bool:
        return self.parish_role is not None

    @property
    def is_leader(self) -> bool:
        return self.parish_role in LEADER_ROLES

    def group_role(self, group_id: Optional[int]) -> Optional[str]:
        if group_id is None:
            return None
        return self.group_roles.get(group_id)

    def is_group_member(self, group_id: Optional[int]) -> bool:
        return self.group_role(group_id) is not None

    def is_group_coordinator(self, group_id: Optional[int]) -> bool:
        return self.group_role(group_id) == GroupRole.COORDINATOR.value

    def require_member(self) -> "MembershipContext":
        if not self.is_member:
            raise UnauthorizedError("You must be a parish member.")
        return self


def get_membership(db: Session, parish_id: int, user_id: int) -> MembershipContext:
    membership = db.query(Membership).filter(
        Membership.parish_id == parish_id,
        Membership.user_id == user_id
    ).first()

    rows = db.query(GroupMembership.group_id, GroupMembership.role).join(
        Group, Group.id == GroupMembership.group_id
    ).filter(
        Group.parish_id == parish_id,
        GroupMembership.user_id == user_id,
        GroupMembership.status == GroupMembershipStatus.ACTIVE.value
    ).all()

    return MembershipContext(
        user_id=user_id,
        parish_id=parish_id,
        parish_role=membership.role if membership else None,
        group_roles={group_id: role for group_id, role in rows},
    )


def is_parish_member(db: Session, parish_id: int, user_id: int) -> bool:
    return db.query(Membership.id).filter(
        Membership.parish_id == parish_id,
        Membership.user_id == user_id
    ).first() is not None


def is_active_group_member(db: Session, group_id: int, user_id: int) -> bool:
    return db.query(GroupMembership.id).filter(
        GroupMembership.group_id == group_id,
        GroupMembership.user_id == user_id,
        GroupMembership.status == GroupMembershipStatus.ACTIVE.value
    ).first() is not None
