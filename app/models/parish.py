"""Parish, groups and memberships"""

from enum import Enum as PyEnum

from sqlalchemy import Column, Integer, String, DateTime, ForeignKey, UniqueConstraint
from datetime import datetime
from app.core.database import Base


class ParishRole(str, PyEnum):
    ADMIN = "ADMIN"
    SHEPHERD = "SHEPHERD"
    MEMBER = "MEMBER"


class GroupRole(str, PyEnum):
    COORDINATOR = "COORDINATOR"
    MEMBER = "MEMBER"


class GroupMembershipStatus(str, PyEnum):
    ACTIVE = "ACTIVE"
    INVITED = "INVITED"
    REQUESTED = "REQUESTED"


class Parish(Base):
    __tablename__ = "parishes"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String, nullable=False)
    slug = Column(String, unique=True, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow)


class Membership(Base):
    __tablename__ = "memberships"

    id = Column(Integer, primary_key=True, index=True)
    parish_id = Column(Integer, ForeignKey("parishes.id"), nullable=False, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    role = Column(String, nullable=False, default=ParishRole.MEMBER.value)
    created_at = Column(DateTime, default=datetime.utcnow)

    __table_args__ = (
        UniqueConstraint("parish_id", "user_id", name="uniq_parish_member"),
    )


class Group(Base):
    __tablename__ = "groups"

    id = Column(Integer, primary_key=True, index=True)
    parish_id = Column(Integer, ForeignKey("parishes.id"), nullable=False, index=True)
    name = Column(String, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow)


class GroupMembership(Base):
    __tablename__ = "group_memberships"

    id = Column(Integer, primary_key=True, index=True)
    group_id = Column(Integer, ForeignKey("groups.id"), nullable=False, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    role = Column(String, nullable=False, default=GroupRole.MEMBER.value)
    status = Column(String, nullable=False, default=GroupMembershipStatus.ACTIVE.value)
    created_at = Column(DateTime, default=datetime.utcnow)

    __table_args__ = (
        UniqueConstraint("group_id", "user_id", name="uniq_group_member"),
    )
