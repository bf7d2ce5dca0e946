"""Task model"""

from enum import Enum as PyEnum

from sqlalchemy import (
    Column, Integer, String, Float, DateTime, Boolean, ForeignKey, UniqueConstraint
)
from datetime import datetime
from app.core.database import Base


class TaskStatus(str, PyEnum):
    OPEN = "OPEN"
    IN_PROGRESS = "IN_PROGRESS"
    DONE = "DONE"
    ARCHIVED = "ARCHIVED"


class TaskVisibility(str, PyEnum):
    PRIVATE = "PRIVATE"
    PUBLIC = "PUBLIC"


class ApprovalStatus(str, PyEnum):
    PENDING = "PENDING"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"


class Task(Base):
    __tablename__ = "tasks"

    id = Column(Integer, primary_key=True, index=True)
    parish_id = Column(Integer, ForeignKey("parishes.id"), nullable=False, index=True)
    week_id = Column(Integer, ForeignKey("weeks.id"), nullable=False, index=True)
    group_id = Column(Integer, ForeignKey("groups.id"), nullable=True, index=True)

    title = Column(String, nullable=False)
    notes = Column(String, nullable=True)
    estimated_hours = Column(Float, nullable=True)
    volunteers_needed = Column(Integer, nullable=False, default=1)  # 1 = un seul responsable

    status = Column(String, nullable=False, default=TaskStatus.OPEN.value, index=True)
    # statut avant archivage, restauré par unarchive
    archived_from_status = Column(String, nullable=True)
    visibility = Column(String, nullable=False, default=TaskVisibility.PUBLIC.value)
    approval_status = Column(String, nullable=False, default=ApprovalStatus.APPROVED.value)
    open_to_volunteers = Column(Boolean, nullable=False, default=False)

    owner_id = Column(Integer, ForeignKey("users.id"), nullable=True, index=True)
    coordinator_id = Column(Integer, ForeignKey("users.id"), nullable=True)
    created_by_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    completed_by_id = Column(Integer, ForeignKey("users.id"), nullable=True)

    rolled_from_task_id = Column(Integer, ForeignKey("tasks.id"), nullable=True, index=True)

    in_progress_at = Column(DateTime, nullable=True)
    completed_at = Column(DateTime, nullable=True)
    archived_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    __table_args__ = (
        # une seule copie reportée par tâche source et par semaine
        UniqueConstraint("rolled_from_task_id", "week_id", name="uniq_task_rollover"),
    )

    @property
    def is_pool(self) -> bool:
        return (self.volunteers_needed or 1) > 1


class TaskVolunteer(Base):
    __tablename__ = "task_volunteers"

    id = Column(Integer, primary_key=True, index=True)
    task_id = Column(Integer, ForeignKey("tasks.id"), nullable=False, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    created_at = Column(DateTime, default=datetime.utcnow)

    __table_args__ = (
        UniqueConstraint("task_id", "user_id", name="uniq_task_volunteer"),
    )
