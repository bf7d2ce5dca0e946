from sqlalchemy import Column, Integer, String, Float, DateTime, ForeignKey
from datetime import datetime
from app.core.database import Base

class HoursEntry(Base):
    __tablename__ = "hours_entries"

    id = Column(Integer, primary_key=True, index=True)
    parish_id = Column(Integer, ForeignKey("parishes.id"), nullable=False, index=True)
    week_id = Column(Integer, ForeignKey("weeks.id"), nullable=False, index=True)
    group_id = Column(Integer, ForeignKey("groups.id"), nullable=True, index=True)
    task_id = Column(Integer, ForeignKey("tasks.id"), nullable=False, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    hours = Column(Float, nullable=False)
    mode = Column(String, nullable=False)  # "estimated" ou "manual"
    batch_id = Column(String, nullable=False, index=True)  # un lot par complétion
    created_at = Column(DateTime, default=datetime.utcnow)
