from sqlalchemy import Column, Integer, String, DateTime, JSON
from datetime import datetime
from app.core.database import Base

class AuditLog(Base):
    __tablename__ = "audit_logs"

    id = Column(Integer, primary_key=True, index=True)
    actor_id = Column(Integer, nullable=True, index=True)  # None pour les jobs planifiés
    action = Column(String, nullable=False)  # "task.completed", "task.volunteer_joined", etc
    target_id = Column(Integer, nullable=True, index=True)
    details = Column(JSON, nullable=True)  # metadata de l'action
    created_at = Column(DateTime, default=datetime.utcnow)
