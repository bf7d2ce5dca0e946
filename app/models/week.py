"""Week model (operating period)"""

from sqlalchemy import Column, Integer, String, Date, DateTime, ForeignKey, UniqueConstraint
from datetime import datetime
from app.core.database import Base


class Week(Base):
    __tablename__ = "weeks"

    id = Column(Integer, primary_key=True, index=True)
    parish_id = Column(Integer, ForeignKey("parishes.id"), nullable=False, index=True)
    starts_on = Column(Date, nullable=False)  # toujours un lundi
    ends_on = Column(Date, nullable=False)  # lundi suivant (exclusif)
    label = Column(String, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow)

    __table_args__ = (
        UniqueConstraint("parish_id", "starts_on", name="uniq_parish_week"),
    )
