from sqlalchemy import Column, Integer, String, DateTime, ForeignKey
from datetime import datetime
from app.core.database import Base
import bcrypt

class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    email = Column(String, unique=True, nullable=False, index=True)
    username = Column(String, unique=True, nullable=False, index=True)
    name = Column(String, nullable=True)
    password_hash = Column(String, nullable=False)
    # Paroisse sur laquelle l'utilisateur travaille actuellement
    active_parish_id = Column(Integer, ForeignKey("parishes.id"), nullable=True, index=True)
    created_at = Column(DateTime, default=datetime.utcnow)

    @property
    def display_name(self) -> str:
        return self.name or self.email.split("@")[0]

    def set_password(self, password: str):
        self.password_hash = bcrypt.hashpw(password.encode(), bcrypt.gensalt()).decode()

    def verify_password(self, password: str) -> bool:
        return bcrypt.checkpw(password.encode(), self.password_hash.encode())
