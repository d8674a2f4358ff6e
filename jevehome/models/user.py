import uuid
import enum
from datetime import datetime
from sqlalchemy import Column, String, DateTime
from jevehome.database import Base


class UserRole(str, enum.Enum):
    ADMIN = "admin"
    FAMILY = "family"
    GUEST = "guest"


class User(Base):
    __tablename__ = "users"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    email = Column(String(255), unique=True, nullable=False, index=True)
    password = Column(String(255), nullable=True)
    full_name = Column(String(100), nullable=False, default="")
    role = Column(String(20), nullable=False, default=UserRole.GUEST.value)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at = Column(DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)
