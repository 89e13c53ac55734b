from sqlalchemy import Column, String, DateTime, Boolean
from sqlalchemy.sql import func

from core.database import Base
from models.event import new_id


class User(Base):
    """
    Registered organizer or administrator.

    Accounts are created by the identity service; this table only lets the
    events service resolve actors and share targets.
    """
    __tablename__ = "users"

    id = Column(String(32), primary_key=True, default=new_id)
    name = Column(String(255), nullable=False)
    email = Column(String(255), unique=True, nullable=False, index=True)
    is_admin = Column(Boolean, nullable=False, default=False)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    def __repr__(self) -> str:
        return f"<User(id={self.id}, email='{self.email}', is_admin={self.is_admin})>"
