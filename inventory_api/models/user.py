from sqlalchemy import Column, DateTime, Integer, String
from sqlalchemy.sql import func

from inventory_api.database import Base


class User(Base):
    """
    Account allowed to use the API.

    Only the password hash is stored; it never leaves the auth service.
    """
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    username = Column(String(150), nullable=False, unique=True)
    email = Column(String(255), nullable=False, unique=True, index=True)
    password_hash = Column(String(255), nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    def __repr__(self):
        return f"<User(id={self.id}, username='{self.username}')>"
