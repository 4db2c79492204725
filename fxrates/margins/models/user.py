from sqlalchemy import Column, Integer, String, DateTime
from sqlalchemy.sql import func
from fxrates import Base


class User(Base):
    """Application user, read only here to display margin owners"""

    __tablename__ = "users"

    id = Column(Integer, primary_key=True, autoincrement=True)
    email = Column(String(255), nullable=False, unique=True)
    first_name = Column(String(100))
    last_name = Column(String(100))
    role = Column(String(20), nullable=False, default="user")
    created_at = Column(DateTime, server_default=func.now())

    @property
    def display_name(self):
        full_name = " ".join(part for part in (self.first_name, self.last_name) if part)
        return full_name or self.email

    def __repr__(self):
        return f"<User(id={self.id}, email='{self.email}', role='{self.role}')>"
