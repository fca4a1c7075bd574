from sqlalchemy import Column, Integer, String, DateTime
from machinebio.core.db import Base
from machinebio.models.base import utcnow


class User(Base):
    __tablename__ = "users"
    id = Column(Integer, primary_key=True, index=True)
    email = Column(String, unique=True, nullable=False, index=True)
    username = Column(String, unique=True, nullable=False, index=True)
    password = Column(String, nullable=False)
    name = Column(String, nullable=True)
    country = Column(String, nullable=True)  # used to scope rankings
    role = Column(String, nullable=False, default="user")  # 'user' | 'moderator' | 'admin' | 'founder'
    created_at = Column(DateTime(timezone=True), default=utcnow)
