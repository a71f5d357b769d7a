"""User model definitions."""

from sqlalchemy import Column, Integer, String
from telehealth.database import Base


USER_ROLES = ('patient', 'doctor', 'admin')


class User(Base):
    """Represents an application user."""
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    email = Column(String, unique=True, index=True)
    name = Column(String)
    hashed_password = Column(String)
    role = Column(String, default='patient')  # patient/doctor/admin
