"""Service catalogue model definitions."""

from sqlalchemy import Boolean, Column, Float, Integer, String
from telehealth.database import Base


class Service(Base):
    """A consultation type a patient can book."""
    __tablename__ = "services"

    id = Column(Integer, primary_key=True)
    name = Column(String, unique=True, nullable=False)
    category = Column(String)
    base_price = Column(Float, default=0.0)
    duration_minutes = Column(Integer, default=30, nullable=False)
    is_active = Column(Boolean, default=True)
