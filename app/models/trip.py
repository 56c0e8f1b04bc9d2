from sqlalchemy import Column, Integer, String, ForeignKey, DateTime, Numeric
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from app.db.session import Base

class Trip(Base):
    __tablename__ = "trips"

    id = Column(Integer, primary_key=True, index=True)
    owner_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    name = Column(String(255), nullable=False)
    budget = Column(Numeric(12, 2), nullable=True)
    currency = Column(String(3), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    buddies = relationship("TripBuddy", back_populates="trip", cascade="all, delete")
