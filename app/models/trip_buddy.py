from sqlalchemy import Column, Integer, String, ForeignKey, DateTime, UniqueConstraint, CheckConstraint
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from app.db.session import Base

class TripBuddy(Base):
    __tablename__ = "trip_buddies"
    __table_args__ = (
        UniqueConstraint("trip_id", "user_id", name="unique_trip_user"),
        CheckConstraint("role IN ('owner', 'editor', 'viewer')", name="valid_role"),
    )

    id = Column(Integer, primary_key=True, index=True)
    trip_id = Column(Integer, ForeignKey("trips.id", ondelete="CASCADE"), nullable=False)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    role = Column(String(20), nullable=False, server_default="viewer")
    invited_at = Column(DateTime(timezone=True), server_default=func.now())
    # pending invitations do not count as participants
    accepted_at = Column(DateTime(timezone=True), nullable=True)

    trip = relationship("Trip", back_populates="buddies")
