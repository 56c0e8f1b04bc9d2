import enum
from sqlalchemy import Column, Integer, String, ForeignKey, DateTime, Date, Numeric, Text, CheckConstraint
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship
from app.db.session import Base

class ExpenseCategory(str, enum.Enum):
    ACCOMMODATION = "accommodation"
    TRANSPORTATION = "transportation"
    FOOD = "food"
    ACTIVITIES = "activities"
    SHOPPING = "shopping"
    ENTERTAINMENT = "entertainment"
    SETTLEMENT = "settlement"
    OTHER = "other"

VALID_CATEGORIES = [c.value for c in ExpenseCategory]

class Expense(Base):
    __tablename__ = "expenses"
    __table_args__ = (
        CheckConstraint("amount > 0", name="valid_amount"),
        CheckConstraint(
            "category IN (" + ", ".join(f"'{c}'" for c in VALID_CATEGORIES) + ")",
            name="valid_category"
        ),
    )

    id = Column(Integer, primary_key=True, index=True)
    trip_id = Column(Integer, ForeignKey("trips.id", ondelete="CASCADE"), nullable=False, index=True)
    payer_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    activity_id = Column(Integer, nullable=True)
    amount = Column(Numeric(12, 2), nullable=False)
    currency = Column(String(3), nullable=False, server_default="USD")
    category = Column(String(50), nullable=False)
    description = Column(Text, nullable=True)
    expense_date = Column(Date, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    payer = relationship("User")
    splits = relationship(
        "ExpenseSplit",
        back_populates="expense",
        cascade="all, delete-orphan",
        order_by="ExpenseSplit.id"
    )

    @property
    def payer_email(self):
        return self.payer.email if self.payer else None

    @property
    def payer_name(self):
        return self.payer.full_name if self.payer else None
