from sqlalchemy import Column, Integer, Numeric, ForeignKey, Boolean, DateTime, UniqueConstraint, CheckConstraint, false
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from app.db.session import Base

class ExpenseSplit(Base):
    __tablename__ = "expense_splits"
    __table_args__ = (
        UniqueConstraint("expense_id", "user_id", name="unique_expense_user"),
        CheckConstraint("amount > 0", name="valid_split_amount"),
        CheckConstraint(
            "percentage IS NULL OR (percentage >= 0 AND percentage <= 100)",
            name="valid_percentage"
        ),
    )

    id = Column(Integer, primary_key=True, index=True)
    expense_id = Column(Integer, ForeignKey("expenses.id", ondelete="CASCADE"), nullable=False, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    amount = Column(Numeric(12, 2), nullable=False)
    # informational, amount is authoritative
    percentage = Column(Numeric(5, 2), nullable=True)
    settled = Column(Boolean, nullable=False, default=False, server_default=false())
    settled_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    expense = relationship("Expense", back_populates="splits")
    user = relationship("User")

    @property
    def user_email(self):
        return self.user.email if self.user else None

    @property
    def user_name(self):
        return self.user.full_name if self.user else None
