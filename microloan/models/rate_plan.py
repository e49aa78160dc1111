import uuid

from sqlalchemy import Boolean, CheckConstraint, Column, DateTime, Index, Integer, Numeric, Uuid, func

from microloan.db.base import Base


class RatePlan(Base):
    __tablename__ = "rate_plans"
    __mapper_args__ = {"eager_defaults": True}
    __table_args__ = (
        CheckConstraint("loan_amount > 0", name="loan_amount_positive"),
        CheckConstraint("weekly_payment > 0", name="weekly_payment_positive"),
        CheckConstraint("weeks_count >= 1", name="weeks_count_positive"),
        Index("ix_rate_plans_amount_active", "loan_amount", "is_active"),
    )

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    loan_amount = Column(Numeric(12, 2), nullable=False)
    weekly_payment = Column(Numeric(12, 2), nullable=False)
    weeks_count = Column(Integer, nullable=False, default=6)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(
        DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now()
    )

    @property
    def total_amount(self):
        return self.weekly_payment * self.weeks_count
