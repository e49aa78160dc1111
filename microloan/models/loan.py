import uuid

from sqlalchemy import (
    CheckConstraint,
    Column,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Uuid,
    func,
)
from sqlalchemy.orm import relationship

from microloan.db.base import Base


class Loan(Base):
    __tablename__ = "loans"
    __allow_unmapped__ = True
    __table_args__ = (
        CheckConstraint("amount > 0", name="amount_positive"),
        CheckConstraint("weekly_payment > 0", name="weekly_payment_positive"),
        CheckConstraint("total_amount >= 0", name="total_amount_nonneg"),
        CheckConstraint("balance >= 0", name="balance_nonneg"),
        CheckConstraint(
            "status IN ('ACTIVE', 'PAID', 'OVERDUE', 'CANCELLED')",
            name="status",
        ),
        CheckConstraint("version >= 1", name="version_positive"),
        Index("ix_loans_client_status", "client_id", "status"),
        Index("ix_loans_guarantee_status", "guarantee_id", "status"),
    )

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    client_id = Column(Uuid(as_uuid=True), ForeignKey("clients.id", ondelete="RESTRICT"), nullable=False)
    rate_plan_id = Column(Uuid(as_uuid=True), ForeignKey("rate_plans.id", ondelete="RESTRICT"), nullable=False)
    guarantee_id = Column(Uuid(as_uuid=True), ForeignKey("guarantees.id", ondelete="RESTRICT"), nullable=False)
    amount = Column(Numeric(12, 2), nullable=False)
    weekly_payment = Column(Numeric(12, 2), nullable=False)
    weeks_count = Column(Integer, nullable=False)
    total_amount = Column(Numeric(12, 2), nullable=False)
    paid_amount = Column(Numeric(12, 2), nullable=False, default=0)
    balance = Column(Numeric(12, 2), nullable=False)
    status = Column(String(20), nullable=False, default="ACTIVE")
    loan_date = Column(Date, nullable=False)
    due_date = Column(Date, nullable=False)
    completed_at = Column(DateTime(timezone=True), nullable=True)
    version = Column(Integer, nullable=False, default=1)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(
        DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now()
    )

    client = relationship("Client", back_populates="loans")
    rate_plan = relationship("RatePlan")
    guarantee = relationship("Guarantee", back_populates="loans", foreign_keys=[guarantee_id])
    payments = relationship(
        "Payment",
        back_populates="loan",
        order_by="Payment.payment_date.desc()",
        passive_deletes=True,
    )

    __mapper_args__ = {"version_id_col": version, "eager_defaults": True}
