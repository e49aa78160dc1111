import uuid

from sqlalchemy import CheckConstraint, Column, DateTime, ForeignKey, Numeric, String, Text, Uuid, func
from sqlalchemy.orm import relationship

from microloan.db.base import Base


class Guarantee(Base):
    """A collateral item. ``locked_by_loan_id`` is set while a non-terminal loan holds it."""

    __tablename__ = "guarantees"
    __mapper_args__ = {"eager_defaults": True}
    __table_args__ = (CheckConstraint("value > 0", name="value_positive"),)

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    name = Column(String(255), nullable=False)
    value = Column(Numeric(12, 2), nullable=False)
    description = Column(Text, nullable=True)
    locked_by_loan_id = Column(
        Uuid(as_uuid=True),
        ForeignKey("loans.id", ondelete="SET NULL", use_alter=True, name="fk_guarantees_locked_by_loan_id_loans"),
        nullable=True,
        unique=True,
    )
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(
        DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now()
    )

    loans = relationship(
        "Loan",
        back_populates="guarantee",
        foreign_keys="Loan.guarantee_id",
        passive_deletes=True,
    )

    @property
    def is_available(self) -> bool:
        return self.locked_by_loan_id is None
