import uuid

from sqlalchemy import Column, Date, DateTime, Index, String, Uuid, func
from sqlalchemy.orm import relationship

from microloan.db.base import Base
from microloan.models.types import EncryptedString


class Client(Base):
    __tablename__ = "clients"
    __mapper_args__ = {"eager_defaults": True}
    __table_args__ = (Index("ix_clients_last_first", "last_name", "first_name"),)

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    first_name = Column(String(100), nullable=False)
    last_name = Column(String(100), nullable=False)
    email = Column(String(255), nullable=True)
    phone = Column(String(20), nullable=True)
    address = Column(String(255), nullable=True)
    city = Column(String(100), nullable=True)
    state = Column(String(100), nullable=True)
    document_type = Column(String(20), nullable=False)
    document_number = Column(EncryptedString(), nullable=False)
    birth_date = Column(Date, nullable=True)
    gender = Column(String(10), nullable=True)
    marital_status = Column(String(20), nullable=True)
    occupation = Column(String(100), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(
        DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now()
    )

    loans = relationship("Loan", back_populates="client", passive_deletes=True)

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()
