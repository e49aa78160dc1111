from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from microloan.schemas.loans import LoanDTO


class PaymentCreateRequest(BaseModel):
    loan_id: UUID
    amount: Decimal = Field(gt=0, max_digits=12, decimal_places=2)
    payment_date: date | None = None
    notes: str | None = Field(default=None, max_length=500)


class PaymentDTO(BaseModel):
    model_config = ConfigDict(from_attributes=True, json_encoders={Decimal: lambda value: str(value)})

    id: UUID
    loan_id: UUID
    amount: Decimal
    payment_date: date
    notes: str | None = None
    recorded_by: str | None = None
    created_at: datetime | None = None


class PaymentPostedResponse(BaseModel):
    payment: PaymentDTO
    loan: LoanDTO


class PaymentReversedResponse(BaseModel):
    payment_id: UUID
    loan: LoanDTO


class PaymentWindowStats(BaseModel):
    model_config = ConfigDict(json_encoders={Decimal: lambda value: str(value)})

    amount: Decimal
    count: int


class PaymentTotalStats(PaymentWindowStats):
    average: Decimal


class PaymentStatsResponse(BaseModel):
    total: PaymentTotalStats
    today: PaymentWindowStats
    week: PaymentWindowStats

