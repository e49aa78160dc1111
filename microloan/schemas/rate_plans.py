from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field


class RatePlanCreate(BaseModel):
    loan_amount: Decimal = Field(gt=0, max_digits=12, decimal_places=2)
    weekly_payment: Decimal = Field(gt=0, max_digits=12, decimal_places=2)
    weeks_count: int = Field(default=6, ge=1)
    is_active: bool = True


class RatePlanUpdate(RatePlanCreate):
    pass


class RatePlanDTO(BaseModel):
    model_config = ConfigDict(from_attributes=True, json_encoders={Decimal: lambda value: str(value)})

    id: UUID
    loan_amount: Decimal
    weekly_payment: Decimal
    weeks_count: int
    total_amount: Decimal
    is_active: bool
    created_at: datetime | None = None
