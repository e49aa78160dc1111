from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field


class GuaranteeCreate(BaseModel):
    name: str = Field(min_length=2, max_length=255)
    value: Decimal = Field(gt=0, max_digits=12, decimal_places=2)
    description: str | None = None


class GuaranteeUpdate(GuaranteeCreate):
    pass


class GuaranteeDTO(BaseModel):
    model_config = ConfigDict(from_attributes=True, json_encoders={Decimal: lambda value: str(value)})

    id: UUID
    name: str
    value: Decimal
    description: str | None = None
    locked_by_loan_id: UUID | None = None
    is_available: bool
    created_at: datetime | None = None
