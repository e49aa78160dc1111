from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from microloan.schemas.clients import ClientDTO
from microloan.schemas.guarantees import GuaranteeDTO


class LoanStatus(str, Enum):
    ACTIVE = "ACTIVE"
    PAID = "PAID"
    OVERDUE = "OVERDUE"
    CANCELLED = "CANCELLED"


TERMINAL_STATUSES = frozenset({LoanStatus.PAID.value, LoanStatus.CANCELLED.value})
LOCKING_STATUSES = frozenset({LoanStatus.ACTIVE.value, LoanStatus.OVERDUE.value})


class EligibilityReasonCode(str, Enum):
    ACTIVE_LOAN_EXISTS = "ACTIVE_LOAN_EXISTS"
    GUARANTEE_UNAVAILABLE = "GUARANTEE_UNAVAILABLE"


class EligibilityReason(BaseModel):
    model_config = ConfigDict(use_enum_values=True)

    code: EligibilityReasonCode
    message: str


class EligibilityResult(BaseModel):
    model_config = ConfigDict(use_enum_values=True)

    eligible: bool
    reasons: list[EligibilityReason] = Field(default_factory=list)


class LoanCreateRequest(BaseModel):
    client_id: UUID
    rate_plan_id: UUID
    guarantee_id: UUID


class LoanStatusUpdateRequest(BaseModel):
    # Validated in the ledger so an unknown value maps to invalid_status.
    status: str


class LoanDueDateUpdateRequest(BaseModel):
    due_date: date


class LoanDTO(BaseModel):
    model_config = ConfigDict(from_attributes=True, json_encoders={Decimal: lambda value: str(value)})

    id: UUID
    client_id: UUID
    rate_plan_id: UUID
    guarantee_id: UUID
    amount: Decimal
    weekly_payment: Decimal
    weeks_count: int
    total_amount: Decimal
    paid_amount: Decimal
    balance: Decimal
    status: LoanStatus
    loan_date: date
    due_date: date
    completed_at: datetime | None = None
    version: int
    created_at: datetime | None = None


class LoanDetailDTO(LoanDTO):
    client: ClientDTO | None = None
    guarantee: GuaranteeDTO | None = None
    payment_count: int = 0


class LoanPortfolioSummary(BaseModel):
    model_config = ConfigDict(json_encoders={Decimal: lambda value: str(value)})

    total_loans: int
    status_counts: dict[str, int]
    outstanding_balance: Decimal
    total_collected: Decimal
    locked_guarantees: int
