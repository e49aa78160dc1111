from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from microloan.api import deps
from microloan.core.clock import Clock
from microloan.db.session import get_db
from microloan.schemas.common import Page, build_page_meta
from microloan.schemas.loans import LoanDTO
from microloan.schemas.payments import (
    PaymentCreateRequest,
    PaymentDTO,
    PaymentPostedResponse,
    PaymentReversedResponse,
    PaymentStatsResponse,
)
from microloan.services import payment_journal


router = APIRouter(prefix="/payments", tags=["payments"])


@router.get("", response_model=Page[PaymentDTO], summary="List payments")
async def list_payments(
    pagination: deps.Pagination = Depends(deps.get_pagination),
    loan_id: UUID | None = Query(default=None),
    search: str | None = Query(default=None, max_length=100),
    db: AsyncSession = Depends(get_db),
) -> Page[PaymentDTO]:
    payments, total = await payment_journal.list_payments(
        db,
        page=pagination.page,
        limit=pagination.limit,
        loan_id=loan_id,
        search=search,
    )
    return Page[PaymentDTO](
        items=[PaymentDTO.model_validate(payment) for payment in payments],
        pagination=build_page_meta(page=pagination.page, limit=pagination.limit, total=total),
    )


@router.post(
    "",
    response_model=PaymentPostedResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Post a payment against a loan",
)
async def post_payment(
    payload: PaymentCreateRequest,
    clock: Clock = Depends(deps.get_request_clock),
    actor_id: str | None = Depends(deps.get_actor_id),
    db: AsyncSession = Depends(get_db),
) -> PaymentPostedResponse:
    posted = await payment_journal.post_payment(
        db,
        payload.loan_id,
        payload.amount,
        payload.payment_date,
        clock=clock,
        notes=payload.notes,
        actor_id=actor_id,
    )
    await db.commit()
    return PaymentPostedResponse(
        payment=PaymentDTO.model_validate(posted.payment),
        loan=LoanDTO.model_validate(posted.loan),
    )


@router.get("/stats", response_model=PaymentStatsResponse, summary="Collection totals")
async def payment_stats(
    clock: Clock = Depends(deps.get_request_clock),
    db: AsyncSession = Depends(get_db),
) -> PaymentStatsResponse:
    return await payment_journal.build_payment_stats(db, clock=clock)


@router.get("/{payment_id}", response_model=PaymentDTO, summary="Get a payment")
async def get_payment(payment_id: UUID, db: AsyncSession = Depends(get_db)) -> PaymentDTO:
    payment = await payment_journal.get_payment_or_raise(db, payment_id)
    return PaymentDTO.model_validate(payment)


@router.delete("/{payment_id}", response_model=PaymentReversedResponse, summary="Reverse a payment")
async def reverse_payment(
    payment_id: UUID,
    clock: Clock = Depends(deps.get_request_clock),
    actor_id: str | None = Depends(deps.get_actor_id),
    db: AsyncSession = Depends(get_db),
) -> PaymentReversedResponse:
    reversed_payment = await payment_journal.reverse_payment(db, payment_id, clock=clock, actor_id=actor_id)
    await db.commit()
    return PaymentReversedResponse(
        payment_id=reversed_payment.payment_id,
        loan=LoanDTO.model_validate(reversed_payment.loan),
    )
