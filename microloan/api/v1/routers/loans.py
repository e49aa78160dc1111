from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter, Depends, Query, Response, status
from sqlalchemy.ext.asyncio import AsyncSession

from microloan.api import deps
from microloan.core.clock import Clock
from microloan.db.session import get_db
from microloan.schemas.common import Page, build_page_meta
from microloan.schemas.loans import (
    EligibilityResult,
    LoanCreateRequest,
    LoanDetailDTO,
    LoanDTO,
    LoanDueDateUpdateRequest,
    LoanPortfolioSummary,
    LoanStatus,
    LoanStatusUpdateRequest,
)
from microloan.services import eligibility, loan_ledger


router = APIRouter(prefix="/loans", tags=["loans"])


async def _load_detail(db: AsyncSession, loan_id: UUID) -> LoanDetailDTO:
    loan = await loan_ledger.get_loan_or_raise(db, loan_id, with_related=True)
    payment_count = await loan_ledger.count_payments(db, loan.id)
    return LoanDetailDTO.model_validate(loan).model_copy(update={"payment_count": payment_count})


@router.get("", response_model=Page[LoanDTO], summary="List loans")
async def list_loans(
    pagination: deps.Pagination = Depends(deps.get_pagination),
    status_filter: LoanStatus | None = Query(default=None, alias="status"),
    client_id: UUID | None = Query(default=None),
    search: str | None = Query(default=None, max_length=100),
    db: AsyncSession = Depends(get_db),
) -> Page[LoanDTO]:
    loans, total = await loan_ledger.list_loans(
        db,
        page=pagination.page,
        limit=pagination.limit,
        status=status_filter,
        client_id=client_id,
        search=search,
    )
    return Page[LoanDTO](
        items=[LoanDTO.model_validate(loan) for loan in loans],
        pagination=build_page_meta(page=pagination.page, limit=pagination.limit, total=total),
    )


@router.post("", response_model=LoanDTO, status_code=status.HTTP_201_CREATED, summary="Originate a loan")
async def create_loan(
    payload: LoanCreateRequest,
    clock: Clock = Depends(deps.get_request_clock),
    actor_id: str | None = Depends(deps.get_actor_id),
    db: AsyncSession = Depends(get_db),
) -> LoanDTO:
    loan = await loan_ledger.originate_loan(
        db,
        payload.client_id,
        payload.rate_plan_id,
        payload.guarantee_id,
        clock=clock,
        actor_id=actor_id,
    )
    await db.commit()
    return LoanDTO.model_validate(loan)


@router.get("/summary", response_model=LoanPortfolioSummary, summary="Portfolio totals by status")
async def portfolio_summary(db: AsyncSession = Depends(get_db)) -> LoanPortfolioSummary:
    return await loan_ledger.build_portfolio_summary(db)


@router.get(
    "/eligibility",
    response_model=EligibilityResult,
    summary="Check whether a client may take a loan against a guarantee",
)
async def check_eligibility(
    client_id: UUID = Query(...),
    guarantee_id: UUID = Query(...),
    db: AsyncSession = Depends(get_db),
) -> EligibilityResult:
    return await eligibility.evaluate_origination_eligibility(db, client_id, guarantee_id)


@router.get("/{loan_id}", response_model=LoanDetailDTO, summary="Get a loan")
async def get_loan(loan_id: UUID, db: AsyncSession = Depends(get_db)) -> LoanDetailDTO:
    return await _load_detail(db, loan_id)


@router.put("/{loan_id}/status", response_model=LoanDTO, summary="Override a loan status")
async def update_loan_status(
    loan_id: UUID,
    payload: LoanStatusUpdateRequest,
    clock: Clock = Depends(deps.get_request_clock),
    actor_id: str | None = Depends(deps.get_actor_id),
    db: AsyncSession = Depends(get_db),
) -> LoanDTO:
    loan = await loan_ledger.set_loan_status(db, loan_id, payload.status, clock=clock, actor_id=actor_id)
    await db.commit()
    return LoanDTO.model_validate(loan)


@router.patch("/{loan_id}/due-date", response_model=LoanDTO, summary="Move the due date of an active loan")
async def update_loan_due_date(
    loan_id: UUID,
    payload: LoanDueDateUpdateRequest,
    actor_id: str | None = Depends(deps.get_actor_id),
    db: AsyncSession = Depends(get_db),
) -> LoanDTO:
    loan = await loan_ledger.update_due_date(db, loan_id, payload.due_date, actor_id=actor_id)
    await db.commit()
    return LoanDTO.model_validate(loan)


@router.delete("/{loan_id}", status_code=status.HTTP_204_NO_CONTENT, summary="Delete a loan without payments")
async def delete_loan(
    loan_id: UUID,
    actor_id: str | None = Depends(deps.get_actor_id),
    db: AsyncSession = Depends(get_db),
) -> Response:
    await loan_ledger.delete_loan(db, loan_id, actor_id=actor_id)
    await db.commit()
    return Response(status_code=status.HTTP_204_NO_CONTENT)
