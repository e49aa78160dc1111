from __future__ import annotations

import logging
from datetime import date, timedelta
from decimal import Decimal, ROUND_HALF_UP
from uuid import UUID

from sqlalchemy import func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from microloan.core.clock import Clock
from microloan.models.client import Client
from microloan.models.guarantee import Guarantee
from microloan.models.loan import Loan
from microloan.models.payment import Payment
from microloan.schemas.loans import LOCKING_STATUSES, TERMINAL_STATUSES, LoanPortfolioSummary, LoanStatus
from microloan.services import collateral, eligibility, ledger_errors, rate_catalog
from microloan.services.audit import model_snapshot, record_audit_log

logger = logging.getLogger(__name__)

TWOPLACES = Decimal("0.01")
VALID_STATUSES = frozenset(status.value for status in LoanStatus)


def _as_decimal(value) -> Decimal:
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


def to_money(value) -> Decimal:
    return _as_decimal(value).quantize(TWOPLACES, rounding=ROUND_HALF_UP)


def compute_balance(total_amount, paid_amount) -> Decimal:
    return max(to_money(total_amount) - to_money(paid_amount), Decimal("0.00"))


def apply_paid_amount(loan: Loan, paid_amount) -> None:
    """Set ``paid_amount`` and recompute the balance from the frozen total."""
    loan.paid_amount = to_money(paid_amount)
    loan.balance = compute_balance(loan.total_amount, loan.paid_amount)


def compute_due_date(loan_date: date, weeks_count: int) -> date:
    return loan_date + timedelta(weeks=weeks_count)


async def get_loan(
    db: AsyncSession,
    loan_id: UUID,
    *,
    for_update: bool = False,
    with_related: bool = False,
) -> Loan | None:
    stmt = select(Loan).where(Loan.id == loan_id)
    if with_related:
        stmt = stmt.options(selectinload(Loan.client), selectinload(Loan.guarantee))
    if for_update:
        stmt = stmt.with_for_update().execution_options(populate_existing=True)
    return (await db.execute(stmt)).scalar_one_or_none()


async def get_loan_or_raise(
    db: AsyncSession,
    loan_id: UUID,
    *,
    for_update: bool = False,
    with_related: bool = False,
) -> Loan:
    loan = await get_loan(db, loan_id, for_update=for_update, with_related=with_related)
    if loan is None:
        raise ledger_errors.not_found("loan", loan_id)
    return loan


async def count_payments(db: AsyncSession, loan_id: UUID) -> int:
    stmt = select(func.count()).select_from(Payment).where(Payment.loan_id == loan_id)
    return int((await db.execute(stmt)).scalar_one() or 0)


async def _get_client_for_update(db: AsyncSession, client_id: UUID) -> Client:
    stmt = select(Client).where(Client.id == client_id).with_for_update()
    client = (await db.execute(stmt)).scalar_one_or_none()
    if client is None:
        raise ledger_errors.not_found("client", client_id)
    return client


def _audit_loan(
    db: AsyncSession,
    loan: Loan,
    *,
    action: str,
    actor_id: str | None,
    old_value: dict | None,
) -> None:
    record_audit_log(
        db,
        actor_id=actor_id,
        action=action,
        resource_type="loan",
        resource_id=str(loan.id),
        old_value=old_value,
        new_value=model_snapshot(loan, exclude={"version"}),
    )


async def originate_loan(
    db: AsyncSession,
    client_id: UUID,
    rate_plan_id: UUID,
    guarantee_id: UUID,
    *,
    clock: Clock,
    actor_id: str | None = None,
) -> Loan:
    # Client first, then guarantee: the same lock order as every other writer.
    client = await _get_client_for_update(db, client_id)
    plan = await rate_catalog.get_rate_plan_or_raise(db, rate_plan_id)
    guarantee = await collateral.get_guarantee_or_raise(db, guarantee_id, for_update=True)

    if not plan.is_active:
        raise ledger_errors.invalid_state(
            "invalid_rate",
            "Rate plan is not active",
            rate_plan_id=str(rate_plan_id),
        )

    await eligibility.check_origination_eligibility(db, client.id, guarantee.id, guarantee=guarantee)

    weekly_payment = to_money(plan.weekly_payment)
    total_amount = to_money(weekly_payment * plan.weeks_count)
    loan_date = clock.today()
    loan = Loan(
        client_id=client.id,
        rate_plan_id=plan.id,
        guarantee_id=guarantee.id,
        amount=to_money(plan.loan_amount),
        weekly_payment=weekly_payment,
        weeks_count=plan.weeks_count,
        total_amount=total_amount,
        paid_amount=Decimal("0.00"),
        balance=total_amount,
        status=LoanStatus.ACTIVE.value,
        loan_date=loan_date,
        due_date=compute_due_date(loan_date, plan.weeks_count),
        completed_at=None,
    )
    db.add(loan)
    await db.flush()

    collateral.lock_guarantee(db, guarantee, loan)
    await db.flush()

    _audit_loan(db, loan, action="loan.originated", actor_id=actor_id, old_value=None)
    logger.info(
        "loan.originated loan_id=%s client_id=%s guarantee_id=%s total_amount=%s",
        loan.id,
        client.id,
        guarantee.id,
        total_amount,
    )
    return loan


async def set_loan_status(
    db: AsyncSession,
    loan_id: UUID,
    new_status: str,
    *,
    clock: Clock,
    actor_id: str | None = None,
) -> Loan:
    """Administrative override. Does not look at the balance."""
    normalized = (new_status or "").strip().upper()
    if normalized not in VALID_STATUSES:
        raise ledger_errors.invalid_state(
            "invalid_status",
            "Invalid loan status",
            status=new_status,
            allowed=sorted(VALID_STATUSES),
        )

    loan = await get_loan_or_raise(db, loan_id, for_update=True)
    guarantee = await collateral.get_guarantee_or_raise(db, loan.guarantee_id, for_update=True)
    old_snapshot = model_snapshot(loan, exclude={"version"})

    loan.status = normalized
    loan.completed_at = clock.now() if normalized == LoanStatus.PAID.value else None
    if normalized in TERMINAL_STATUSES:
        collateral.unlock_guarantee(db, guarantee, loan)
    else:
        collateral.lock_guarantee(db, guarantee, loan)
    db.add(loan)
    await db.flush()

    _audit_loan(db, loan, action="loan.status_overridden", actor_id=actor_id, old_value=old_snapshot)
    logger.info(
        "loan.status_overridden loan_id=%s from=%s to=%s",
        loan.id,
        old_snapshot.get("status"),
        normalized,
    )
    return loan


async def update_due_date(
    db: AsyncSession,
    loan_id: UUID,
    due_date: date,
    *,
    actor_id: str | None = None,
) -> Loan:
    loan = await get_loan_or_raise(db, loan_id, for_update=True)
    if loan.status != LoanStatus.ACTIVE.value:
        raise ledger_errors.invalid_state(
            "loan_not_active",
            "Only active loans can have their due date changed",
            loan_id=str(loan_id),
            status=loan.status,
        )
    old_snapshot = model_snapshot(loan, exclude={"version"})
    loan.due_date = due_date
    db.add(loan)
    await db.flush()
    _audit_loan(db, loan, action="loan.due_date_updated", actor_id=actor_id, old_value=old_snapshot)
    return loan


async def delete_loan(
    db: AsyncSession,
    loan_id: UUID,
    *,
    actor_id: str | None = None,
) -> None:
    loan = await get_loan_or_raise(db, loan_id, for_update=True)
    payments_count = await count_payments(db, loan.id)
    if payments_count > 0:
        raise ledger_errors.has_dependents(
            "has_payments",
            "A loan with recorded payments cannot be deleted",
            loan_id=str(loan_id),
            payments_count=payments_count,
        )

    guarantee = await collateral.get_guarantee(db, loan.guarantee_id, for_update=True)
    if guarantee is not None:
        collateral.unlock_guarantee(db, guarantee, loan)
        await db.flush()

    old_snapshot = model_snapshot(loan, exclude={"version"})
    await db.delete(loan)
    await db.flush()
    record_audit_log(
        db,
        actor_id=actor_id,
        action="loan.deleted",
        resource_type="loan",
        resource_id=str(loan_id),
        old_value=old_snapshot,
    )
    logger.info("loan.deleted loan_id=%s guarantee_id=%s", loan_id, old_snapshot.get("guarantee_id"))


async def list_loans(
    db: AsyncSession,
    *,
    page: int,
    limit: int,
    status: LoanStatus | None = None,
    client_id: UUID | None = None,
    search: str | None = None,
) -> tuple[list[Loan], int]:
    conditions = []
    if status is not None:
        conditions.append(Loan.status == LoanStatus(status).value)
    if client_id is not None:
        conditions.append(Loan.client_id == client_id)
    if search:
        pattern = f"%{search.strip()}%"
        conditions.append(
            Loan.client.has(
                or_(
                    Client.first_name.ilike(pattern),
                    Client.last_name.ilike(pattern),
                    Client.email.ilike(pattern),
                    Client.phone.ilike(pattern),
                )
            )
        )

    total_stmt = select(func.count()).select_from(Loan).where(*conditions)
    total = int((await db.execute(total_stmt)).scalar_one() or 0)
    stmt = (
        select(Loan)
        .where(*conditions)
        .order_by(Loan.created_at.desc(), Loan.id)
        .offset((page - 1) * limit)
        .limit(limit)
    )
    return list((await db.execute(stmt)).scalars().all()), total


async def build_portfolio_summary(db: AsyncSession) -> LoanPortfolioSummary:
    status_rows = (await db.execute(select(Loan.status, func.count()).group_by(Loan.status))).all()
    status_counts = {status.value: 0 for status in LoanStatus}
    status_counts.update({row[0]: int(row[1]) for row in status_rows})

    outstanding_stmt = select(func.coalesce(func.sum(Loan.balance), 0)).where(
        Loan.status.in_(LOCKING_STATUSES)
    )
    outstanding = to_money((await db.execute(outstanding_stmt)).scalar_one())
    collected = to_money(
        (await db.execute(select(func.coalesce(func.sum(Payment.amount), 0)))).scalar_one()
    )
    locked_stmt = (
        select(func.count()).select_from(Guarantee).where(Guarantee.locked_by_loan_id.is_not(None))
    )
    locked = int((await db.execute(locked_stmt)).scalar_one() or 0)

    return LoanPortfolioSummary(
        total_loans=sum(status_counts.values()),
        status_counts=status_counts,
        outstanding_balance=outstanding,
        total_collected=collected,
        locked_guarantees=locked,
    )
