from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date, timedelta
from decimal import Decimal
from uuid import UUID

from sqlalchemy import func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from microloan.core.clock import Clock
from microloan.core.settings import settings
from microloan.models.client import Client
from microloan.models.loan import Loan
from microloan.models.payment import Payment
from microloan.schemas.loans import LoanStatus
from microloan.schemas.payments import PaymentStatsResponse, PaymentTotalStats, PaymentWindowStats
from microloan.services import collateral, ledger_errors, loan_ledger
from microloan.services.audit import model_snapshot, record_audit_log

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PostedPayment:
    payment: Payment
    loan: Loan


@dataclass(frozen=True)
class ReversedPayment:
    payment_id: UUID
    loan: Loan


async def get_payment(db: AsyncSession, payment_id: UUID, *, for_update: bool = False) -> Payment | None:
    stmt = select(Payment).where(Payment.id == payment_id)
    if for_update:
        stmt = stmt.with_for_update().execution_options(populate_existing=True)
    return (await db.execute(stmt)).scalar_one_or_none()


async def get_payment_or_raise(db: AsyncSession, payment_id: UUID, *, for_update: bool = False) -> Payment:
    payment = await get_payment(db, payment_id, for_update=for_update)
    if payment is None:
        raise ledger_errors.not_found("payment", payment_id)
    return payment


def _enforce_strict_posting(loan: Loan, amount: Decimal) -> None:
    if loan.status != LoanStatus.ACTIVE.value:
        raise ledger_errors.invalid_state(
            "loan_not_active",
            "Payments can only be recorded on active loans",
            loan_id=str(loan.id),
            status=loan.status,
        )
    if amount > loan_ledger.to_money(loan.balance):
        raise ledger_errors.invalid_state(
            "payment_exceeds_balance",
            "Payment amount cannot exceed the outstanding balance",
            loan_id=str(loan.id),
            amount=str(amount),
            balance=str(loan.balance),
        )


async def post_payment(
    db: AsyncSession,
    loan_id: UUID,
    amount,
    payment_date: date | None = None,
    *,
    clock: Clock,
    notes: str | None = None,
    actor_id: str | None = None,
    strict: bool | None = None,
) -> PostedPayment:
    loan = await loan_ledger.get_loan_or_raise(db, loan_id, for_update=True)
    amount = loan_ledger.to_money(amount)
    if amount <= 0:
        raise ledger_errors.invalid_state(
            "invalid_amount",
            "Payment amount must be greater than zero",
            amount=str(amount),
        )
    if settings.strict_payment_posting if strict is None else strict:
        _enforce_strict_posting(loan, amount)

    old_snapshot = model_snapshot(loan, exclude={"version"})
    payment = Payment(
        loan_id=loan.id,
        amount=amount,
        payment_date=payment_date or clock.today(),
        notes=notes,
        recorded_by=actor_id,
    )
    db.add(payment)

    loan_ledger.apply_paid_amount(loan, loan_ledger.to_money(loan.paid_amount) + amount)
    if loan.balance <= 0:
        if loan.status != LoanStatus.PAID.value or loan.completed_at is None:
            loan.completed_at = clock.now()
        loan.status = LoanStatus.PAID.value
        guarantee = await collateral.get_guarantee(db, loan.guarantee_id, for_update=True)
        if guarantee is not None:
            collateral.unlock_guarantee(db, guarantee, loan)
    db.add(loan)
    await db.flush()

    record_audit_log(
        db,
        actor_id=actor_id,
        action="payment.posted",
        resource_type="payment",
        resource_id=str(payment.id),
        new_value=model_snapshot(payment),
    )
    record_audit_log(
        db,
        actor_id=actor_id,
        action="loan.payment_applied",
        resource_type="loan",
        resource_id=str(loan.id),
        old_value=old_snapshot,
        new_value=model_snapshot(loan, exclude={"version"}),
    )
    logger.info(
        "payment.posted payment_id=%s loan_id=%s amount=%s balance=%s status=%s",
        payment.id,
        loan.id,
        amount,
        loan.balance,
        loan.status,
    )
    if old_snapshot.get("status") != loan.status and loan.status == LoanStatus.PAID.value:
        logger.info("loan.paid loan_id=%s guarantee_id=%s", loan.id, loan.guarantee_id)
    return PostedPayment(payment=payment, loan=loan)


async def reverse_payment(
    db: AsyncSession,
    payment_id: UUID,
    *,
    clock: Clock,
    actor_id: str | None = None,
) -> ReversedPayment:
    payment = await get_payment_or_raise(db, payment_id)
    loan = await loan_ledger.get_loan_or_raise(db, payment.loan_id, for_update=True)
    # Re-read under the loan lock so a concurrent reversal of the same row is seen.
    payment = await get_payment_or_raise(db, payment_id, for_update=True)
    was_paid = loan.status == LoanStatus.PAID.value
    old_snapshot = model_snapshot(loan, exclude={"version"})
    payment_snapshot = model_snapshot(payment)
    amount = loan_ledger.to_money(payment.amount)

    await db.delete(payment)

    loan_ledger.apply_paid_amount(loan, loan_ledger.to_money(loan.paid_amount) - amount)
    reopened = False
    if loan.balance <= 0:
        if not was_paid or loan.completed_at is None:
            loan.completed_at = clock.now()
        loan.status = LoanStatus.PAID.value
        if not was_paid:
            # An override back to ACTIVE/OVERDUE relocked the guarantee.
            guarantee = await collateral.get_guarantee(db, loan.guarantee_id, for_update=True)
            if guarantee is not None:
                collateral.unlock_guarantee(db, guarantee, loan)
    elif was_paid:
        loan.status = LoanStatus.ACTIVE.value
        loan.completed_at = None
        reopened = True
        guarantee = await collateral.get_guarantee_or_raise(db, loan.guarantee_id, for_update=True)
        collateral.lock_guarantee(db, guarantee, loan)
    db.add(loan)
    await db.flush()

    record_audit_log(
        db,
        actor_id=actor_id,
        action="payment.reversed",
        resource_type="payment",
        resource_id=str(payment_id),
        old_value=payment_snapshot,
    )
    record_audit_log(
        db,
        actor_id=actor_id,
        action="loan.payment_reversed",
        resource_type="loan",
        resource_id=str(loan.id),
        old_value=old_snapshot,
        new_value=model_snapshot(loan, exclude={"version"}),
    )
    logger.info(
        "payment.reversed payment_id=%s loan_id=%s amount=%s balance=%s status=%s",
        payment_id,
        loan.id,
        amount,
        loan.balance,
        loan.status,
    )
    if reopened:
        logger.info("loan.reopened loan_id=%s guarantee_id=%s", loan.id, loan.guarantee_id)
    return ReversedPayment(payment_id=payment_id, loan=loan)


async def list_payments(
    db: AsyncSession,
    *,
    page: int,
    limit: int,
    loan_id: UUID | None = None,
    search: str | None = None,
) -> tuple[list[Payment], int]:
    conditions = []
    if loan_id is not None:
        conditions.append(Payment.loan_id == loan_id)
    if search:
        pattern = f"%{search.strip()}%"
        conditions.append(
            Payment.loan.has(
                Loan.client.has(
                    or_(
                        Client.first_name.ilike(pattern),
                        Client.last_name.ilike(pattern),
                        Client.email.ilike(pattern),
                        Client.phone.ilike(pattern),
                    )
                )
            )
        )

    total_stmt = select(func.count()).select_from(Payment).where(*conditions)
    total = int((await db.execute(total_stmt)).scalar_one() or 0)
    stmt = (
        select(Payment)
        .where(*conditions)
        .order_by(Payment.payment_date.desc(), Payment.created_at.desc(), Payment.id)
        .offset((page - 1) * limit)
        .limit(limit)
    )
    return list((await db.execute(stmt)).scalars().all()), total


def week_bounds(today: date) -> tuple[date, date]:
    """Sunday-to-Saturday week containing ``today`` as a half-open range."""
    start = today - timedelta(days=(today.weekday() + 1) % 7)
    return start, start + timedelta(days=7)


async def _window_stats(db: AsyncSession, start: date, end: date) -> PaymentWindowStats:
    stmt = select(func.coalesce(func.sum(Payment.amount), 0), func.count(Payment.id)).where(
        Payment.payment_date >= start,
        Payment.payment_date < end,
    )
    amount, count = (await db.execute(stmt)).one()
    return PaymentWindowStats(amount=loan_ledger.to_money(amount), count=int(count or 0))


async def build_payment_stats(db: AsyncSession, *, clock: Clock) -> PaymentStatsResponse:
    total_stmt = select(
        func.coalesce(func.sum(Payment.amount), 0),
        func.count(Payment.id),
    )
    total_amount, total_count = (await db.execute(total_stmt)).one()
    total_amount = loan_ledger.to_money(total_amount)
    total_count = int(total_count or 0)
    average = loan_ledger.to_money(total_amount / total_count) if total_count else Decimal("0.00")

    today = clock.today()
    week_start, week_end = week_bounds(today)
    return PaymentStatsResponse(
        total=PaymentTotalStats(amount=total_amount, count=total_count, average=average),
        today=await _window_stats(db, today, today + timedelta(days=1)),
        week=await _window_stats(db, week_start, week_end),
    )
