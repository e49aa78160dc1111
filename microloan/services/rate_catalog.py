from __future__ import annotations

import logging
from decimal import Decimal
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from microloan.models.loan import Loan
from microloan.models.rate_plan import RatePlan
from microloan.schemas.rate_plans import RatePlanCreate, RatePlanUpdate
from microloan.services import ledger_errors
from microloan.services.audit import model_snapshot, record_audit_log

logger = logging.getLogger(__name__)

# (loan amount, weekly payment), six weekly installments each.
DEFAULT_RATE_PLANS: tuple[tuple[Decimal, Decimal], ...] = (
    (Decimal("500"), Decimal("105")),
    (Decimal("600"), Decimal("110")),
    (Decimal("700"), Decimal("145")),
    (Decimal("800"), Decimal("165")),
    (Decimal("1000"), Decimal("210")),
    (Decimal("1500"), Decimal("320")),
)
DEFAULT_WEEKS_COUNT = 6


async def get_rate_plan(db: AsyncSession, rate_plan_id: UUID) -> RatePlan | None:
    stmt = select(RatePlan).where(RatePlan.id == rate_plan_id)
    return (await db.execute(stmt)).scalar_one_or_none()


async def get_rate_plan_or_raise(db: AsyncSession, rate_plan_id: UUID) -> RatePlan:
    plan = await get_rate_plan(db, rate_plan_id)
    if plan is None:
        raise ledger_errors.not_found("rate_plan", rate_plan_id)
    return plan


async def get_active_rate_plan(db: AsyncSession, rate_plan_id: UUID) -> RatePlan | None:
    plan = await get_rate_plan(db, rate_plan_id)
    if plan is None or not plan.is_active:
        return None
    return plan


async def _ensure_unique_active_amount(
    db: AsyncSession,
    loan_amount: Decimal,
    *,
    exclude_id: UUID | None = None,
) -> None:
    stmt = select(RatePlan.id).where(
        RatePlan.loan_amount == loan_amount,
        RatePlan.is_active.is_(True),
    )
    if exclude_id is not None:
        stmt = stmt.where(RatePlan.id != exclude_id)
    existing = (await db.execute(stmt.limit(1))).scalar_one_or_none()
    if existing is not None:
        raise ledger_errors.conflict(
            "duplicate_rate_plan",
            "An active rate plan already exists for this loan amount",
            loan_amount=str(loan_amount),
            rate_plan_id=str(existing),
        )


async def create_rate_plan(
    db: AsyncSession,
    payload: RatePlanCreate,
    *,
    actor_id: str | None = None,
) -> RatePlan:
    if payload.is_active:
        await _ensure_unique_active_amount(db, payload.loan_amount)
    plan = RatePlan(
        loan_amount=payload.loan_amount,
        weekly_payment=payload.weekly_payment,
        weeks_count=payload.weeks_count,
        is_active=payload.is_active,
    )
    db.add(plan)
    await db.flush()
    record_audit_log(
        db,
        actor_id=actor_id,
        action="rate_plan.created",
        resource_type="rate_plan",
        resource_id=str(plan.id),
        new_value=model_snapshot(plan),
    )
    return plan


async def update_rate_plan(
    db: AsyncSession,
    rate_plan_id: UUID,
    payload: RatePlanUpdate,
    *,
    actor_id: str | None = None,
) -> RatePlan:
    """Edit a plan. Loans keep the amounts copied at origination."""
    plan = await get_rate_plan_or_raise(db, rate_plan_id)
    if payload.is_active:
        await _ensure_unique_active_amount(db, payload.loan_amount, exclude_id=plan.id)
    old_snapshot = model_snapshot(plan)
    plan.loan_amount = payload.loan_amount
    plan.weekly_payment = payload.weekly_payment
    plan.weeks_count = payload.weeks_count
    plan.is_active = payload.is_active
    db.add(plan)
    await db.flush()
    record_audit_log(
        db,
        actor_id=actor_id,
        action="rate_plan.updated",
        resource_type="rate_plan",
        resource_id=str(plan.id),
        old_value=old_snapshot,
        new_value=model_snapshot(plan),
    )
    return plan


async def delete_rate_plan(
    db: AsyncSession,
    rate_plan_id: UUID,
    *,
    actor_id: str | None = None,
) -> None:
    plan = await get_rate_plan_or_raise(db, rate_plan_id)
    count_stmt = select(func.count()).select_from(Loan).where(Loan.rate_plan_id == rate_plan_id)
    loans_count = int((await db.execute(count_stmt)).scalar_one() or 0)
    if loans_count > 0:
        raise ledger_errors.has_dependents(
            "rate_plan_in_use",
            "Rate plan is referenced by loans and cannot be deleted",
            rate_plan_id=str(rate_plan_id),
            loans_count=loans_count,
        )
    old_snapshot = model_snapshot(plan)
    await db.delete(plan)
    await db.flush()
    record_audit_log(
        db,
        actor_id=actor_id,
        action="rate_plan.deleted",
        resource_type="rate_plan",
        resource_id=str(rate_plan_id),
        old_value=old_snapshot,
    )


async def list_rate_plans(db: AsyncSession, *, active_only: bool = False) -> list[RatePlan]:
    stmt = select(RatePlan)
    if active_only:
        stmt = stmt.where(RatePlan.is_active.is_(True))
    stmt = stmt.order_by(RatePlan.loan_amount.asc(), RatePlan.created_at.asc())
    return list((await db.execute(stmt)).scalars().all())


async def seed_default_rate_plans(db: AsyncSession) -> int:
    """Insert the default catalog when no plan exists yet. Returns the number inserted."""
    existing = int((await db.execute(select(func.count()).select_from(RatePlan))).scalar_one() or 0)
    if existing:
        return 0
    for loan_amount, weekly_payment in DEFAULT_RATE_PLANS:
        db.add(
            RatePlan(
                loan_amount=loan_amount,
                weekly_payment=weekly_payment,
                weeks_count=DEFAULT_WEEKS_COUNT,
                is_active=True,
            )
        )
    await db.flush()
    logger.info("Seeded %d default rate plans", len(DEFAULT_RATE_PLANS))
    return len(DEFAULT_RATE_PLANS)
