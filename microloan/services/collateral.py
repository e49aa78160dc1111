from __future__ import annotations

import logging
from uuid import UUID

from sqlalchemy import func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from microloan.models.guarantee import Guarantee
from microloan.models.loan import Loan
from microloan.schemas.guarantees import GuaranteeCreate, GuaranteeUpdate
from microloan.services import ledger_errors
from microloan.services.audit import model_snapshot, record_audit_log

logger = logging.getLogger(__name__)


async def get_guarantee(
    db: AsyncSession,
    guarantee_id: UUID,
    *,
    for_update: bool = False,
) -> Guarantee | None:
    stmt = select(Guarantee).where(Guarantee.id == guarantee_id)
    if for_update:
        stmt = stmt.with_for_update().execution_options(populate_existing=True)
    return (await db.execute(stmt)).scalar_one_or_none()


async def get_guarantee_or_raise(
    db: AsyncSession,
    guarantee_id: UUID,
    *,
    for_update: bool = False,
) -> Guarantee:
    guarantee = await get_guarantee(db, guarantee_id, for_update=for_update)
    if guarantee is None:
        raise ledger_errors.not_found("guarantee", guarantee_id)
    return guarantee


async def is_guarantee_available(db: AsyncSession, guarantee_id: UUID) -> bool:
    guarantee = await get_guarantee(db, guarantee_id)
    return guarantee is not None and guarantee.is_available


def lock_guarantee(db: AsyncSession, guarantee: Guarantee, loan: Loan) -> None:
    """Pledge ``guarantee`` to ``loan``; the caller holds the guarantee row lock."""
    holder = guarantee.locked_by_loan_id
    if holder == loan.id:
        return
    if holder is not None:
        raise ledger_errors.conflict(
            "guarantee_unavailable",
            "Guarantee is already pledged to another loan",
            guarantee_id=str(guarantee.id),
            locked_by_loan_id=str(holder),
        )
    guarantee.locked_by_loan_id = loan.id
    db.add(guarantee)
    logger.info("guarantee.locked guarantee_id=%s loan_id=%s", guarantee.id, loan.id)


def unlock_guarantee(db: AsyncSession, guarantee: Guarantee, loan: Loan) -> None:
    """Release ``guarantee`` if ``loan`` is the one holding it."""
    if guarantee.locked_by_loan_id != loan.id:
        return
    guarantee.locked_by_loan_id = None
    db.add(guarantee)
    logger.info("guarantee.released guarantee_id=%s loan_id=%s", guarantee.id, loan.id)


async def count_referencing_loans(db: AsyncSession, guarantee_id: UUID) -> int:
    stmt = select(func.count()).select_from(Loan).where(Loan.guarantee_id == guarantee_id)
    return int((await db.execute(stmt)).scalar_one() or 0)


async def create_guarantee(
    db: AsyncSession,
    payload: GuaranteeCreate,
    *,
    actor_id: str | None = None,
) -> Guarantee:
    guarantee = Guarantee(
        name=payload.name.strip(),
        value=payload.value,
        description=payload.description,
    )
    db.add(guarantee)
    await db.flush()
    record_audit_log(
        db,
        actor_id=actor_id,
        action="guarantee.created",
        resource_type="guarantee",
        resource_id=str(guarantee.id),
        new_value=model_snapshot(guarantee),
    )
    return guarantee


async def update_guarantee(
    db: AsyncSession,
    guarantee_id: UUID,
    payload: GuaranteeUpdate,
    *,
    actor_id: str | None = None,
) -> Guarantee:
    guarantee = await get_guarantee_or_raise(db, guarantee_id, for_update=True)
    old_snapshot = model_snapshot(guarantee)
    guarantee.name = payload.name.strip()
    guarantee.value = payload.value
    guarantee.description = payload.description
    db.add(guarantee)
    await db.flush()
    record_audit_log(
        db,
        actor_id=actor_id,
        action="guarantee.updated",
        resource_type="guarantee",
        resource_id=str(guarantee.id),
        old_value=old_snapshot,
        new_value=model_snapshot(guarantee),
    )
    return guarantee


async def delete_guarantee(
    db: AsyncSession,
    guarantee_id: UUID,
    *,
    actor_id: str | None = None,
) -> None:
    guarantee = await get_guarantee_or_raise(db, guarantee_id, for_update=True)
    loans_count = await count_referencing_loans(db, guarantee_id)
    if loans_count > 0 or guarantee.locked_by_loan_id is not None:
        raise ledger_errors.has_dependents(
            "guarantee_in_use",
            "Guarantee is referenced by loans and cannot be deleted",
            guarantee_id=str(guarantee_id),
            loans_count=loans_count,
        )
    old_snapshot = model_snapshot(guarantee)
    await db.delete(guarantee)
    await db.flush()
    record_audit_log(
        db,
        actor_id=actor_id,
        action="guarantee.deleted",
        resource_type="guarantee",
        resource_id=str(guarantee_id),
        old_value=old_snapshot,
    )


async def list_guarantees(
    db: AsyncSession,
    *,
    page: int,
    limit: int,
    search: str | None = None,
    available: bool | None = None,
) -> tuple[list[Guarantee], int]:
    conditions = []
    if search:
        pattern = f"%{search.strip()}%"
        conditions.append(or_(Guarantee.name.ilike(pattern), Guarantee.description.ilike(pattern)))
    if available is True:
        conditions.append(Guarantee.locked_by_loan_id.is_(None))
    elif available is False:
        conditions.append(Guarantee.locked_by_loan_id.is_not(None))

    total_stmt = select(func.count()).select_from(Guarantee).where(*conditions)
    total = int((await db.execute(total_stmt)).scalar_one() or 0)
    stmt = (
        select(Guarantee)
        .where(*conditions)
        .order_by(Guarantee.created_at.desc(), Guarantee.id)
        .offset((page - 1) * limit)
        .limit(limit)
    )
    return list((await db.execute(stmt)).scalars().all()), total
