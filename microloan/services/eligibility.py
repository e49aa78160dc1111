from __future__ import annotations

import logging
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from microloan.models.guarantee import Guarantee
from microloan.models.loan import Loan
from microloan.schemas.loans import (
    LOCKING_STATUSES,
    EligibilityReason,
    EligibilityReasonCode,
    EligibilityResult,
    LoanStatus,
)
from microloan.services import collateral, ledger_errors

logger = logging.getLogger(__name__)


def evaluate_eligibility_from_state(
    *,
    open_loans_count: int,
    guarantee: Guarantee | None,
    guarantee_open_loans_count: int,
) -> EligibilityResult:
    reasons: list[EligibilityReason] = []

    # Any loan that is not PAID blocks, CANCELLED included.
    if open_loans_count > 0:
        reasons.append(
            EligibilityReason(
                code=EligibilityReasonCode.ACTIVE_LOAN_EXISTS,
                message="Client already has a loan that is not paid",
            )
        )

    if guarantee is None:
        reasons.append(
            EligibilityReason(
                code=EligibilityReasonCode.GUARANTEE_UNAVAILABLE,
                message="Guarantee does not exist",
            )
        )
    elif not guarantee.is_available or guarantee_open_loans_count > 0:
        reasons.append(
            EligibilityReason(
                code=EligibilityReasonCode.GUARANTEE_UNAVAILABLE,
                message="Guarantee is already pledged to an outstanding loan",
            )
        )

    return EligibilityResult(eligible=len(reasons) == 0, reasons=reasons)


async def count_client_open_loans(db: AsyncSession, client_id: UUID) -> int:
    stmt = (
        select(func.count())
        .select_from(Loan)
        .where(Loan.client_id == client_id, Loan.status != LoanStatus.PAID.value)
    )
    return int((await db.execute(stmt)).scalar_one() or 0)


async def count_guarantee_open_loans(db: AsyncSession, guarantee_id: UUID) -> int:
    stmt = (
        select(func.count())
        .select_from(Loan)
        .where(Loan.guarantee_id == guarantee_id, Loan.status.in_(LOCKING_STATUSES))
    )
    return int((await db.execute(stmt)).scalar_one() or 0)


async def evaluate_origination_eligibility(
    db: AsyncSession,
    client_id: UUID,
    guarantee_id: UUID,
    *,
    guarantee: Guarantee | None = None,
) -> EligibilityResult:
    if guarantee is None:
        guarantee = await collateral.get_guarantee(db, guarantee_id)
    return evaluate_eligibility_from_state(
        open_loans_count=await count_client_open_loans(db, client_id),
        guarantee=guarantee,
        guarantee_open_loans_count=(
            await count_guarantee_open_loans(db, guarantee_id) if guarantee is not None else 0
        ),
    )


async def check_origination_eligibility(
    db: AsyncSession,
    client_id: UUID,
    guarantee_id: UUID,
    *,
    guarantee: Guarantee | None = None,
) -> EligibilityResult:
    """Raise a Conflict for the first failed rule; return the result when eligible."""
    result = await evaluate_origination_eligibility(db, client_id, guarantee_id, guarantee=guarantee)
    if result.eligible:
        return result
    reason = result.reasons[0]
    logger.info(
        "Origination rejected client_id=%s guarantee_id=%s reason=%s",
        client_id,
        guarantee_id,
        reason.code,
    )
    raise ledger_errors.conflict(
        str(reason.code).lower(),
        reason.message,
        reason=reason.code,
        client_id=str(client_id),
        guarantee_id=str(guarantee_id),
    )
