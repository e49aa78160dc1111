from datetime import date, timedelta
from decimal import Decimal
from uuid import uuid4

import pytest
import pytest_asyncio
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine
from sqlalchemy.orm.exc import StaleDataError

from conftest import make_client, seed_parties
from microloan.core.clock import FixedClock
from microloan.db.base import Base
from microloan.models.audit_log import AuditLog
from microloan.models.guarantee import Guarantee
from microloan.models.loan import Loan
from microloan.models.payment import Payment
from microloan.services import ledger_errors, loan_ledger, payment_journal
from microloan.services.ledger_errors import LedgerError, LedgerErrorKind


async def _originate(db, fixed_clock, parties, *, guarantee_index: int = 0) -> Loan:
    loan = await loan_ledger.originate_loan(
        db,
        parties["client"].id,
        parties["plan"].id,
        parties["guarantees"][guarantee_index].id,
        clock=fixed_clock,
    )
    await db.commit()
    return loan


async def _pay(db, clock, loan_id, amount="105.00", **kwargs):
    posted = await payment_journal.post_payment(db, loan_id, Decimal(amount), clock=clock, **kwargs)
    await db.commit()
    return posted


async def _guarantee(db, guarantee_id) -> Guarantee:
    stmt = select(Guarantee).where(Guarantee.id == guarantee_id).execution_options(populate_existing=True)
    return (await db.execute(stmt)).scalar_one()


@pytest.mark.asyncio
async def test_installments_walk_loan_to_paid_and_release_guarantee(db, fixed_clock):
    parties = await seed_parties(db)
    loan = await _originate(db, fixed_clock, parties)

    for _ in range(5):
        posted = await _pay(db, fixed_clock, loan.id)
    assert posted.loan.paid_amount == Decimal("525.00")
    assert posted.loan.balance == Decimal("105.00")
    assert posted.loan.status == "ACTIVE"
    assert (await _guarantee(db, loan.guarantee_id)).locked_by_loan_id == loan.id

    posted = await _pay(db, fixed_clock, loan.id)
    assert posted.loan.paid_amount == Decimal("630.00")
    assert posted.loan.balance == Decimal("0.00")
    assert posted.loan.status == "PAID"
    assert posted.loan.completed_at is not None
    assert (await _guarantee(db, loan.guarantee_id)).locked_by_loan_id is None


@pytest.mark.asyncio
async def test_reversing_final_installment_reopens_loan_and_relocks(db, fixed_clock):
    parties = await seed_parties(db)
    loan = await _originate(db, fixed_clock, parties)
    for _ in range(5):
        await _pay(db, fixed_clock, loan.id)
    final = await _pay(db, fixed_clock, loan.id)

    reversed_payment = await payment_journal.reverse_payment(db, final.payment.id, clock=fixed_clock)
    await db.commit()

    reopened = reversed_payment.loan
    assert reopened.paid_amount == Decimal("525.00")
    assert reopened.balance == Decimal("105.00")
    assert reopened.status == "ACTIVE"
    assert reopened.completed_at is None
    assert (await _guarantee(db, loan.guarantee_id)).locked_by_loan_id == loan.id
    remaining = (await db.execute(select(func.count()).select_from(Payment))).scalar_one()
    assert remaining == 5


@pytest.mark.asyncio
async def test_post_then_reverse_restores_prior_state(db, fixed_clock):
    parties = await seed_parties(db)
    loan = await _originate(db, fixed_clock, parties)
    await _pay(db, fixed_clock, loan.id, "200.00")
    before = (loan.paid_amount, loan.balance, loan.status)

    posted = await _pay(db, fixed_clock, loan.id, "37.50")
    await payment_journal.reverse_payment(db, posted.payment.id, clock=fixed_clock)
    await db.commit()

    assert (loan.paid_amount, loan.balance, loan.status) == before
    assert loan.paid_amount + loan.balance == loan.total_amount


@pytest.mark.asyncio
async def test_overpayment_clamps_balance_at_zero(db, fixed_clock):
    parties = await seed_parties(db)
    loan = await _originate(db, fixed_clock, parties)

    posted = await _pay(db, fixed_clock, loan.id, "700.00")

    assert posted.loan.paid_amount == Decimal("700.00")
    assert posted.loan.balance == Decimal("0.00")
    assert posted.loan.status == "PAID"


@pytest.mark.asyncio
async def test_payment_on_paid_loan_keeps_completion_timestamp(db, fixed_clock):
    parties = await seed_parties(db)
    loan = await _originate(db, fixed_clock, parties)
    await _pay(db, fixed_clock, loan.id, "630.00")
    completed_at = loan.completed_at.replace(tzinfo=None)

    later = FixedClock(fixed_clock.now() + timedelta(days=3))
    posted = await _pay(db, later, loan.id, "10.00")

    assert posted.loan.status == "PAID"
    assert posted.loan.completed_at.replace(tzinfo=None) == completed_at
    assert posted.loan.balance == Decimal("0.00")


@pytest.mark.asyncio
async def test_reversal_that_leaves_loan_paid_keeps_it_paid(db, fixed_clock):
    parties = await seed_parties(db)
    loan = await _originate(db, fixed_clock, parties)
    await _pay(db, fixed_clock, loan.id, "630.00")
    extra = await _pay(db, fixed_clock, loan.id, "20.00")

    await payment_journal.reverse_payment(db, extra.payment.id, clock=fixed_clock)
    await db.commit()

    assert loan.status == "PAID"
    assert loan.paid_amount == Decimal("630.00")
    assert loan.completed_at is not None
    assert (await _guarantee(db, loan.guarantee_id)).locked_by_loan_id is None


@pytest.mark.asyncio
async def test_reversing_overdue_payoff_returns_loan_to_active(db, fixed_clock):
    parties = await seed_parties(db)
    loan = await _originate(db, fixed_clock, parties)
    await loan_ledger.set_loan_status(db, loan.id, "OVERDUE", clock=fixed_clock)
    await db.commit()
    payoff = await _pay(db, fixed_clock, loan.id, "630.00")
    assert payoff.loan.status == "PAID"

    await payment_journal.reverse_payment(db, payoff.payment.id, clock=fixed_clock)
    await db.commit()

    assert loan.status == "ACTIVE"


@pytest.mark.asyncio
async def test_reopen_fails_when_guarantee_was_pledged_elsewhere(db, fixed_clock):
    parties = await seed_parties(db)
    loan = await _originate(db, fixed_clock, parties)
    payoff = await _pay(db, fixed_clock, loan.id, "630.00")

    other_client = make_client(first_name="Luis", last_name="Mamani", document_number="12345678")
    db.add(other_client)
    await db.commit()
    await loan_ledger.originate_loan(
        db, other_client.id, parties["plan"].id, loan.guarantee_id, clock=fixed_clock
    )
    await db.commit()

    payment_id = payoff.payment.id
    with pytest.raises(LedgerError) as excinfo:
        await payment_journal.reverse_payment(db, payment_id, clock=fixed_clock)
    await db.rollback()

    assert excinfo.value.kind is LedgerErrorKind.CONFLICT
    assert excinfo.value.code == "guarantee_unavailable"
    assert (await db.get(Payment, payment_id)) is not None


@pytest.mark.asyncio
async def test_post_rejects_missing_loan_and_non_positive_amount(db, fixed_clock):
    parties = await seed_parties(db)
    loan = await _originate(db, fixed_clock, parties)
    loan_id = loan.id

    with pytest.raises(LedgerError) as missing:
        await payment_journal.post_payment(db, uuid4(), Decimal("10"), clock=fixed_clock)
    assert missing.value.kind is LedgerErrorKind.NOT_FOUND
    await db.rollback()

    with pytest.raises(LedgerError) as zero:
        await payment_journal.post_payment(db, loan_id, Decimal("0"), clock=fixed_clock)
    assert zero.value.code == "invalid_amount"


@pytest.mark.asyncio
async def test_strict_posting_rejects_inactive_loans_and_overpayment(db, fixed_clock):
    parties = await seed_parties(db)
    loan = await _originate(db, fixed_clock, parties)
    loan_id = loan.id

    with pytest.raises(LedgerError) as too_much:
        await payment_journal.post_payment(db, loan_id, Decimal("631.00"), clock=fixed_clock, strict=True)
    assert too_much.value.code == "payment_exceeds_balance"
    await db.rollback()

    await _pay(db, fixed_clock, loan_id, "630.00")
    with pytest.raises(LedgerError) as paid:
        await payment_journal.post_payment(db, loan_id, Decimal("1.00"), clock=fixed_clock, strict=True)
    assert paid.value.kind is LedgerErrorKind.INVALID_STATE
    assert paid.value.code == "loan_not_active"


@pytest.mark.asyncio
async def test_reverse_unknown_payment_is_not_found(db, fixed_clock):
    await seed_parties(db)
    with pytest.raises(LedgerError) as excinfo:
        await payment_journal.reverse_payment(db, uuid4(), clock=fixed_clock)
    assert excinfo.value.code == "payment_not_found"
    assert excinfo.value.kind is LedgerErrorKind.NOT_FOUND


@pytest.mark.asyncio
async def test_posting_and_reversal_write_audit_rows(db, fixed_clock):
    parties = await seed_parties(db)
    loan = await _originate(db, fixed_clock, parties)
    posted = await _pay(db, fixed_clock, loan.id, actor_id="cashier-7")
    await payment_journal.reverse_payment(db, posted.payment.id, clock=fixed_clock, actor_id="cashier-7")
    await db.commit()

    actions = (
        await db.execute(select(AuditLog.action).where(AuditLog.actor_id == "cashier-7"))
    ).scalars().all()
    assert set(actions) == {
        "payment.posted",
        "loan.payment_applied",
        "payment.reversed",
        "loan.payment_reversed",
    }


def test_week_bounds_start_on_sunday():
    wednesday = date(2024, 3, 13)
    start, end = payment_journal.week_bounds(wednesday)
    assert start == date(2024, 3, 10)
    assert end == date(2024, 3, 17)

    sunday = date(2024, 3, 10)
    assert payment_journal.week_bounds(sunday) == (sunday, date(2024, 3, 17))


@pytest.mark.asyncio
async def test_payment_stats_cover_total_today_and_week(db, fixed_clock):
    parties = await seed_parties(db)
    loan = await _originate(db, fixed_clock, parties)
    today = fixed_clock.today()
    await _pay(db, fixed_clock, loan.id, "100.00", payment_date=today)
    await _pay(db, fixed_clock, loan.id, "50.00", payment_date=today - timedelta(days=2))
    await _pay(db, fixed_clock, loan.id, "30.00", payment_date=today - timedelta(days=10))

    stats = await payment_journal.build_payment_stats(db, clock=fixed_clock)

    assert stats.total.count == 3
    assert stats.total.amount == Decimal("180.00")
    assert stats.total.average == Decimal("60.00")
    assert stats.today.amount == Decimal("100.00")
    assert stats.today.count == 1
    assert stats.week.amount == Decimal("150.00")
    assert stats.week.count == 2


@pytest.mark.asyncio
async def test_reversal_leaving_overridden_loan_paid_releases_guarantee(db, fixed_clock):
    parties = await seed_parties(db)
    loan = await _originate(db, fixed_clock, parties)
    await _pay(db, fixed_clock, loan.id, "630.00")
    extra = await _pay(db, fixed_clock, loan.id, "20.00")
    await loan_ledger.set_loan_status(db, loan.id, "OVERDUE", clock=fixed_clock)
    await db.commit()
    assert (await _guarantee(db, loan.guarantee_id)).locked_by_loan_id == loan.id

    await payment_journal.reverse_payment(db, extra.payment.id, clock=fixed_clock)
    await db.commit()

    assert loan.status == "PAID"
    assert loan.balance == Decimal("0.00")
    assert loan.completed_at is not None
    assert (await _guarantee(db, loan.guarantee_id)).locked_by_loan_id is None


@pytest_asyncio.fixture
async def file_session_factory(tmp_path):
    """SQLite file database so each session gets its own connection."""
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'ledger.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield async_sessionmaker(engine, expire_on_commit=False, autoflush=False)
    await engine.dispose()


@pytest.mark.asyncio
async def test_concurrent_postings_on_one_loan_lose_no_update(file_session_factory, fixed_clock, monkeypatch):
    async with file_session_factory() as setup:
        parties = await seed_parties(setup)
        loan = await _originate(setup, fixed_clock, parties)
        loan_id = loan.id

    async with file_session_factory() as first, file_session_factory() as second:
        # Both requests read the loan at version 1 before either commits.
        stale_loan = await second.get(Loan, loan_id)
        assert stale_loan.version == 1

        await payment_journal.post_payment(first, loan_id, Decimal("105.00"), clock=fixed_clock)
        await first.commit()

        async def _already_loaded(_db, _loan_id, **_kwargs):
            return stale_loan

        monkeypatch.setattr(loan_ledger, "get_loan_or_raise", _already_loaded)
        with pytest.raises(StaleDataError) as excinfo:
            await payment_journal.post_payment(second, loan_id, Decimal("105.00"), clock=fixed_clock)
        await second.rollback()
        monkeypatch.undo()

    translated = ledger_errors.from_storage_error(excinfo.value)
    assert translated.code == "concurrent_update"
    assert translated.status_code == 409

    async with file_session_factory() as check:
        stored = await check.get(Loan, loan_id)
        assert stored.paid_amount == Decimal("105.00")
        assert stored.balance == Decimal("525.00")
        assert stored.version == 2
        payments = (await check.execute(select(func.count()).select_from(Payment))).scalar_one()
        assert payments == 1
