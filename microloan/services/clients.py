from __future__ import annotations

from uuid import UUID

from sqlalchemy import func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from microloan.models.client import Client
from microloan.models.loan import Loan
from microloan.schemas.clients import ClientCreate, ClientUpdate
from microloan.services import eligibility, ledger_errors
from microloan.services.audit import model_snapshot, record_audit_log

# Identity documents never reach the audit trail in clear text.
_AUDIT_EXCLUDE = {"document_number"}
_EDITABLE_FIELDS = (
    "first_name",
    "last_name",
    "email",
    "phone",
    "address",
    "city",
    "state",
    "document_type",
    "document_number",
    "birth_date",
    "gender",
    "marital_status",
    "occupation",
)


async def get_client(db: AsyncSession, client_id: UUID) -> Client | None:
    stmt = select(Client).where(Client.id == client_id)
    return (await db.execute(stmt)).scalar_one_or_none()


async def get_client_or_raise(db: AsyncSession, client_id: UUID) -> Client:
    client = await get_client(db, client_id)
    if client is None:
        raise ledger_errors.not_found("client", client_id)
    return client


def _apply_payload(client: Client, payload: ClientCreate | ClientUpdate) -> None:
    data = payload.model_dump()
    for name in _EDITABLE_FIELDS:
        value = data.get(name)
        if isinstance(value, str):
            value = value.strip()
        setattr(client, name, value)


async def create_client(
    db: AsyncSession,
    payload: ClientCreate,
    *,
    actor_id: str | None = None,
) -> Client:
    client = Client()
    _apply_payload(client, payload)
    db.add(client)
    await db.flush()
    record_audit_log(
        db,
        actor_id=actor_id,
        action="client.created",
        resource_type="client",
        resource_id=str(client.id),
        new_value=model_snapshot(client, exclude=_AUDIT_EXCLUDE),
    )
    return client


async def update_client(
    db: AsyncSession,
    client_id: UUID,
    payload: ClientUpdate,
    *,
    actor_id: str | None = None,
) -> Client:
    client = await get_client_or_raise(db, client_id)
    old_snapshot = model_snapshot(client, exclude=_AUDIT_EXCLUDE)
    _apply_payload(client, payload)
    db.add(client)
    await db.flush()
    record_audit_log(
        db,
        actor_id=actor_id,
        action="client.updated",
        resource_type="client",
        resource_id=str(client.id),
        old_value=old_snapshot,
        new_value=model_snapshot(client, exclude=_AUDIT_EXCLUDE),
    )
    return client


async def delete_client(
    db: AsyncSession,
    client_id: UUID,
    *,
    actor_id: str | None = None,
) -> None:
    client = await get_client_or_raise(db, client_id)
    open_loans = await eligibility.count_client_open_loans(db, client_id)
    total_stmt = select(func.count()).select_from(Loan).where(Loan.client_id == client_id)
    loans_count = int((await db.execute(total_stmt)).scalar_one() or 0)
    if loans_count > 0:
        message = (
            "Client has loans that are not paid and cannot be deleted"
            if open_loans
            else "Client has loan history and cannot be deleted"
        )
        raise ledger_errors.has_dependents(
            "client_has_loans",
            message,
            client_id=str(client_id),
            open_loans_count=open_loans,
            loans_count=loans_count,
        )
    old_snapshot = model_snapshot(client, exclude=_AUDIT_EXCLUDE)
    await db.delete(client)
    await db.flush()
    record_audit_log(
        db,
        actor_id=actor_id,
        action="client.deleted",
        resource_type="client",
        resource_id=str(client_id),
        old_value=old_snapshot,
    )


async def list_clients(
    db: AsyncSession,
    *,
    page: int,
    limit: int,
    search: str | None = None,
) -> tuple[list[Client], int]:
    conditions = []
    if search:
        pattern = f"%{search.strip()}%"
        conditions.append(
            or_(
                Client.first_name.ilike(pattern),
                Client.last_name.ilike(pattern),
                Client.email.ilike(pattern),
                Client.phone.ilike(pattern),
            )
        )
    total_stmt = select(func.count()).select_from(Client).where(*conditions)
    total = int((await db.execute(total_stmt)).scalar_one() or 0)
    stmt = (
        select(Client)
        .where(*conditions)
        .order_by(Client.last_name.asc(), Client.first_name.asc(), Client.id)
        .offset((page - 1) * limit)
        .limit(limit)
    )
    return list((await db.execute(stmt)).scalars().all()), total
