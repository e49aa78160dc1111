from __future__ import annotations

from datetime import datetime

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from microloan.api import deps
from microloan.db.session import get_db
from microloan.schemas.audit import AuditLogEntry
from microloan.schemas.common import Page, build_page_meta
from microloan.services import audit


router = APIRouter(prefix="/audit-logs", tags=["audit-logs"])


@router.get("", response_model=Page[AuditLogEntry], summary="List ledger audit entries, newest first")
async def list_audit_logs(
    pagination: deps.Pagination = Depends(deps.get_pagination),
    action: list[str] | None = Query(default=None),
    resource_type: str | None = Query(default=None),
    resource_id: str | None = Query(default=None),
    actor_id: str | None = Query(default=None),
    created_from: datetime | None = Query(default=None),
    created_to: datetime | None = Query(default=None),
    db: AsyncSession = Depends(get_db),
) -> Page[AuditLogEntry]:
    filters = audit.AuditLogFilters(
        actions=action or [],
        resource_type=resource_type,
        resource_id=resource_id,
        actor_id=actor_id,
        created_from=created_from,
        created_to=created_to,
    )
    rows, total = await audit.list_audit_logs(db, filters, page=pagination.page, limit=pagination.limit)
    return Page[AuditLogEntry](
        items=[AuditLogEntry.model_validate(row) for row in rows],
        pagination=build_page_meta(page=pagination.page, limit=pagination.limit, total=total),
    )
