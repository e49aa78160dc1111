"""Ledger audit trail.

Every mutation stages an ``AuditLog`` row in the same transaction as the
change it describes, so a rolled-back posting leaves no audit entry behind.
The same line is mirrored to the ``microloan.audit`` log stream.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Iterable
from uuid import UUID

from fastapi.encoders import jsonable_encoder
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from microloan.core.context import get_request_id
from microloan.core.logging import get_audit_logger
from microloan.models.audit_log import AuditLog

audit_logger = get_audit_logger()

# Money stays a string so snapshots never round through float.
_ENCODERS = {
    Decimal: str,
    datetime: datetime.isoformat,
    date: date.isoformat,
    UUID: str,
}
_TIMESTAMP_COLUMNS = frozenset({"created_at", "updated_at"})


def serialize_for_audit(value: Any) -> Any:
    return jsonable_encoder(value, custom_encoder=_ENCODERS)


def model_snapshot(model: Any, *, exclude: Iterable[str] | None = None) -> dict[str, Any]:
    if model is None:
        return {}
    skipped = _TIMESTAMP_COLUMNS | set(exclude or ())
    return serialize_for_audit(
        {
            column.name: getattr(model, column.key, None)
            for column in model.__table__.columns
            if column.name not in skipped
        }
    )


def field_changes(old: dict[str, Any] | None, new: dict[str, Any] | None) -> dict[str, dict[str, Any]]:
    """Column-level ``{"from": ..., "to": ...}`` pairs between two snapshots."""
    old, new = old or {}, new or {}
    return {
        key: {"from": old.get(key), "to": new.get(key)}
        for key in sorted(old.keys() | new.keys())
        if old.get(key) != new.get(key)
    }


def describe(action: str, changes: dict[str, Any] | None) -> str:
    if not changes:
        return action
    names = list(changes)
    shown = ", ".join(names[:3])
    return f"{action}: {shown}" + (f" (+{len(names) - 3} more)" if len(names) > 3 else "")


def record_audit_log(
    db: AsyncSession,
    *,
    actor_id: str | None,
    action: str,
    resource_type: str,
    resource_id: str | UUID,
    old_value: Any | None = None,
    new_value: Any | None = None,
) -> AuditLog:
    """Stage an audit row in the caller's transaction and mirror it to the audit stream."""
    before = serialize_for_audit(old_value) if old_value is not None else None
    after = serialize_for_audit(new_value) if new_value is not None else None
    changes = field_changes(before, after) if isinstance(before or after, dict) else {}
    summary = describe(action, changes)
    entry = AuditLog(
        actor_id=actor_id,
        request_id=get_request_id(),
        action=action,
        resource_type=resource_type,
        resource_id=str(resource_id),
        old_value=before,
        new_value=after,
        changes=changes or None,
        summary=summary,
    )
    db.add(entry)
    audit_logger.info(summary, extra={"resource_type": resource_type, "resource_id": str(resource_id)})
    return entry


@dataclass(slots=True)
class AuditLogFilters:
    actions: list[str] = field(default_factory=list)
    resource_type: str | None = None
    resource_id: str | None = None
    actor_id: str | None = None
    created_from: datetime | None = None
    created_to: datetime | None = None

    def conditions(self) -> list:
        clauses = []
        if self.actions:
            clauses.append(AuditLog.action.in_(self.actions))
        if self.resource_type:
            clauses.append(AuditLog.resource_type == self.resource_type)
        if self.resource_id:
            clauses.append(AuditLog.resource_id == self.resource_id)
        if self.actor_id:
            clauses.append(AuditLog.actor_id == self.actor_id)
        if self.created_from:
            clauses.append(AuditLog.created_at >= self.created_from)
        if self.created_to:
            clauses.append(AuditLog.created_at <= self.created_to)
        return clauses


async def list_audit_logs(
    db: AsyncSession,
    filters: AuditLogFilters,
    *,
    page: int,
    limit: int,
) -> tuple[list[AuditLog], int]:
    conditions = filters.conditions()
    total = int((await db.execute(select(func.count()).select_from(AuditLog).where(*conditions))).scalar_one() or 0)
    stmt = (
        select(AuditLog)
        .where(*conditions)
        .order_by(AuditLog.created_at.desc(), AuditLog.id)
        .offset((page - 1) * limit)
        .limit(limit)
    )
    return list((await db.execute(stmt)).scalars().all()), total
