from __future__ import annotations

from datetime import datetime
from typing import Any
from uuid import UUID

from pydantic import BaseModel, ConfigDict


class AuditLogEntry(BaseModel):
    """One ledger mutation: who did it, in which request, and what moved."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    action: str
    resource_type: str
    resource_id: str
    actor_id: str | None = None
    request_id: str | None = None
    summary: str | None = None
    changes: dict[str, dict[str, Any]] | None = None
    old_value: dict[str, Any] | None = None
    new_value: dict[str, Any] | None = None
    created_at: datetime
