from dataclasses import dataclass

from fastapi import Header, Query

from microloan.core.clock import Clock, get_clock
from microloan.core.context import set_actor_id
from microloan.core.settings import settings


@dataclass(slots=True)
class Pagination:
    page: int
    limit: int


async def get_request_clock() -> Clock:
    return get_clock()


async def get_actor_id(
    actor_id: str | None = Header(default=None, alias="X-Actor-ID", max_length=100),
) -> str | None:
    """Caller identity for the audit trail; authentication happens upstream."""
    if actor_id:
        set_actor_id(actor_id)
    return actor_id or None


def get_pagination(
    page: int = Query(default=1, ge=1),
    limit: int | None = Query(default=None, ge=1),
) -> Pagination:
    size = min(limit or settings.default_page_size, settings.max_page_size)
    return Pagination(page=page, limit=size)
