from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter, Depends, Query, Response, status
from sqlalchemy.ext.asyncio import AsyncSession

from microloan.api import deps
from microloan.db.session import get_db
from microloan.schemas.clients import ClientCreate, ClientDTO, ClientUpdate
from microloan.schemas.common import Page, build_page_meta
from microloan.services import clients


router = APIRouter(prefix="/clients", tags=["clients"])


@router.get("", response_model=Page[ClientDTO], summary="List clients")
async def list_clients(
    pagination: deps.Pagination = Depends(deps.get_pagination),
    search: str | None = Query(default=None, max_length=100),
    db: AsyncSession = Depends(get_db),
) -> Page[ClientDTO]:
    items, total = await clients.list_clients(
        db, page=pagination.page, limit=pagination.limit, search=search
    )
    return Page[ClientDTO](
        items=[ClientDTO.model_validate(client) for client in items],
        pagination=build_page_meta(page=pagination.page, limit=pagination.limit, total=total),
    )


@router.post("", response_model=ClientDTO, status_code=status.HTTP_201_CREATED, summary="Register a client")
async def create_client(
    payload: ClientCreate,
    actor_id: str | None = Depends(deps.get_actor_id),
    db: AsyncSession = Depends(get_db),
) -> ClientDTO:
    client = await clients.create_client(db, payload, actor_id=actor_id)
    await db.commit()
    return ClientDTO.model_validate(client)


@router.get("/{client_id}", response_model=ClientDTO, summary="Get a client")
async def get_client(client_id: UUID, db: AsyncSession = Depends(get_db)) -> ClientDTO:
    client = await clients.get_client_or_raise(db, client_id)
    return ClientDTO.model_validate(client)


@router.put("/{client_id}", response_model=ClientDTO, summary="Update a client")
async def update_client(
    client_id: UUID,
    payload: ClientUpdate,
    actor_id: str | None = Depends(deps.get_actor_id),
    db: AsyncSession = Depends(get_db),
) -> ClientDTO:
    client = await clients.update_client(db, client_id, payload, actor_id=actor_id)
    await db.commit()
    return ClientDTO.model_validate(client)


@router.delete("/{client_id}", status_code=status.HTTP_204_NO_CONTENT, summary="Delete a client without loans")
async def delete_client(
    client_id: UUID,
    actor_id: str | None = Depends(deps.get_actor_id),
    db: AsyncSession = Depends(get_db),
) -> Response:
    await clients.delete_client(db, client_id, actor_id=actor_id)
    await db.commit()
    return Response(status_code=status.HTTP_204_NO_CONTENT)
