from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter, Depends, Query, Response, status
from sqlalchemy.ext.asyncio import AsyncSession

from microloan.api import deps
from microloan.db.session import get_db
from microloan.schemas.common import Page, build_page_meta
from microloan.schemas.guarantees import GuaranteeCreate, GuaranteeDTO, GuaranteeUpdate
from microloan.services import collateral


router = APIRouter(prefix="/guarantees", tags=["guarantees"])


@router.get("", response_model=Page[GuaranteeDTO], summary="List guarantees")
async def list_guarantees(
    pagination: deps.Pagination = Depends(deps.get_pagination),
    search: str | None = Query(default=None, max_length=100),
    available: bool | None = Query(default=None),
    db: AsyncSession = Depends(get_db),
) -> Page[GuaranteeDTO]:
    items, total = await collateral.list_guarantees(
        db,
        page=pagination.page,
        limit=pagination.limit,
        search=search,
        available=available,
    )
    return Page[GuaranteeDTO](
        items=[GuaranteeDTO.model_validate(guarantee) for guarantee in items],
        pagination=build_page_meta(page=pagination.page, limit=pagination.limit, total=total),
    )


@router.post("", response_model=GuaranteeDTO, status_code=status.HTTP_201_CREATED, summary="Register a guarantee")
async def create_guarantee(
    payload: GuaranteeCreate,
    actor_id: str | None = Depends(deps.get_actor_id),
    db: AsyncSession = Depends(get_db),
) -> GuaranteeDTO:
    guarantee = await collateral.create_guarantee(db, payload, actor_id=actor_id)
    await db.commit()
    return GuaranteeDTO.model_validate(guarantee)


@router.get("/{guarantee_id}", response_model=GuaranteeDTO, summary="Get a guarantee")
async def get_guarantee(guarantee_id: UUID, db: AsyncSession = Depends(get_db)) -> GuaranteeDTO:
    guarantee = await collateral.get_guarantee_or_raise(db, guarantee_id)
    return GuaranteeDTO.model_validate(guarantee)


@router.put("/{guarantee_id}", response_model=GuaranteeDTO, summary="Update a guarantee")
async def update_guarantee(
    guarantee_id: UUID,
    payload: GuaranteeUpdate,
    actor_id: str | None = Depends(deps.get_actor_id),
    db: AsyncSession = Depends(get_db),
) -> GuaranteeDTO:
    guarantee = await collateral.update_guarantee(db, guarantee_id, payload, actor_id=actor_id)
    await db.commit()
    return GuaranteeDTO.model_validate(guarantee)


@router.delete("/{guarantee_id}", status_code=status.HTTP_204_NO_CONTENT, summary="Delete an unused guarantee")
async def delete_guarantee(
    guarantee_id: UUID,
    actor_id: str | None = Depends(deps.get_actor_id),
    db: AsyncSession = Depends(get_db),
) -> Response:
    await collateral.delete_guarantee(db, guarantee_id, actor_id=actor_id)
    await db.commit()
    return Response(status_code=status.HTTP_204_NO_CONTENT)
