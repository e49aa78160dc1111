from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter, Depends, Query, Response, status
from sqlalchemy.ext.asyncio import AsyncSession

from microloan.api import deps
from microloan.db.session import get_db
from microloan.schemas.rate_plans import RatePlanCreate, RatePlanDTO, RatePlanUpdate
from microloan.services import rate_catalog


router = APIRouter(prefix="/rate-plans", tags=["rate-plans"])


@router.get("", response_model=list[RatePlanDTO], summary="List rate plans")
async def list_rate_plans(
    active_only: bool = Query(default=False),
    db: AsyncSession = Depends(get_db),
) -> list[RatePlanDTO]:
    plans = await rate_catalog.list_rate_plans(db, active_only=active_only)
    return [RatePlanDTO.model_validate(plan) for plan in plans]


@router.post("", response_model=RatePlanDTO, status_code=status.HTTP_201_CREATED, summary="Create a rate plan")
async def create_rate_plan(
    payload: RatePlanCreate,
    actor_id: str | None = Depends(deps.get_actor_id),
    db: AsyncSession = Depends(get_db),
) -> RatePlanDTO:
    plan = await rate_catalog.create_rate_plan(db, payload, actor_id=actor_id)
    await db.commit()
    return RatePlanDTO.model_validate(plan)


@router.get("/{rate_plan_id}", response_model=RatePlanDTO, summary="Get a rate plan")
async def get_rate_plan(rate_plan_id: UUID, db: AsyncSession = Depends(get_db)) -> RatePlanDTO:
    plan = await rate_catalog.get_rate_plan_or_raise(db, rate_plan_id)
    return RatePlanDTO.model_validate(plan)


@router.put("/{rate_plan_id}", response_model=RatePlanDTO, summary="Update a rate plan")
async def update_rate_plan(
    rate_plan_id: UUID,
    payload: RatePlanUpdate,
    actor_id: str | None = Depends(deps.get_actor_id),
    db: AsyncSession = Depends(get_db),
) -> RatePlanDTO:
    plan = await rate_catalog.update_rate_plan(db, rate_plan_id, payload, actor_id=actor_id)
    await db.commit()
    return RatePlanDTO.model_validate(plan)


@router.delete("/{rate_plan_id}", status_code=status.HTTP_204_NO_CONTENT, summary="Delete an unused rate plan")
async def delete_rate_plan(
    rate_plan_id: UUID,
    actor_id: str | None = Depends(deps.get_actor_id),
    db: AsyncSession = Depends(get_db),
) -> Response:
    await rate_catalog.delete_rate_plan(db, rate_plan_id, actor_id=actor_id)
    await db.commit()
    return Response(status_code=status.HTTP_204_NO_CONTENT)
