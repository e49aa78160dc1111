from fastapi import APIRouter, Response, status

from microloan.core import health
from microloan.core.limiter import limiter

router = APIRouter(tags=["health"])


@router.get("/health/live", summary="Process liveness")
@limiter.exempt
async def health_live() -> dict:
    return await health.live_payload()


@router.get("/health/ready", summary="Database and rate-limit storage readiness")
@limiter.exempt
async def health_ready(response: Response) -> dict:
    payload = await health.ready_payload()
    if not payload["ready"]:
        # Orchestrators only look at the status code.
        response.status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    return payload


@router.get("/health", summary="Readiness report that always answers 200")
@limiter.exempt
async def read_health() -> dict:
    return await health.ready_payload()


@router.get("/status/summary", tags=["status"], summary="Readiness plus build version")
@limiter.exempt
async def status_summary() -> dict:
    return await health.status_summary_payload()
