from __future__ import annotations

import asyncio
import time
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable

from sqlalchemy import text

from microloan.core.settings import settings
from microloan.db.session import engine
from microloan.utils.redis_client import get_redis_client

APP_VERSION = "0.1.0"

Check = Callable[[], Awaitable[dict[str, Any]]]


async def _check_db() -> dict[str, Any]:
    try:
        async with engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
        return {"status": "ok"}
    except Exception as exc:  # pragma: no cover - exercised in runtime
        return {"status": "error", "error": str(exc)}


async def _check_redis() -> dict[str, Any]:
    if not settings.rate_limit_storage_uri.startswith("redis"):
        return {"status": "skipped"}
    try:
        await get_redis_client().ping()
        return {"status": "ok"}
    except Exception as exc:
        return {"status": "error", "error": str(exc)}


async def _timed(check: Check) -> dict[str, Any]:
    started = time.perf_counter()
    result = dict(await check())
    result["latency_ms"] = round((time.perf_counter() - started) * 1000, 2)
    return result


async def _collect_checks() -> dict[str, dict[str, Any]]:
    # Looked up at call time so probes can be swapped out.
    probes: dict[str, Check] = {"database": _check_db, "redis": _check_redis}
    results = await asyncio.gather(*(_timed(probe) for probe in probes.values()))
    checks = {"api": {"status": "ok", "version": APP_VERSION}}
    checks.update(zip(probes.keys(), results))
    return checks


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


async def live_payload() -> dict[str, str]:
    return {"status": "ok", "timestamp": _now()}


async def ready_payload() -> dict[str, Any]:
    checks = await _collect_checks()
    ready = all(check["status"] in {"ok", "skipped"} for check in checks.values())
    return {
        "status": "ok" if ready else "degraded",
        "ready": ready,
        "environment": settings.environment,
        "timestamp": _now(),
        "checks": checks,
    }


async def status_summary_payload() -> dict[str, Any]:
    return {**await ready_payload(), "version": APP_VERSION}
