from fastapi import APIRouter

from microloan.api.v1.routers import (
    audit_logs,
    clients,
    guarantees,
    health,
    loans,
    payments,
    rate_plans,
)

api_router = APIRouter()
api_router.include_router(health.router)
api_router.include_router(clients.router)
api_router.include_router(guarantees.router)
api_router.include_router(rate_plans.router)
api_router.include_router(loans.router)
api_router.include_router(payments.router)
api_router.include_router(audit_logs.router)

__all__ = ["api_router"]
