from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from slowapi.middleware import SlowAPIMiddleware

from microloan.api.v1 import api_router
from microloan.core.errors import register_exception_handlers
from microloan.core.health import APP_VERSION
from microloan.core.limiter import limiter
from microloan.core.logging import configure_logging
from microloan.core.response_envelope import register_response_envelope
from microloan.core.settings import settings
from microloan.events import lifespan
from microloan.middlewares.request_context import RequestContextMiddleware
from microloan.middlewares.security_headers import SecurityHeadersMiddleware
from microloan.middlewares.trust_proxies import TrustedProxiesMiddleware

OPENAPI_TAGS = [
    {"name": "loans", "description": "Origination, status overrides and portfolio views."},
    {"name": "payments", "description": "Installment posting and reversal."},
    {"name": "guarantees", "description": "Collateral items and their pledge state."},
    {"name": "rate-plans", "description": "Loan amount to weekly installment catalog."},
    {"name": "clients", "description": "Borrower records."},
]


def _install_middlewares(app: FastAPI) -> None:
    # Added innermost first; CORS ends up outermost.
    register_response_envelope(app)
    app.add_middleware(SlowAPIMiddleware)
    app.add_middleware(TrustedProxiesMiddleware, proxies_count=settings.proxies_count)
    app.add_middleware(RequestContextMiddleware)
    app.add_middleware(SecurityHeadersMiddleware, enable_hsts=settings.enable_hsts)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.allowed_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=["X-Request-ID"],
    )


def create_app() -> FastAPI:
    configure_logging()
    app = FastAPI(
        title="Microloan Ledger",
        version=APP_VERSION,
        openapi_tags=OPENAPI_TAGS,
        lifespan=lifespan,
    )
    app.state.limiter = limiter
    register_exception_handlers(app)
    _install_middlewares(app)
    app.include_router(api_router, prefix="/api/v1")
    return app


app = create_app()
