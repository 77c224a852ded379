"""FastAPI application: routers, error rendering and page access control."""

from __future__ import annotations

import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse, RedirectResponse
from starlette.middleware.base import BaseHTTPMiddleware

from ..access import resolve_redirect
from ..db import _engine
from ..errors import ServiceError
from ..models import Base
from .deps import session_claims
from .routers import (
    admin_router,
    analytics_router,
    auth_router,
    campaigns_router,
    escrow_router,
    pages_router,
    razorpay_router,
    tracking_router,
    wallet_router,
)

logger = logging.getLogger(__name__)


class AccessControlMiddleware(BaseHTTPMiddleware):
    """Redirects page requests the session may not see."""

    async def dispatch(self, request: Request, call_next):
        target = resolve_redirect(request.url.path, session_claims(request))
        if target is not None:
            return RedirectResponse(target, status_code=307)
        return await call_next(request)


def create_app() -> FastAPI:
    app = FastAPI(title="Viral Payouts API")
    app.add_middleware(AccessControlMiddleware)

    @app.exception_handler(ServiceError)
    async def service_error_handler(request: Request, exc: ServiceError) -> JSONResponse:
        logger.info("%s %s -> %s: %s", request.method, request.url.path, exc.code, exc.message)
        return JSONResponse({"error": exc.message, "code": exc.code}, status_code=exc.status_code)

    @app.on_event("startup")
    async def startup() -> None:
        async with _engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    @app.get("/health")
    async def health() -> dict[str, str]:
        return {"status": "ok"}

    for router in (
        auth_router,
        campaigns_router,
        wallet_router,
        escrow_router,
        tracking_router,
        analytics_router,
        admin_router,
        razorpay_router,
        pages_router,
    ):
        app.include_router(router)
    return app


app = create_app()

__all__ = ["AccessControlMiddleware", "app", "create_app"]
