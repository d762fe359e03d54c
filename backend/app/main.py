from __future__ import annotations

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.trustedhost import TrustedHostMiddleware
from fastapi.responses import JSONResponse

from app.core.config import settings
from app.core.logging import setup_logging
from app.core.exceptions import CombiSalesException
from app.core.security_headers import install_security_headers_middleware
from app.routers import auth, auth_logs, cron, users


def create_app() -> FastAPI:
    setup_logging(settings.LOG_LEVEL)
    settings.validate_runtime_security()

    app = FastAPI(title=settings.APP_NAME)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_middleware(
        TrustedHostMiddleware,
        allowed_hosts=settings.allowed_hosts,
    )
    install_security_headers_middleware(app, settings)

    app.include_router(auth.router, prefix="/api/auth", tags=["auth"])
    app.include_router(auth_logs.router, prefix="/api/auth", tags=["auth-logs"])
    app.include_router(users.router, prefix="/api/users", tags=["users"])
    # Scheduler endpoints (bearer CRON_SECRET).
    app.include_router(cron.router, prefix="/api/cron", tags=["cron"])

    @app.exception_handler(CombiSalesException)
    async def handle_combisales_exception(_: Request, exc: CombiSalesException) -> JSONResponse:
        return JSONResponse(status_code=exc.status_code, content=exc.to_dict(), headers=exc.headers)

    return app


app = create_app()
