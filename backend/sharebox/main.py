from __future__ import annotations

import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from sharebox.api.router import api_router
from sharebox.core.config import settings
from sharebox.db.base import Base
from sharebox.db.session import async_session_factory, engine
from sharebox.services.errors import ShareError
from sharebox.services.lifecycle import ShareManager, build_share_manager
from sharebox.services.notifier import build_notifier
from sharebox.services.storage import storage_service

logger = logging.getLogger(__name__)


async def share_error_handler(request: Request, exc: ShareError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
    return JSONResponse(status_code=exc.status_code, content={"error": exc.code, "detail": exc.message})


async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    detail = "; ".join(
        f"{'.'.join(str(part) for part in error['loc'][1:]) or 'request'}: {error['msg']}"
        for error in exc.errors()
    )
    return JSONResponse(status_code=400, content={"error": "validation-error", "detail": detail})


def create_application(share_manager: ShareManager | None = None) -> FastAPI:
    app = FastAPI(title=settings.project_name)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_allowed_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_exception_handler(ShareError, share_error_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)

    app.state.share_manager = share_manager or build_share_manager(
        async_session_factory,
        storage=storage_service,
        notifier=build_notifier(settings),
    )

    @app.on_event("startup")
    async def startup_event() -> None:  # noqa: D401
        storage_service.ensure_base_dirs()
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        logger.info("Share storage ensured under %s", settings.shares_dir)

    @app.on_event("shutdown")
    async def shutdown_event() -> None:  # noqa: D401
        await app.state.share_manager.drain_notifications()

    app.include_router(api_router, prefix=settings.api_prefix)

    @app.get("/healthz")
    async def healthcheck() -> dict[str, str]:
        return {"status": "ok"}

    return app


app = create_application()
