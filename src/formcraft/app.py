from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from formcraft.auth import get_auth_provider
from formcraft.config import Settings
from formcraft.errors import FormcraftError
from formcraft.realtime import SubmissionFeed
from formcraft.routes.chat import router as chat_router
from formcraft.routes.forms import router as forms_router
from formcraft.routes.public import router as public_router
from formcraft.routes.submissions import router as submissions_router
from formcraft.storage import init_storage

logger = logging.getLogger(__name__)


async def formcraft_error_handler(request: Request, exc: FormcraftError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
    return JSONResponse({"detail": exc.to_detail()}, status_code=exc.status_code)


def create_app(settings: Settings | None = None) -> FastAPI:
    settings = settings or Settings()
    storage = init_storage(settings)
    auth = get_auth_provider(settings)
    feed = SubmissionFeed()

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        feed.connect()
        try:
            yield
        finally:
            feed.disconnect()
            storage.dispose()

    app = FastAPI(
        title="formcraft",
        lifespan=lifespan,
        openapi_tags=[
            {"name": "api/forms", "description": "Form builder"},
            {"name": "api/submissions", "description": "Submissions and analytics"},
            {"name": "api/chat", "description": "AI collaborator sessions"},
            {"name": "public", "description": "Respondent endpoints"},
            {"name": "system", "description": "System"},
        ],
    )

    app.state.storage = storage
    app.state.settings = settings
    app.state.auth_provider = auth
    app.state.feed = feed

    app.add_exception_handler(FormcraftError, formcraft_error_handler)

    @app.get("/healthz", tags=["system"])
    async def healthz() -> dict[str, str]:
        return {"status": "ok"}

    app.include_router(forms_router)
    app.include_router(public_router)
    app.include_router(submissions_router)
    app.include_router(chat_router)

    return app
