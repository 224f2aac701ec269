from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator

from fastapi import FastAPI, Request, Response, status

from app.api import router
from auth.rights import AuthenticationError, AuthorizationError
from datastore.errors import StoreError
from logging_config import configure_logging
from services.telemetry import build_default_service

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(_app: FastAPI) -> AsyncIterator[None]:
    service = build_default_service()
    try:
        yield
    finally:
        service.shutdown()
        build_default_service.cache_clear()


async def _unauthorized(_request: Request, _exc: AuthenticationError) -> Response:
    return Response(status_code=status.HTTP_401_UNAUTHORIZED)


async def _forbidden(_request: Request, _exc: AuthorizationError) -> Response:
    return Response(status_code=status.HTTP_403_FORBIDDEN)


async def _store_failure(request: Request, exc: StoreError) -> Response:
    logger.error(
        "Failed to query store",
        exc_info=exc,
        extra={"path": request.url.path, "status_code": 500, "reason": str(exc)},
    )
    return Response(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR)


def create_app() -> FastAPI:
    configure_logging()
    app = FastAPI(
        title="AirSense Telemetry",
        description="Hourly rollups and device summaries over environmental sensor readings.",
        version="0.1.0",
        lifespan=lifespan,
    )
    app.add_exception_handler(AuthenticationError, _unauthorized)
    app.add_exception_handler(AuthorizationError, _forbidden)
    app.add_exception_handler(StoreError, _store_failure)
    app.include_router(router)
    return app

app = create_app()
