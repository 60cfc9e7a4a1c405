from __future__ import annotations
from contextlib import asynccontextmanager
from typing import AsyncIterator

from fastapi import FastAPI, Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from app.api import router
from logging_config import configure_logging
from services.errors import BadRequest
from services.telemetry import build_default_service


@asynccontextmanager
async def lifespan(_app: FastAPI) -> AsyncIterator[None]:
    build_default_service()
    try:
        yield
    finally:
        build_default_service.cache_clear()


async def _malformed_request(_request: Request, exc: RequestValidationError) -> JSONResponse:
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={"detail": jsonable_encoder(exc.errors())},
        headers={"X-Error-Code": str(BadRequest.code)},
    )


def create_app() -> FastAPI:
    configure_logging()
    app = FastAPI(
        title="Bucketed Telemetry",
        description="Sensor telemetry ingestion and windowed aggregation over a key-value store.",
        version="0.1.0",
        lifespan=lifespan,
    )
    app.add_exception_handler(RequestValidationError, _malformed_request)
    app.include_router(router)
    return app

app = create_app()
