"""Quarry API application."""

import uuid
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from quarry.api.v1.api import api_router
from quarry.core.config import settings
from quarry.core.exceptions import QuarryException, UsageRecomputeFailedException
from quarry.core.logging import logger
from quarry.core.redis_client import redis_client


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info(f"{settings.PROJECT_NAME} API is starting up")
    try:
        yield
    finally:
        await redis_client.close()
        logger.info(f"{settings.PROJECT_NAME} API is shutting down")


app = FastAPI(title=settings.PROJECT_NAME, lifespan=lifespan)


@app.middleware("http")
async def add_request_id(request: Request, call_next):
    """Attach a request id to the request state and echo it in the response."""
    request_id = request.headers.get("X-Request-ID") or str(uuid.uuid4())
    request.state.request_id = request_id
    response = await call_next(request)
    response.headers["X-Request-ID"] = request_id
    return response


@app.exception_handler(QuarryException)
async def quarry_exception_handler(request: Request, exc: QuarryException) -> JSONResponse:
    """Translate service exceptions into JSON error responses."""
    request_id = getattr(request.state, "request_id", None)
    log = logger.with_context(request_id=request_id, error_kind=exc.kind)
    if exc.status_code >= 500:
        log.error(f"{request.method} {request.url.path} failed: {exc.message}")
    else:
        log.info(f"{request.method} {request.url.path} rejected: {exc.message}")

    content = {"detail": exc.message, "kind": exc.kind}
    if isinstance(exc, UsageRecomputeFailedException) and exc.deleted is not None:
        content["deleted"] = exc.deleted.model_dump(mode="json")
    return JSONResponse(status_code=exc.status_code, content=content)


app.include_router(api_router, prefix="/api/v1")


@app.get("/health")
async def health() -> dict:
    return {"status": "ok"}
