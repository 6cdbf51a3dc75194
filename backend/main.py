"""FastAPI application entry point and configuration."""

import logging
import uuid
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy import text

from backend.api.auth_router import router as auth_router
from backend.api.flashcard_router import router as flashcard_router
from backend.api.generation_router import router as generation_router
from backend.api.model_router import router as model_router
from backend.config import settings
from backend.database import async_session, engine, init_db
from backend.llm_client import close_provider

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Initialize database on startup and cleanup on shutdown."""
    await init_db()
    yield
    await close_provider()
    await engine.dispose()


app = FastAPI(
    title="cardforge",
    description="AI-assisted flashcard generation and study collection",
    version="0.1.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(auth_router)
app.include_router(generation_router)
app.include_router(flashcard_router)
app.include_router(model_router)


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Report request validation failures as 400 with messages grouped by field."""
    errors: dict[str, list[str]] = {}
    for error in exc.errors():
        # Drop the "body"/"query" prefix so keys match the JSON field names
        location = [str(part) for part in error.get("loc", ())[1:]]
        key = ".".join(location) or "request"
        errors.setdefault(key, []).append(error.get("msg", "Invalid value"))
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={"title": "One or more validation errors occurred.", "status": 400, "errors": errors},
    )


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Log unexpected failures under a fresh correlation id and return a generic 500."""
    correlation_id = str(uuid.uuid4())
    logger.error(
        "Unhandled exception (correlation id %s) on %s %s",
        correlation_id,
        request.method,
        request.url.path,
        exc_info=exc,
    )
    content = {
        "title": "An error occurred while processing your request.",
        "status": 500,
        "correlationId": correlation_id,
    }
    if settings.is_development:
        content["detail"] = str(exc)
    return JSONResponse(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, content=content)


@app.get("/health")
async def health_check() -> dict[str, str]:
    """Check database connectivity and return status."""
    async with async_session() as session:
        await session.execute(text("SELECT 1"))
    return {"status": "ok"}
