import logging
import warnings
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy.ext.asyncio import create_async_engine

from app.config import settings
from app.core.errors import register_error_handlers
from app.core.logging_config import configure_logging
from app.core.middleware import AccessLogMiddleware, RequestIDMiddleware
from app.core.rate_limit import RateLimitMiddleware
from app.routers import (
    auth, coach_selection, coaching_styles, engagements, messaging, profiles,
    templates,
)

# Validate session secret in production
if settings.is_production and settings.secret_key == "change-me-in-production":
    raise RuntimeError(
        "SECRET_KEY must be set to a secure random value in production. "
        "Generate one with: python -c \"import secrets; print(secrets.token_hex(32))\""
    )

if not settings.is_production and settings.secret_key == "change-me-in-production":
    warnings.warn("SECRET_KEY is using default value. Set it for production.", stacklevel=1)

logger = logging.getLogger("trainermatch")


@asynccontextmanager
async def lifespan(application: FastAPI):
    """Configure logging and create database tables on startup."""
    configure_logging()
    from app.models.base import Base
    from app import models  # noqa: F401  populates Base.metadata

    engine = create_async_engine(settings.database_url)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    await engine.dispose()
    logger.info("Database tables verified/created")
    yield


app = FastAPI(
    title=settings.app_name,
    version="0.1.0",
    docs_url="/docs" if settings.debug else None,
    redoc_url="/redoc" if settings.debug else None,
    lifespan=lifespan,
)

# Middleware: last added is outermost. CORS outermost so 429s get CORS headers too.
cors_kwargs = {
    "allow_origins": settings.cors_origins_list,
    "allow_credentials": True,
    "allow_methods": ["*"],
    "allow_headers": ["*"],
    "expose_headers": ["x-request-id"],
}
if settings.cors_allow_origin_regex:
    cors_kwargs["allow_origin_regex"] = settings.cors_allow_origin_regex
app.add_middleware(AccessLogMiddleware)
app.add_middleware(RateLimitMiddleware)
app.add_middleware(RequestIDMiddleware)
app.add_middleware(CORSMiddleware, **cors_kwargs)

register_error_handlers(app)

app.include_router(auth.router)
app.include_router(engagements.router)
app.include_router(profiles.router)
app.include_router(coaching_styles.router)
app.include_router(coach_selection.router)
app.include_router(templates.router)
app.include_router(messaging.router)


@app.get("/health")
async def health_check():
    return {"status": "ok", "app": settings.app_name, "version": "0.1.0"}
