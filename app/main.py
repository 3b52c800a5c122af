"""
Contract Intelligence API

Mounts the versioned routes and wires database lifecycle to app startup
and shutdown.
"""

import logging

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError

from app.api.v1.router import api_router
from app.core.config import settings
from app.db.base import dispose_engine
from app.schemas.pipeline import PipelineErrorType
from app.services.openai_service import close_openai_service

logging.basicConfig(
    level=logging.DEBUG if settings.DEBUG else logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)


def create_app() -> FastAPI:
    application = FastAPI(
        title=settings.APP_NAME,
        description="Contract classification, risk analysis and contract-aware chat",
        version=settings.APP_VERSION,
    )
    application.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS,
        allow_credentials=settings.CORS_ALLOW_CREDENTIALS,
        allow_methods=settings.CORS_ALLOW_METHODS,
        allow_headers=settings.CORS_ALLOW_HEADERS,
    )
    application.include_router(api_router)
    return application


app = create_app()


@app.exception_handler(SQLAlchemyError)
async def database_error_handler(request: Request, exc: SQLAlchemyError):
    # Pipeline operations return tagged results; this only catches errors
    # raised while a request dependency is opening the session.
    logger.error(f"Database error on {request.url.path}: {exc}")
    return JSONResponse(
        status_code=503,
        content={
            "error_type": PipelineErrorType.PERSISTENCE_FAILURE.value,
            "message": "The contract store is unavailable. Please try again later."
        }
    )


@app.on_event("startup")
async def startup_event():
    logger.info(f"Starting {settings.APP_NAME} v{settings.APP_VERSION}")
    if not settings.DATABASE_URL:
        logger.warning("DATABASE_URL not set; contract endpoints will fail")
    if not settings.OPENAI_API_KEY:
        logger.warning("OPENAI_API_KEY not set; inference is unavailable")
    logger.info(
        f"Inference model {settings.OPENAI_MODEL}, "
        f"search augmentation {'enabled' if settings.SEARCH_API_URL else 'disabled'}"
    )


@app.on_event("shutdown")
async def shutdown_event():
    await close_openai_service()
    await dispose_engine()
    logger.info(f"{settings.APP_NAME} stopped")
