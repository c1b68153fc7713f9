"""
Main FastAPI application for the social interactions service.
"""

import logging

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError

from app.config import configure_logging
from app.routes.comments import router as comments_router
from app.routes.health import router as health_router
from app.routes.interactions import router as interactions_router
from app.services.errors import InteractionError

logger = logging.getLogger(__name__)


def create_app() -> FastAPI:
    """
    Create and configure the FastAPI application.

    Returns:
        Configured FastAPI app instance
    """
    configure_logging()

    app = FastAPI(
        title="Social Interactions API",
        description="Likes, bookmarks, follows and threaded comments with idempotent outcomes",
        version="1.0.0",
        docs_url="/docs",
        redoc_url="/redoc",
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],  # Configure appropriately for production
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(InteractionError)
    async def interaction_exception_handler(request: Request, exc: InteractionError):
        """Map engine errors to their status and stable code."""
        logger.info("%s %s -> %s %s", request.method, request.url.path, exc.status, exc.code)
        return JSONResponse(status_code=exc.status, content=exc.to_dict())

    @app.exception_handler(SQLAlchemyError)
    async def sqlalchemy_exception_handler(request: Request, exc: SQLAlchemyError):
        """Handle SQLAlchemy database errors."""
        logger.error("database error on %s %s", request.method, request.url.path, exc_info=exc)
        return JSONResponse(
            status_code=500,
            content={
                "error_code": "DATABASE_ERROR",
                "message": "Database operation failed",
                "details": str(exc) if app.debug else "Database connection issue",
            },
        )

    @app.exception_handler(Exception)
    async def general_exception_handler(request: Request, exc: Exception):
        """Handle all other unhandled exceptions."""
        logger.error("unhandled exception on %s %s", request.method, request.url.path, exc_info=exc)
        return JSONResponse(
            status_code=500,
            content={
                "error_code": "INTERNAL_ERROR",
                "message": "An unexpected error occurred",
                "details": str(exc) if app.debug else "Internal server error",
            },
        )

    app.include_router(interactions_router)
    app.include_router(comments_router)
    app.include_router(health_router)

    return app


# Create the application instance
app = create_app()


@app.get("/")
async def root():
    return {"message": "Social Interactions API", "status": "healthy", "version": "1.0.0"}


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("app.main:app", host="0.0.0.0", port=8000, reload=True, log_level="info")
