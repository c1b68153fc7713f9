"""
Health check endpoints for monitoring system status.
"""

from datetime import datetime
from typing import Dict, Any

from fastapi import APIRouter
from sqlalchemy import func, select, text
from sqlalchemy.exc import SQLAlchemyError

from app.db import get_session
from app.models import Activity, Comment, Like, Post

router = APIRouter(prefix="/health", tags=["health"])


async def check_database_health() -> Dict[str, str]:
    """
    Check database connectivity and health.

    Returns:
        Dict with status and optional error details
    """
    try:
        async with get_session() as db:
            result = (await db.execute(text("SELECT 1"))).scalar()
            if result == 1:
                return {"status": "ok"}
            return {"status": "down", "error": "Unexpected query result"}
    except SQLAlchemyError as e:
        return {"status": "down", "error": f"Database error: {str(e)}"}
    except OSError as e:
        return {"status": "down", "error": f"Connection error: {str(e)}"}


@router.get("/")
async def health_check() -> Dict[str, Any]:
    """
    Overall health: the database is the only hard dependency.

    Returns:
        Dict containing status ("ok" | "down"), db health, version and timestamp
    """
    db_health = await check_database_health()

    return {
        "status": "ok" if db_health["status"] == "ok" else "down",
        "db": db_health,
        "version": "1.0.0",
        "timestamp": datetime.utcnow().isoformat(),
    }


@router.get("/db")
async def database_health() -> Dict[str, Any]:
    """
    Database-specific health check with table sizes.
    """
    health_status = await check_database_health()

    try:
        async with get_session() as db:
            tables = {}
            for name, model in (("posts", Post), ("activities", Activity), ("likes", Like), ("comments", Comment)):
                tables[name] = (await db.execute(select(func.count()).select_from(model))).scalar()

            health_status.update({
                "tables": tables,
                "timestamp": datetime.utcnow().isoformat(),
            })
    except SQLAlchemyError as e:
        health_status["error"] = f"Extended check failed: {str(e)}"

    return health_status
