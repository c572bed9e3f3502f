"""Database connectivity check endpoint."""

import logging

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.exc import SQLAlchemyError

from api.deps import get_database
from db import Database

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/db-check")
async def db_check(database: Database = Depends(get_database)):
    """
    Run ``SELECT 1`` through the app's Database.

    Raises:
        HTTPException: 500 if the database cannot be reached
    """
    try:
        await database.ping()
    except (SQLAlchemyError, OSError) as e:
        logger.error("Database check failed", extra={"error": str(e)})
        raise HTTPException(status_code=500, detail=f"Database connection failed: {e}")
    return {"db": "ok"}
