from __future__ import annotations
from fastapi import APIRouter
from pydantic import BaseModel
from sqlalchemy import text
from loguru import logger
import os

from clubfit.db import engine

router = APIRouter()

APP_VERSION = os.getenv("CLUBFIT_VERSION", "0.1.0")
APP_ENV = os.getenv("CLUBFIT_ENV", "development")

class HealthResponse(BaseModel):
    status: str = "ok"
    database: str = "ok"

class VersionResponse(BaseModel):
    version: str
    env: str

@router.get("/health", response_model=HealthResponse)
def health() -> dict:
    # a dead database still answers, just says so
    db_status = "ok"
    try:
        with engine.connect() as conn:
            conn.execute(text("SELECT 1"))
    except Exception:
        logger.exception("Health check could not reach the database")
        db_status = "unavailable"
    return {"status": "ok", "database": db_status}

@router.get("/version", response_model=VersionResponse)
def version() -> dict:
    return {"version": APP_VERSION, "env": APP_ENV}
