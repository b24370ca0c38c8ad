"""
Health Check Router

Provides health check endpoints for monitoring application status, including
a readiness probe that verifies the database answers queries.
"""

import logging
import os
import time
from datetime import datetime, timezone
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Request
from pydantic import BaseModel, Field
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from academy.db.config import get_session

logger = logging.getLogger(__name__)

# Initialize router
router = APIRouter()

# Application start time for uptime calculation
_start_time = time.time()


class HealthCheckResponse(BaseModel):
    """Health check response model"""
    status: str = Field(..., description="Service status")
    version: str = Field(..., description="Application version")
    environment: str = Field(..., description="Current environment")
    timestamp: datetime = Field(..., description="Check timestamp")
    uptime: Optional[float] = Field(None, description="Uptime in seconds")


@router.get("/health", response_model=HealthCheckResponse, summary="Basic Health Check")
async def health_check(request: Request):
    """
    Basic health check endpoint

    Returns application status, version, and environment information.
    This endpoint is used by load balancers and monitoring systems.
    """
    settings = request.app.state.settings
    return HealthCheckResponse(
        status="healthy",
        version=settings.version,
        environment=settings.environment,
        timestamp=datetime.now(timezone.utc),
        uptime=time.time() - _start_time,
    )


@router.get("/health/ready", summary="Readiness Check")
async def readiness_check(session: AsyncSession = Depends(get_session)):
    """
    Kubernetes-style readiness probe

    Returns 200 if the database answers a trivial query, 503 otherwise.
    """
    try:
        await session.execute(text("SELECT 1"))
    except SQLAlchemyError as e:
        logger.warning(f"Readiness check failed: {e}")
        raise HTTPException(
            status_code=503,
            detail="Application not ready: database unavailable"
        )
    return {"status": "ready", "timestamp": datetime.now(timezone.utc).isoformat()}


@router.get("/health/live", summary="Liveness Check")
async def liveness_check():
    """
    Kubernetes-style liveness probe

    Returns 200 if the application is alive and responding.
    """
    return {
        "status": "alive",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "pid": os.getpid()
    }
