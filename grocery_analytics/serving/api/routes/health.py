"""
Health Check Endpoints

Provides health and liveness checks for orchestration systems.
"""

from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from fastapi import APIRouter
from pydantic import BaseModel

from grocery_analytics.config import get_settings

router = APIRouter()


class HealthResponse(BaseModel):
    """Health check response"""
    status: str
    version: str
    environment: str
    timestamp: datetime
    checks: Dict[str, Any]


def _check_timezone(tz_name: str) -> Dict[str, Any]:
    try:
        ZoneInfo(tz_name)
    except (ZoneInfoNotFoundError, ValueError) as e:
        return {"status": "unhealthy", "timezone": tz_name, "error": str(e)}
    return {"status": "healthy", "timezone": tz_name}


def _check_export_path(output_path: str) -> Dict[str, Any]:
    path = Path(output_path)
    if path.exists() and not path.is_dir():
        return {"status": "unhealthy", "path": output_path, "error": "not a directory"}
    return {"status": "healthy", "path": output_path, "exists": path.exists()}


@router.get("/health", response_model=HealthResponse)
async def health_check() -> HealthResponse:
    """
    Health check endpoint.

    Checks:
    - Configured analytics timezone
    - Export directory
    """
    settings = get_settings()
    checks = {
        "timezone": _check_timezone(settings.analytics.timezone),
        "exports": _check_export_path(settings.exports.output_path),
    }

    overall_status = "healthy"
    if checks["timezone"]["status"] != "healthy":
        overall_status = "unhealthy"
    elif checks["exports"]["status"] != "healthy":
        overall_status = "degraded"

    return HealthResponse(
        status=overall_status,
        version=settings.version,
        environment=settings.app_env,
        timestamp=datetime.now(timezone.utc),
        checks=checks,
    )


@router.get("/health/live")
async def liveness_check() -> Dict[str, str]:
    """
    Liveness probe endpoint.

    Returns 200 if the application is running.
    """
    return {"status": "alive"}
