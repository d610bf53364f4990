"""Health and readiness endpoints."""

from typing import Literal

from fastapi import APIRouter, Depends, Request, status
from fastapi.responses import JSONResponse
from pydantic import BaseModel
from sqlalchemy import text
from sqlalchemy.orm import Session

from perfwatch.core.errors import get_request_id
from perfwatch.db.session import get_db
from perfwatch.services.host_environment import HostEnvironment

router = APIRouter(tags=["Health"])


class HealthResponse(BaseModel):
    """Health check response."""

    status: Literal["ok"] = "ok"


class ReadinessCheck(BaseModel):
    """Individual readiness check result."""

    status: Literal["ok", "degraded", "down"]
    message: str | None = None


class ReadinessResponse(BaseModel):
    """Readiness check response."""

    status: Literal["ok", "degraded", "down"]
    checks: dict[str, ReadinessCheck]
    request_id: str


@router.get(
    "/health",
    response_model=HealthResponse,
    status_code=status.HTTP_200_OK,
    summary="Health check",
)
async def health_check() -> HealthResponse:
    """Health check endpoint - just checks if the process is alive."""
    return HealthResponse(status="ok")


@router.get(
    "/ready",
    response_model=ReadinessResponse,
    summary="Readiness check",
    description="Verifies database connectivity and reports whether slow-query capture can run.",
)
def readiness_check(
    request: Request,
    db: Session = Depends(get_db),
):
    """Readiness check endpoint - checks dependencies."""
    checks: dict[str, ReadinessCheck] = {}
    overall_status: Literal["ok", "degraded", "down"] = "ok"

    try:
        db.execute(text("SELECT 1"))
        checks["db"] = ReadinessCheck(status="ok")
    except Exception as e:
        checks["db"] = ReadinessCheck(status="down", message=str(e))
        overall_status = "down"

    if HostEnvironment().query_log_enabled:
        checks["query_log"] = ReadinessCheck(status="ok")
    else:
        checks["query_log"] = ReadinessCheck(
            status="ok", message="Query log disabled; slow-query capture is off"
        )

    body = ReadinessResponse(
        status=overall_status,
        checks=checks,
        request_id=get_request_id(request),
    )
    code = status.HTTP_200_OK if overall_status != "down" else status.HTTP_503_SERVICE_UNAVAILABLE
    return JSONResponse(status_code=code, content=body.model_dump())
