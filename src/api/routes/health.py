"""
Health check endpoints.

- /health: liveness, answers as long as the process runs
- /health/ready: readiness, 503 unless credentials can actually be issued
  (configuration complete, signing key usable, counter store reachable)
"""

import logging
from typing import Any

from fastapi import APIRouter, Response, status
from pydantic import BaseModel

from ... import __version__
from ...core.uploads.credentials import SigningMisconfigured
from ..dependencies import CounterStoreDep, SettingsDep, create_credential_issuer

logger = logging.getLogger(__name__)

router = APIRouter()


class HealthResponse(BaseModel):
    """
    Health check response.

    Standardized format makes it easy for monitoring tools to parse.
    """
    status: str
    version: str
    details: dict[str, Any] = {}


class ReadinessCheck(BaseModel):
    """Individual readiness check result."""
    name: str
    status: str  # "ok" or "error"
    error: str | None = None


class ReadinessResponse(BaseModel):
    """Readiness check response with details."""
    status: str  # "ready" or "not_ready"
    version: str
    checks: list[ReadinessCheck]


@router.get(
    "",
    response_model=HealthResponse,
    status_code=status.HTTP_200_OK,
    summary="Basic health check",
    description="Returns 200 if the service is running. Does not check dependencies.",
)
async def health_check(settings: SettingsDep) -> HealthResponse:
    """
    Liveness check - is the process alive?

    This endpoint should be very fast and not check external dependencies.
    """
    return HealthResponse(
        status="ok",
        version=__version__,
        details={
            "mock_mode": {
                "redis": settings.redis_mock_mode,
                "storage": settings.storage_mock_mode,
            }
        }
    )


@router.get(
    "/ready",
    response_model=ReadinessResponse,
    status_code=status.HTTP_200_OK,
    summary="Readiness check",
    description="Returns 200 if the service can issue credentials. Checks external dependencies.",
    responses={
        503: {
            "description": "Service not ready",
            "model": ReadinessResponse,
        }
    },
)
def readiness_check(
    response: Response,
    settings: SettingsDep,
    store: CounterStoreDep,
) -> ReadinessResponse:
    """
    Readiness check - can we serve traffic?

    Checks that the signing key is usable and the rate limit counter store
    answers. Returns 503 if any check fails, which tells load balancers not
    to route traffic here.
    """
    checks: list[ReadinessCheck] = []

    missing_fields = settings.validate_required_fields()
    if missing_fields:
        checks.append(ReadinessCheck(
            name="configuration",
            status="error",
            error=f"Missing required fields: {', '.join(missing_fields)}"
        ))
    else:
        checks.append(ReadinessCheck(name="configuration", status="ok"))

    try:
        create_credential_issuer(settings)
        checks.append(ReadinessCheck(name="signing", status="ok"))
    except SigningMisconfigured as e:
        checks.append(ReadinessCheck(name="signing", status="error", error=str(e)))

    if store.ping():
        checks.append(ReadinessCheck(
            name="counter_store",
            status="ok",
            error="mock mode" if settings.redis_mock_mode else None,
        ))
    else:
        checks.append(ReadinessCheck(
            name="counter_store",
            status="error",
            error="Counter store unreachable",
        ))

    all_ok = all(check.status == "ok" for check in checks)

    if not all_ok:
        response.status_code = status.HTTP_503_SERVICE_UNAVAILABLE
        logger.warning(
            "Readiness check failed",
            extra={
                "checks": [
                    {"name": c.name, "status": c.status, "error": c.error}
                    for c in checks
                ]
            }
        )

    return ReadinessResponse(
        status="ready" if all_ok else "not_ready",
        version=__version__,
        checks=checks,
    )
