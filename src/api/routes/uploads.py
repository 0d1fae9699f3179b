"""
Upload credential endpoint.

Clients call this before every direct upload. The flow:
1. Verify the API key, when keys are configured
2. Derive the client identity (key-bound user id, or client address)
3. Count the request against the fixed-window rate limit
4. Mint a signed, expiring credential bound to the destination folder
5. Return `{token, expire, signature}`

The file itself never touches this server; the client sends it straight to
the object store with the credential.
"""

import logging
import math
from typing import Annotated, Optional

from fastapi import APIRouter, Header, Query, Response, status
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from ...core.uploads.credentials import SigningMisconfigured
from ...core.uploads.models import UploadScope
from ...core.uploads.rate_limit import RateLimitStoreError
from ..dependencies import (
    AuthenticatedClient,
    ClientIdentity,
    RateLimiterDep,
    SettingsDep,
    create_credential_issuer,
)

logger = logging.getLogger(__name__)

router = APIRouter()

CREDENTIAL_FAILURE_MESSAGE = "Failed to get authentication parameters"


# ---------------------------------------------------------------------------
# Response Models
# ---------------------------------------------------------------------------

class UploadCredentialResponse(BaseModel):
    """Signed authorization for one direct upload."""
    token: str = Field(description="Single-use upload token")
    expire: int = Field(description="Unix timestamp after which the credential is invalid")
    signature: str = Field(description="HMAC signature over token, expire and scope")


class ErrorResponse(BaseModel):
    """Opaque error body."""
    error: str


class RateLimitedResponse(BaseModel):
    """Body of a 429 response."""
    error: str
    retry_after: float = Field(description="Seconds until the rate limit window resets")


# ---------------------------------------------------------------------------
# Endpoints
# ---------------------------------------------------------------------------

@router.get(
    "/upload-credential",
    response_model=UploadCredentialResponse,
    status_code=status.HTTP_200_OK,
    summary="Get upload credential",
    description="Issue a short-lived signed credential for a direct upload to object storage",
    responses={
        429: {"description": "Rate limited", "model": RateLimitedResponse},
        500: {"description": "Credential could not be issued", "model": ErrorResponse},
    },
)
def get_upload_credential(
    api_key: AuthenticatedClient,
    identity: ClientIdentity,
    response: Response,
    settings: SettingsDep,
    limiter: RateLimiterDep,
    folder: Annotated[Optional[str], Query(description="Destination folder bound into the signature")] = None,
    x_api_key: Annotated[Optional[str], Header()] = None,
):
    """
    Issue an upload credential.

    Sync on purpose: FastAPI runs it in the threadpool, so a blocking
    Redis round trip never stalls the event loop.
    """
    bypass_rate_limit = bool(x_api_key) and x_api_key in settings.rate_limit_bypass_keys_list

    if not bypass_rate_limit:
        try:
            decision = limiter.allow(identity)
        except RateLimitStoreError as e:
            logger.error(
                "Rate limit check failed",
                extra={"identity": identity, "error": str(e)}
            )
            return JSONResponse(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                content={"error": CREDENTIAL_FAILURE_MESSAGE},
            )

        if not decision.permitted:
            retry_after = decision.retry_after or 0.0
            return JSONResponse(
                status_code=status.HTTP_429_TOO_MANY_REQUESTS,
                content={
                    "error": "Too many upload requests. Please try again shortly.",
                    "retry_after": round(retry_after, 3),
                },
                headers={"Retry-After": str(max(1, math.ceil(retry_after)))},
            )

        response.headers["X-RateLimit-Limit"] = str(decision.limit)
        response.headers["X-RateLimit-Remaining"] = str(decision.remaining)

    scope = UploadScope(
        public_key=settings.imagekit_public_key,
        resource_path=folder or settings.default_upload_folder,
    )

    try:
        credential = create_credential_issuer(settings).issue(scope)
    except SigningMisconfigured as e:
        logger.error(
            "Credential signing misconfigured",
            extra={"identity": identity, "error": str(e)}
        )
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"error": CREDENTIAL_FAILURE_MESSAGE},
        )
    except Exception as e:
        logger.error(
            "Failed to issue upload credential",
            extra={"identity": identity, "error_type": type(e).__name__},
            exc_info=e,
        )
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"error": CREDENTIAL_FAILURE_MESSAGE},
        )

    logger.info(
        "Upload credential issued",
        extra={
            "identity": identity,
            "folder": scope.resource_path,
            "expire": credential.expire,
            "bypass": bypass_rate_limit,
        }
    )

    return UploadCredentialResponse(**credential.to_dict())
