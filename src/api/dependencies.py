"""
FastAPI dependencies for the credential endpoint.

Routes receive the limiter, settings and client identity from here,
never building them. Tests replace any of them via app.dependency_overrides.
"""

import hashlib
import logging
from typing import Annotated, Optional

from fastapi import Depends, Header, HTTPException, Request, Security, status
from fastapi.security import APIKeyHeader

from ..config.settings import Settings, get_settings
from ..core.uploads.credentials import CredentialIssuer
from ..core.uploads.rate_limit import CounterStore, FixedWindowRateLimiter
from ..infrastructure.counters.store import RedisConfig, create_counter_store

logger = logging.getLogger(__name__)

# API Key security scheme
api_key_header = APIKeyHeader(name="X-API-Key", auto_error=False)

# Counter stores are shared across requests so counts survive between them
_counter_stores: dict[str, CounterStore] = {}


# ---------------------------------------------------------------------------
# Authentication
# ---------------------------------------------------------------------------

async def verify_api_key(
    settings: Annotated[Settings, Depends(get_settings)],
    api_key: str = Security(api_key_header),
) -> Optional[str]:
    """
    Validate API key from request header.

    When no keys are configured the check is disabled and None is returned.
    Raises 403 if a key is required and is invalid or missing.
    """
    allowed_keys = settings.api_keys_list
    if not allowed_keys:
        return None

    if not api_key:
        logger.warning("Request missing API key")
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="API key required. Provide X-API-Key header.",
        )

    if api_key not in allowed_keys:
        logger.warning(
            "Invalid API key attempt",
            extra={"key_prefix": api_key[:8]}
        )
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Invalid API key",
        )

    return api_key


def get_client_identity(
    request: Request,
    api_key: Annotated[Optional[str], Depends(verify_api_key)],
    x_user_id: Annotated[Optional[str], Header()] = None,
) -> str:
    """
    Identity the rate limiter counts against.

    The user id header is only trusted on requests carrying a verified API
    key, and is then scoped to that key. Anonymous requests count against
    the client address whatever headers they send.
    """
    if api_key:
        key_id = hashlib.sha256(api_key.encode("utf-8")).hexdigest()[:16]
        if x_user_id:
            return f"key:{key_id}:user:{x_user_id}"
        return f"key:{key_id}"
    host = request.client.host if request.client else "unknown"
    return f"ip:{host}"


# ---------------------------------------------------------------------------
# Service Dependencies
# ---------------------------------------------------------------------------

def get_counter_store(
    settings: Annotated[Settings, Depends(get_settings)],
) -> CounterStore:
    """
    Provide the counter store backing the rate limiter.

    One instance per backend for the whole process: the in-memory store
    must be shared to count at all, and the Redis client pools connections.
    """
    cache_key = "mock" if settings.redis_mock_mode else settings.redis_url

    store = _counter_stores.get(cache_key)
    if store is None:
        if settings.redis_mock_mode:
            store = create_counter_store(mock_mode=True)
            logger.info("Created shared mock counter store")
        else:
            store = create_counter_store(config=RedisConfig(url=settings.redis_url))
        _counter_stores[cache_key] = store

    return store


def get_rate_limiter(
    settings: Annotated[Settings, Depends(get_settings)],
    store: Annotated[CounterStore, Depends(get_counter_store)],
) -> FixedWindowRateLimiter:
    """Provide the fixed-window limiter for credential requests."""
    return FixedWindowRateLimiter(
        store=store,
        max_requests=settings.rate_limit_max_requests,
        window_seconds=settings.rate_limit_window_seconds,
        prefix=settings.rate_limit_prefix,
        fail_open=settings.rate_limit_fail_open,
    )


def create_credential_issuer(settings: Settings) -> CredentialIssuer:
    """
    Build the credential issuer from settings.

    Called from the route body after the rate limit check, so a missing
    signing key never preempts the 403 and 429 answers. Raises
    SigningMisconfigured when the private key is missing.
    """
    return CredentialIssuer(
        private_key=settings.imagekit_private_key,
        validity_seconds=settings.credential_validity_seconds,
        bind_scope=settings.credential_bind_scope,
        digest=settings.credential_digest,
    )


# ---------------------------------------------------------------------------
# Convenience Type Aliases
# ---------------------------------------------------------------------------

# These type aliases make route signatures cleaner
AuthenticatedClient = Annotated[Optional[str], Depends(verify_api_key)]
ClientIdentity = Annotated[str, Depends(get_client_identity)]
CounterStoreDep = Annotated[CounterStore, Depends(get_counter_store)]
RateLimiterDep = Annotated[FixedWindowRateLimiter, Depends(get_rate_limiter)]
SettingsDep = Annotated[Settings, Depends(get_settings)]
