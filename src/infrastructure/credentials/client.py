"""
HTTP client for the upload credential endpoint.

Implements the CredentialSource protocol for the upload controller. Every
failure mode (network error, timeout, 429, 500, malformed body) is turned
into a CredentialRequestError with a message the UI can show as-is.
"""

import logging
import math
from dataclasses import dataclass
from typing import Optional

import httpx

from ...core.uploads.controller import CredentialRequestError
from ...core.uploads.models import UploadCredential

logger = logging.getLogger(__name__)

CREDENTIAL_PATH = "/auth/upload-credential"


@dataclass
class CredentialClientConfig:
    """Where and how to ask for upload credentials."""
    base_url: str
    path: str = CREDENTIAL_PATH
    timeout_seconds: float = 10.0
    api_key: Optional[str] = None
    user_id: Optional[str] = None
    folder: Optional[str] = None


class HttpCredentialClient:
    """
    Fetches credentials from the API with httpx.

    A transport can be injected, which lets tests point the client at the
    FastAPI app in-process (httpx.ASGITransport) or at a canned responder
    (httpx.MockTransport).
    """

    def __init__(
        self,
        config: CredentialClientConfig,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._config = config
        self._transport = transport

    def _headers(self) -> dict[str, str]:
        headers = {"Accept": "application/json"}
        if self._config.api_key:
            headers["X-API-Key"] = self._config.api_key
        if self._config.user_id:
            headers["X-User-Id"] = self._config.user_id
        return headers

    def _params(self) -> dict[str, str]:
        return {"folder": self._config.folder} if self._config.folder else {}

    async def fetch(self) -> UploadCredential:
        """Request a fresh credential. Never retries."""
        try:
            async with httpx.AsyncClient(
                base_url=self._config.base_url,
                timeout=self._config.timeout_seconds,
                transport=self._transport,
            ) as client:
                response = await client.get(
                    self._config.path,
                    params=self._params(),
                    headers=self._headers(),
                )
        except httpx.TimeoutException as e:
            logger.warning("Credential request timed out", extra={"error": str(e)})
            raise CredentialRequestError("Authentication request failed: request timed out")
        except httpx.HTTPError as e:
            logger.warning("Credential request failed", extra={"error": str(e)})
            raise CredentialRequestError(f"Authentication request failed: {e}")

        if response.status_code == 429:
            retry_after = _retry_after(response)
            logger.info(
                "Credential request rate limited",
                extra={"retry_after": retry_after}
            )
            wait = f" in {max(1, math.ceil(retry_after))} seconds" if retry_after is not None else " shortly"
            raise CredentialRequestError(
                f"Too many upload requests. Please try again{wait}.",
                status_code=429,
            )

        if not response.is_success:
            raise CredentialRequestError(
                f"Authentication request failed with status {response.status_code}: "
                f"{_error_message(response)}",
                status_code=response.status_code,
            )

        try:
            return UploadCredential.from_dict(response.json())
        except ValueError as e:
            logger.error("Malformed credential response", extra={"error": str(e)})
            raise CredentialRequestError(f"Authentication request failed: {e}")


def _error_message(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.text or response.reason_phrase
    if isinstance(body, dict):
        return str(body.get("error") or body.get("detail") or body)
    return str(body)


def _retry_after(response: httpx.Response) -> Optional[float]:
    """Retry delay from the JSON body, falling back to the Retry-After header."""
    try:
        body = response.json()
        if isinstance(body, dict) and body.get("retry_after") is not None:
            return float(body["retry_after"])
    except (TypeError, ValueError):
        pass

    header = response.headers.get("Retry-After")
    try:
        return float(header) if header else None
    except ValueError:
        return None
