"""
Signed upload credentials.

The issuer mints a short-lived `{token, expire, signature}` triple that lets
a client upload straight to the object store. Nothing is stored server-side:
validity is recomputed from the triple, the scope and the private key.

With scope binding on, the signed message is the compact JSON array
`[token, expire, resource_path, public_key]`, so no two parameter sets
encode to the same bytes. With scope binding off it is the bare
`token + expire` string, which is exactly what ImageKit checks with
HMAC-SHA1 on its side.
"""

import hashlib
import hmac
import json
import logging
import secrets
import time
from typing import Callable, Optional

from .models import UploadCredential, UploadScope

logger = logging.getLogger(__name__)

DEFAULT_VALIDITY_SECONDS = 30 * 60
TOKEN_BYTES = 16  # 128 bits
SUPPORTED_DIGESTS = ("sha1", "sha256")


class CredentialError(Exception):
    """Base class for credential issuance failures."""
    pass


class SigningMisconfigured(CredentialError):
    """
    Raised when the issuer cannot sign at all.

    This is an operator problem (missing or invalid key), never something
    a retry would fix.
    """
    pass


def _signing_message(
    token: str,
    expire: int,
    scope: Optional[UploadScope],
    bind_scope: bool,
) -> bytes:
    if not bind_scope:
        return f"{token}{expire}".encode("utf-8")
    scope = scope or UploadScope()
    fields = [token, expire, scope.resource_path, scope.public_key]
    return json.dumps(fields, separators=(",", ":")).encode("utf-8")


def compute_signature(
    private_key: str,
    token: str,
    expire: int,
    scope: Optional[UploadScope] = None,
    bind_scope: bool = True,
    digest: str = "sha1",
) -> str:
    """HMAC of the signing message, lowercase hex."""
    return hmac.new(
        private_key.encode("utf-8"),
        _signing_message(token, expire, scope, bind_scope),
        getattr(hashlib, digest),
    ).hexdigest()


def verify_credential(
    credential: UploadCredential,
    now: float,
    private_key: str,
    scope: Optional[UploadScope] = None,
    bind_scope: bool = True,
    digest: str = "sha1",
) -> bool:
    """
    Check a credential without any server-side state.

    Valid iff `now < expire` and the signature matches the exact token,
    expiry and scope it was minted with.
    """
    if credential.is_expired(now):
        return False

    expected = compute_signature(
        private_key,
        credential.token,
        credential.expire,
        scope=scope,
        bind_scope=bind_scope,
        digest=digest,
    )
    return hmac.compare_digest(expected, credential.signature.lower())


class CredentialIssuer:
    """
    Mints upload credentials.

    Stateless apart from its fixed configuration, so one instance can be
    shared by concurrent requests without locking.
    """

    def __init__(
        self,
        private_key: str,
        validity_seconds: int = DEFAULT_VALIDITY_SECONDS,
        bind_scope: bool = True,
        digest: str = "sha1",
        clock: Callable[[], float] = time.time,
    ) -> None:
        if not private_key or not private_key.strip():
            raise SigningMisconfigured("Upload signing key is not configured")
        if validity_seconds <= 0:
            raise SigningMisconfigured("Credential validity window must be positive")
        if digest not in SUPPORTED_DIGESTS:
            raise SigningMisconfigured(f"Unsupported signature digest: {digest}")

        self._private_key = private_key
        self._validity_seconds = validity_seconds
        self._bind_scope = bind_scope
        self._digest = digest
        self._clock = clock

    @property
    def validity_seconds(self) -> int:
        return self._validity_seconds

    def issue(self, scope: Optional[UploadScope] = None) -> UploadCredential:
        """Mint a fresh single-use credential valid for the configured window."""
        token = secrets.token_hex(TOKEN_BYTES)
        expire = int(self._clock()) + self._validity_seconds
        signature = compute_signature(
            self._private_key,
            token,
            expire,
            scope=scope,
            bind_scope=self._bind_scope,
            digest=self._digest,
        )

        logger.debug(
            "Issued upload credential",
            extra={
                "expire": expire,
                "resource_path": scope.resource_path if scope else "",
            }
        )

        return UploadCredential(token=token, expire=expire, signature=signature)

    def verify(
        self,
        credential: UploadCredential,
        scope: Optional[UploadScope] = None,
        now: Optional[float] = None,
    ) -> bool:
        return verify_credential(
            credential,
            self._clock() if now is None else now,
            self._private_key,
            scope=scope,
            bind_scope=self._bind_scope,
            digest=self._digest,
        )
